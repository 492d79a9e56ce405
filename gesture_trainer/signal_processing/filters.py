"""
Statistical Filters

Each filter reduces one axis of a recording window to a single number.
Together the active filters, applied to x, y and z, make up the feature
vector fed to the classifier.

Filters available:
- MAX / MIN: Extremes of the window
- MEAN: Average acceleration (mostly the gravity component)
- STD: Population standard deviation (how much the axis moves)
- PEAKS: Number of pronounced local maxima
- ACC: Total absolute acceleration over the window
- ZCR: Zero-crossing rate (direction reversals per sample)
- RMS: Root mean square (signal energy)

Every filter also carries an expected [min, max] output range. The ranges
are heuristics tuned for micro:bit accelerometer data, not guaranteed
bounds; they are only used to normalize features for display.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet

import numpy as np
from scipy.signal import find_peaks

from ..config import (
    MAX_ACCELERATION,
    PEAKS_MAX_COUNT,
    PEAKS_MIN_SEPARATION_MS,
    PEAKS_THRESHOLD_STD,
)
from ..data_model import DataWindow


class Filter(Enum):
    """
    Filters in feature-vector order.

    The declaration order here fixes the order of the feature vector, so
    new filters must be appended.
    """
    MAX = 'max'
    MIN = 'min'
    MEAN = 'mean'
    STD = 'std'
    PEAKS = 'peaks'
    ACC = 'acc'
    ZCR = 'zcr'
    RMS = 'rms'


FilterStrategyFn = Callable[[np.ndarray, DataWindow], float]


@dataclass(frozen=True)
class FilterStrategy:
    """A filter's reduction function and its expected output range."""
    strategy: FilterStrategyFn
    min: float
    max: float


ALL_FILTERS: FrozenSet[Filter] = frozenset(Filter)


def order_filters(filters) -> list:
    """Sort filters into feature-vector order."""
    order = list(Filter)
    return sorted(filters, key=order.index)


def _max(values: np.ndarray, data_window: DataWindow) -> float:
    return float(np.max(values))


def _min(values: np.ndarray, data_window: DataWindow) -> float:
    return float(np.min(values))


def _mean(values: np.ndarray, data_window: DataWindow) -> float:
    return float(np.mean(values))


def _std(values: np.ndarray, data_window: DataWindow) -> float:
    # Population standard deviation (ddof=0)
    return float(np.std(values))


def _rms(values: np.ndarray, data_window: DataWindow) -> float:
    return float(np.sqrt(np.mean(values ** 2)))


def _zero_crossing_rate(values: np.ndarray, data_window: DataWindow) -> float:
    """
    Count sign changes between consecutive samples, divided by window length.

    Zero counts as positive so a signal resting on zero does not register
    crossings.
    """
    if len(values) < 2:
        return 0.0
    non_negative = values >= 0
    crossings = np.count_nonzero(non_negative[1:] != non_negative[:-1])
    return float(crossings / len(values))


def _peaks(values: np.ndarray, data_window: DataWindow) -> float:
    """
    Count local maxima that rise PEAKS_THRESHOLD_STD standard deviations
    above the window mean.

    Peaks closer than PEAKS_MIN_SEPARATION_MS are merged; the separation is
    converted to samples using the device sampling period.
    """
    if len(values) < 3:
        return 0.0
    std = np.std(values)
    if std == 0:
        return 0.0
    height = np.mean(values) + PEAKS_THRESHOLD_STD * std
    distance = max(1, int(round(PEAKS_MIN_SEPARATION_MS / data_window.device_samples_period)))
    peaks, _ = find_peaks(values, height=height, distance=distance)
    return float(len(peaks))


def _total_acceleration(values: np.ndarray, data_window: DataWindow) -> float:
    return float(np.sum(np.abs(values)))


def get_ml_filters(data_window: DataWindow) -> Dict[Filter, FilterStrategy]:
    """
    Build the filter table for a data window.

    Args:
        data_window: Window the recordings were captured with

    Returns:
        Mapping of every Filter to its strategy and expected range. The ACC
        range grows with the number of samples the device produces per window.
    """
    return {
        Filter.MAX: FilterStrategy(_max, -MAX_ACCELERATION, MAX_ACCELERATION),
        Filter.MIN: FilterStrategy(_min, -MAX_ACCELERATION, MAX_ACCELERATION),
        Filter.MEAN: FilterStrategy(_mean, -MAX_ACCELERATION, MAX_ACCELERATION),
        Filter.STD: FilterStrategy(_std, 0.0, MAX_ACCELERATION),
        Filter.PEAKS: FilterStrategy(_peaks, 0.0, float(PEAKS_MAX_COUNT)),
        Filter.ACC: FilterStrategy(
            _total_acceleration, 0.0,
            MAX_ACCELERATION * data_window.device_samples_length
        ),
        Filter.ZCR: FilterStrategy(_zero_crossing_rate, 0.0, 1.0),
        Filter.RMS: FilterStrategy(_rms, 0.0, MAX_ACCELERATION),
    }
