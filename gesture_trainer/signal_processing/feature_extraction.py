"""
Accelerometer Feature Extraction

This module turns a recording window into a fixed-length feature vector by
applying every active filter to the x, y and z series independently.

Features are keyed '<filter>-<axis>' (for example 'max-x') and always come
in filter order, then axis order x, y, z. With k active filters the vector
has 3k entries.
"""
from collections import OrderedDict
from typing import TYPE_CHECKING, Dict, List, Sequence

import numpy as np

from ..config import INCLUDED_AXES
from ..data_model import DataWindow, Recording
from ..errors import EmptyInputError
from .filters import get_ml_filters, order_filters

if TYPE_CHECKING:
    from ..model_options import ModelOptions


def normalize_value(value: float, min_value: float, max_value: float) -> float:
    """
    Rescale value from [min_value, max_value] to [0, 1].

    The result is not clipped: data outside the expected range maps
    outside [0, 1].
    """
    return (value - min_value) / (max_value - min_value)


def apply_filters(data: Recording, data_window: DataWindow,
                  model_options: 'ModelOptions',
                  normalize: bool = False) -> Dict[str, float]:
    """
    Reduce a recording to one value per active filter and axis.

    Args:
        data: Recording with x, y, z series
        data_window: Window the recording was captured with
        model_options: Options whose features_active selects the filters
        normalize: Rescale every value by its filter's expected range

    Returns:
        Ordered mapping '<filter>-<axis>' -> value

    Raises:
        EmptyInputError: If any axis has no samples
    """
    series = {axis: np.asarray(getattr(data, axis), dtype=np.float64)
              for axis in INCLUDED_AXES}
    if any(len(values) == 0 for values in series.values()):
        raise EmptyInputError("Empty x/y/z data")

    filters = get_ml_filters(data_window)
    features: Dict[str, float] = OrderedDict()
    for f in order_filters(model_options.features_active):
        strategy = filters[f]
        for axis in INCLUDED_AXES:
            value = strategy.strategy(series[axis], data_window)
            if normalize:
                value = normalize_value(value, strategy.min, strategy.max)
            features[f'{f.value}-{axis}'] = value
    return features


class FeatureExtractor:
    """
    Extracts feature vectors for one data window and set of model options.

    This is the array-returning front end to apply_filters() used by the
    trainer and the predictor.

    Attributes:
        data_window: Window the recordings were captured with
        model_options: Options selecting the active filters
        total_features: Length of every feature vector
    """

    def __init__(self, data_window: DataWindow, model_options: 'ModelOptions'):
        self.data_window = data_window
        self.model_options = model_options
        self.total_features = len(model_options.features_active) * len(INCLUDED_AXES)

    def extract(self, data: Recording, normalize: bool = False) -> np.ndarray:
        """
        Extract the feature vector of a single recording.

        Returns:
            Array of shape (total_features,)
        """
        features = apply_filters(data, self.data_window, self.model_options,
                                 normalize=normalize)
        return np.fromiter(features.values(), dtype=np.float64, count=len(features))

    def extract_batch(self, recordings: Sequence[Recording]) -> np.ndarray:
        """
        Extract unnormalized features for many recordings.

        Returns:
            Feature matrix of shape (len(recordings), total_features)
        """
        if not recordings:
            return np.empty((0, self.total_features))
        return np.vstack([self.extract(r) for r in recordings])

    def get_feature_names(self) -> List[str]:
        """
        Get the feature keys in vector order.

        Returns:
            List like ['max-x', 'max-y', 'max-z', 'min-x', ...]
        """
        return [f'{f.value}-{axis}'
                for f in order_filters(self.model_options.features_active)
                for axis in INCLUDED_AXES]
