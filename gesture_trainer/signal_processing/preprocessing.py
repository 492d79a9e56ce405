"""
Sequence Preprocessing

The recurrent model does not use extracted features. It reads the raw
window as a sequence, so every recording is first conditioned into a fixed
shape:
- Padding / trimming to a fixed sequence length
- Per-axis Min-Max normalization within the recording

Normalization uses the recording's own min and max, so the same transform
applies during training and live inference without stored statistics.
"""
from typing import Sequence

import numpy as np

from ..config import INCLUDED_AXES, SEQUENCE_LENGTH
from ..data_model import Recording


class SequencePreprocessor:
    """
    Converts recordings into fixed-length normalized sequences.

    Attributes:
        sequence_length: Number of time steps in every output sequence
        num_axes: Number of axes per time step
    """

    def __init__(self, sequence_length: int = SEQUENCE_LENGTH):
        self.sequence_length = sequence_length
        self.num_axes = len(INCLUDED_AXES)

    def transform(self, data: Recording) -> np.ndarray:
        """
        Pad or trim, then normalize each axis to [0, 1].

        Args:
            data: Recording of any length (including empty)

        Returns:
            Array of shape (sequence_length, 3)
        """
        columns = [self._fix_length(np.asarray(getattr(data, axis), dtype=np.float64))
                   for axis in INCLUDED_AXES]
        return np.column_stack([self._normalize(c) for c in columns])

    def transform_batch(self, recordings: Sequence[Recording]) -> np.ndarray:
        """
        Transform many recordings.

        Returns:
            Array of shape (len(recordings), sequence_length, 3)
        """
        if not recordings:
            return np.empty((0, self.sequence_length, self.num_axes))
        return np.stack([self.transform(r) for r in recordings])

    def _fix_length(self, values: np.ndarray) -> np.ndarray:
        """
        Trim to sequence_length, or pad by repeating the last value.

        An empty series pads with zeros.
        """
        if len(values) >= self.sequence_length:
            return values[:self.sequence_length]
        fill = values[-1] if len(values) else 0.0
        padding = np.full(self.sequence_length - len(values), fill)
        return np.concatenate([values, padding])

    def _normalize(self, values: np.ndarray) -> np.ndarray:
        """
        Min-Max normalize a single axis.

        A constant axis carries no shape information and maps to 0.5.
        """
        lo = np.min(values)
        hi = np.max(values)
        if hi == lo:
            return np.full_like(values, 0.5)
        return (values - lo) / (hi - lo)
