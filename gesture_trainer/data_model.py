"""
Core data structures shared by all modules.

- Sample: one timestamped accelerometer reading
- Recording: one captured gesture window (x, y, z series)
- Action: a user defined gesture class and its recordings
- DataWindow: timing of one recording / inference window

Recordings and actions convert to and from the plain JSON form used for
dataset import and export.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import (
    CURRENT_DATA_WINDOW,
    DEFAULT_REQUIRED_CONFIDENCE,
    INITIAL_TESTS_PASSED,
    LEGACY_DATA_WINDOW,
)
from .errors import DatasetFormatError


@dataclass(frozen=True)
class Sample:
    """A single accelerometer reading (g) with its millisecond timestamp."""
    x: float
    y: float
    z: float
    timestamp: int


@dataclass(frozen=True)
class DataWindow:
    """
    Timing parameters of one recording / inference window.

    Attributes:
        duration: Window length in milliseconds
        min_samples: Samples needed before a live window is classified
        device_samples_period: Milliseconds between device samples
        device_samples_length: Samples the device produces per window
    """
    duration: int
    min_samples: int
    device_samples_period: int
    device_samples_length: int


LEGACY = DataWindow(**LEGACY_DATA_WINDOW)
CURRENT = DataWindow(**CURRENT_DATA_WINDOW)


@dataclass
class Recording:
    """Ordered x, y, z series captured over one window."""
    x: List[float]
    y: List[float]
    z: List[float]
    id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.x)

    def as_array(self) -> np.ndarray:
        """Return the recording as an array of shape (n_samples, 3)."""
        return np.column_stack([
            np.asarray(self.x, dtype=np.float64),
            np.asarray(self.y, dtype=np.float64),
            np.asarray(self.z, dtype=np.float64),
        ])

    @classmethod
    def from_array(cls, data: np.ndarray, id: Optional[int] = None) -> 'Recording':
        return cls(
            x=data[:, 0].tolist(),
            y=data[:, 1].tolist(),
            z=data[:, 2].tolist(),
            id=id,
        )

    @classmethod
    def from_samples(cls, samples: Iterable[Sample]) -> 'Recording':
        xs, ys, zs = [], [], []
        for s in samples:
            xs.append(s.x)
            ys.append(s.y)
            zs.append(s.z)
        return cls(x=xs, y=ys, z=zs)

    def validate(self) -> 'Recording':
        """
        Check the recording is usable for training and inference.

        Returns:
            The recording itself

        Raises:
            DatasetFormatError: If an axis is empty, the axes differ in
                length, or a value is not finite
        """
        if not (len(self.x) == len(self.y) == len(self.z)):
            raise DatasetFormatError(
                f"Recording axes differ in length: x={len(self.x)}, y={len(self.y)}, z={len(self.z)}"
            )
        if len(self.x) == 0:
            raise DatasetFormatError("Recording has no samples")
        if not np.isfinite(self.as_array()).all():
            raise DatasetFormatError("Recording contains non-finite values")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ID': self.id,
            'data': {'x': list(self.x), 'y': list(self.y), 'z': list(self.z)},
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Recording':
        # Exported datasets nest the series under "data"; bare {x, y, z} is accepted too
        data = raw.get('data', raw)
        try:
            recording = cls(
                x=[float(v) for v in data['x']],
                y=[float(v) for v in data['y']],
                z=[float(v) for v in data['z']],
                id=raw.get('ID'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DatasetFormatError(f"Invalid recording: {e}") from e
        return recording.validate()


@dataclass(frozen=True)
class Action:
    """
    A user defined gesture; one action is one output class of the model.

    Attributes:
        id: Unique action ID (also the key in confidence mappings)
        name: Display name
        icon: Icon name
        recordings: Recordings in stored order
        tests_passed: Held-out recordings classified correctly at last training
        required_confidence: Confidence the action needs to be detected
    """
    id: int
    name: str = ''
    icon: str = ''
    recordings: Tuple[Recording, ...] = field(default_factory=tuple)
    tests_passed: int = INITIAL_TESTS_PASSED
    required_confidence: float = DEFAULT_REQUIRED_CONFIDENCE

    def with_recordings(self, recordings: Sequence[Recording]) -> 'Action':
        return replace(self, recordings=tuple(recordings))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ID': self.id,
            'name': self.name,
            'icon': self.icon,
            'recordings': [r.to_dict() for r in self.recordings],
            'testsPassed': self.tests_passed,
            'requiredConfidence': self.required_confidence,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Action':
        if not isinstance(raw, dict) or 'ID' not in raw:
            raise DatasetFormatError("Each action needs an 'ID'")
        recordings = raw.get('recordings', [])
        if not isinstance(recordings, list):
            raise DatasetFormatError("'recordings' must be a list")
        return cls(
            id=raw['ID'],
            name=raw.get('name', ''),
            icon=raw.get('icon') or '',
            recordings=tuple(Recording.from_dict(r) for r in recordings),
            tests_passed=raw.get('testsPassed', INITIAL_TESTS_PASSED),
            required_confidence=raw.get('requiredConfidence', DEFAULT_REQUIRED_CONFIDENCE),
        )


def get_data_window_from_actions(actions: Sequence[Action]) -> DataWindow:
    """
    Pick the data window matching the loaded recordings.

    Recordings made with the legacy window are long enough to reach its
    sample count; anything shorter (or no recordings at all) uses the
    current window.
    """
    for action in actions:
        if action.recordings:
            if len(action.recordings[0]) >= LEGACY.min_samples:
                return LEGACY
            return CURRENT
    return CURRENT


def get_total_num_samples(actions: Sequence[Action]) -> int:
    """Total number of recordings across all actions."""
    return sum(len(a.recordings) for a in actions)
