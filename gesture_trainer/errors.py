"""
Exception types raised across the gesture trainer.

Training and inference failures are returned as values (see
ml.training.TrainingFailed and ml.inference.PredictionFailed); the
exceptions below signal contract violations or rejected input.
"""


class GestureTrainerError(Exception):
    """Base class for all gesture trainer errors."""


class EmptyInputError(GestureTrainerError, ValueError):
    """Feature extraction was given an axis with no samples."""


class InsufficientTrainingDataError(GestureTrainerError):
    """Too few actions, or too few non-test recordings per action."""


class NoActiveFeaturesError(GestureTrainerError):
    """Training was requested with an empty set of active filters."""


class UnknownActionError(GestureTrainerError, KeyError):
    """No action with the requested ID exists."""


class DatasetFormatError(GestureTrainerError, ValueError):
    """An imported dataset does not have the expected structure."""
