"""
Gesture Inference

This module turns one window of samples into per-action confidences and
decides which action, if any, counts as detected.

Key features:
- Same input conditioning as training (features, or sequences for GRU)
- Confidences mapped positionally onto the classification ids the model
  was trained with
- Inference failures returned as values instead of raised
- Per-call latency breakdown
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Optional, Sequence, Union

import numpy as np

from ..data_model import Action, DataWindow, Recording
from ..model_options import ModelOptions
from ..monitoring.latency_tracker import LatencyTracker
from ..signal_processing.feature_extraction import FeatureExtractor
from ..signal_processing.preprocessing import SequencePreprocessor

logger = logging.getLogger(__name__)

Confidences = Dict[Hashable, float]


@dataclass(frozen=True)
class PredictionInput:
    """
    Everything needed for one prediction.

    Attributes:
        model: Trained classifier
        data: Window of samples to classify
        classification_ids: Action ids in the model's output order
    """
    model: Any
    data: Recording
    classification_ids: Sequence[Hashable]


@dataclass(frozen=True)
class PredictionSucceeded:
    confidences: Confidences
    error: bool = field(default=False, init=False)


@dataclass(frozen=True)
class PredictionFailed:
    detail: Optional[str] = None
    error: bool = field(default=True, init=False)


ConfidencesResult = Union[PredictionSucceeded, PredictionFailed]


@dataclass(frozen=True)
class PredictionResult:
    """A published prediction: all confidences and the detected action."""
    confidences: Confidences
    detected: Optional[Action] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'confidences': {str(k): v for k, v in self.confidences.items()},
            'detected': self.detected.id if self.detected is not None else None,
        }


class GesturePredictor:
    """
    Single-window gesture predictor.

    Attributes:
        data_window: Window the model was trained for
        model_options: Options the model was trained with
        feature_extractor: FeatureExtractor for the active filters
        sequence_preprocessor: Sequence conditioning for GRU models
        latency_tracker: Optional tracker receiving every timing
    """

    def __init__(self, data_window: DataWindow, model_options: ModelOptions,
                 latency_tracker: Optional[LatencyTracker] = None):
        self.data_window = data_window
        self.model_options = model_options
        self.feature_extractor = FeatureExtractor(data_window, model_options)
        self.sequence_preprocessor = SequencePreprocessor()
        self.latency_tracker = latency_tracker

        self._last_feature_time = 0.0
        self._last_inference_time = 0.0

    def predict(self, prediction_input: PredictionInput) -> ConfidencesResult:
        """
        Classify one window.

        Args:
            prediction_input: Model, window and classification ids

        Returns:
            PredictionSucceeded mapping each classification id to its
            confidence, or PredictionFailed if the model raised or its
            output width does not match the ids

        Raises:
            EmptyInputError: If the window has an empty axis
        """
        # Step 1: Feature extraction (raises on empty input)
        feature_start = time.perf_counter()
        if self.model_options.uses_features:
            row = self.feature_extractor.extract(prediction_input.data)
        else:
            row = self.sequence_preprocessor.transform(prediction_input.data)
        batch = np.expand_dims(row, 0).astype(np.float32)
        self._last_feature_time = (time.perf_counter() - feature_start) * 1000

        # Step 2: Inference
        inference_start = time.perf_counter()
        try:
            output = np.asarray(prediction_input.model(batch, training=False))
        except Exception as e:
            logger.warning("Inference failed: %s", e)
            return PredictionFailed(detail=str(e))
        self._last_inference_time = (time.perf_counter() - inference_start) * 1000

        if self.latency_tracker is not None:
            self.latency_tracker.record(self._last_feature_time, self._last_inference_time)

        ids = list(prediction_input.classification_ids)
        scores = output.reshape(-1)
        if len(scores) != len(ids):
            detail = f"Model produced {len(scores)} outputs for {len(ids)} actions"
            logger.warning("Inference failed: %s", detail)
            return PredictionFailed(detail=detail)

        return PredictionSucceeded(
            confidences={action_id: float(score) for action_id, score in zip(ids, scores)}
        )

    def get_latency_stats(self) -> Dict[str, float]:
        """Timings of the last prediction."""
        return {
            'feature_extraction_ms': round(self._last_feature_time, 2),
            'inference_ms': round(self._last_inference_time, 2),
            'total_ms': round(self._last_feature_time + self._last_inference_time, 2),
        }


def predict(prediction_input: PredictionInput, data_window: DataWindow,
            model_options: ModelOptions) -> ConfidencesResult:
    return GesturePredictor(data_window, model_options).predict(prediction_input)


def get_detected_action(actions: Sequence[Action],
                        confidences: Optional[Confidences]) -> Optional[Action]:
    """
    Pick the detected action.

    An action qualifies when its confidence is strictly greater than its
    required confidence. Of the qualifying actions the most confident one
    wins (the first in action order on a tie).

    Returns:
        The detected action, or None
    """
    if not confidences:
        return None

    detected = None
    best = None
    for action in actions:
        confidence = confidences.get(action.id)
        if confidence is None or not confidence > action.required_confidence:
            continue
        if best is None or confidence > best:
            detected, best = action, confidence
    return detected
