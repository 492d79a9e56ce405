import pytest

from gesture_trainer.config import SEQUENCE_LENGTH
from gesture_trainer.data_model import CURRENT, Action
from gesture_trainer.errors import EmptyInputError
from gesture_trainer.ml.inference import (
    GesturePredictor,
    PredictionFailed,
    PredictionInput,
    PredictionResult,
    PredictionSucceeded,
    get_detected_action,
    predict,
)
from gesture_trainer.model_options import DEFAULT_MODEL_OPTIONS, GRU_MODEL_OPTIONS
from gesture_trainer.monitoring import LatencyTracker


class TestPredict:
    def test_maps_outputs_to_ids_in_order(self, fake_model, make_recording):
        model = fake_model([0.25, 0.75])
        result = predict(PredictionInput(model, make_recording(), ['a', 'b']),
                         CURRENT, DEFAULT_MODEL_OPTIONS)

        assert isinstance(result, PredictionSucceeded)
        assert result.error is False
        assert result.confidences == {'a': pytest.approx(0.25), 'b': pytest.approx(0.75)}
        assert model.calls == [(1, 24)]

    def test_width_mismatch_is_a_failure(self, fake_model, make_recording):
        result = predict(PredictionInput(fake_model([0.5, 0.5]), make_recording(), [1, 2, 3]),
                         CURRENT, DEFAULT_MODEL_OPTIONS)
        assert isinstance(result, PredictionFailed)
        assert result.error is True
        assert '2 outputs for 3 actions' in result.detail

    def test_model_exception_is_a_failure(self, fake_model, make_recording):
        result = predict(PredictionInput(fake_model([1.0], fail=True), make_recording(), [1]),
                         CURRENT, DEFAULT_MODEL_OPTIONS)
        assert isinstance(result, PredictionFailed)
        assert result.detail == 'model exploded'

    def test_empty_window_raises(self, fake_model, make_recording):
        with pytest.raises(EmptyInputError):
            predict(PredictionInput(fake_model([1.0]), make_recording(n=0), [1]),
                    CURRENT, DEFAULT_MODEL_OPTIONS)

    def test_gru_receives_sequence(self, fake_model, make_recording):
        model = fake_model([0.1, 0.9])
        predict(PredictionInput(model, make_recording(n=30), [1, 2]), CURRENT, GRU_MODEL_OPTIONS)
        assert model.calls == [(1, SEQUENCE_LENGTH, 3)]

    def test_latency_recorded(self, fake_model, make_recording):
        tracker = LatencyTracker()
        predictor = GesturePredictor(CURRENT, DEFAULT_MODEL_OPTIONS, latency_tracker=tracker)
        predictor.predict(PredictionInput(fake_model([1.0]), make_recording(), [1]))

        assert tracker.get_current_stats()['sample_count'] == 1
        assert set(predictor.get_latency_stats()) == {'feature_extraction_ms', 'inference_ms', 'total_ms'}


class TestDetectedAction:
    @pytest.fixture
    def actions(self):
        return [Action(id=1, required_confidence=0.8), Action(id=2, required_confidence=0.8)]

    def test_highest_qualifying_action_wins(self, actions):
        assert get_detected_action(actions, {1: 0.85, 2: 0.9}).id == 2

    def test_confidence_must_exceed_threshold(self, actions):
        assert get_detected_action(actions, {1: 0.8, 2: 0.2}) is None

    def test_nothing_qualifies(self, actions):
        assert get_detected_action(actions, {1: 0.5, 2: 0.5}) is None

    def test_per_action_thresholds(self):
        actions = [Action(id=1, required_confidence=0.5), Action(id=2, required_confidence=0.95)]
        assert get_detected_action(actions, {1: 0.6, 2: 0.9}).id == 1

    def test_missing_confidences(self, actions):
        assert get_detected_action(actions, None) is None
        assert get_detected_action(actions, {}) is None
        assert get_detected_action(actions, {3: 0.99}) is None


def test_prediction_result_to_dict():
    result = PredictionResult(confidences={1: 0.9, 2: 0.1}, detected=Action(id=1))
    assert result.to_dict() == {'confidences': {'1': 0.9, '2': 0.1}, 'detected': 1}
    assert PredictionResult(confidences={}).to_dict()['detected'] is None


def test_nan_confidence_is_never_detected():
    actions = [Action(id=1, required_confidence=0.8), Action(id=2, required_confidence=0.8)]
    assert get_detected_action(actions, {1: float('nan'), 2: float('nan')}) is None
    assert get_detected_action(actions, {1: float('nan'), 2: 0.9}).id == 2
