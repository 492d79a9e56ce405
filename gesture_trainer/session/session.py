"""
Training / Prediction Session

The Session ties the pieces together for a host application: it owns the
live sample buffer, the actions, the model options, the current model and
the prediction loop, and runs the training flow.

Training flow:
1. Gate on sufficient data and on at least one active filter
2. Announce the start of training, then yield briefly
3. Train on everything except the held-out test recordings
4. Count correctly classified held-out recordings per action
5. Store the new model, or record the failure
"""
import logging
import threading
import time
from dataclasses import asdict
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional

from ..actions.action_store import ActionStore
from ..config import TRAINING_START_DELAY_S
from ..data_model import DataWindow, get_total_num_samples
from ..ml.inference import PredictionResult
from ..ml.model_store import ModelStore
from ..ml.training import ModelTrainer, has_sufficient_data_for_training, remove_test_data
from ..model_options import (
    DEFAULT_MODEL_OPTIONS,
    ModelOptions,
    toggle_features,
    toggle_model,
    with_options,
)
from ..monitoring.latency_tracker import LatencyTracker
from ..signal_processing.sample_buffer import SampleBuffer
from .prediction_loop import PredictionLoop

logger = logging.getLogger(__name__)

SessionListener = Callable[[str, Any], None]


class TrainingStage(Enum):
    INSUFFICIENT_DATA = 'insufficient_data'
    NO_FEATURES_ACTIVE = 'no_features_active'
    TRAINING_IN_PROGRESS = 'training_in_progress'
    TRAINING_ERROR = 'training_error'
    CLOSED = 'closed'


class Session:
    """
    One user session of recording, training and live prediction.

    Events sent to listeners as (event, payload):
    - 'training_stage': TrainingStage
    - 'training_progress': float in [0, 1]
    - 'model_changed': bool, whether a model is now available
    - 'prediction': PredictionResult

    Attributes:
        buffer: Live sample buffer
        action_store: Actions and recordings
        model_store: Optional persistence for trained models
        latency_tracker: Timings of live predictions
        prediction_loop: Fixed-rate live prediction
        training_stage: Stage of the last training attempt
        training_progress: Fraction of the current training completed
    """

    def __init__(self,
                 buffer: Optional[SampleBuffer] = None,
                 action_store: Optional[ActionStore] = None,
                 model_options: ModelOptions = DEFAULT_MODEL_OPTIONS,
                 model_store: Optional[ModelStore] = None,
                 latency_tracker: Optional[LatencyTracker] = None,
                 training_start_delay_s: float = TRAINING_START_DELAY_S):
        self.buffer = buffer or SampleBuffer()
        self.action_store = action_store or ActionStore()
        self.model_store = model_store
        self.latency_tracker = latency_tracker or LatencyTracker()
        self.training_start_delay_s = training_start_delay_s

        self.training_stage = TrainingStage.CLOSED
        self.training_progress = 0.0

        self._lock = threading.RLock()
        self._training_lock = threading.Lock()
        self._listeners: List[SessionListener] = []

        self._model_options = model_options
        self._model = None
        self._model_ids: List[Hashable] = []
        self._model_window: Optional[DataWindow] = None
        self._model_trained_options: Optional[ModelOptions] = None

        self.prediction_loop = PredictionLoop(
            get_actions=lambda: self.action_store.actions,
            latency_tracker=self.latency_tracker,
        )
        self.prediction_loop.add_listener(lambda result: self._emit('prediction', result))
        self.action_store.add_listener(self._on_actions_changed)

    # -------------------------------------------------------------------------
    # Model state
    # -------------------------------------------------------------------------

    @property
    def model(self):
        with self._lock:
            return self._model

    @property
    def has_model(self) -> bool:
        return self.model is not None

    @property
    def classification_ids(self) -> List[Hashable]:
        """Action IDs in the output order of the current model."""
        with self._lock:
            return list(self._model_ids)

    @property
    def model_options(self) -> ModelOptions:
        with self._lock:
            return self._model_options

    def clear_model(self) -> None:
        """
        Forget the current model.

        A running prediction loop keeps the model it was started with.
        """
        with self._lock:
            had_model = self._model is not None
            self._model = None
            self._model_ids = []
            self._model_window = None
            self._model_trained_options = None
        if had_model:
            logger.info("Model cleared")
            self._emit('model_changed', False)

    def _set_model(self, model, classification_ids, data_window, model_options) -> None:
        with self._lock:
            self._model = model
            self._model_ids = list(classification_ids)
            self._model_window = data_window
            self._model_trained_options = model_options
        self._emit('model_changed', True)

    def _on_actions_changed(self, event: str, invalidates_model: bool) -> None:
        if invalidates_model:
            self.clear_model()

    # -------------------------------------------------------------------------
    # Model options
    # -------------------------------------------------------------------------

    def set_model_options(self, options: ModelOptions) -> None:
        """Replace the model options. Any trained model is cleared."""
        self.clear_model()
        with self._lock:
            self._model_options = options

    def update_model_options(self, **changes) -> ModelOptions:
        """Change individual option fields, e.g. epochs=50."""
        options = with_options(self.model_options, **changes)
        self.set_model_options(options)
        return options

    def toggle_features(self, filters) -> ModelOptions:
        filters = list(filters)
        options = toggle_features(self.model_options, filters)
        if filters:
            self.clear_model()
        with self._lock:
            self._model_options = options
        return options

    def toggle_model(self) -> ModelOptions:
        options = toggle_model(self.model_options)
        self.set_model_options(options)
        return options

    def reset_model_options(self) -> None:
        self.set_model_options(DEFAULT_MODEL_OPTIONS)

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train_model(self) -> bool:
        """
        Run the training flow on the current actions.

        Returns:
            True if a new model was trained. False if training was gated
            (see training_stage), failed, or another training is running.
        """
        if not self._training_lock.acquire(blocking=False):
            logger.warning("Training already in progress")
            return False
        try:
            return self._train()
        finally:
            self._training_lock.release()

    def _train(self) -> bool:
        revision = self.action_store.revision
        actions = self.action_store.actions
        data_window = self.action_store.data_window
        options = self.model_options

        if not has_sufficient_data_for_training(actions, options.test_number):
            self._set_stage(TrainingStage.INSUFFICIENT_DATA)
            return False
        if not options.features_active:
            self._set_stage(TrainingStage.NO_FEATURES_ACTIVE)
            return False

        logger.info(
            "Training model: %d actions, %d recordings",
            len(actions), get_total_num_samples(actions),
        )
        self._set_progress(0.0)
        self._set_stage(TrainingStage.TRAINING_IN_PROGRESS)
        # Let listeners react before the CPU bound fit starts
        time.sleep(self.training_start_delay_s)

        trainer = ModelTrainer(data_window, options)
        result = trainer.train(remove_test_data(actions, options.test_number),
                               on_progress=self._set_progress)

        if result.error:
            self._set_stage(TrainingStage.TRAINING_ERROR)
            return False

        if options.test_number > 0:
            try:
                tests_passed = trainer.evaluate_test_data(result.model, actions)
            except Exception as e:
                logger.error("Evaluating held-out recordings failed: %s", e)
                self._set_stage(TrainingStage.TRAINING_ERROR)
                return False
        else:
            tests_passed = [0] * len(actions)

        trained_ids = [a.id for a in actions]
        if self.action_store.revision != revision or self.model_options != options:
            logger.warning("Dataset or options changed during training, discarding model")
            self._set_stage(TrainingStage.TRAINING_ERROR)
            return False

        # Record results without invalidating the model being installed
        self.action_store.set_tests_passed(tests_passed)
        self._set_model(result.model, trained_ids, data_window, options)
        self._set_stage(TrainingStage.CLOSED)
        return True

    def _set_stage(self, stage: TrainingStage) -> None:
        self.training_stage = stage
        self._emit('training_stage', stage)

    def _set_progress(self, progress: float) -> None:
        self.training_progress = progress
        self._emit('training_progress', progress)

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def start_predicting(self) -> bool:
        """
        Start live prediction with the current model.

        Returns:
            False if there is no model or prediction is already running
        """
        with self._lock:
            model = self._model
            ids = list(self._model_ids)
            data_window = self._model_window
            options = self._model_trained_options
        if model is None:
            return False
        return self.prediction_loop.start(self.buffer, model, ids,
                                          data_window=data_window, model_options=options)

    def stop_predicting(self) -> None:
        self.prediction_loop.stop()

    @property
    def is_predicting(self) -> bool:
        return self.prediction_loop.is_running

    @property
    def prediction(self) -> Optional[PredictionResult]:
        return self.prediction_loop.prediction

    # -------------------------------------------------------------------------
    # Persistence and lifecycle
    # -------------------------------------------------------------------------

    def save_model(self) -> Optional[str]:
        """Persist the current model. Returns the path, or None."""
        with self._lock:
            model = self._model
            ids = list(self._model_ids)
            data_window = self._model_window
            options = self._model_trained_options
        if model is None or self.model_store is None:
            return None
        return self.model_store.save(model, ids, options, data_window)

    def load_model(self) -> bool:
        """
        Load the stored model.

        The model is only installed if its classification IDs match the
        current actions.
        """
        if self.model_store is None:
            return False
        stored = self.model_store.load()
        if stored is None:
            return False
        if stored.classification_ids != self.action_store.classification_ids():
            logger.warning("Stored model does not match the current actions")
            return False
        with self._lock:
            self._model_options = stored.model_options
        self._set_model(stored.model, stored.classification_ids,
                        stored.data_window, stored.model_options)
        return True

    def new_session(self) -> None:
        """Stop prediction and clear buffer, actions and model."""
        self.stop_predicting()
        self.prediction_loop.clear_prediction()
        self.buffer.clear()
        self.action_store.delete_all_actions()
        self.clear_model()
        self.latency_tracker.reset()
        self.training_stage = TrainingStage.CLOSED
        self.training_progress = 0.0
        logger.info("New session")

    def get_status(self) -> Dict[str, Any]:
        prediction = self.prediction
        return {
            'num_actions': len(self.action_store.actions),
            'num_recordings': self.action_store.total_recordings(),
            'buffered_samples': len(self.buffer),
            'data_window': asdict(self.action_store.data_window),
            'has_model': self.has_model,
            'is_predicting': self.is_predicting,
            'training_stage': self.training_stage.value,
            'training_progress': round(self.training_progress, 4),
            'prediction': prediction.to_dict() if prediction is not None else None,
        }

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, callback: SessionListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: SessionListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Error in session listener")
