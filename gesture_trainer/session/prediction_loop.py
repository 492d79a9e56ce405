"""
Live Prediction Loop

Polls the sample buffer at a fixed rate, classifies the most recent window
and publishes the confidences together with the detected action.

The loop runs on a daemon thread. A tick that belongs to a run which has
since been stopped (or replaced by a new start) never publishes: every run
carries a generation number that is checked under the lock right before
the result is stored.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, List, Optional, Sequence

from ..config import UPDATES_PER_SECOND
from ..data_model import CURRENT, Action, DataWindow
from ..errors import EmptyInputError
from ..ml.inference import GesturePredictor, PredictionInput, PredictionResult, get_detected_action
from ..model_options import DEFAULT_MODEL_OPTIONS, ModelOptions
from ..monitoring.latency_tracker import LatencyTracker
from ..signal_processing.sample_buffer import SampleBuffer

logger = logging.getLogger(__name__)

PredictionListener = Callable[[PredictionResult], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Run:
    generation: int
    buffer: SampleBuffer
    model: Any
    classification_ids: List[Hashable]
    data_window: DataWindow
    predictor: GesturePredictor
    stop_event: threading.Event
    thread: Optional[threading.Thread] = None


class PredictionLoop:
    """
    Fixed-rate prediction over a live sample buffer.

    States: idle and running. start() moves idle to running, stop() moves
    any state to idle.

    Attributes:
        get_actions: Returns the current actions; read on every tick so
                     changed required confidences apply immediately
        period_s: Seconds between ticks
        prediction: Last published result (kept after stop)
    """

    def __init__(self,
                 get_actions: Callable[[], Sequence[Action]],
                 latency_tracker: Optional[LatencyTracker] = None,
                 updates_per_second: float = UPDATES_PER_SECOND,
                 clock: Callable[[], int] = _now_ms):
        self.get_actions = get_actions
        self.latency_tracker = latency_tracker
        self.period_s = 1.0 / updates_per_second
        self._clock = clock

        self._lock = threading.Lock()
        # Held while a result is stored and delivered; stop() waits for it
        self._publish_lock = threading.RLock()
        self._generation = 0
        self._run: Optional[_Run] = None
        self._prediction: Optional[PredictionResult] = None
        self._listeners: List[PredictionListener] = []

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._run is not None

    @property
    def prediction(self) -> Optional[PredictionResult]:
        with self._lock:
            return self._prediction

    def start(self, buffer: SampleBuffer, model, classification_ids: Sequence[Hashable],
              data_window: DataWindow = CURRENT,
              model_options: ModelOptions = DEFAULT_MODEL_OPTIONS) -> bool:
        """
        Start polling.

        Args:
            buffer: Live sample buffer
            model: Trained model
            classification_ids: Action IDs in the model's output order
            data_window: Window the model was trained for
            model_options: Options the model was trained with

        Returns:
            False (and nothing changes) if already running or model is None
        """
        if model is None:
            return False

        with self._lock:
            if self._run is not None:
                return False
            self._generation += 1
            run = _Run(
                generation=self._generation,
                buffer=buffer,
                model=model,
                classification_ids=list(classification_ids),
                data_window=data_window,
                predictor=GesturePredictor(data_window, model_options, self.latency_tracker),
                stop_event=threading.Event(),
            )
            run.thread = threading.Thread(target=self._run_loop, args=(run,),
                                          name='prediction-loop', daemon=True)
            self._run = run
        run.thread.start()
        logger.info("Prediction started (%.0f ms period)", self.period_s * 1000)
        return True

    def stop(self) -> None:
        """
        Stop polling. Safe to call at any time, any number of times.

        Once stop() returns no listener receives a result of the stopped
        run. A result being delivered when stop() is called is delivered
        completely first.
        """
        with self._publish_lock, self._lock:
            run = self._run
            self._run = None
            self._generation += 1
        if run is None:
            return

        run.stop_event.set()
        if run.thread is not None and run.thread is not threading.current_thread():
            run.thread.join(timeout=max(1.0, self.period_s * 2))
        logger.info("Prediction stopped")

    def tick(self) -> Optional[PredictionResult]:
        """
        Run one prediction for the current run.

        Returns:
            The published result, or None if not running, the window had
            too few samples, prediction failed, or the run was stopped
            meanwhile
        """
        with self._lock:
            run = self._run
        if run is None:
            return None
        return self._tick(run)

    def _run_loop(self, run: _Run) -> None:
        while not run.stop_event.wait(self.period_s):
            try:
                self._tick(run)
            except Exception:
                logger.exception("Prediction tick failed")

    def _tick(self, run: _Run) -> Optional[PredictionResult]:
        start_time = self._clock() - run.data_window.duration
        data = run.buffer.get_recording(start_time)
        if len(data) < run.data_window.min_samples:
            return None

        try:
            outcome = run.predictor.predict(PredictionInput(
                model=run.model,
                data=data,
                classification_ids=run.classification_ids,
            ))
        except EmptyInputError as e:
            logger.warning("Skipping prediction: %s", e)
            return None
        if outcome.error:
            logger.error("Prediction failed: %s", outcome.detail)
            return None

        detected = get_detected_action(self.get_actions(), outcome.confidences)
        result = PredictionResult(confidences=outcome.confidences, detected=detected)

        with self._publish_lock:
            with self._lock:
                if run.generation != self._generation:
                    return None
                self._prediction = result

            for listener in list(self._listeners):
                try:
                    listener(result)
                except Exception:
                    logger.exception("Error in prediction listener")
        return result

    def clear_prediction(self) -> None:
        with self._lock:
            self._prediction = None

    def add_listener(self, callback: PredictionListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: PredictionListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
