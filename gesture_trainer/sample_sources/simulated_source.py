"""
Simulated Accelerometer Source

This module generates accelerometer-like signals for testing and
demonstration without a device, enabling:
- Development and debugging without hardware
- Reproducible recordings for tests (seeded generator)
- Live prediction demos through the host API

Each gesture has a characteristic motion pattern on top of gravity, plus
Gaussian sensor noise. Values are clipped to the sensor range.
"""
import logging
import math
import time
from dataclasses import replace
from threading import Event, Thread
from typing import Callable, List, Optional

import numpy as np

from ..config import MAX_ACCELERATION, SIMULATED_GESTURES, SIMULATED_NOISE_STD, STREAM_INTERVAL_MS
from ..data_model import Recording, Sample
from ..signal_processing.sample_buffer import SampleBuffer
from .base_source import SampleSource

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SimulatedSource(SampleSource):
    """
    Sample source that synthesizes tri-axial motion.

    Sample timestamps advance by exactly one stream interval per sample,
    starting from the clock reading at start_stream().

    Attributes:
        current_gesture: The gesture currently being simulated
        sample_count: Number of samples generated since start
        stream_interval_ms: Milliseconds between samples
    """

    def __init__(self,
                 rng: Optional[np.random.Generator] = None,
                 stream_interval_ms: int = STREAM_INTERVAL_MS,
                 noise_std: float = SIMULATED_NOISE_STD,
                 clock: Callable[[], int] = _now_ms):
        super().__init__()
        self.current_gesture = 'still'
        self.sample_count = 0
        self.stream_interval_ms = stream_interval_ms
        self.noise_std = noise_std

        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self._time_origin = clock()

        # Threading control for background streaming
        self._stop_event = Event()
        self._stream_thread: Optional[Thread] = None

        self._gesture_patterns = {
            'still': self._still,
            'shake': self._shake,
            'circle': self._circle,
            'tap': self._tap,
        }

    # Motion patterns: t in seconds -> (x, y, z) in g, gravity on -z

    @staticmethod
    def _still(t: float):
        return 0.0, 0.0, -1.0

    @staticmethod
    def _shake(t: float):
        return 1.5 * math.sin(2 * math.pi * 5.0 * t), 0.2 * math.sin(2 * math.pi * 5.0 * t), -1.0

    @staticmethod
    def _circle(t: float):
        angle = 2 * math.pi * 1.2 * t
        return 0.8 * math.cos(angle), 0.8 * math.sin(angle), -1.0

    @staticmethod
    def _tap(t: float):
        # One sharp impulse every 0.6 s
        phase = (t % 0.6) - 0.3
        return 0.0, 0.0, -1.0 + 1.5 * math.exp(-(phase / 0.03) ** 2)

    def set_gesture(self, gesture: str) -> bool:
        """
        Set the gesture to simulate.

        Args:
            gesture: One of SIMULATED_GESTURES

        Returns:
            True if gesture is valid, False otherwise
        """
        if gesture.lower() in SIMULATED_GESTURES:
            self.current_gesture = gesture.lower()
            return True
        return False

    def get_sample(self) -> Optional[Sample]:
        if not self.is_active:
            return None

        elapsed_ms = self.sample_count * self.stream_interval_ms
        x, y, z = self._gesture_patterns[self.current_gesture](elapsed_ms / 1000.0)
        values = np.array([x, y, z]) + self._rng.normal(0, self.noise_std, 3)
        values = np.clip(values, -MAX_ACCELERATION, MAX_ACCELERATION)

        self.sample_count += 1
        return Sample(x=float(values[0]), y=float(values[1]), z=float(values[2]),
                      timestamp=self._time_origin + elapsed_ms)

    def get_batch(self, batch_size: int) -> List[Sample]:
        if not self.is_active:
            self.start_stream()
        return [self.get_sample() for _ in range(batch_size)]

    def record(self, gesture: str, num_samples: int) -> Recording:
        """
        Produce a complete recording of one gesture.

        Raises:
            ValueError: If the gesture is unknown
        """
        if not self.set_gesture(gesture):
            raise ValueError(f"Unknown gesture '{gesture}'")
        return Recording.from_samples(self.get_batch(num_samples))

    def is_streaming(self) -> bool:
        return True

    def start_stream(self) -> bool:
        self.is_active = True
        self._stop_event.clear()
        self.sample_count = 0
        self._time_origin = self._clock()
        return True

    def stop_stream(self) -> None:
        self.is_active = False
        self._stop_event.set()
        thread = self._stream_thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=1.0)
        self._stream_thread = None

    def stream_to(self, buffer: SampleBuffer) -> bool:
        """
        Start a background thread adding one sample per interval to buffer.

        Returns:
            False if a stream thread is already running
        """
        if self._stream_thread is not None and self._stream_thread.is_alive():
            return False

        self.start_stream()
        self._stream_thread = Thread(target=self._run_stream, args=(buffer,),
                                     name='simulated-source', daemon=True)
        self._stream_thread.start()
        logger.info("Simulated stream started (%s)", self.current_gesture)
        return True

    def _run_stream(self, buffer: SampleBuffer) -> None:
        interval_s = self.stream_interval_ms / 1000.0
        while self.is_active and not self._stop_event.is_set():
            sample = self.get_sample()
            if sample is not None:
                # Live samples carry wall clock time so they line up with
                # the prediction window
                buffer.add(replace(sample, timestamp=self._clock()))
            self._stop_event.wait(interval_s)

    def randomize_gesture(self) -> str:
        """Switch to a random gesture (for demos)."""
        self.current_gesture = str(self._rng.choice(SIMULATED_GESTURES))
        return self.current_gesture
