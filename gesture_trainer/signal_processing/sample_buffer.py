"""
Live Sample Buffer

This module stores the most recent accelerometer samples of a live session
in a fixed-capacity ring buffer and answers time-windowed queries against it.

The device stream is the single producer (add / add_sample). Readers such as
the prediction loop only query windows of recent samples.
"""
import logging
import math
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from ..config import SAMPLE_BUFFER_CAPACITY
from ..data_model import Recording, Sample

logger = logging.getLogger(__name__)

T = TypeVar('T')

SampleListener = Callable[[Sample], None]


class RingBuffer(Generic[T]):
    """
    Fixed-capacity circular buffer.

    Values are written at the cursor, which advances modulo the capacity.
    Once full, every write overwrites the oldest value.

    Attributes:
        capacity: Maximum number of stored values
        size: Number of valid values (never above capacity)
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Ring buffer capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._buffer: List[Optional[T]] = [None] * capacity
        self._pos = 0
        self.size = 0

    def add(self, value: T) -> None:
        self._buffer[self._pos] = value
        if self.size < self.capacity:
            self.size += 1
        self._pos = (self._pos + 1) % self.capacity

    def to_ordered_sequence(self) -> List[T]:
        """
        Return the stored values, oldest first.

        Before the buffer fills only the written prefix is returned; after
        that a full rotation starting at the cursor.
        """
        if self.size == 0:
            return []
        if self.size < self.capacity:
            return self._buffer[:self.size]
        return self._buffer[self._pos:] + self._buffer[:self._pos]

    def clear(self) -> None:
        self._buffer = [None] * self.capacity
        self._pos = 0
        self.size = 0

    def __len__(self) -> int:
        return self.size


class SampleBuffer:
    """
    Ring buffer of timestamped samples with listener support.

    Listeners are called synchronously, in registration order, with every
    newly added sample. A slow listener delays the producer, so listeners
    must return quickly.
    """

    def __init__(self, capacity: int = SAMPLE_BUFFER_CAPACITY):
        self._buffer: RingBuffer[Sample] = RingBuffer(capacity)
        # dict keeps registration order and makes removal O(1)
        self._listeners: Dict[SampleListener, None] = {}

    @property
    def capacity(self) -> int:
        return self._buffer.capacity

    def __len__(self) -> int:
        return len(self._buffer)

    def add_listener(self, listener: SampleListener) -> None:
        self._listeners[listener] = None

    def remove_listener(self, listener: SampleListener) -> None:
        self._listeners.pop(listener, None)

    def add(self, sample: Sample) -> None:
        """Append a sample and notify every listener."""
        self._buffer.add(sample)
        for listener in list(self._listeners):
            try:
                listener(sample)
            except Exception:
                logger.exception("Sample listener %r failed", listener)

    def add_sample(self, data: Dict[str, float], timestamp: int) -> Sample:
        """
        Append decoded axis values received from the device.

        Args:
            data: Mapping with 'x', 'y' and 'z' values in g
            timestamp: Receive time in milliseconds

        Returns:
            The stored Sample

        Raises:
            ValueError: If an axis value is not finite
        """
        sample = Sample(
            x=float(data['x']),
            y=float(data['y']),
            z=float(data['z']),
            timestamp=int(timestamp),
        )
        if not all(math.isfinite(v) for v in (sample.x, sample.y, sample.z)):
            raise ValueError(f"Sample values must be finite, got {sample}")
        self.add(sample)
        return sample

    def to_ordered_sequence(self) -> List[Sample]:
        return self._buffer.to_ordered_sequence()

    def get_samples(self, start_time_millis: int,
                    end_time_millis: Optional[int] = None) -> List[Sample]:
        """
        Get the samples of a time window in chronological order.

        Args:
            start_time_millis: Inclusive lower bound on the timestamp
            end_time_millis: Exclusive upper bound, or None for no bound

        Returns:
            Samples with start <= timestamp (< end), oldest first. Empty if
            the buffer is empty or nothing falls in the window.
        """
        ordered = self._buffer.to_ordered_sequence()

        # Walk back from the newest sample until the lower bound fails
        start = len(ordered) - 1
        while start >= 0 and ordered[start].timestamp >= start_time_millis:
            start -= 1

        result = []
        for sample in ordered[start + 1:]:
            if end_time_millis is None or sample.timestamp < end_time_millis:
                result.append(sample)
        return result

    def get_recording(self, start_time_millis: int,
                      end_time_millis: Optional[int] = None) -> Recording:
        """Same window as get_samples(), as x/y/z series."""
        return Recording.from_samples(self.get_samples(start_time_millis, end_time_millis))

    def clear(self) -> None:
        """Drop all samples (listeners stay registered)."""
        self._buffer.clear()
