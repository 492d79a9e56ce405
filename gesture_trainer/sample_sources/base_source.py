"""
Abstract Base Class for Accelerometer Sample Sources

This module defines the contract that all sample sources implement. By
abstracting the source, recording, training and live prediction work
identically regardless of whether samples come from:
- Replayed CSV files
- A simulated accelerometer stream
- A real device (connected by the host application)

DEVICE INTEGRATION:
-------------------
Device transport is not part of this package. A host connected to a real
device either calls SampleBuffer.add_sample() for every reading it
receives, or wraps the device in a SampleSource subclass implementing
get_sample(), get_batch() and is_streaming().
"""
import math
from abc import ABC, abstractmethod
from typing import List, Optional

from ..data_model import Sample
from ..signal_processing.sample_buffer import SampleBuffer


class SampleSource(ABC):
    """
    Abstract base class defining the interface for all sample sources.

    Sources produce timestamped tri-axial samples in g.

    Attributes:
        is_active: Whether the source is currently providing data
    """

    def __init__(self):
        self.is_active = False

    @abstractmethod
    def get_sample(self) -> Optional[Sample]:
        """
        Get the next sample.

        Returns:
            The next Sample, or None if no data is available.
        """

    @abstractmethod
    def get_batch(self, batch_size: int) -> List[Sample]:
        """
        Get up to batch_size samples at once.

        Returns:
            List of samples, shorter than batch_size (possibly empty) when
            the source runs out of data.
        """

    @abstractmethod
    def is_streaming(self) -> bool:
        """
        Check if this source produces live data.

        Returns:
            True for live sources (simulated or device), False for
            replayed files.
        """

    def start_stream(self) -> bool:
        """
        Start the data stream.

        Returns:
            True if the stream started, False otherwise.
        """
        self.is_active = True
        return True

    def stop_stream(self) -> None:
        self.is_active = False

    def feed(self, buffer: SampleBuffer, count: Optional[int] = None) -> int:
        """
        Push samples from this source into a sample buffer.

        Args:
            buffer: Buffer to fill
            count: Maximum number of samples; None feeds until the source
                   has no more data (only sensible for finite sources)

        Returns:
            Number of samples added
        """
        if count is None and self.is_streaming():
            raise ValueError("A streaming source needs an explicit sample count")

        added = 0
        while count is None or added < count:
            sample = self.get_sample()
            if sample is None:
                break
            if not self.validate_sample(sample):
                continue
            buffer.add(sample)
            added += 1
        return added

    def validate_sample(self, sample: Optional[Sample]) -> bool:
        """
        Check that a sample holds finite values on every axis.

        Catches corrupted rows before they reach the buffer.
        """
        if sample is None:
            return False
        return all(math.isfinite(v) for v in (sample.x, sample.y, sample.z))

    def get_source_info(self) -> dict:
        """Metadata about this source, for status display."""
        return {
            'source_type': self.__class__.__name__,
            'is_streaming': self.is_streaming(),
            'is_active': self.is_active,
        }
