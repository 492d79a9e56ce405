"""
Prediction Latency Monitoring

This module tracks latency metrics for the live prediction pipeline.
It measures:
- Feature extraction (or sequence preprocessing) time
- Model inference time
- Total prediction time

The prediction loop polls four times per second, so one tick should stay
well below TARGET_LATENCY_MS.
"""
import statistics
import threading
from collections import deque
from typing import Any, Dict

from ..config import TARGET_LATENCY_MS


class LatencyTracker:
    """
    Tracks latency metrics for the prediction pipeline.

    Readings are written by the prediction loop thread and read by the host
    (for example the metrics endpoint), so all access goes through a lock.

    Attributes:
        target_latency_ms: Target maximum latency in milliseconds
        history_size: Number of recent readings to track
    """

    def __init__(self, history_size: int = 100, target_ms: float = TARGET_LATENCY_MS):
        self.target_latency_ms = target_ms
        self.history_size = history_size

        self._lock = threading.Lock()
        self._feature_history = deque(maxlen=history_size)
        self._inference_history = deque(maxlen=history_size)
        self._total_history = deque(maxlen=history_size)

        # Count of predictions that exceeded target
        self._exceeded_count = 0
        self._total_count = 0

    def record(self, feature_ms: float, inference_ms: float) -> Dict[str, Any]:
        """
        Record the timings of one prediction.

        Args:
            feature_ms: Feature extraction time in ms
            inference_ms: Inference time in ms

        Returns:
            Dictionary with all timing information
        """
        total_ms = feature_ms + inference_ms
        with self._lock:
            self._feature_history.append(feature_ms)
            self._inference_history.append(inference_ms)
            self._total_history.append(total_ms)

            self._total_count += 1
            if total_ms > self.target_latency_ms:
                self._exceeded_count += 1

        return {
            'feature_extraction_ms': round(feature_ms, 2),
            'inference_ms': round(inference_ms, 2),
            'total_ms': round(total_ms, 2),
            'within_target': total_ms <= self.target_latency_ms,
        }

    def get_current_stats(self) -> Dict[str, Any]:
        """
        Get current latency statistics.

        Returns:
            Dictionary with mean, median, max, and compliance metrics
        """
        with self._lock:
            total_list = list(self._total_history)
            exceeded, count = self._exceeded_count, self._total_count

        if not total_list:
            return {
                'mean_total_ms': 0.0,
                'median_total_ms': 0.0,
                'max_total_ms': 0.0,
                'min_total_ms': 0.0,
                'target_ms': self.target_latency_ms,
                'compliance_rate': 1.0,
                'sample_count': 0,
            }

        return {
            'mean_total_ms': round(statistics.mean(total_list), 2),
            'median_total_ms': round(statistics.median(total_list), 2),
            'max_total_ms': round(max(total_list), 2),
            'min_total_ms': round(min(total_list), 2),
            'target_ms': self.target_latency_ms,
            'compliance_rate': round(1 - (exceeded / max(1, count)), 4),
            'sample_count': len(total_list),
        }

    def get_breakdown_stats(self) -> Dict[str, Dict[str, float]]:
        """Statistics per pipeline stage."""
        def calc_stats(values) -> Dict[str, float]:
            if not values:
                return {'mean': 0.0, 'median': 0.0, 'max': 0.0}
            return {
                'mean': round(statistics.mean(values), 2),
                'median': round(statistics.median(values), 2),
                'max': round(max(values), 2),
            }

        with self._lock:
            stages = {
                'feature_extraction': list(self._feature_history),
                'inference': list(self._inference_history),
                'total': list(self._total_history),
            }
        return {name: calc_stats(values) for name, values in stages.items()}

    def get_latest(self) -> Dict[str, float]:
        with self._lock:
            return {
                'feature_extraction_ms': self._feature_history[-1] if self._feature_history else 0.0,
                'inference_ms': self._inference_history[-1] if self._inference_history else 0.0,
                'total_ms': self._total_history[-1] if self._total_history else 0.0,
            }

    def is_within_target(self) -> bool:
        """True if the latest prediction met the target (or none was made)."""
        with self._lock:
            if not self._total_history:
                return True
            return self._total_history[-1] <= self.target_latency_ms

    def reset(self) -> None:
        with self._lock:
            self._feature_history.clear()
            self._inference_history.clear()
            self._total_history.clear()
            self._exceeded_count = 0
            self._total_count = 0
