"""
Monitoring Package - Prediction Latency Tracking
"""
from .latency_tracker import LatencyTracker

__all__ = ['LatencyTracker']
