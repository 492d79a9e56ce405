"""
Accelerometer Sample Sources

This module provides a unified interface for sample acquisition, so
recording and prediction work the same for every input mode.

Supported sources:
- CSVSource: Replay of timestamp,x,y,z CSV files
- SimulatedSource: Synthetic gestures for demos and testing
"""
from .base_source import SampleSource
from .csv_source import CSVSource
from .simulated_source import SimulatedSource

__all__ = ['SampleSource', 'CSVSource', 'SimulatedSource']
