"""
Signal Processing Package

This package contains the live sample buffer, the statistical filters and
feature extraction, sequence preprocessing for the recurrent model, and
training data augmentation.
"""
from .sample_buffer import RingBuffer, SampleBuffer
from .filters import Filter, FilterStrategy, get_ml_filters
from .feature_extraction import FeatureExtractor, apply_filters
from .preprocessing import SequencePreprocessor
from .augmentation import DataAugmenter

__all__ = [
    'RingBuffer', 'SampleBuffer',
    'Filter', 'FilterStrategy', 'get_ml_filters',
    'FeatureExtractor', 'apply_filters',
    'SequencePreprocessor',
    'DataAugmenter',
]
