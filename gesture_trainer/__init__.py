"""
Motion Gesture Trainer - Source Package

This package contains all core modules for recording, training and
recognizing accelerometer gestures:
- signal_processing: Sample buffer, filters, feature extraction, augmentation
- ml: Model training, inference and model persistence
- actions: Action (gesture class) and dataset management
- session: Live session and the real-time prediction loop
- sample_sources: Sample feeds for replay and simulation
- monitoring: Prediction latency tracking
"""
__version__ = '0.1.0'
