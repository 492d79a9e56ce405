"""
Machine Learning Package

This package contains modules for model training, inference and model
persistence.
"""
from .training import ModelTrainer, TrainingFailed, TrainingSucceeded, train_model
from .inference import (
    GesturePredictor,
    PredictionFailed,
    PredictionInput,
    PredictionResult,
    PredictionSucceeded,
    get_detected_action,
)
from .model_store import ModelStore, StoredModel

__all__ = [
    'ModelTrainer', 'TrainingFailed', 'TrainingSucceeded', 'train_model',
    'GesturePredictor', 'PredictionFailed', 'PredictionInput', 'PredictionResult',
    'PredictionSucceeded', 'get_detected_action',
    'ModelStore', 'StoredModel',
]
