"""
Session Package - Training Flow and Live Prediction
"""
from .prediction_loop import PredictionLoop
from .session import Session, TrainingStage

__all__ = ['PredictionLoop', 'Session', 'TrainingStage']
