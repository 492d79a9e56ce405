"""
Actions Package - Gesture Classes and their Recordings
"""
from .action_store import ActionStore

__all__ = ['ActionStore']
