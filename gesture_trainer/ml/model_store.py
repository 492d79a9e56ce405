"""
Model persistence.

A trained model is only usable together with the classification ids it was
trained with, its options and its data window. The Keras model goes to
<name>.keras and that metadata to <name>.joblib next to it.
"""
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Hashable, List, Optional, Sequence

import joblib
import tensorflow as tf

from ..config import DEFAULT_MODEL_NAME, MODELS_DIR
from ..data_model import DataWindow
from ..model_options import ModelOptions, options_from_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredModel:
    model: Any
    classification_ids: List[Hashable]
    model_options: ModelOptions
    data_window: DataWindow


class ModelStore:
    """
    Saves and loads one named model.

    Attributes:
        models_dir: Directory holding the model files
        name: Base file name of the model
    """

    def __init__(self, models_dir: str = MODELS_DIR, name: str = DEFAULT_MODEL_NAME):
        self.models_dir = models_dir
        self.name = name

    @property
    def model_path(self) -> str:
        return os.path.join(self.models_dir, f'{self.name}.keras')

    @property
    def metadata_path(self) -> str:
        return os.path.join(self.models_dir, f'{self.name}.joblib')

    def exists(self) -> bool:
        return os.path.exists(self.model_path) and os.path.exists(self.metadata_path)

    def save(self, model, classification_ids: Sequence[Hashable],
             model_options: ModelOptions, data_window: DataWindow) -> str:
        """
        Save a model with its metadata.

        Returns:
            Path of the saved Keras model
        """
        os.makedirs(self.models_dir, exist_ok=True)
        model.save(self.model_path)
        joblib.dump({
            'classification_ids': list(classification_ids),
            'model_options': model_options.to_dict(),
            'data_window': asdict(data_window),
        }, self.metadata_path)
        logger.info("Model saved to %s", self.model_path)
        return self.model_path

    def load(self) -> Optional[StoredModel]:
        """
        Load the stored model.

        Returns:
            StoredModel, or None if nothing is stored or loading failed
        """
        if not self.exists():
            return None
        try:
            model = tf.keras.models.load_model(self.model_path)
            metadata = joblib.load(self.metadata_path)
            stored = StoredModel(
                model=model,
                classification_ids=list(metadata['classification_ids']),
                model_options=options_from_dict(metadata['model_options']),
                data_window=DataWindow(**metadata['data_window']),
            )
        except Exception as e:
            logger.error("Error loading model from %s: %s", self.models_dir, e)
            return None
        logger.info("Model loaded from %s", self.model_path)
        return stored

    def remove(self) -> None:
        for path in (self.model_path, self.metadata_path):
            if os.path.exists(path):
                os.remove(path)
