"""
Model Training Pipeline

This module handles training of the gesture classifier:
- Splitting each action's recordings into held-out test and training data
- Augmenting and converting recordings into feature / label matrices
- Building the Keras architecture selected by the model options
- Fitting with per-epoch progress reporting
- Counting correctly classified held-out recordings per action

Training never raises across this module's boundary: failures come back as
a TrainingFailed value.
"""
import argparse
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import tensorflow as tf
from tensorflow.keras import callbacks, layers, models, optimizers
from sklearn.metrics import accuracy_score, confusion_matrix

from ..config import (
    DEEP_HIDDEN_LAYERS,
    INCLUDED_AXES,
    LOG_FORMAT,
    LOG_LEVEL,
    MIN_ACTIONS_FOR_TRAINING,
    MIN_RECORDINGS_PER_ACTION,
    RANDOM_SEED,
    SEQUENCE_LENGTH,
)
from ..data_model import Action, DataWindow, get_data_window_from_actions, get_total_num_samples
from ..errors import InsufficientTrainingDataError, NoActiveFeaturesError
from ..model_options import ModelOptions, ModelType, options_from_dict, preset_for
from ..signal_processing.augmentation import DataAugmenter
from ..signal_processing.feature_extraction import FeatureExtractor
from ..signal_processing.preprocessing import SequencePreprocessor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class TrainingSucceeded:
    """Training finished; model is a new, independent Keras model."""
    model: tf.keras.Model
    error: bool = field(default=False, init=False)


@dataclass(frozen=True)
class TrainingFailed:
    """Training failed; detail describes why (for logging only)."""
    detail: Optional[str] = None
    error: bool = field(default=True, init=False)


TrainingResult = Union[TrainingSucceeded, TrainingFailed]


# =============================================================================
# TRAIN / TEST SPLIT
# =============================================================================

def remove_test_data(actions: Sequence[Action], test_number: int) -> List[Action]:
    """Keep only training recordings: indices >= test_number of each action."""
    return [a.with_recordings(a.recordings[test_number:]) for a in actions]


def remove_training_data(actions: Sequence[Action], test_number: int) -> List[Action]:
    """Keep only held-out test recordings: indices < test_number of each action."""
    return [a.with_recordings(a.recordings[:test_number]) for a in actions]


def has_sufficient_data_for_training(actions: Sequence[Action], test_number: int) -> bool:
    """
    Check there is enough data to train.

    Needs at least two actions, each with at least three recordings left
    after reserving test_number of them for testing.
    """
    return (
        len(actions) >= MIN_ACTIONS_FOR_TRAINING and
        all(len(a.recordings) - test_number >= MIN_RECORDINGS_PER_ACTION for a in actions)
    )


def progress_fraction(epoch: int, epochs: int) -> float:
    """
    Fraction of training completed after a zero-indexed epoch.

    The last epoch reports 1.0. A single-epoch run has nothing to divide
    by and reports 1.0 straight away.
    """
    if epochs <= 1:
        return 1.0
    return epoch / (epochs - 1)


class ModelTrainer:
    """
    Builds and trains gesture classifiers.

    One trainer is bound to a data window and a set of model options. Every
    call to train() builds a fresh model, so models returned earlier keep
    working while a retrain runs.

    Attributes:
        data_window: Window the recordings were captured with
        model_options: Architecture and training hyperparameters
        feature_extractor: Feature extractor for the active filters
        sequence_preprocessor: Sequence conditioning for the GRU model
        augmenter: DataAugmenter used when augmentation is enabled
    """

    def __init__(self, data_window: DataWindow, model_options: ModelOptions,
                 augmenter: Optional[DataAugmenter] = None):
        self.data_window = data_window
        self.model_options = model_options
        self.feature_extractor = FeatureExtractor(data_window, model_options)
        self.sequence_preprocessor = SequencePreprocessor()
        self.augmenter = augmenter or DataAugmenter()

    # -------------------------------------------------------------------------
    # Data preparation
    # -------------------------------------------------------------------------

    def check_preconditions(self, actions: Sequence[Action]) -> None:
        """
        Raise if training should not be attempted.

        Raises:
            InsufficientTrainingDataError: Too few actions or recordings
            NoActiveFeaturesError: No filter is active
        """
        if not has_sufficient_data_for_training(actions, self.model_options.test_number):
            raise InsufficientTrainingDataError(
                f"Need {MIN_ACTIONS_FOR_TRAINING}+ actions with "
                f"{MIN_RECORDINGS_PER_ACTION}+ training recordings each"
            )
        if not self.model_options.features_active:
            raise NoActiveFeaturesError("At least one filter must be active")

    def model_inputs(self, recordings) -> np.ndarray:
        """
        Convert recordings into model input rows.

        Feature vectors for feature-based models, normalized fixed-length
        sequences for the GRU model.
        """
        if self.model_options.uses_features:
            return self.feature_extractor.extract_batch(recordings)
        return self.sequence_preprocessor.transform_batch(recordings)

    def prepare_features_and_labels(self, actions: Sequence[Action],
                                    synthesize: bool = False,
                                    rotate: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build the input matrix and one-hot labels.

        Args:
            actions: Actions in class order; position i becomes class i
            synthesize: Add dithered / distorted copies first
            rotate: Add rotated copies (after synthesis)

        Returns:
            Tuple of (features, labels). Rows follow action order, then the
            (augmented) recording order within each action.
        """
        if synthesize or rotate:
            actions = self.augmenter.augment(
                actions, synthesize, rotate,
                dithering=self.model_options.dithering,
                distortion=self.model_options.distortion,
            )

        num_actions = len(actions)
        recordings = []
        label_rows = []
        for index, action in enumerate(actions):
            for recording in action.recordings:
                recordings.append(recording)
                label_rows.append(index)

        features = self.model_inputs(recordings).astype(np.float32)
        labels = np.zeros((len(label_rows), num_actions), dtype=np.float32)
        labels[np.arange(len(label_rows)), label_rows] = 1.0
        return features, labels

    # -------------------------------------------------------------------------
    # Architectures
    # -------------------------------------------------------------------------

    def input_shape(self) -> Tuple[int, ...]:
        if self.model_options.uses_features:
            return (len(self.model_options.features_active) * len(INCLUDED_AXES),)
        return (SEQUENCE_LENGTH, len(INCLUDED_AXES))

    def create_model(self, actions: Sequence[Action]) -> tf.keras.Model:
        """
        Build and compile the classifier for the configured model type.

        Every architecture ends in a softmax over len(actions) classes and
        is trained with categorical cross-entropy.
        """
        options = self.model_options
        num_classes = len(actions)
        builders = {
            ModelType.DEFAULT: self._build_dense,
            ModelType.LOGREG: self._build_logistic_regression,
            ModelType.DEEP: self._build_deep_dense,
            ModelType.CNN: self._build_cnn,
            ModelType.GRU: self._build_gru,
        }
        inputs = layers.Input(shape=self.input_shape())
        hidden, optimizer = builders[options.model_type](inputs)
        outputs = layers.Dense(num_classes, activation='softmax')(hidden)

        model = models.Model(inputs=inputs, outputs=outputs)
        model.compile(
            loss='categorical_crossentropy',
            optimizer=optimizer,
            metrics=['accuracy'],
        )
        return model

    def _build_dense(self, inputs):
        options = self.model_options
        x = layers.BatchNormalization()(inputs)
        x = layers.Dense(options.neuron_number, activation='relu')(x)
        return x, optimizers.SGD(learning_rate=options.learning_rate)

    def _build_logistic_regression(self, inputs):
        x = layers.BatchNormalization()(inputs)
        return x, optimizers.SGD(learning_rate=self.model_options.learning_rate)

    def _build_deep_dense(self, inputs):
        options = self.model_options
        x = layers.BatchNormalization()(inputs)
        units = max(1, options.neuron_number)
        for _ in range(DEEP_HIDDEN_LAYERS):
            x = layers.Dense(units, activation='relu')(x)
            x = layers.Dropout(options.dropout_rate)(x)
            units = max(1, units // 2)
        return x, optimizers.Adam(learning_rate=options.learning_rate)

    def _build_cnn(self, inputs):
        # The feature vector is treated as a one-channel pseudo-sequence
        options = self.model_options
        flat_dim = self.input_shape()[0]
        x = layers.Reshape((flat_dim, 1))(inputs)
        x = layers.Conv1D(
            max(1, options.filter_size),
            max(1, options.kernel_size),
            activation='relu',
            padding='same',
        )(x)
        x = layers.MaxPooling1D(pool_size=max(1, options.pool_size), padding='same')(x)
        x = layers.Flatten()(x)
        x = layers.Dense(max(1, options.neuron_number), activation='relu')(x)
        x = layers.Dropout(options.dropout_rate)(x)
        return x, optimizers.SGD(learning_rate=options.learning_rate)

    def _build_gru(self, inputs):
        options = self.model_options
        units = max(1, options.neuron_number)
        x = layers.GRU(units, return_sequences=True,
                       recurrent_dropout=options.recurrent_dropout)(inputs)
        x = layers.Dropout(options.dropout_rate)(x)
        x = layers.GRU(units, recurrent_dropout=options.recurrent_dropout)(x)
        x = layers.Dropout(options.dropout_rate)(x)
        x = layers.Dense(units, activation='relu')(x)
        return x, optimizers.Adam(learning_rate=options.learning_rate)

    # -------------------------------------------------------------------------
    # Training and evaluation
    # -------------------------------------------------------------------------

    def train(self, actions: Sequence[Action],
              on_progress: Optional[ProgressCallback] = None) -> TrainingResult:
        """
        Train a new classifier on all recordings of the given actions.

        Held-out test recordings must already be removed by the caller
        (see remove_test_data). The whole dataset is used for fitting; no
        validation split is taken.

        Args:
            actions: Training actions in class order
            on_progress: Called after every epoch with the completed fraction

        Returns:
            TrainingSucceeded with the model, or TrainingFailed
        """
        options = self.model_options
        epochs = options.epochs

        def on_epoch_end(epoch, logs=None):
            logs = logs or {}
            logger.debug(
                "Epoch %d/%d - loss=%.4f accuracy=%.4f",
                epoch + 1, epochs,
                logs.get('loss', float('nan')), logs.get('accuracy', float('nan')),
            )
            if on_progress is not None:
                on_progress(progress_fraction(epoch, epochs))

        try:
            if RANDOM_SEED is not None:
                tf.keras.utils.set_random_seed(RANDOM_SEED)

            features, labels = self.prepare_features_and_labels(
                actions, synthesize=options.synthesize, rotate=options.rotation
            )
            if not np.isfinite(features).all():
                raise ValueError("Training data contains non-finite values")
            logger.info(
                "Training %s model on %d rows (input shape %s, %d classes)",
                options.model_type.value, len(features), features.shape[1:], len(actions),
            )
            model = self.create_model(actions)
            history = model.fit(
                features, labels,
                epochs=epochs,
                batch_size=options.batch_size,
                shuffle=True,
                validation_split=0.0,
                verbose=0,
                callbacks=[
                    callbacks.TerminateOnNaN(),
                    callbacks.LambdaCallback(on_epoch_end=on_epoch_end),
                ],
            )
        except Exception as e:
            logger.error("Training failed: %s", e)
            return TrainingFailed(detail=str(e))

        losses = history.history.get('loss', [])
        if not losses or not math.isfinite(losses[-1]):
            logger.error("Training diverged (final loss %s)", losses[-1] if losses else None)
            return TrainingFailed(detail='Training loss is not finite')

        logger.info("Training finished, final loss %.4f", losses[-1])
        return TrainingSucceeded(model=model)

    def evaluate_test_data(self, model: tf.keras.Model, actions: Sequence[Action]) -> List[int]:
        """
        Count held-out recordings the model classifies correctly.

        Uses the first test_number recordings of each action.

        Returns:
            Correct predictions per action, in action order. All zeros when
            test_number is 0.
        """
        num_actions = len(actions)
        test_actions = remove_training_data(actions, self.model_options.test_number)
        features, labels = self.prepare_features_and_labels(test_actions)
        if len(features) == 0:
            return [0] * num_actions

        predictions = np.asarray(model.predict(features, verbose=0))
        y_pred = np.argmax(predictions, axis=1)
        y_true = np.argmax(labels, axis=1)

        matrix = confusion_matrix(y_true, y_pred, labels=list(range(num_actions)))
        logger.info(
            "Held-out accuracy: %.4f on %d recordings",
            accuracy_score(y_true, y_pred), len(y_true),
        )
        return [int(v) for v in matrix.diagonal()]


# =============================================================================
# MODULE-LEVEL CONVENIENCE FUNCTIONS
# =============================================================================

def prepare_features_and_labels(actions: Sequence[Action], data_window: DataWindow,
                                model_options: ModelOptions,
                                synthesize: bool = False,
                                rotate: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    return ModelTrainer(data_window, model_options).prepare_features_and_labels(
        actions, synthesize=synthesize, rotate=rotate
    )


def create_model(actions: Sequence[Action], model_options: ModelOptions,
                 data_window: Optional[DataWindow] = None) -> tf.keras.Model:
    window = data_window or get_data_window_from_actions(actions)
    return ModelTrainer(window, model_options).create_model(actions)


def train_model(data: Sequence[Action], data_window: DataWindow,
                model_options: ModelOptions,
                on_progress: Optional[ProgressCallback] = None) -> TrainingResult:
    """Build, prepare and fit in one call. See ModelTrainer.train()."""
    return ModelTrainer(data_window, model_options).train(data, on_progress)


def evaluate_test_data(model: tf.keras.Model, actions: Sequence[Action],
                       data_window: DataWindow, model_options: ModelOptions) -> List[int]:
    return ModelTrainer(data_window, model_options).evaluate_test_data(model, actions)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Train from an exported dataset file."""
    parser = argparse.ArgumentParser(description='Train a gesture classifier from a dataset JSON file')
    parser.add_argument('dataset', help='Path to an exported dataset (list of actions)')
    parser.add_argument('--model-type', default=ModelType.DEFAULT.value,
                        choices=[t.value for t in ModelType])
    parser.add_argument('--epochs', type=int)
    parser.add_argument('--test-number', type=int)
    parser.add_argument('--save', action='store_true', help='Persist the model to the model store')
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    with open(args.dataset, 'r', encoding='utf-8') as f:
        raw = json.load(f)
    actions = [Action.from_dict(a) for a in (raw['data'] if isinstance(raw, dict) else raw)]
    data_window = get_data_window_from_actions(actions)

    overrides = {}
    if args.epochs is not None:
        overrides['epochs'] = args.epochs
    if args.test_number is not None:
        overrides['testNumber'] = args.test_number
    options = options_from_dict(overrides, base=preset_for(ModelType(args.model_type)))

    trainer = ModelTrainer(data_window, options)
    try:
        trainer.check_preconditions(actions)
    except (InsufficientTrainingDataError, NoActiveFeaturesError) as e:
        logger.error("Cannot train: %s", e)
        return 1

    logger.info("Loaded %d actions with %d recordings", len(actions), get_total_num_samples(actions))
    result = trainer.train(remove_test_data(actions, options.test_number))
    if result.error:
        return 1

    if options.test_number > 0:
        passed = trainer.evaluate_test_data(result.model, actions)
        for action, count in zip(actions, passed):
            logger.info("  %s: %d/%d test recordings correct", action.name or action.id,
                        count, options.test_number)

    if args.save:
        from .model_store import ModelStore
        path = ModelStore().save(result.model, [a.id for a in actions], options, data_window)
        logger.info("Model saved to %s", path)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
