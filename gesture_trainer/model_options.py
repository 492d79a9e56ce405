"""
Model Options

Training configuration is an immutable value: every update helper returns
a new ModelOptions instead of changing the one it was given, so options
shared between the session, the trainer and a running prediction loop can
never change underneath them.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import FrozenSet, Iterable

from .signal_processing.filters import ALL_FILTERS, Filter


class ModelType(Enum):
    """Classifier architectures the trainer can build."""
    DEFAULT = 'DEFAULT'  # batch norm + one dense hidden layer
    LOGREG = 'LOGREG'    # batch norm + softmax (multinomial logistic regression)
    DEEP = 'DEEP'        # stacked dense layers with dropout
    CNN = 'CNN'          # 1D convolution over the feature vector
    GRU = 'GRU'          # stacked GRUs over the raw, resampled window


@dataclass(frozen=True)
class ModelOptions:
    epochs: int
    batch_size: int
    learning_rate: float
    neuron_number: int
    test_number: int
    dropout_rate: float
    recurrent_dropout: float
    filter_size: int
    pool_size: int
    kernel_size: int
    features_active: FrozenSet[Filter]
    model_type: ModelType
    dithering: bool = False
    distortion: bool = False
    rotation: bool = False

    @property
    def uses_features(self) -> bool:
        """False for models that consume the raw sequence instead of features."""
        return self.model_type is not ModelType.GRU

    @property
    def synthesize(self) -> bool:
        return self.dithering or self.distortion

    def to_dict(self) -> dict:
        return {
            'epochs': self.epochs,
            'batchSize': self.batch_size,
            'learningRate': self.learning_rate,
            'neuronNumber': self.neuron_number,
            'testNumber': self.test_number,
            'dropoutRate': self.dropout_rate,
            'recurrentDropout': self.recurrent_dropout,
            'filterSize': self.filter_size,
            'poolSize': self.pool_size,
            'kernelSize': self.kernel_size,
            'featuresActive': [f.value for f in Filter if f in self.features_active],
            'modelType': self.model_type.value,
            'dithering': self.dithering,
            'distortion': self.distortion,
            'rotation': self.rotation,
        }


DEFAULT_MODEL_OPTIONS = ModelOptions(
    epochs=200,
    batch_size=128,
    learning_rate=0.4,
    neuron_number=16,
    test_number=0,
    dropout_rate=0.1,
    recurrent_dropout=0.1,
    filter_size=0,
    pool_size=0,
    kernel_size=0,
    features_active=ALL_FILTERS,
    model_type=ModelType.DEFAULT,
)

LOGREG_MODEL_OPTIONS = replace(DEFAULT_MODEL_OPTIONS, neuron_number=0,
                               model_type=ModelType.LOGREG)

DEEP_MODEL_OPTIONS = replace(
    DEFAULT_MODEL_OPTIONS,
    epochs=120,
    batch_size=32,
    learning_rate=0.005,
    neuron_number=32,
    dropout_rate=0.2,
    model_type=ModelType.DEEP,
)

CNN_MODEL_OPTIONS = ModelOptions(
    epochs=80,
    batch_size=32,
    learning_rate=0.002,
    neuron_number=64,
    test_number=0,
    dropout_rate=0.05,
    recurrent_dropout=0.05,
    filter_size=32,
    pool_size=2,
    kernel_size=3,
    features_active=ALL_FILTERS,
    model_type=ModelType.CNN,
)

GRU_MODEL_OPTIONS = ModelOptions(
    epochs=100,
    batch_size=16,
    learning_rate=0.002,
    neuron_number=16,
    test_number=0,
    dropout_rate=0.1,
    recurrent_dropout=0.0,
    filter_size=0,
    pool_size=0,
    kernel_size=0,
    features_active=ALL_FILTERS,
    model_type=ModelType.GRU,
)

_PRESETS = {
    ModelType.DEFAULT: DEFAULT_MODEL_OPTIONS,
    ModelType.LOGREG: LOGREG_MODEL_OPTIONS,
    ModelType.DEEP: DEEP_MODEL_OPTIONS,
    ModelType.CNN: CNN_MODEL_OPTIONS,
    ModelType.GRU: GRU_MODEL_OPTIONS,
}


def preset_for(model_type: ModelType) -> ModelOptions:
    return _PRESETS[model_type]


def with_options(options: ModelOptions, **changes) -> ModelOptions:
    """Return a copy of options with the given fields changed."""
    if 'features_active' in changes:
        changes['features_active'] = frozenset(changes['features_active'])
    return replace(options, **changes)


def toggle_features(options: ModelOptions, filters: Iterable[Filter]) -> ModelOptions:
    """Flip each given filter between active and inactive."""
    active = set(options.features_active)
    for f in filters:
        if f in active:
            active.remove(f)
        else:
            active.add(f)
    return replace(options, features_active=frozenset(active))


def toggle_model(options: ModelOptions) -> ModelOptions:
    """Switch between the default dense network and logistic regression."""
    if options.model_type is ModelType.DEFAULT:
        return LOGREG_MODEL_OPTIONS
    return DEFAULT_MODEL_OPTIONS


def options_from_dict(raw: dict, base: ModelOptions = DEFAULT_MODEL_OPTIONS) -> ModelOptions:
    """
    Build options from the camelCase dict produced by ModelOptions.to_dict().

    Missing keys keep the value from base. Raises ValueError on unknown
    filter or model type names.
    """
    keys = {
        'epochs': ('epochs', int),
        'batchSize': ('batch_size', int),
        'learningRate': ('learning_rate', float),
        'neuronNumber': ('neuron_number', int),
        'testNumber': ('test_number', int),
        'dropoutRate': ('dropout_rate', float),
        'recurrentDropout': ('recurrent_dropout', float),
        'filterSize': ('filter_size', int),
        'poolSize': ('pool_size', int),
        'kernelSize': ('kernel_size', int),
        'dithering': ('dithering', bool),
        'distortion': ('distortion', bool),
        'rotation': ('rotation', bool),
    }
    changes = {}
    for key, (field_name, cast) in keys.items():
        if key in raw:
            changes[field_name] = cast(raw[key])
    if 'featuresActive' in raw:
        changes['features_active'] = frozenset(Filter(v) for v in raw['featuresActive'])
    if 'modelType' in raw:
        changes['model_type'] = ModelType(raw['modelType'])
    return replace(base, **changes)
