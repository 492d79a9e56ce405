import dataclasses

import pytest

from gesture_trainer.model_options import (
    CNN_MODEL_OPTIONS,
    DEFAULT_MODEL_OPTIONS,
    GRU_MODEL_OPTIONS,
    LOGREG_MODEL_OPTIONS,
    ModelType,
    options_from_dict,
    preset_for,
    toggle_features,
    toggle_model,
    with_options,
)
from gesture_trainer.signal_processing.filters import ALL_FILTERS, Filter


def test_options_are_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_MODEL_OPTIONS.epochs = 5


def test_with_options_returns_new_value():
    options = with_options(DEFAULT_MODEL_OPTIONS, epochs=5, features_active=[Filter.MAX])
    assert options.epochs == 5
    assert options.features_active == frozenset({Filter.MAX})
    assert DEFAULT_MODEL_OPTIONS.epochs == 200


def test_toggle_features_flips_each_filter():
    options = toggle_features(DEFAULT_MODEL_OPTIONS, [Filter.PEAKS, Filter.ZCR])
    assert options.features_active == ALL_FILTERS - {Filter.PEAKS, Filter.ZCR}
    assert toggle_features(options, [Filter.PEAKS]).features_active == ALL_FILTERS - {Filter.ZCR}


def test_toggle_model_switches_default_and_logreg():
    assert toggle_model(DEFAULT_MODEL_OPTIONS) == LOGREG_MODEL_OPTIONS
    assert toggle_model(LOGREG_MODEL_OPTIONS) == DEFAULT_MODEL_OPTIONS
    assert toggle_model(CNN_MODEL_OPTIONS) == DEFAULT_MODEL_OPTIONS


def test_presets():
    assert DEFAULT_MODEL_OPTIONS.epochs == 200
    assert DEFAULT_MODEL_OPTIONS.batch_size == 128
    assert DEFAULT_MODEL_OPTIONS.test_number == 0
    assert preset_for(ModelType.CNN) is CNN_MODEL_OPTIONS
    assert not GRU_MODEL_OPTIONS.uses_features
    assert DEFAULT_MODEL_OPTIONS.uses_features


def test_dict_round_trip():
    assert options_from_dict(CNN_MODEL_OPTIONS.to_dict()) == CNN_MODEL_OPTIONS
    assert options_from_dict(GRU_MODEL_OPTIONS.to_dict()) == GRU_MODEL_OPTIONS


def test_partial_dict_keeps_base_values():
    options = options_from_dict({'epochs': 12, 'featuresActive': ['max', 'rms']},
                                base=CNN_MODEL_OPTIONS)
    assert options.epochs == 12
    assert options.features_active == frozenset({Filter.MAX, Filter.RMS})
    assert options.model_type is ModelType.CNN


def test_unknown_filter_rejected():
    with pytest.raises(ValueError):
        options_from_dict({'featuresActive': ['bogus']})
