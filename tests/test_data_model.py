import pytest

from gesture_trainer.data_model import (
    CURRENT,
    LEGACY,
    Action,
    Recording,
    get_data_window_from_actions,
    get_total_num_samples,
)
from gesture_trainer.errors import DatasetFormatError


class TestDataWindowDerivation:
    def test_long_first_recording_uses_legacy_window(self, make_recording):
        actions = [Action(id=1, recordings=(make_recording(n=80),))]
        assert get_data_window_from_actions(actions) == LEGACY

    def test_short_first_recording_uses_current_window(self, make_recording):
        actions = [Action(id=1, recordings=(make_recording(n=50), make_recording(n=90)))]
        assert get_data_window_from_actions(actions) == CURRENT

    def test_no_recordings_uses_current_window(self):
        assert get_data_window_from_actions([Action(id=1)]) == CURRENT
        assert get_data_window_from_actions([]) == CURRENT

    def test_first_action_with_recordings_decides(self, make_recording):
        actions = [Action(id=1), Action(id=2, recordings=(make_recording(n=85),))]
        assert get_data_window_from_actions(actions) == LEGACY


def test_window_constants():
    assert (LEGACY.duration, LEGACY.min_samples,
            LEGACY.device_samples_period, LEGACY.device_samples_length) == (1800, 80, 25, 80)
    assert (CURRENT.duration, CURRENT.min_samples,
            CURRENT.device_samples_period, CURRENT.device_samples_length) == (990, 44, 20, 50)


def test_action_json_round_trip():
    action = Action(
        id=17,
        name='wave',
        icon='Duck',
        recordings=(Recording(x=[0.1, 0.2], y=[0.3, 0.4], z=[-1.0, -0.9], id=5),),
        tests_passed=2,
        required_confidence=0.6,
    )
    raw = action.to_dict()
    assert set(raw) == {'ID', 'name', 'icon', 'recordings', 'testsPassed', 'requiredConfidence'}
    assert raw['recordings'][0] == {'ID': 5, 'data': {'x': [0.1, 0.2], 'y': [0.3, 0.4],
                                                      'z': [-1.0, -0.9]}}
    assert Action.from_dict(raw) == action


def test_recording_accepts_bare_axes():
    recording = Recording.from_dict({'x': [1, 2], 'y': [3, 4], 'z': [5, 6]})
    assert recording.x == [1.0, 2.0]
    assert recording.id is None


def test_action_defaults_on_import():
    action = Action.from_dict({'ID': 3, 'name': 'a'})
    assert action.recordings == ()
    assert action.tests_passed == 100
    assert action.required_confidence == pytest.approx(0.8)


@pytest.mark.parametrize('raw', [
    {'name': 'no id'},
    {'ID': 1, 'recordings': 'nope'},
    {'ID': 1, 'recordings': [{'data': {'x': [1.0], 'y': [1.0]}}]},
    {'ID': 1, 'recordings': [{'data': {'x': ['a'], 'y': [1.0], 'z': [1.0]}}]},
])
def test_malformed_action_rejected(raw):
    with pytest.raises(DatasetFormatError):
        Action.from_dict(raw)


def test_recording_array_conversion(make_recording):
    recording = make_recording(n=4, x=0.5)
    array = recording.as_array()
    assert array.shape == (4, 3)
    assert Recording.from_array(array) == recording


def test_total_num_samples(make_recording):
    actions = [Action(id=1, recordings=(make_recording(), make_recording())),
               Action(id=2, recordings=(make_recording(),))]
    assert get_total_num_samples(actions) == 3


@pytest.mark.parametrize('data', [
    {'x': [], 'y': [], 'z': []},
    {'x': [1.0, 2.0], 'y': [1.0], 'z': [1.0, 2.0]},
    {'x': [float('nan')], 'y': [0.0], 'z': [0.0]},
])
def test_unusable_recording_rejected(data):
    with pytest.raises(DatasetFormatError):
        Recording.from_dict({'ID': 1, 'data': data})
