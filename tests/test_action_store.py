import json

import pytest

from gesture_trainer.actions import ActionStore
from gesture_trainer.config import DEFAULT_ICONS, FALLBACK_ICON
from gesture_trainer.data_model import CURRENT, LEGACY, Action, Recording
from gesture_trainer.errors import DatasetFormatError, UnknownActionError


@pytest.fixture
def store():
    return ActionStore()


@pytest.fixture
def events(store):
    received = []
    store.add_listener(lambda event, invalidates: received.append((event, invalidates)))
    return received


class TestActions:
    def test_starts_with_placeholder(self, store):
        [action] = store.actions
        assert action.name == ''
        assert action.icon == DEFAULT_ICONS[0]
        assert action.recordings == ()

    def test_new_actions_get_unused_icons_and_unique_ids(self, store):
        second = store.add_action('wave')
        third = store.add_action()

        assert second.icon == DEFAULT_ICONS[1]
        assert third.icon == DEFAULT_ICONS[2]
        ids = store.classification_ids()
        assert len(set(ids)) == 3
        assert ids[1:] == [second.id, third.id]

    def test_icons_run_out(self, store):
        for _ in range(len(DEFAULT_ICONS)):
            action = store.add_action()
        assert action.icon == FALLBACK_ICON

    def test_delete_last_action_leaves_placeholder(self, store, make_recording):
        [action] = store.actions
        store.add_recordings(action.id, [make_recording(n=80)])
        assert store.data_window == LEGACY

        store.delete_action(action.id)
        [placeholder] = store.actions
        assert placeholder.id != action.id
        assert placeholder.recordings == ()
        assert store.data_window == CURRENT

    def test_delete_all(self, store):
        store.add_action('a')
        store.add_action('b')
        store.delete_all_actions()
        assert len(store.actions) == 1

    def test_unknown_action(self, store):
        with pytest.raises(UnknownActionError):
            store.get_action(-1)
        with pytest.raises(UnknownActionError):
            store.set_action_name(-1, 'x')
        with pytest.raises(UnknownActionError):
            store.delete_action(-1)

    def test_icon_swap_keeps_icons_unique(self, store):
        first = store.actions[0]
        second = store.add_action()

        store.set_action_icon(first.id, second.icon)
        assert store.get_action(first.id).icon == second.icon
        assert store.get_action(second.id).icon == first.icon

    def test_required_confidence_bounds(self, store):
        action_id = store.actions[0].id
        assert store.set_required_confidence(action_id, 0.6).required_confidence == 0.6
        with pytest.raises(ValueError):
            store.set_required_confidence(action_id, 1.5)
        with pytest.raises(ValueError):
            store.set_required_confidence(action_id, -0.1)

    def test_tests_passed(self, store):
        store.add_action()
        store.set_tests_passed([2, 0])
        assert [a.tests_passed for a in store.actions] == [2, 0]
        with pytest.raises(ValueError):
            store.set_tests_passed([1])


class TestRecordings:
    def test_new_recordings_go_first(self, store, make_recording):
        action_id = store.actions[0].id
        store.add_recordings(action_id, [make_recording(x=1.0)])
        updated = store.add_recordings(action_id, [make_recording(x=2.0)])

        assert [r.x[0] for r in updated.recordings] == [2.0, 1.0]
        assert all(r.id is not None for r in updated.recordings)
        assert store.total_recordings() == 2

    def test_first_recordings_decide_window(self, store, make_recording):
        action_id = store.actions[0].id
        store.add_recordings(action_id, [make_recording(n=50)])
        store.add_recordings(action_id, [make_recording(n=80)])
        assert store.data_window == CURRENT

    def test_delete_recording(self, store, make_recording):
        action_id = store.actions[0].id
        store.add_recordings(action_id, [make_recording(n=80)])
        with pytest.raises(IndexError):
            store.delete_recording(action_id, 3)

        updated = store.delete_recording(action_id, 0)
        assert updated.recordings == ()
        assert store.data_window == CURRENT


class TestDataset:
    def test_json_round_trip(self, store, make_recording):
        action_id = store.actions[0].id
        store.set_action_name(action_id, 'wave')
        store.add_recordings(action_id, [make_recording(n=3)])

        other = ActionStore()
        other.load_dataset(store.to_json())
        assert other.actions == store.actions
        assert json.loads(other.to_json()) == store.export_dataset()

    def test_missing_icons_are_assigned(self, store):
        store.load_dataset([{'ID': 1, 'name': 'a', 'icon': DEFAULT_ICONS[0]},
                            {'ID': 2, 'name': 'b'}])
        assert [a.icon for a in store.actions] == [DEFAULT_ICONS[0], DEFAULT_ICONS[1]]

    def test_window_follows_loaded_recordings(self, store, make_recording):
        store.load_dataset([Action(id=1, recordings=(make_recording(n=80),))])
        assert store.data_window == LEGACY

    def test_empty_dataset_leaves_placeholder(self, store):
        store.load_dataset('[]')
        assert len(store.actions) == 1

    @pytest.mark.parametrize('raw', [
        'not json',
        '{"ID": 1}',
        '[{"ID": 1}, {"ID": 1}]',
        '[{"name": "no id"}]',
    ])
    def test_malformed_dataset(self, store, raw):
        before = store.actions
        with pytest.raises(DatasetFormatError):
            store.load_dataset(raw)
        assert store.actions == before


def test_listener_flags(store, events, make_recording):
    action_id = store.actions[0].id
    store.set_action_name(action_id, 'x')
    store.set_required_confidence(action_id, 0.5)
    store.add_recordings(action_id, [make_recording()])
    store.add_action()
    store.load_dataset('[{"ID": 1}]')

    assert events == [
        ('action_renamed', False),
        ('required_confidence_changed', False),
        ('recordings_added', True),
        ('action_added', True),
        ('dataset_loaded', True),
    ]


def test_failing_listener_does_not_break_store(store):
    def broken(event, invalidates):
        raise RuntimeError('boom')

    store.add_listener(broken)
    store.add_action()
    assert len(store.actions) == 2


@pytest.mark.parametrize('recording', [
    Recording(x=[], y=[], z=[]),
    Recording(x=[0.0, 0.1], y=[0.0], z=[-1.0, -1.0]),
    Recording(x=[float('nan')], y=[0.0], z=[-1.0]),
])
def test_unusable_recordings_are_rejected(store, recording, make_recording):
    action_id = store.actions[0].id
    with pytest.raises(DatasetFormatError):
        store.add_recordings(action_id, [make_recording(), recording])
    assert store.total_recordings() == 0


def test_dataset_with_empty_recording_is_rejected(store):
    raw = '[{"ID": 1, "recordings": [{"ID": 2, "data": {"x": [], "y": [], "z": []}}]}]'
    with pytest.raises(DatasetFormatError):
        store.load_dataset(raw)


def test_revision_tracks_model_invalidating_changes(store, make_recording):
    action_id = store.actions[0].id
    start = store.revision

    store.set_action_name(action_id, 'renamed')
    store.set_required_confidence(action_id, 0.5)
    assert store.revision == start

    store.add_recordings(action_id, [make_recording()])
    store.delete_recording(action_id, 0)
    assert store.revision == start + 2
