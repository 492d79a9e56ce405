import pytest

from gesture_trainer.actions import ActionStore
from gesture_trainer.ml.model_store import ModelStore
from gesture_trainer.model_options import DEFAULT_MODEL_OPTIONS, LOGREG_MODEL_OPTIONS, with_options
from gesture_trainer.session import Session, TrainingStage
from gesture_trainer.signal_processing.filters import Filter


@pytest.fixture
def make_session(gesture_actions, fast_options):
    def build(actions=None, options=fast_options, **kwargs):
        store = ActionStore(actions if actions is not None else gesture_actions())
        return Session(action_store=store, model_options=options,
                       training_start_delay_s=0, **kwargs)
    return build


@pytest.fixture
def trained(make_session):
    session = make_session()
    assert session.train_model()
    yield session
    session.stop_predicting()


def _record_events(session):
    events = []
    session.add_listener(lambda event, payload: events.append((event, payload)))
    return events


class TestTrainingGates:
    def test_insufficient_data(self, fast_options):
        session = Session(model_options=fast_options, training_start_delay_s=0)
        assert session.train_model() is False
        assert session.training_stage is TrainingStage.INSUFFICIENT_DATA
        assert not session.has_model

    def test_test_number_counts_against_data(self, make_session, gesture_actions, fast_options):
        session = make_session(actions=gesture_actions(per_action=3),
                               options=with_options(fast_options, test_number=1))
        assert session.train_model() is False
        assert session.training_stage is TrainingStage.INSUFFICIENT_DATA

    def test_no_features_active(self, make_session, fast_options):
        session = make_session(options=with_options(fast_options, features_active=[]))
        assert session.train_model() is False
        assert session.training_stage is TrainingStage.NO_FEATURES_ACTIVE


class TestTraining:
    def test_success(self, make_session):
        session = make_session()
        events = _record_events(session)

        assert session.train_model() is True
        assert session.training_stage is TrainingStage.CLOSED
        assert session.has_model
        assert session.training_progress == 1.0
        assert session.classification_ids == session.action_store.classification_ids()
        assert [a.tests_passed for a in session.action_store.actions] == [0, 0]

        names = [name for name, _ in events]
        assert names[:2] == ['training_progress', 'training_stage']
        assert events[1][1] is TrainingStage.TRAINING_IN_PROGRESS
        assert events[-2:] == [('model_changed', True), ('training_stage', TrainingStage.CLOSED)]

    def test_held_out_results(self, make_session, gesture_actions, fast_options):
        session = make_session(actions=gesture_actions(per_action=5),
                               options=with_options(fast_options, test_number=2))
        assert session.train_model()
        assert all(0 <= a.tests_passed <= 2 for a in session.action_store.actions)

    def test_dataset_changes_clear_model(self, trained, make_recording):
        events = _record_events(trained)
        action_id = trained.action_store.actions[0].id
        trained.action_store.add_recordings(action_id, [make_recording()])

        assert not trained.has_model
        assert events == [('model_changed', False)]

    def test_name_change_keeps_model(self, trained):
        trained.action_store.set_action_name(trained.action_store.actions[0].id, 'renamed')
        trained.action_store.set_required_confidence(trained.action_store.actions[0].id, 0.5)
        assert trained.has_model

    def test_option_changes_clear_model(self, trained):
        trained.update_model_options(epochs=3)
        assert not trained.has_model
        assert trained.model_options.epochs == 3

    def test_toggle_model(self, make_session):
        session = make_session(options=DEFAULT_MODEL_OPTIONS)
        assert session.toggle_model() == LOGREG_MODEL_OPTIONS
        session.reset_model_options()
        assert session.model_options == DEFAULT_MODEL_OPTIONS

    def test_empty_feature_toggle_keeps_model(self, trained):
        trained.toggle_features([])
        assert trained.has_model
        trained.toggle_features([Filter.MAX])
        assert not trained.has_model
        assert Filter.MAX not in trained.model_options.features_active

    def test_unusable_held_out_recording_is_a_training_error(self, make_session, gesture_actions,
                                                             make_recording, fast_options):
        actions = gesture_actions(per_action=4)
        first = actions[0]
        actions[0] = first.with_recordings((make_recording(n=0),) + first.recordings[1:])
        session = make_session(actions=actions, options=with_options(fast_options, test_number=1))

        assert session.train_model() is False
        assert session.training_stage is TrainingStage.TRAINING_ERROR
        assert not session.has_model

    def test_dataset_change_during_training_discards_model(self, make_session):
        session = make_session()
        store = session.action_store
        action_id = store.actions[0].id

        def delete_while_training(event, payload):
            if event == 'training_stage' and payload is TrainingStage.TRAINING_IN_PROGRESS:
                store.delete_recording(action_id, 1)

        session.add_listener(delete_while_training)
        assert session.train_model() is False
        assert session.training_stage is TrainingStage.TRAINING_ERROR
        assert not session.has_model

    def test_option_change_during_training_discards_model(self, make_session):
        session = make_session()

        def change_while_training(event, payload):
            if event == 'training_stage' and payload is TrainingStage.TRAINING_IN_PROGRESS:
                session.update_model_options(epochs=3)

        session.add_listener(change_while_training)
        assert session.train_model() is False
        assert session.training_stage is TrainingStage.TRAINING_ERROR
        assert not session.has_model


class TestPrediction:
    def test_requires_model(self, make_session):
        assert make_session().start_predicting() is False

    def test_start_and_stop(self, trained):
        assert trained.start_predicting()
        assert trained.is_predicting
        assert trained.get_status()['is_predicting'] is True

        trained.stop_predicting()
        assert not trained.is_predicting

    def test_running_loop_survives_model_clear(self, trained):
        trained.start_predicting()
        trained.clear_model()
        assert trained.is_predicting


def test_new_session_resets_everything(trained, make_samples):
    for sample in make_samples(0, 10):
        trained.buffer.add(sample)
    trained.start_predicting()

    trained.new_session()
    status = trained.get_status()
    assert status['num_actions'] == 1
    assert status['num_recordings'] == 0
    assert status['buffered_samples'] == 0
    assert status['has_model'] is False
    assert status['is_predicting'] is False
    assert status['training_stage'] == 'closed'


def test_status_shape(make_session):
    status = make_session().get_status()
    assert status['num_actions'] == 2
    assert status['num_recordings'] == 8
    assert status['data_window']['duration'] == 990
    assert status['prediction'] is None


class TestPersistence:
    def test_save_without_model(self, make_session, tmp_path):
        session = make_session(model_store=ModelStore(str(tmp_path)))
        assert session.save_model() is None
        assert session.load_model() is False

    def test_save_and_load(self, make_session, gesture_actions, tmp_path):
        actions = gesture_actions()
        session = make_session(actions=actions, model_store=ModelStore(str(tmp_path)))
        session.train_model()
        path = session.save_model()
        assert path.endswith('.keras')

        restored = make_session(actions=actions, options=DEFAULT_MODEL_OPTIONS,
                                model_store=ModelStore(str(tmp_path)))
        assert restored.load_model() is True
        assert restored.has_model
        assert restored.classification_ids == [a.id for a in actions]
        assert restored.model_options == session.model_options

    def test_load_rejects_other_actions(self, make_session, gesture_actions, tmp_path):
        session = make_session(model_store=ModelStore(str(tmp_path)))
        session.train_model()
        session.save_model()

        other_ids = gesture_actions(gestures=('still', 'shake', 'tap'))
        other = make_session(actions=other_ids, model_store=ModelStore(str(tmp_path)))
        assert other.load_model() is False
        assert not other.has_model
