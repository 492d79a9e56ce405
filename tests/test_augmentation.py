import math

import numpy as np
import pytest

from gesture_trainer.config import DISTORTION_COUNT, DITHERING_COUNT, ROTATION_COUNT
from gesture_trainer.data_model import Action, Recording
from gesture_trainer.signal_processing.augmentation import DataAugmenter, rotate_xyz


@pytest.fixture
def augmenter():
    return DataAugmenter(rng=np.random.default_rng(7))


@pytest.fixture
def actions(make_recording):
    return [
        Action(id=1, recordings=(make_recording(n=20, x=0.1), make_recording(n=20, x=0.2))),
        Action(id=2, recordings=(make_recording(n=20, y=0.3),)),
    ]


def _assert_originals_first(original, augmented, copies_per_recording):
    for before, after in zip(original, augmented):
        n = len(before.recordings)
        assert len(after.recordings) == n * (1 + copies_per_recording)
        assert after.recordings[:n] == before.recordings
        assert after.id == before.id


def test_rotate_is_additive(augmenter, actions):
    rotated = augmenter.rotate(actions, rot_count=2)
    _assert_originals_first(actions, rotated, 2)


def test_dithering_only(augmenter, actions):
    result = augmenter.synthesize(actions, dithering=True, distortion=False)
    _assert_originals_first(actions, result, DITHERING_COUNT)


def test_distortion_only_scales_whole_recording(augmenter, actions):
    result = augmenter.synthesize(actions, dithering=False, distortion=True)
    _assert_originals_first(actions, result, DISTORTION_COUNT)

    original = np.asarray(actions[0].recordings[0].x)
    copy = np.asarray(result[0].recordings[2].x)
    gain = copy / original
    np.testing.assert_allclose(gain, gain[0])


def test_dithering_and_distortion_cross_product(augmenter, actions):
    result = augmenter.synthesize(actions, dithering=True, distortion=True)
    _assert_originals_first(actions, result, DITHERING_COUNT * DISTORTION_COUNT)


def test_neither_returns_originals(augmenter, actions):
    assert augmenter.synthesize(actions, dithering=False, distortion=False) == actions


def test_augment_synthesizes_before_rotating(augmenter, actions):
    result = augmenter.augment(actions, synthesize=True, rotate=True,
                               dithering=True, distortion=False)
    _assert_originals_first(actions, result,
                            (1 + DITHERING_COUNT) * (1 + ROTATION_COUNT) - 1)


def test_augment_without_anything_keeps_actions(augmenter, actions):
    assert augmenter.augment(actions, synthesize=False, rotate=False) == actions


def test_originals_are_not_modified(augmenter, actions, make_recording):
    augmenter.augment(actions, synthesize=True, rotate=True)
    assert actions[0].recordings[0] == make_recording(n=20, x=0.1)


def test_rotation_preserves_magnitude():
    data = np.array([[0.0, 0.0, 1.0], [0.3, -0.4, 0.5]])
    rotated = rotate_xyz(data, 0.05, -0.08, 0.02)
    np.testing.assert_allclose(np.linalg.norm(rotated, axis=1), np.linalg.norm(data, axis=1))


def test_zero_rotation_is_identity():
    data = np.array([[0.1, 0.2, 0.3]])
    np.testing.assert_allclose(rotate_xyz(data, 0.0, 0.0, 0.0), data)


def test_rotated_copies_stay_within_small_angle(augmenter):
    gravity = Action(id=1, recordings=(Recording(x=[0.0], y=[0.0], z=[1.0]),))
    rotated = augmenter.rotate([gravity], rot_count=20)[0]
    limit = math.cos(math.radians(15))
    for recording in rotated.recordings[1:]:
        assert recording.z[0] >= limit


def test_box_muller_is_standard_normal(augmenter):
    draws = augmenter.gaussian(20000)
    assert abs(np.mean(draws)) < 0.05
    assert abs(np.std(draws) - 1.0) < 0.05
    assert np.all(np.isfinite(draws))
