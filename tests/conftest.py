import numpy as np
import pytest

from gesture_trainer.config import DEFAULT_ICONS
from gesture_trainer.data_model import Action, Recording, Sample
from gesture_trainer.model_options import DEFAULT_MODEL_OPTIONS, with_options
from gesture_trainer.sample_sources import SimulatedSource


class FakeModel:
    """Callable standing in for a Keras model; returns fixed confidences."""

    def __init__(self, output, fail=False):
        self.output = np.asarray([output], dtype=np.float32)
        self.fail = fail
        self.calls = []

    def __call__(self, batch, training=False):
        self.calls.append(np.asarray(batch).shape)
        if self.fail:
            raise RuntimeError('model exploded')
        return self.output


@pytest.fixture
def fake_model():
    return FakeModel


@pytest.fixture
def make_recording():
    def build(n=50, x=0.0, y=0.0, z=-1.0, id=None):
        return Recording(x=[float(x)] * n, y=[float(y)] * n, z=[float(z)] * n, id=id)
    return build


@pytest.fixture
def make_samples():
    def build(start, count, step=20, value=0.5):
        return [Sample(x=value, y=-value, z=1.0, timestamp=start + i * step)
                for i in range(count)]
    return build


@pytest.fixture
def simulated():
    return SimulatedSource(rng=np.random.default_rng(1234), clock=lambda: 0)


@pytest.fixture
def gesture_actions(simulated):
    """Actions filled with simulated recordings, one action per gesture."""
    def build(gestures=('still', 'shake'), per_action=4, num_samples=50):
        return [
            Action(
                id=index + 1,
                name=gesture,
                icon=DEFAULT_ICONS[index],
                recordings=tuple(simulated.record(gesture, num_samples)
                                 for _ in range(per_action)),
            )
            for index, gesture in enumerate(gestures)
        ]
    return build


@pytest.fixture
def fast_options():
    return with_options(DEFAULT_MODEL_OPTIONS, epochs=2, batch_size=8)
