"""
Training Data Augmentation

Users record only a handful of examples per action, so the training set is
expanded with synthetic variants of every recording:
- Rotation: small random tilts about X, Y and Z (a loose wrist strap)
- Dithering: independent Gaussian noise on every sample
- Distortion: one random gain per copy

Augmentation is strictly additive. Each action keeps its original
recordings, unmodified and at their original indices, and the synthetic
copies are appended after them.
"""
import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from ..config import (
    DISTORTION_COUNT,
    DISTORTION_FACTOR,
    DITHERING_COUNT,
    DITHERING_NOISE_FACTOR,
    MAX_ROTATION_DEGREES,
    ROTATION_COUNT,
)
from ..data_model import Action, Recording

logger = logging.getLogger(__name__)


def rotation_matrix_x(theta: float) -> np.ndarray:
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[1.0, 0.0, 0.0],
                     [0.0, c, -s],
                     [0.0, s, c]])


def rotation_matrix_y(theta: float) -> np.ndarray:
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, 0.0, s],
                     [0.0, 1.0, 0.0],
                     [-s, 0.0, c]])


def rotation_matrix_z(theta: float) -> np.ndarray:
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0],
                     [s, c, 0.0],
                     [0.0, 0.0, 1.0]])


def rotate_xyz(data: np.ndarray, theta_x: float, theta_y: float, theta_z: float) -> np.ndarray:
    """
    Rotate every sample about X, then Y, then Z.

    Args:
        data: Samples of shape (n_samples, 3)
        theta_x, theta_y, theta_z: Angles in radians

    Returns:
        Rotated samples, same shape
    """
    rotation = rotation_matrix_z(theta_z) @ rotation_matrix_y(theta_y) @ rotation_matrix_x(theta_x)
    return data @ rotation.T


class DataAugmenter:
    """
    Generates synthetic recordings for training.

    Attributes:
        max_rotation: Largest rotation angle in degrees
        noise_factor: Standard deviation of dithering noise (g)
        distortion_factor: Spread of the per-copy distortion gain
    """

    def __init__(self,
                 rng: Optional[np.random.Generator] = None,
                 max_rotation: float = MAX_ROTATION_DEGREES,
                 noise_factor: float = DITHERING_NOISE_FACTOR,
                 distortion_factor: float = DISTORTION_FACTOR):
        self._rng = rng if rng is not None else np.random.default_rng()
        self.max_rotation = max_rotation
        self.noise_factor = noise_factor
        self.distortion_factor = distortion_factor

    def gaussian(self, size=None):
        """
        Standard normal draws via the Box-Muller transform.

        Two independent uniforms u1, u2 give sqrt(-2 ln u1) * cos(2 pi u2).
        u1 is taken from (0, 1] so the logarithm stays finite.
        """
        u1 = 1.0 - self._rng.random(size)
        u2 = self._rng.random(size)
        return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)

    def rotate(self, actions: Sequence[Action], rot_count: int = ROTATION_COUNT) -> List[Action]:
        """
        Add rot_count randomly rotated copies of every recording.

        Each copy draws its own three angles uniformly from
        [-max_rotation, max_rotation] degrees.
        """
        result = []
        for action in actions:
            copies = []
            for recording in action.recordings:
                data = recording.as_array()
                for _ in range(rot_count):
                    angles = np.radians(self._rng.uniform(-self.max_rotation, self.max_rotation, 3))
                    copies.append(Recording.from_array(rotate_xyz(data, *angles)))
            result.append(action.with_recordings(list(action.recordings) + copies))
        return result

    def synthesize(self, actions: Sequence[Action],
                   dithering: bool, distortion: bool,
                   dithering_count: int = DITHERING_COUNT,
                   distortion_count: int = DISTORTION_COUNT) -> List[Action]:
        """
        Add dithered and/or distorted copies of every recording.

        Args:
            actions: Actions to augment
            dithering: Add Gaussian noise to every sample
            distortion: Scale each copy by 1 + N(0, 1) * distortion_factor
            dithering_count: Noisy copies per recording
            distortion_count: Scaled copies per recording

        Returns:
            New actions. With both enabled every recording gets
            dithering_count * distortion_count copies that combine noise
            and gain; with neither, the actions are returned unchanged.
        """
        if not dithering and not distortion:
            return list(actions)

        result = []
        for action in actions:
            copies = []
            for recording in action.recordings:
                data = recording.as_array()
                if dithering and distortion:
                    for _ in range(distortion_count):
                        gain = self._distortion_gain()
                        for _ in range(dithering_count):
                            copies.append(Recording.from_array(
                                (data + self._noise(data.shape)) * gain))
                elif dithering:
                    for _ in range(dithering_count):
                        copies.append(Recording.from_array(data + self._noise(data.shape)))
                else:
                    for _ in range(distortion_count):
                        copies.append(Recording.from_array(data * self._distortion_gain()))
            result.append(action.with_recordings(list(action.recordings) + copies))
        return result

    def augment(self, actions: Sequence[Action], synthesize: bool, rotate: bool,
                dithering: bool = True, distortion: bool = True) -> List[Action]:
        """
        Apply synthesis, then rotation, as requested.

        Rotation runs on the already synthesized set, so rotated copies are
        made of the synthetic recordings as well.
        """
        augmented = list(actions)
        if synthesize:
            augmented = self.synthesize(augmented, dithering, distortion)
        if rotate:
            augmented = self.rotate(augmented)
        if synthesize or rotate:
            logger.debug(
                "Augmented %d recordings to %d",
                sum(len(a.recordings) for a in actions),
                sum(len(a.recordings) for a in augmented),
            )
        return augmented

    def _noise(self, shape) -> np.ndarray:
        return self.gaussian(shape) * self.noise_factor

    def _distortion_gain(self) -> float:
        return float(1.0 + self.gaussian() * self.distortion_factor)
