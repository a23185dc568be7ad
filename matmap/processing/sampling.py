# matmap/processing/sampling.py
"""Intensity sampling of image volumes at world-space points.

Continuous voxel indices are obtained from the volume's geometry and
interpolated with scipy.ndimage.map_coordinates. Two policies exist:

* ``"trilinear"`` (default): linear interpolation between the 8 surrounding
  voxel centres, giving a continuous field over the mesh.
* ``"nearest"``: value of the closest voxel centre.

Points farther than ``INSIDE_TOLERANCE`` voxels outside the voxel-centre
lattice are out of bounds. They are reported, not raised.
"""
from typing import Sequence, Tuple, Union

import numpy as np
from scipy.ndimage import map_coordinates

from .volume import Volume
from ..utils.errors import ConfigError

SAMPLING_POLICIES = {"nearest": 0, "trilinear": 1}

INSIDE_TOLERANCE = 1e-6


class _OutOfBounds:
    """Sentinel for points outside the image"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "OUT_OF_BOUNDS"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_OutOfBounds, ())


OUT_OF_BOUNDS = _OutOfBounds()


def interpolation_order(policy: str) -> int:
    try:
        return SAMPLING_POLICIES[policy]
    except KeyError:
        raise ConfigError(
            f"Unknown sampling policy: {policy}",
            f"Choices: {', '.join(SAMPLING_POLICIES)}",
        )


def sample_points(
    volume: Volume,
    points: np.ndarray,
    policy: str = "trilinear",
    fill_value: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Sample a volume at many world points

    Args:
        volume: Image volume
        points: (n, 3) world coordinates
        policy: "trilinear" or "nearest"
        fill_value: Value reported for points outside the image

    Returns:
        Tuple of (values as float64 (n,), inside mask as bool (n,))
    """
    order = interpolation_order(policy)
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if points.shape[0] == 0:
        return np.empty(0, dtype=np.float64), np.empty(0, dtype=bool)

    indices = volume.world_to_index(points)
    upper = np.asarray(volume.shape, dtype=np.float64) - 1.0
    inside = np.all(
        (indices >= -INSIDE_TOLERANCE) & (indices <= upper + INSIDE_TOLERANCE),
        axis=1,
    )

    # clip round-off at the lattice edges; outside points are overwritten below
    coords = np.clip(indices, 0.0, upper).T
    values = map_coordinates(
        volume.data,
        coords,
        output=np.float64,
        order=order,
        mode="nearest",
        prefilter=False,
    )
    values[~inside] = fill_value
    return values, inside


def sample(
    volume: Volume, point: Sequence[float], policy: str = "trilinear"
) -> Union[float, _OutOfBounds]:
    """Sample a volume at one world point

    Returns:
        Interpolated intensity, or OUT_OF_BOUNDS outside the image
    """
    values, inside = sample_points(volume, np.asarray(point).reshape(1, 3), policy)
    if not inside[0]:
        return OUT_OF_BOUNDS
    return float(values[0])
