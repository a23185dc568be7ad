# matmap/processing/volume.py
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pyvista as pv

from ..utils.errors import VolumeError


@dataclass(frozen=True, eq=False)
class Volume:
    """3D scalar image with its world geometry

    data is indexed [i, j, k] along the x, y and z image axes. origin is the
    world position of the centre of voxel [0, 0, 0]; voxel centres lie at
    origin + direction @ (index * spacing).
    """

    data: np.ndarray
    spacing: np.ndarray = field(default_factory=lambda: np.ones(3))
    origin: np.ndarray = field(default_factory=lambda: np.zeros(3))
    direction: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.ndim != 3:
            raise VolumeError("Volume data must be 3-dimensional", f"Got shape: {data.shape}")
        if data.size == 0:
            raise VolumeError("Volume data is empty", f"Got shape: {data.shape}")
        if not (
            np.issubdtype(data.dtype, np.integer) or np.issubdtype(data.dtype, np.floating)
        ):
            raise VolumeError("Volume data must be numeric", f"Got dtype: {data.dtype}")

        spacing = np.asarray(self.spacing, dtype=np.float64).reshape(3)
        origin = np.asarray(self.origin, dtype=np.float64).reshape(3)
        direction = np.asarray(self.direction, dtype=np.float64).reshape(3, 3)

        if np.any(spacing <= 0) or not np.all(np.isfinite(spacing)):
            raise VolumeError("Volume spacing must be positive", f"Got: {spacing}")
        if abs(np.linalg.det(direction)) < 1e-12:
            raise VolumeError("Volume direction matrix is singular", f"Got: {direction}")

        # read-only views; the volume is borrowed, never modified
        data = data.view()
        data.flags.writeable = False
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "spacing", spacing)
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "direction", direction)

    @property
    def shape(self):
        return self.data.shape

    @property
    def index_to_world(self) -> np.ndarray:
        """3x3 matrix mapping voxel index offsets to world offsets"""
        return self.direction @ np.diag(self.spacing)

    def world_to_index(self, points: np.ndarray) -> np.ndarray:
        """Continuous voxel indices of (n, 3) world points"""
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        inverse = np.linalg.inv(self.index_to_world)
        return (points - self.origin) @ inverse.T

    def index_to_world_points(self, indices: np.ndarray) -> np.ndarray:
        indices = np.atleast_2d(np.asarray(indices, dtype=np.float64))
        return indices @ self.index_to_world.T + self.origin

    def bounds(self) -> np.ndarray:
        """Axis-aligned (min, max) world bounds of the voxel centres, shape (3, 2)"""
        corners = np.array(
            [
                [i, j, k]
                for i in (0, self.shape[0] - 1)
                for j in (0, self.shape[1] - 1)
                for k in (0, self.shape[2] - 1)
            ],
            dtype=np.float64,
        )
        world = self.index_to_world_points(corners)
        return np.stack([world.min(axis=0), world.max(axis=0)], axis=1)

    @classmethod
    def from_image_data(cls, image: pv.ImageData, scalars: Optional[str] = None) -> "Volume":
        """Create a volume from a pyvista ImageData

        Point data is used directly. Cell data is treated as voxel values at
        the cell centres, so the origin shifts by half a voxel.
        """
        name = scalars
        if name is None:
            if image.point_data.keys():
                name = image.point_data.active_scalars_name or image.point_data.keys()[0]
            elif image.cell_data.keys():
                name = image.cell_data.active_scalars_name or image.cell_data.keys()[0]
            else:
                raise VolumeError("Image has no scalar data")

        spacing = np.asarray(image.spacing, dtype=np.float64)
        direction = np.asarray(image.direction_matrix, dtype=np.float64)
        origin = np.asarray(image.origin, dtype=np.float64)

        if name in image.point_data:
            values = np.asarray(image.point_data[name])
            shape = tuple(image.dimensions)
        elif name in image.cell_data:
            values = np.asarray(image.cell_data[name])
            shape = tuple(max(d - 1, 1) for d in image.dimensions)
            origin = origin + direction @ (0.5 * spacing)
        else:
            raise VolumeError(f"Image has no scalar array named '{name}'")

        if values.ndim > 1 and values.shape[1] != 1:
            raise VolumeError(
                f"Image array '{name}' is not scalar", f"Got shape: {values.shape}"
            )

        data = values.reshape(shape, order="F")
        return cls(data=data, spacing=spacing, origin=origin, direction=direction)

    def to_image_data(self, name: str = "intensity") -> pv.ImageData:
        image = pv.ImageData(
            dimensions=self.shape,
            spacing=tuple(self.spacing),
            origin=tuple(self.origin),
            direction_matrix=self.direction,
        )
        image.point_data[name] = np.asarray(self.data).flatten(order="F")
        return image


def make_volume(
    data: np.ndarray,
    spacing: Sequence[float] = (1.0, 1.0, 1.0),
    origin: Sequence[float] = (0.0, 0.0, 0.0),
    direction: Optional[np.ndarray] = None,
) -> Volume:
    return Volume(
        data=np.asarray(data),
        spacing=np.asarray(spacing, dtype=np.float64),
        origin=np.asarray(origin, dtype=np.float64),
        direction=np.eye(3) if direction is None else np.asarray(direction),
    )
