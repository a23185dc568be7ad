# matmap/utils/validation.py
import numpy as np
import pyvista as pv
from typing import Dict
from pathlib import Path
import logging
from ..processing.volume import Volume
from ..utils.errors import (
    ConfigError,
    EmptyMeshError,
    MaterialError,
    MissingInputError,
    VolumeError,
)


def validate_volume(volume) -> None:
    """Validate an image volume before sampling

    Args:
        volume: Volume instance

    Raises:
        MissingInputError: If no volume is given
        VolumeError: If the volume has no usable voxel data
    """
    logger = logging.getLogger(__name__)

    if volume is None:
        raise MissingInputError("No image volume given")
    if not isinstance(volume, Volume):
        raise VolumeError(
            "Image must be a Volume", f"Got: {type(volume).__name__}"
        )

    data = volume.data
    finite = np.isfinite(data)
    if not np.any(finite):
        raise VolumeError("Volume contains no finite values")
    if not np.all(finite):
        logger.warning(
            f"Volume contains {int(data.size - np.count_nonzero(finite))} "
            "NaN or infinite voxels"
        )

    logger.debug(
        f"Volume statistics: shape={data.shape}, "
        f"range=[{np.nanmin(data):.2f}, {np.nanmax(data):.2f}], "
        f"spacing={volume.spacing.tolist()}"
    )


def validate_mesh(mesh: pv.DataSet) -> None:
    """Validate an input mesh before mapping

    Args:
        mesh: PyVista mesh

    Raises:
        MissingInputError: If no mesh is given
        EmptyMeshError: If the mesh has no nodes
    """
    if mesh is None:
        raise MissingInputError("No mesh given")
    if not isinstance(mesh, pv.DataSet):
        raise MissingInputError(
            "Mesh must be a pyvista dataset", f"Got: {type(mesh).__name__}"
        )
    if mesh.n_points == 0:
        raise EmptyMeshError("Mesh has no nodes")

    points = np.asarray(mesh.points)
    if not np.all(np.isfinite(points)):
        raise MaterialError("Mesh node coordinates contain NaN or infinite values")

    logging.getLogger(__name__).debug(
        f"Mesh validation passed - Elements: {mesh.n_cells}, Nodes: {mesh.n_points}"
    )


def validate_material_properties(properties: Dict[str, np.ndarray]) -> None:
    """Check that every mapped property is defined at every node

    Args:
        properties: Dictionary of property arrays

    Raises:
        MaterialError: If any value is NaN or infinite
    """
    for name, values in properties.items():
        values = np.asarray(values)
        bad = ~np.isfinite(values)
        if np.any(bad):
            first = np.flatnonzero(bad.ravel())[:5].tolist()
            raise MaterialError(
                f"Property '{name}' contains undefined values",
                f"{int(np.count_nonzero(bad))} invalid value(s), first at {first}",
            )


def validate_output_path(path: Path) -> Path:
    """Validate an output file path, creating its directory

    Args:
        path: Output file path

    Returns:
        The path

    Raises:
        ConfigError: If the directory cannot be created or written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        test_file = path.parent / ".write_test"
        test_file.touch()
        test_file.unlink()
    except OSError as e:
        raise ConfigError(
            "Output directory is not writable", f"Path: {path.parent}, Error: {str(e)}"
        )
    return path
