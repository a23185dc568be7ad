# matmap/io/file_io.py
from pathlib import Path
import json
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Any

import numpy as np
import pyvista as pv
import tifffile

from ..materials.calibration import CalibrationPoint
from ..processing.volume import Volume
from ..utils.errors import ConfigError, ExportError, MissingInputError, VolumeError

logger = logging.getLogger(__name__)

TIFF_SUFFIXES = {".tif", ".tiff"}
CALIBRATION_HEADER = "intensity,density"


def _read_geometry_sidecar(path: Path) -> Dict[str, Any]:
    """Read spacing/origin/direction for a TIFF volume from <stem>.json"""
    sidecar = path.with_suffix(".json") if path.is_file() else path / "volume.json"
    if not sidecar.exists():
        return {}
    try:
        with open(sidecar) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise VolumeError(f"Could not read volume metadata {sidecar}", str(e))


def load_tiff_volume(
    path: Path,
    spacing: Optional[Sequence[float]] = None,
    origin: Optional[Sequence[float]] = None,
) -> Volume:
    """Load a TIFF volume (multi-page file or folder of slices)

    TIFF pages are (z, y, x); they are reordered to the [x, y, z] indexing
    of Volume. Geometry comes from the arguments, then a JSON sidecar
    ("<name>.json" next to a file, "volume.json" inside a folder), then
    unit spacing at the origin.

    Args:
        path: TIFF file or folder of TIFF slices
        spacing: Voxel spacing (x, y, z)
        origin: World position of the first voxel centre

    Returns:
        Volume
    """
    if path.is_dir():
        tiff_files = sorted(p for p in path.glob("*.tif*") if p.suffix.lower() in TIFF_SUFFIXES)
        if not tiff_files:
            raise VolumeError(f"No TIFF files found in {path}")
        logger.info(f"Loading {len(tiff_files)} TIFF slices from {path}")
        stack = np.stack([tifffile.imread(f) for f in tiff_files])
    else:
        stack = tifffile.imread(path)

    if stack.ndim != 3:
        raise VolumeError("TIFF volume must be 3-dimensional", f"Got shape: {stack.shape}")

    meta = _read_geometry_sidecar(path)
    spacing = spacing if spacing is not None else meta.get("spacing", (1.0, 1.0, 1.0))
    origin = origin if origin is not None else meta.get("origin", (0.0, 0.0, 0.0))
    direction = meta.get("direction", np.eye(3))

    return Volume(
        data=np.ascontiguousarray(np.transpose(stack, (2, 1, 0))),
        spacing=np.asarray(spacing, dtype=np.float64),
        origin=np.asarray(origin, dtype=np.float64),
        direction=np.asarray(direction, dtype=np.float64),
    )


def load_volume(
    path: Path,
    spacing: Optional[Sequence[float]] = None,
    origin: Optional[Sequence[float]] = None,
    scalars: Optional[str] = None,
) -> Volume:
    """Load an image volume from TIFF or any pyvista-readable image format

    Args:
        path: Image file or TIFF folder
        spacing: Spacing override (TIFF only)
        origin: Origin override (TIFF only)
        scalars: Array name to use for pyvista images

    Returns:
        Volume
    """
    path = Path(path)
    if not path.exists():
        raise MissingInputError(f"Image does not exist: {path}")

    if path.is_dir() or path.suffix.lower() in TIFF_SUFFIXES:
        volume = load_tiff_volume(path, spacing, origin)
    else:
        try:
            image = pv.read(path)
        except (OSError, ValueError) as e:
            raise VolumeError(f"Could not read image {path}", str(e))
        if not isinstance(image, pv.ImageData):
            raise VolumeError(
                f"File is not a regular image: {path}", f"Got: {type(image).__name__}"
            )
        volume = Volume.from_image_data(image, scalars)

    logger.info(
        f"Loaded volume {path.name}: shape={volume.shape}, "
        f"spacing={volume.spacing.tolist()}, origin={volume.origin.tolist()}"
    )
    return volume


def load_mesh(path: Path) -> pv.DataSet:
    """Load an unstructured mesh with pyvista"""
    path = Path(path)
    if not path.exists():
        raise MissingInputError(f"Mesh does not exist: {path}")
    try:
        mesh = pv.read(path)
    except (OSError, ValueError) as e:
        raise ExportError(f"Could not read mesh {path}", str(e))
    if isinstance(mesh, pv.MultiBlock):
        mesh = mesh.combine()
    logger.info(f"Loaded mesh {path.name}: {mesh.n_points} nodes, {mesh.n_cells} cells")
    return mesh


def save_mesh(mesh: pv.DataSet, path: Path) -> Path:
    """Save a mesh; the format follows the file suffix (.vtu, .vtk, ...)"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mesh.save(path)
    except (OSError, ValueError) as e:
        raise ExportError(f"Could not write mesh {path}", str(e))
    logger.info(f"Saved mesh to {path}")
    return path


def load_calibration_table(path: Path) -> List[CalibrationPoint]:
    """Load (intensity, density) rows from a text table

    Rows are comma or whitespace separated; lines starting with '#' are
    comments.
    """
    path = Path(path)
    if not path.exists():
        raise MissingInputError(f"Calibration table does not exist: {path}")

    points = []
    with open(path) as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.replace(",", " ").split()
            try:
                if len(fields) != 2:
                    raise ValueError(f"expected 2 columns, got {len(fields)}")
                points.append(CalibrationPoint(float(fields[0]), float(fields[1])))
            except ValueError as e:
                raise ConfigError(
                    f"Malformed calibration table {path}", f"Line {line_no}: {e}"
                )

    logger.info(f"Loaded {len(points)} calibration points from {path}")
    return points


def save_calibration_table(path: Path, points: Iterable[Tuple[float, float]]) -> Path:
    """Write (intensity, density) rows as a comma separated table"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = np.asarray([tuple(p) for p in points], dtype=np.float64).reshape(-1, 2)
    np.savetxt(path, rows, delimiter=",", header=CALIBRATION_HEADER, fmt="%.10g")
    logger.info(f"Saved {rows.shape[0]} calibration points to {path}")
    return path
