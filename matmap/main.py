# matmap/main.py
from pathlib import Path
import logging
from typing import Dict, Any, Optional, Tuple

import pyvista as pv

from .config import Config
from .io.file_io import load_calibration_table, load_mesh, load_volume, save_mesh
from .materials.calibration import CalibrationCurve, fit_calibration
from .materials.mapping import run_material_mapping
from .meshing.comparison import GridComparison, compare_grids
from .processing.volume import Volume
from .utils.errors import MissingInputError
from .utils.logging import PipelineLogger
from .utils.validation import validate_output_path

logger = logging.getLogger(__name__)

OUTPUT_NAME = "material mapped mesh"


def load_inputs(config: Config) -> Tuple[pv.DataSet, Volume]:
    """Load the mesh and image volume named in the configuration

    Args:
        config: Configuration object

    Returns:
        Tuple of (mesh, volume)
    """
    if not config.mesh_path or not config.image_path:
        raise MissingInputError(
            "Both a mesh and an image are required",
            f"mesh_path={config.mesh_path}, image_path={config.image_path}",
        )
    mesh = load_mesh(Path(config.mesh_path))
    volume = load_volume(
        Path(config.image_path),
        spacing=config.image_spacing,
        origin=config.image_origin,
    )
    return mesh, volume


def build_calibration(config: Config) -> CalibrationCurve:
    """Resolve the calibration line for a run

    Points from the calibration file and the inline points are fitted
    together. Without any points the explicit calibration_line is used.

    Args:
        config: Configuration object

    Returns:
        Calibration curve

    Raises:
        MissingInputError: No points and no explicit line configured
        DegenerateCalibrationError: Points do not define a line
    """
    points = []
    if config.calibration_file:
        points.extend(load_calibration_table(Path(config.calibration_file)))
    points.extend(config.calibration_points)

    if points:
        curve = fit_calibration(points)
        logger.info(
            f"Calibration fitted to {len(points)} points: "
            f"slope={curve.slope:.6g}, offset={curve.offset:.6g}"
        )
        return curve

    if config.calibration_line is not None:
        slope, offset = config.calibration_line
        logger.info(f"Using configured calibration line: slope={slope}, offset={offset}")
        return CalibrationCurve(slope=float(slope), offset=float(offset))

    raise MissingInputError(
        "No calibration given",
        "Set calibration_file, calibration_points or calibration_line",
    )


def map_materials(
    mesh: pv.DataSet,
    volume: Volume,
    calibration: CalibrationCurve,
    config: Config,
) -> pv.DataSet:
    """Run the material mapping filter with the configured functors

    Args:
        mesh: Input mesh
        volume: Image volume
        calibration: Calibration curve
        config: Configuration object

    Returns:
        Mapped copy of the mesh
    """
    return run_material_mapping(
        mesh,
        volume,
        calibration,
        config.density_parameters(),
        config.modulus_functor(),
        sampling_policy=config.sampling_policy,
        outside_density=config.outside_density,
        density_name=config.density_name,
        modulus_name=config.modulus_name,
        n_jobs=config.n_workers,
        chunk_size=config.chunk_size,
        show_progress=config.show_progress,
    )


def register_output(
    mesh: pv.DataSet, output_path: Optional[str], name: str = OUTPUT_NAME
) -> Optional[Path]:
    """Name the mapped mesh and write it out if a path is given"""
    mesh.field_data["name"] = [name]
    if not output_path:
        return None
    path = validate_output_path(Path(output_path))
    return save_mesh(mesh, path)


def compare_to_expected(
    result: pv.DataSet, expected_path: str, tolerance: float
) -> GridComparison:
    """Compare a mapped mesh with a stored reference result"""
    expected = load_mesh(Path(expected_path))
    comparison = compare_grids(expected, result, tolerance=tolerance)
    if comparison.ok:
        logger.info(f"Result matches {expected_path} within {tolerance}")
    else:
        logger.warning(
            f"Result differs from {expected_path}: "
            f"{len(comparison.node_mismatches)} node mismatch(es), "
            f"{len(comparison.unmatched_fields)} field(s) not comparable, "
            f"topology: {comparison.topology.reason if comparison.topology else 'ok'}"
        )
    return comparison


def run_pipeline(config: Config) -> Dict[str, Any]:
    """Run a complete material mapping

    Args:
        config: Configuration object

    Returns:
        Dictionary with the mapped mesh, output file and calibration
    """
    stages = PipelineLogger(__name__)
    config.validate(require_inputs=False)

    stages.start_stage("load inputs")
    mesh, volume = load_inputs(config)
    stages.end_stage({"n_points": mesh.n_points, "volume_shape": list(volume.shape)})

    stages.start_stage("calibration")
    calibration = build_calibration(config)
    stages.end_stage({"slope": calibration.slope, "offset": calibration.offset})

    stages.start_stage("material mapping")
    result = map_materials(mesh, volume, calibration, config)
    stages.end_stage()

    stages.start_stage("export")
    output_file = register_output(result, config.output_path)
    stages.end_stage()

    comparison = None
    if config.expected_result_path:
        stages.start_stage("comparison")
        comparison = compare_to_expected(
            result, config.expected_result_path, config.comparison_tolerance
        )
        stages.end_stage({"ok": comparison.ok})

    logger.info(f"Material mapping completed in {sum(stages.durations.values()):.1f}s")
    return {
        "mesh": result,
        "output_file": output_file,
        "calibration": calibration,
        "comparison": comparison,
        "durations": dict(stages.durations),
    }
