# matmap/cli.py
import argparse
import sys
import logging
from pathlib import Path
from typing import Optional, Sequence
import json

from .config import Config
from .io.file_io import load_calibration_table, load_mesh
from .main import run_pipeline
from .materials.calibration import fit_calibration
from .meshing.comparison import compare_grids
from .utils.errors import MatMapError
from .utils.logging import log_error, setup_logging

logger = logging.getLogger(__name__)


def parse_args(args: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments

    Args:
        args: Optional list of arguments, defaults to sys.argv[1:]

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="matmap - map CT intensities to bone material properties"
    )
    parser.add_argument("--config", type=str, help="JSON configuration file")
    parser.add_argument("--log-dir", type=str, help="Directory for log files")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    map_parser = subparsers.add_parser("map", help="Map materials onto a mesh")
    map_parser.add_argument("-m", "--mesh", type=str, help="Input mesh file")
    map_parser.add_argument("-i", "--image", type=str, help="Input image or TIFF folder")
    map_parser.add_argument("-o", "--output", type=str, help="Output mesh file")
    map_parser.add_argument(
        "--expected", type=str, help="Reference result to compare against"
    )
    add_calibration_options(map_parser)
    add_density_options(map_parser)
    add_modulus_options(map_parser)
    add_processing_options(map_parser)

    fit_parser = subparsers.add_parser(
        "fit-calibration", help="Fit a calibration line to a calibration table"
    )
    fit_parser.add_argument("table", type=str, help="Calibration table file")

    compare_parser = subparsers.add_parser(
        "compare", help="Compare point data of two meshes"
    )
    compare_parser.add_argument("expected", type=str, help="Reference mesh")
    compare_parser.add_argument("actual", type=str, help="Mesh under test")
    compare_parser.add_argument(
        "--tolerance", type=float, default=1e-6, help="Absolute tolerance (default: 1e-6)"
    )
    compare_parser.add_argument(
        "--coordinates", action="store_true", help="Also compare node coordinates"
    )
    compare_parser.add_argument(
        "--field", action="append", dest="fields", help="Point-data field to compare"
    )

    return parser.parse_args(args)


def add_calibration_options(parser: argparse.ArgumentParser) -> None:
    """Add calibration options to parser"""
    group = parser.add_argument_group("Calibration Options")
    group.add_argument("--calibration", type=str, help="Calibration table file")
    group.add_argument(
        "--slope", type=float, help="Calibration slope (used without a table)"
    )
    group.add_argument(
        "--offset", type=float, default=0.0, help="Calibration offset (default: 0.0)"
    )
    group.add_argument(
        "--spacing", type=float, nargs=3, help="Voxel spacing for TIFF images"
    )
    group.add_argument(
        "--origin", type=float, nargs=3, help="First voxel centre for TIFF images"
    )


def add_density_options(parser: argparse.ArgumentParser) -> None:
    """Add density stage options to parser"""
    group = parser.add_argument_group("Density Options")
    group.add_argument(
        "--no-rho-ash",
        action="store_true",
        help="Disable RhoAsh stage (and RhoApp unless --rho-app-divisor is given)",
    )
    group.add_argument("--rho-ash-offset", type=float, help="RhoAsh offset")
    group.add_argument("--rho-ash-divisor", type=float, help="RhoAsh divisor")
    group.add_argument("--no-rho-app", action="store_true", help="Disable RhoApp stage")
    group.add_argument("--rho-app-divisor", type=float, help="RhoApp divisor")


def add_modulus_options(parser: argparse.ArgumentParser) -> None:
    """Add modulus options to parser"""
    group = parser.add_argument_group("Modulus Options")
    group.add_argument(
        "--modulus-model",
        choices=["linear", "power_law"],
        help="Density to modulus relation (default: power_law)",
    )
    group.add_argument("--modulus-a", type=float, help="Modulus coefficient a")
    group.add_argument("--modulus-b", type=float, help="Modulus coefficient b")


def add_processing_options(parser: argparse.ArgumentParser) -> None:
    """Add sampling and parallel options to parser"""
    group = parser.add_argument_group("Processing Options")
    group.add_argument(
        "--sampling",
        choices=["trilinear", "nearest"],
        help="Image interpolation (default: trilinear)",
    )
    group.add_argument(
        "--outside-density", type=float, help="Density of nodes outside the image"
    )
    group.add_argument("--jobs", type=int, help="Number of worker processes")
    group.add_argument("--progress", action="store_true", help="Show progress bar")


def load_config_file(path: Path) -> dict:
    """Load configuration from JSON file

    Args:
        path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error loading configuration file: {e}")
        sys.exit(1)


def create_config_from_args(args: argparse.Namespace) -> Config:
    """Create configuration from command line arguments

    Values given on the command line override the configuration file.

    Args:
        args: Parsed command line arguments

    Returns:
        Configuration object
    """
    config_dict = load_config_file(Path(args.config)) if args.config else {}

    for arg_name, key in (
        ("mesh", "mesh_path"),
        ("image", "image_path"),
        ("output", "output_path"),
        ("expected", "expected_result_path"),
        ("calibration", "calibration_file"),
        ("sampling", "sampling_policy"),
        ("outside_density", "outside_density"),
        ("modulus_model", "modulus_model"),
    ):
        value = getattr(args, arg_name, None)
        if value is not None:
            config_dict[key] = value

    if getattr(args, "slope", None) is not None:
        config_dict["calibration_line"] = (args.slope, args.offset)
    if getattr(args, "spacing", None):
        config_dict["image_spacing"] = tuple(args.spacing)
    if getattr(args, "origin", None):
        config_dict["image_origin"] = tuple(args.origin)

    # Density stages
    density_params = config_dict.get("density_params") or dict(
        Config().density_params
    )
    density_params = {k: dict(v) for k, v in density_params.items()}
    ash = density_params.setdefault("rho_ash", {"enabled": False})
    app = density_params.setdefault("rho_app", {"enabled": False})
    if getattr(args, "no_rho_ash", False):
        ash["enabled"] = False
        # RhoApp is derived from RhoAsh
        if getattr(args, "rho_app_divisor", None) is None:
            app["enabled"] = False
    if getattr(args, "rho_ash_offset", None) is not None:
        ash["offset"] = args.rho_ash_offset
    if getattr(args, "rho_ash_divisor", None) is not None:
        ash["divisor"] = args.rho_ash_divisor
    if getattr(args, "no_rho_app", False):
        app["enabled"] = False
    if getattr(args, "rho_app_divisor", None) is not None:
        app["divisor"] = args.rho_app_divisor
    config_dict["density_params"] = density_params

    # Modulus coefficients
    modulus_params = dict(config_dict.get("modulus_params") or Config().modulus_params)
    if getattr(args, "modulus_a", None) is not None:
        modulus_params["a"] = args.modulus_a
    if getattr(args, "modulus_b", None) is not None:
        modulus_params["b"] = args.modulus_b
    config_dict["modulus_params"] = modulus_params

    if getattr(args, "jobs", None):
        config_dict["use_parallel"] = args.jobs > 1
        config_dict["n_jobs"] = args.jobs
    if getattr(args, "progress", False):
        config_dict["show_progress"] = True

    try:
        config = Config.from_dict(config_dict)
        config.validate()
        return config
    except (MatMapError, TypeError) as e:
        logger.error(f"Error creating configuration: {e}")
        sys.exit(1)


def run_fit_calibration(table: str) -> int:
    points = load_calibration_table(Path(table))
    curve = fit_calibration(points)
    print(json.dumps({"slope": curve.slope, "offset": curve.offset, "n_points": len(points)}))
    return 0


def run_compare(args: argparse.Namespace) -> int:
    comparison = compare_grids(
        load_mesh(Path(args.expected)),
        load_mesh(Path(args.actual)),
        tolerance=args.tolerance,
        compare_coordinates=args.coordinates,
        fields=args.fields,
    )
    if comparison.topology is not None:
        print(f"Topology mismatch: {comparison.topology.reason}")
        return 1
    for name in comparison.unmatched_fields:
        print(f"field {name}: not comparable")
    for mismatch in comparison.node_mismatches:
        print(
            f"node {mismatch.index} {mismatch.field}: "
            f"expected {mismatch.expected}, actual {mismatch.actual}"
        )
    print(
        f"{len(comparison.node_mismatches)} mismatch(es) in "
        f"{len(comparison.compared_fields)} field(s)"
    )
    return 0 if comparison.ok else 1


def cli_main(argv: Optional[Sequence[str]] = None) -> None:
    """Main CLI entry point"""
    args = parse_args(argv)
    setup_logging(
        Path(args.log_dir) if args.log_dir else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    if args.command is None:
        logger.error("No command given; use one of: map, fit-calibration, compare")
        sys.exit(2)

    try:
        if args.command == "map":
            config = create_config_from_args(args)
            results = run_pipeline(config)
            comparison = results["comparison"]
            status = 0 if comparison is None or comparison.ok else 1
        elif args.command == "fit-calibration":
            status = run_fit_calibration(args.table)
        else:
            status = run_compare(args)
    except MatMapError as e:
        log_error(logger, e, args.command)
        sys.exit(1)

    sys.exit(status)


if __name__ == "__main__":
    cli_main()
