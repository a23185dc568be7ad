# matmap/config.py
from dataclasses import dataclass, field, fields
from typing import Tuple, Optional, Dict, Any, List
from pathlib import Path

from .materials.density import DensityFunctorParameters
from .materials.mapping import INSIDE_IMAGE_NAME
from .materials.modulus import MODULUS_MODELS, ModulusFunctor, make_modulus_functor
from .processing.sampling import SAMPLING_POLICIES
from .utils.errors import ConfigError


@dataclass
class Config:
    """Configuration for a material mapping run

    Collects inputs, calibration, density stages and modulus relation.
    """

    # Input/Output
    mesh_path: Optional[str] = None
    image_path: Optional[str] = None
    output_path: Optional[str] = None
    expected_result_path: Optional[str] = None

    # Image geometry (TIFF input only)
    image_spacing: Optional[Tuple[float, float, float]] = None
    image_origin: Optional[Tuple[float, float, float]] = None

    # Calibration: table file, inline points, or an explicit line
    calibration_file: Optional[str] = None
    calibration_points: List[Tuple[float, float]] = field(default_factory=list)
    calibration_line: Optional[Tuple[float, float]] = None  # (slope, offset)

    # Sampling
    sampling_policy: str = field(
        default="trilinear", metadata={"choices": list(SAMPLING_POLICIES)}
    )
    outside_density: float = 0.0

    # Density stages
    density_params: Dict[str, Any] = field(
        default_factory=lambda: {
            "rho_ash": {"enabled": True, "offset": 0.09, "divisor": 1.14},
            "rho_app": {"enabled": True, "divisor": 0.6},
        }
    )

    # Modulus relation
    modulus_model: str = field(
        default="power_law", metadata={"choices": list(MODULUS_MODELS)}
    )
    modulus_params: Dict[str, float] = field(
        default_factory=lambda: {"a": 6850.0, "b": 1.49}
    )

    # Output array names
    density_name: str = "density"
    modulus_name: str = "modulus"

    # Processing Options
    use_parallel: bool = False
    n_jobs: Optional[int] = None  # None means use all available cores
    chunk_size: Optional[int] = 50000  # Nodes per work chunk
    show_progress: bool = False

    # Comparison
    comparison_tolerance: float = 1e-6

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Create a configuration, rejecting unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(
                "Unknown configuration keys", f"Got: {', '.join(sorted(unknown))}"
            )
        values = dict(values)
        for key in ("image_spacing", "image_origin", "calibration_line"):
            if values.get(key) is not None:
                values[key] = tuple(values[key])
        if values.get("calibration_points"):
            values["calibration_points"] = [tuple(p) for p in values["calibration_points"]]
        return cls(**values)

    def density_parameters(self) -> DensityFunctorParameters:
        params = DensityFunctorParameters.from_dict(self.density_params)
        params.validate()
        return params

    def modulus_functor(self) -> ModulusFunctor:
        return make_modulus_functor(self.modulus_model, self.modulus_params)

    @property
    def n_workers(self) -> Optional[int]:
        return self.n_jobs if self.use_parallel else 1

    def validate(self, require_inputs: bool = True) -> None:
        """Validate configuration parameters

        Args:
            require_inputs: Also require mesh, image and output paths
        """
        if require_inputs:
            for name in ("mesh_path", "image_path", "output_path"):
                if not getattr(self, name):
                    raise ConfigError(f"Missing required setting: {name}")
            for name in ("mesh_path", "image_path"):
                if not Path(getattr(self, name)).exists():
                    raise ConfigError(f"Input does not exist: {getattr(self, name)}")
        if self.calibration_file and not Path(self.calibration_file).exists():
            raise ConfigError(f"Calibration file does not exist: {self.calibration_file}")
        if self.calibration_line is not None and len(self.calibration_line) != 2:
            raise ConfigError(
                "calibration_line must be (slope, offset)", str(self.calibration_line)
            )
        if self.sampling_policy not in SAMPLING_POLICIES:
            raise ConfigError(f"Invalid sampling policy: {self.sampling_policy}")
        if self.modulus_model not in MODULUS_MODELS:
            raise ConfigError(f"Invalid modulus model: {self.modulus_model}")
        if self.chunk_size is not None and self.chunk_size < 1:
            raise ConfigError(f"Invalid chunk size: {self.chunk_size}")
        if self.n_jobs is not None and self.n_jobs < 1:
            raise ConfigError(f"Invalid number of jobs: {self.n_jobs}")
        if self.comparison_tolerance < 0:
            raise ConfigError(f"Invalid comparison tolerance: {self.comparison_tolerance}")
        names = (self.density_name, self.modulus_name, INSIDE_IMAGE_NAME)
        if len(set(names)) != len(names):
            raise ConfigError(
                "Density, modulus and mask arrays need distinct names",
                f"Got: {', '.join(names)}",
            )

        # coefficient groups are checked by building them
        self.density_parameters()
        self.modulus_functor()
