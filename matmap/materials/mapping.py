# matmap/materials/mapping.py
import logging
from typing import Any, Dict, Optional

import numpy as np
import pyvista as pv

from .calibration import CalibrationCurve
from .density import BoneDensityFunctor, DensityFunctorParameters
from .modulus import ModulusFunctor, describe_functor
from ..processing.sampling import interpolation_order, sample_points
from ..processing.volume import Volume
from ..utils.errors import ConfigError, MissingInputError
from ..utils.parallel import parallel_map_chunks
from ..utils.validation import (
    validate_material_properties,
    validate_mesh,
    validate_volume,
)

logger = logging.getLogger(__name__)

INSIDE_IMAGE_NAME = "inside_image"


def _map_node_chunk(
    points: np.ndarray,
    volume: Volume,
    density_functor: BoneDensityFunctor,
    modulus_functor: ModulusFunctor,
    policy: str,
    outside_density: float,
) -> np.ndarray:
    """Density, modulus and inside flag for a chunk of node coordinates

    Returns:
        (m, 3) float64 array with columns density, modulus, inside
    """
    intensity, inside = sample_points(volume, points, policy)
    density = density_functor.compute_density(intensity)
    density = np.where(inside, density, outside_density)
    modulus = modulus_functor(density)
    return np.column_stack([density, modulus, inside.astype(np.float64)])


class MaterialMappingFilter:
    """Maps image intensities at mesh nodes to density and modulus

    The filter holds only its configuration; every run works on a fresh
    copy of the input mesh.
    """

    def __init__(
        self,
        density_functor: BoneDensityFunctor,
        modulus_functor: ModulusFunctor,
        sampling_policy: str = "trilinear",
        outside_density: float = 0.0,
        density_name: str = "density",
        modulus_name: str = "modulus",
        n_jobs: Optional[int] = 1,
        chunk_size: Optional[int] = None,
        show_progress: bool = False,
    ):
        """Initialize the filter

        Args:
            density_functor: Validated intensity to density chain
            modulus_functor: Density to modulus relation
            sampling_policy: "trilinear" or "nearest"
            outside_density: Density assigned to nodes outside the image
            density_name: Point-data name of the density array
            modulus_name: Point-data name of the modulus array
            n_jobs: Worker processes (1 = serial, None = all cores)
            chunk_size: Nodes per work chunk (None = auto)
            show_progress: Show a progress bar over node chunks
        """
        if density_functor is None or modulus_functor is None:
            raise MissingInputError("Density and modulus functors are required")
        interpolation_order(sampling_policy)
        if n_jobs is not None and n_jobs < 1:
            raise ConfigError(f"Invalid number of jobs: {n_jobs}")
        if chunk_size is not None and chunk_size < 1:
            raise ConfigError(f"Invalid chunk size: {chunk_size}")
        names = (density_name, modulus_name, INSIDE_IMAGE_NAME)
        if len(set(names)) != len(names):
            raise ConfigError(
                "Output arrays need distinct names",
                f"density={density_name}, modulus={modulus_name}, "
                f"mask={INSIDE_IMAGE_NAME}",
            )

        self.density_functor = density_functor
        self.modulus_functor = modulus_functor
        self.sampling_policy = sampling_policy
        self.outside_density = float(outside_density)
        self.density_name = density_name
        self.modulus_name = modulus_name
        self.n_jobs = n_jobs
        self.chunk_size = chunk_size
        self.show_progress = show_progress

    def calculate_properties(self, intensities: np.ndarray) -> Dict[str, np.ndarray]:
        """Calculate material properties from intensities

        Args:
            intensities: Image intensities (any shape)

        Returns:
            Dictionary with "density" and "modulus" arrays
        """
        density = self.density_functor.compute_density(
            np.asarray(intensities, dtype=np.float64)
        )
        properties = {"density": density, "modulus": self.modulus_functor(density)}
        validate_material_properties(properties)
        return properties

    def run(self, mesh: pv.DataSet, volume: Volume) -> pv.DataSet:
        """Map materials onto a copy of the mesh

        Args:
            mesh: Input mesh; not modified
            volume: Image volume; not modified

        Returns:
            Deep copy of the mesh with density, modulus and inside_image
            point data
        """
        validate_mesh(mesh)
        validate_volume(volume)

        points = np.asarray(mesh.points, dtype=np.float64)
        mapped = parallel_map_chunks(
            _map_node_chunk,
            points,
            n_jobs=self.n_jobs,
            chunk_size=self.chunk_size,
            show_progress=self.show_progress,
            desc="Mapping nodes",
            context={
                "volume": volume,
                "density_functor": self.density_functor,
                "modulus_functor": self.modulus_functor,
                "policy": self.sampling_policy,
                "outside_density": self.outside_density,
            },
        )

        density = mapped[:, 0]
        modulus = mapped[:, 1]
        inside = mapped[:, 2].astype(np.uint8)
        validate_material_properties({"density": density, "modulus": modulus})

        output = mesh.copy(deep=True)
        output.point_data[self.density_name] = density
        output.point_data[self.modulus_name] = modulus
        output.point_data[INSIDE_IMAGE_NAME] = inside

        n_outside = int(inside.size - np.count_nonzero(inside))
        if n_outside:
            logger.warning(
                f"{n_outside} of {inside.size} nodes lie outside the image; "
                f"assigned density {self.outside_density}"
            )
        logger.info(
            f"Mapped {mesh.n_points} nodes - "
            f"density: [{density.min():.4g}, {density.max():.4g}], "
            f"modulus: [{modulus.min():.4g}, {modulus.max():.4g}]"
        )
        return output

    def describe(self) -> Dict[str, Any]:
        return {
            "density": self.density_functor.describe(),
            "modulus": describe_functor(self.modulus_functor),
            "sampling_policy": self.sampling_policy,
            "outside_density": self.outside_density,
        }


def run_material_mapping(
    mesh: Optional[pv.DataSet],
    volume: Optional[Volume],
    calibration: Optional[CalibrationCurve],
    density_params: Optional[DensityFunctorParameters],
    modulus_functor: Optional[ModulusFunctor],
    **options,
) -> pv.DataSet:
    """Run material mapping on a mesh

    Args:
        mesh: Input mesh
        volume: Image volume covering the mesh
        calibration: Intensity to RhoCt calibration line
        density_params: Optional RhoAsh / RhoApp stage parameters
        modulus_functor: Density to modulus relation
        **options: Further MaterialMappingFilter options

    Returns:
        New mesh with density and modulus point data

    Raises:
        MissingInputError: mesh, volume, calibration or modulus functor is None
        EmptyMeshError: mesh has no nodes
        InvalidStageChainError: RhoApp enabled without RhoAsh
    """
    missing = [
        name
        for name, value in (
            ("mesh", mesh),
            ("volume", volume),
            ("calibration", calibration),
            ("modulus functor", modulus_functor),
        )
        if value is None
    ]
    if missing:
        raise MissingInputError(
            "Material mapping inputs are missing", f"Missing: {', '.join(missing)}"
        )

    density_functor = BoneDensityFunctor(calibration, density_params)
    logger.info(f"Density functor: {density_functor}")
    mapping_filter = MaterialMappingFilter(density_functor, modulus_functor, **options)
    return mapping_filter.run(mesh, volume)
