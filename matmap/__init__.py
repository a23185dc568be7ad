# matmap/__init__.py
"""Map CT image intensities to bone density and modulus on FE meshes"""
from .materials import (
    BoneDensityFunctor,
    CalibrationCurve,
    CalibrationPoint,
    CalibrationTable,
    DensityFunctorParameters,
    LinearFunctor,
    MaterialMappingFilter,
    PowerLawFunctor,
    RhoAppParameters,
    RhoAshParameters,
    compute_density,
    fit_calibration,
    make_modulus_functor,
    run_material_mapping,
)
from .meshing import GridComparison, compare_grids
from .processing import OUT_OF_BOUNDS, Volume, make_volume, sample, sample_points
from .config import Config

__version__ = "0.1.0"

__all__ = [
    "BoneDensityFunctor",
    "CalibrationCurve",
    "CalibrationPoint",
    "CalibrationTable",
    "Config",
    "DensityFunctorParameters",
    "GridComparison",
    "LinearFunctor",
    "MaterialMappingFilter",
    "OUT_OF_BOUNDS",
    "PowerLawFunctor",
    "RhoAppParameters",
    "RhoAshParameters",
    "Volume",
    "compare_grids",
    "compute_density",
    "fit_calibration",
    "make_modulus_functor",
    "make_volume",
    "run_material_mapping",
    "sample",
    "sample_points",
]
