# matmap/materials/__init__.py
from .calibration import (
    CalibrationCurve,
    CalibrationPoint,
    CalibrationTable,
    fit_calibration,
)
from .density import (
    BoneDensityFunctor,
    DensityFunctorParameters,
    RhoAppParameters,
    RhoAshParameters,
    compute_density,
)
from .modulus import LinearFunctor, PowerLawFunctor, make_modulus_functor
from .mapping import MaterialMappingFilter, run_material_mapping

__all__ = [
    "CalibrationCurve",
    "CalibrationPoint",
    "CalibrationTable",
    "fit_calibration",
    "BoneDensityFunctor",
    "DensityFunctorParameters",
    "RhoAppParameters",
    "RhoAshParameters",
    "compute_density",
    "LinearFunctor",
    "PowerLawFunctor",
    "make_modulus_functor",
    "MaterialMappingFilter",
    "run_material_mapping",
]
