# matmap/materials/density.py
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np

from .calibration import CalibrationCurve
from ..utils.errors import ConfigError, InvalidStageChainError, MissingInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RhoAshParameters:
    """Ash density stage: rho_ash = (rho_ct + offset) / divisor"""

    enabled: bool = True
    offset: float = 0.09
    divisor: float = 1.14


@dataclass(frozen=True)
class RhoAppParameters:
    """Apparent density stage: rho_app = rho_ash / divisor"""

    enabled: bool = True
    divisor: float = 0.6


@dataclass(frozen=True)
class DensityFunctorParameters:
    """Enable flags and coefficients of the optional density stages

    The stages run in the order RhoCt -> RhoAsh -> RhoApp; RhoApp can only
    be enabled together with RhoAsh.
    """

    rho_ash: RhoAshParameters = field(default_factory=RhoAshParameters)
    rho_app: RhoAppParameters = field(default_factory=RhoAppParameters)

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Any]]) -> "DensityFunctorParameters":
        """Build parameters from a config mapping

        Expected layout::

            {"rho_ash": {"enabled": True, "offset": 0.09, "divisor": 1.14},
             "rho_app": {"enabled": True, "divisor": 0.6}}

        Missing stages are disabled, missing coefficients take defaults.
        """
        params = params or {}
        unknown = set(params) - {"rho_ash", "rho_app"}
        if unknown:
            raise ConfigError(
                "Unknown density stage(s)", f"Got: {', '.join(sorted(unknown))}"
            )
        try:
            ash = dict(params.get("rho_ash") or {"enabled": False})
            app = dict(params.get("rho_app") or {"enabled": False})
            ash.setdefault("enabled", True)
            app.setdefault("enabled", True)
            return cls(
                rho_ash=RhoAshParameters(
                    enabled=bool(ash.pop("enabled")),
                    **{k: float(v) for k, v in ash.items()},
                ),
                rho_app=RhoAppParameters(
                    enabled=bool(app.pop("enabled")),
                    **{k: float(v) for k, v in app.items()},
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError("Invalid density stage parameters", str(e))

    def validate(self) -> None:
        """Reject stage combinations and coefficients that cannot be evaluated

        Raises:
            InvalidStageChainError: RhoApp enabled without RhoAsh
            ConfigError: Zero or non-finite coefficients in an enabled stage
        """
        if self.rho_app.enabled and not self.rho_ash.enabled:
            raise InvalidStageChainError(
                "RhoApp stage requires the RhoAsh stage to be enabled"
            )
        if self.rho_ash.enabled:
            _check_coefficient("rho_ash.offset", self.rho_ash.offset)
            _check_divisor("rho_ash.divisor", self.rho_ash.divisor)
        if self.rho_app.enabled:
            _check_divisor("rho_app.divisor", self.rho_app.divisor)

    @property
    def last_stage(self) -> str:
        if self.rho_app.enabled:
            return "rho_app"
        if self.rho_ash.enabled:
            return "rho_ash"
        return "rho_ct"


RHO_CT_ONLY = DensityFunctorParameters(
    rho_ash=RhoAshParameters(enabled=False),
    rho_app=RhoAppParameters(enabled=False),
)


def _check_coefficient(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ConfigError(f"Density coefficient '{name}' must be finite", str(value))


def _check_divisor(name: str, value: float) -> None:
    _check_coefficient(name, value)
    if value == 0.0:
        raise ConfigError(f"Density divisor '{name}' must be non-zero")


class BoneDensityFunctor:
    """Intensity to bone density conversion chain

    Validated once on construction, so per-node evaluation never re-checks
    the stage flags.
    """

    def __init__(
        self,
        rho_ct: CalibrationCurve,
        params: Optional[DensityFunctorParameters] = None,
    ):
        if rho_ct is None:
            raise MissingInputError("A calibration curve is required for RhoCt")
        _check_coefficient("rho_ct.slope", rho_ct.slope)
        _check_coefficient("rho_ct.offset", rho_ct.offset)

        self.params = params if params is not None else RHO_CT_ONLY
        self.params.validate()
        self.rho_ct = rho_ct

    def __call__(self, intensity):
        return self.compute_density(intensity)

    def compute_density(self, intensity):
        """Density of the last enabled stage for scalar or array intensities"""
        rho = self.rho_ct.slope * intensity + self.rho_ct.offset

        ash = self.params.rho_ash
        if ash.enabled:
            rho = (rho + ash.offset) / ash.divisor
            app = self.params.rho_app
            if app.enabled:
                rho = rho / app.divisor

        return rho

    def describe(self) -> Dict[str, Any]:
        desc: Dict[str, Any] = {
            "rho_ct": {"slope": self.rho_ct.slope, "offset": self.rho_ct.offset}
        }
        if self.params.rho_ash.enabled:
            desc["rho_ash"] = {
                "offset": self.params.rho_ash.offset,
                "divisor": self.params.rho_ash.divisor,
            }
        if self.params.rho_app.enabled:
            desc["rho_app"] = {"divisor": self.params.rho_app.divisor}
        return desc

    def __repr__(self) -> str:
        return f"BoneDensityFunctor({self.describe()})"


def compute_density(
    intensity,
    calibration: CalibrationCurve,
    params: Optional[DensityFunctorParameters] = None,
):
    """One-shot density evaluation; validates params before computing"""
    if not np.isscalar(intensity):
        intensity = np.asarray(intensity, dtype=np.float64)
    return BoneDensityFunctor(calibration, params).compute_density(intensity)
