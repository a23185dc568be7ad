# matmap/materials/modulus.py
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from ..utils.errors import ConfigError


@dataclass(frozen=True)
class LinearFunctor:
    """E = a * rho + b"""

    a: float
    b: float

    def __call__(self, density):
        return self.a * density + self.b


@dataclass(frozen=True)
class PowerLawFunctor:
    """E = a * max(rho, 0) ** b

    Negative densities (low intensities under a steep calibration) are
    clamped to zero so fractional exponents stay real.
    """

    a: float
    b: float

    def __call__(self, density):
        return self.a * np.power(np.maximum(density, 0.0), self.b)


ModulusFunctor = Union[LinearFunctor, PowerLawFunctor]

MODULUS_MODELS = {
    "linear": LinearFunctor,
    "power_law": PowerLawFunctor,
}


def make_modulus_functor(
    model: str, params: Optional[Mapping[str, Any]] = None
) -> ModulusFunctor:
    """Create a modulus functor from configuration

    Args:
        model: "linear" or "power_law"
        params: Mapping with coefficients "a" and "b"

    Returns:
        Modulus functor
    """
    if model not in MODULUS_MODELS:
        raise ConfigError(
            f"Unknown modulus model: {model}",
            f"Choices: {', '.join(MODULUS_MODELS)}",
        )
    params = dict(params or {})
    missing = [k for k in ("a", "b") if k not in params]
    if missing:
        raise ConfigError(
            f"Missing coefficients for {model} modulus model",
            f"Missing: {', '.join(missing)}",
        )
    extra = set(params) - {"a", "b"}
    if extra:
        raise ConfigError(
            f"Unknown coefficients for {model} modulus model",
            f"Got: {', '.join(sorted(extra))}",
        )

    try:
        a, b = float(params["a"]), float(params["b"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid coefficients for {model} modulus model", str(e))
    if not (math.isfinite(a) and math.isfinite(b)):
        raise ConfigError(
            f"Coefficients for {model} modulus model must be finite", f"a={a}, b={b}"
        )

    return MODULUS_MODELS[model](a=a, b=b)


def describe_functor(functor: ModulusFunctor) -> Dict[str, Any]:
    model = "power_law" if isinstance(functor, PowerLawFunctor) else "linear"
    return {"model": model, "a": functor.a, "b": functor.b}
