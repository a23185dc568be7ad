# matmap/materials/calibration.py
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, NamedTuple, Sequence, Union

import numpy as np

from ..utils.errors import DegenerateCalibrationError

logger = logging.getLogger(__name__)


class CalibrationPoint(NamedTuple):
    """Measured (intensity, density) pair, e.g. from a calibration phantom"""

    intensity: float
    density: float


@dataclass(frozen=True)
class CalibrationCurve:
    """Linear intensity to density relation rho = slope * intensity + offset"""

    slope: float
    offset: float

    def __call__(self, intensity):
        return self.slope * intensity + self.offset


def fit_calibration(points: Iterable[Sequence[float]]) -> CalibrationCurve:
    """Fit a calibration line to (intensity, density) pairs

    Ordinary least squares, independent of point order.

    Args:
        points: Iterable of (intensity, density) pairs

    Returns:
        Fitted calibration curve

    Raises:
        DegenerateCalibrationError: Fewer than 2 points, non-finite values
            or identical intensities
    """
    data = np.asarray([tuple(p) for p in points], dtype=np.float64)

    if data.shape[0] < 2:
        raise DegenerateCalibrationError(
            "At least two calibration points are required",
            f"Got {data.shape[0]} point(s)",
        )
    if data.ndim != 2 or data.shape[1] != 2:
        raise DegenerateCalibrationError(
            "Calibration points must be (intensity, density) pairs",
            f"Got array of shape {data.shape}",
        )
    if not np.all(np.isfinite(data)):
        raise DegenerateCalibrationError("Calibration points contain NaN or inf")

    intensity, density = data[:, 0], data[:, 1]
    if np.ptp(intensity) == 0.0:
        raise DegenerateCalibrationError(
            "Calibration intensities have zero variance",
            f"All {data.shape[0]} points have intensity {intensity[0]}",
        )

    x_mean = intensity.mean()
    y_mean = density.mean()
    dx = intensity - x_mean
    sxx = np.dot(dx, dx)

    slope = float(np.dot(dx, density - y_mean) / sxx)
    offset = float(y_mean - slope * x_mean)
    logger.debug(f"Fitted calibration slope={slope:.6g}, offset={offset:.6g}")
    return CalibrationCurve(slope=slope, offset=offset)


class CalibrationTable:
    """Editable set of calibration points with a derived fitted line"""

    def __init__(self, points: Iterable[Sequence[float]] = ()):
        self._points: List[CalibrationPoint] = [
            CalibrationPoint(float(i), float(d)) for i, d in points
        ]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    @property
    def points(self) -> List[CalibrationPoint]:
        return list(self._points)

    def add_point(self, intensity: float, density: float) -> None:
        self._points.append(CalibrationPoint(float(intensity), float(density)))

    def remove_point(self, index: int) -> CalibrationPoint:
        return self._points.pop(index)

    def remove_points(self, indices: Iterable[int]) -> None:
        """Remove several rows; highest index first so positions stay valid"""
        for index in sorted(set(indices), reverse=True):
            self._points.pop(index)

    def clear(self) -> None:
        self._points.clear()

    def fitted_line(self) -> CalibrationCurve:
        """Fit the current points (a snapshot, not a live view)"""
        return fit_calibration(self._points)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CalibrationTable":
        from ..io.file_io import load_calibration_table

        return cls(load_calibration_table(Path(path)))

    def save(self, path: Union[str, Path]) -> Path:
        from ..io.file_io import save_calibration_table

        return save_calibration_table(Path(path), self._points)
