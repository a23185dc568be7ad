import pytest
import numpy as np
from ..materials.calibration import (
    CalibrationCurve,
    CalibrationPoint,
    CalibrationTable,
    fit_calibration,
)
from ..io.file_io import load_calibration_table
from ..utils.errors import ConfigError, DegenerateCalibrationError


def test_fit_two_points():
    """Test fit through (0, 0) and (1000, 1)"""
    curve = fit_calibration([(0, 0), (1000, 1)])
    assert curve.slope == pytest.approx(0.001)
    assert curve.offset == pytest.approx(0.0, abs=1e-12)


def test_fit_least_squares():
    """Test least squares fit of noisy points against numpy.polyfit"""
    rng = np.random.default_rng(0)
    intensity = np.linspace(-200, 1500, 12)
    density = 0.0008 * intensity + 0.05 + rng.normal(0, 0.01, intensity.size)

    curve = fit_calibration(zip(intensity, density))
    slope, offset = np.polyfit(intensity, density, 1)

    assert curve.slope == pytest.approx(slope, rel=1e-9)
    assert curve.offset == pytest.approx(offset, rel=1e-9)


def test_fit_is_order_independent():
    points = [(0, 0.1), (250, 0.3), (500, 0.38), (1200, 1.0)]
    forward = fit_calibration(points)
    backward = fit_calibration(list(reversed(points)))
    assert forward.slope == pytest.approx(backward.slope, rel=1e-12)
    assert forward.offset == pytest.approx(backward.offset, rel=1e-12)


@pytest.mark.parametrize(
    "points",
    [
        [(5, 5), (5, 5), (5, 5)],
        [(0.1, 0.2), (0.1, 0.5), (0.1, 0.9)],
        [(0.7, 0.1), (0.7, 0.3), (0.7, 0.4)],
        [(3.3, 1.0), (3.3, 2.0), (3.3, 2.5), (3.3, 4.0)],
    ],
)
def test_identical_intensities_are_degenerate(points):
    """Test repeated intensities fail even when their mean is not exact"""
    with pytest.raises(DegenerateCalibrationError):
        fit_calibration(points)


@pytest.mark.parametrize("points", [[], [(100, 0.1)]])
def test_too_few_points_is_degenerate(points):
    with pytest.raises(DegenerateCalibrationError):
        fit_calibration(points)


def test_non_finite_points_are_degenerate():
    with pytest.raises(DegenerateCalibrationError):
        fit_calibration([(0, 0), (np.nan, 1), (1000, 1)])


def test_curve_evaluates_line():
    curve = CalibrationCurve(slope=0.002, offset=-0.1)
    assert curve(100.0) == pytest.approx(0.1)
    np.testing.assert_allclose(curve(np.array([0.0, 50.0])), [-0.1, 0.0])


def test_table_edits_refit():
    """Test fitted line follows edits of the calibration table"""
    table = CalibrationTable([(0, 0), (1000, 1)])
    assert table.fitted_line().slope == pytest.approx(0.001)

    table.add_point(2000, 4)
    assert len(table) == 3
    assert table.fitted_line().slope != pytest.approx(0.001)

    removed = table.remove_point(2)
    assert removed == CalibrationPoint(2000.0, 4.0)
    assert table.fitted_line().slope == pytest.approx(0.001)


def test_table_remove_points_keeps_other_rows():
    table = CalibrationTable([(0, 0), (1, 1), (2, 2), (3, 3)])
    table.remove_points([0, 2])
    assert table.points == [CalibrationPoint(1.0, 1.0), CalibrationPoint(3.0, 3.0)]

    table.clear()
    with pytest.raises(DegenerateCalibrationError):
        table.fitted_line()


def test_table_file(tmp_path):
    """Test saved tables load back and accept whitespace separated rows"""
    path = tmp_path / "calibration.csv"
    CalibrationTable([(-1000, 0.0), (1500.5, 1.25)]).save(path)

    assert path.read_text().startswith("# intensity,density")
    assert CalibrationTable.load(path).points == [
        CalibrationPoint(-1000.0, 0.0),
        CalibrationPoint(1500.5, 1.25),
    ]

    spaced = tmp_path / "calibration.txt"
    spaced.write_text("# phantom rods\n0 0.0\n\n800   0.8\n")
    assert load_calibration_table(spaced) == [(0.0, 0.0), (800.0, 0.8)]


def test_malformed_table(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("0,0\n100,0.1,7\n")
    with pytest.raises(ConfigError):
        load_calibration_table(path)
