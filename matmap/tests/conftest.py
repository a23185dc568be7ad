import pytest
import numpy as np
import pyvista as pv
from ..config import Config
from ..materials.calibration import CalibrationCurve
from ..processing.volume import Volume


def ramp_value(index):
    """Intensity of the ramp volume at (fractional) voxel index (i, j, k)"""
    index = np.atleast_2d(index)
    return 100.0 * index[:, 0] + 10.0 * index[:, 1] + index[:, 2]


@pytest.fixture
def ramp_volume():
    """10x10x10 volume whose intensity is linear in the voxel index

    Trilinear interpolation reproduces a linear field exactly, so expected
    intensities at any inside point follow from ramp_value.
    """
    i, j, k = np.meshgrid(np.arange(10), np.arange(10), np.arange(10), indexing="ij")
    data = 100.0 * i + 10.0 * j + k
    return Volume(
        data=data,
        spacing=np.array([0.5, 0.5, 0.5]),
        origin=np.array([1.0, 2.0, 3.0]),
    )


@pytest.fixture
def box_mesh():
    """4x4x4-node hexahedral mesh lying inside the ramp volume"""
    grid = pv.ImageData(dimensions=(4, 4, 4), spacing=(1.0, 1.0, 1.0), origin=(1.2, 2.2, 3.2))
    return grid.cast_to_unstructured_grid()


@pytest.fixture
def calibration():
    """Calibration line fitted to {(0, 0), (1000, 1)}"""
    return CalibrationCurve(slope=0.001, offset=0.0)


@pytest.fixture
def config(tmp_path):
    """Create base configuration for testing"""
    return Config(
        output_path=str(tmp_path / "mapped.vtu"),
        calibration_points=[(0.0, 0.0), (1000.0, 1.0)],
        density_params={
            "rho_ash": {"enabled": True, "offset": 0.09, "divisor": 1.14},
            "rho_app": {"enabled": True, "divisor": 0.6},
        },
        modulus_model="power_law",
        modulus_params={"a": 6850.0, "b": 1.49},
    )
