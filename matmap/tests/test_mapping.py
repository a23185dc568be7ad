import pytest
import numpy as np
import pyvista as pv
from .conftest import ramp_value
from ..materials.density import (
    BoneDensityFunctor,
    DensityFunctorParameters,
    RhoAppParameters,
    RhoAshParameters,
)
from ..materials.mapping import MaterialMappingFilter, run_material_mapping
from ..materials.modulus import LinearFunctor, PowerLawFunctor
from ..processing.volume import Volume
from ..utils.parallel import parallel_map_chunks
from ..utils.errors import (
    ConfigError,
    EmptyMeshError,
    InvalidStageChainError,
    MaterialError,
    MissingInputError,
)

PARAMS = DensityFunctorParameters(
    rho_ash=RhoAshParameters(enabled=True, offset=0.09, divisor=1.14),
    rho_app=RhoAppParameters(enabled=True, divisor=0.6),
)
POWER_LAW = PowerLawFunctor(a=6850.0, b=1.49)


def expected_density(mesh, volume):
    intensity = ramp_value(volume.world_to_index(mesh.points))
    return (intensity / 1000.0 + 0.09) / 1.14 / 0.6


def test_mapping_populates_all_nodes(box_mesh, ramp_volume, calibration):
    """Test every node gets density and modulus"""
    result = run_material_mapping(box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW)

    assert result.n_points == box_mesh.n_points
    assert result.n_cells == box_mesh.n_cells
    np.testing.assert_array_equal(result.points, box_mesh.points)
    assert "density" in result.point_data
    assert "modulus" in result.point_data
    assert np.all(result.point_data["inside_image"] == 1)

    density = np.asarray(result.point_data["density"])
    modulus = np.asarray(result.point_data["modulus"])
    assert density.shape == (box_mesh.n_points,)
    np.testing.assert_allclose(density, expected_density(box_mesh, ramp_volume), rtol=1e-9)
    np.testing.assert_allclose(modulus, 6850.0 * density**1.49, rtol=1e-12)


def test_input_mesh_is_not_modified(box_mesh, ramp_volume, calibration):
    points = np.array(box_mesh.points)
    run_material_mapping(box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW)

    assert "density" not in box_mesh.point_data
    assert "modulus" not in box_mesh.point_data
    np.testing.assert_array_equal(box_mesh.points, points)


def test_mapping_is_idempotent(box_mesh, ramp_volume, calibration):
    first = run_material_mapping(box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW)
    second = run_material_mapping(box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW)

    for name in ("density", "modulus", "inside_image"):
        assert np.array_equal(first.point_data[name], second.point_data[name])


def test_chunked_and_parallel_match_serial(box_mesh, ramp_volume, calibration):
    """Test chunking and worker processes do not change results"""
    serial = run_material_mapping(box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW)
    chunked = run_material_mapping(
        box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW, chunk_size=7
    )
    parallel = run_material_mapping(
        box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW, n_jobs=2, chunk_size=16
    )

    for result in (chunked, parallel):
        assert np.array_equal(result.point_data["density"], serial.point_data["density"])
        assert np.array_equal(result.point_data["modulus"], serial.point_data["modulus"])


def test_nodes_outside_image(box_mesh, ramp_volume, calibration):
    """Test nodes outside the image get the outside density, not an error"""
    mesh = box_mesh.copy()
    mesh.points[:4] += np.array([100.0, 0.0, 0.0])

    result = run_material_mapping(
        mesh, ramp_volume, calibration, PARAMS, LinearFunctor(a=1000.0, b=5.0),
        outside_density=0.0,
    )
    inside = np.asarray(result.point_data["inside_image"])
    density = np.asarray(result.point_data["density"])
    modulus = np.asarray(result.point_data["modulus"])

    assert inside[:4].tolist() == [0, 0, 0, 0]
    assert np.all(inside[4:] == 1)
    np.testing.assert_array_equal(density[:4], 0.0)
    np.testing.assert_array_equal(modulus[:4], 5.0)
    assert np.all(density[4:] > 0)


def test_custom_array_names(box_mesh, ramp_volume, calibration):
    result = run_material_mapping(
        box_mesh, ramp_volume, calibration, PARAMS, POWER_LAW,
        density_name="rho_app", modulus_name="E",
    )
    assert "rho_app" in result.point_data
    assert "E" in result.point_data


def test_nearest_policy(box_mesh, ramp_volume, calibration):
    result = run_material_mapping(
        box_mesh, ramp_volume, calibration, None, LinearFunctor(a=1.0, b=0.0),
        sampling_policy="nearest",
    )
    index = np.rint(ramp_volume.world_to_index(box_mesh.points))
    np.testing.assert_allclose(
        result.point_data["density"], ramp_value(index) / 1000.0, rtol=1e-12
    )


def test_empty_mesh(ramp_volume, calibration):
    with pytest.raises(EmptyMeshError):
        run_material_mapping(
            pv.UnstructuredGrid(), ramp_volume, calibration, PARAMS, POWER_LAW
        )


@pytest.mark.parametrize("missing", ["mesh", "volume", "calibration", "modulus"])
def test_missing_inputs(box_mesh, ramp_volume, calibration, missing):
    inputs = {
        "mesh": box_mesh,
        "volume": ramp_volume,
        "calibration": calibration,
        "modulus": POWER_LAW,
    }
    inputs[missing] = None
    with pytest.raises(MissingInputError):
        run_material_mapping(
            inputs["mesh"], inputs["volume"], inputs["calibration"], PARAMS, inputs["modulus"]
        )


def test_invalid_stage_chain_fails_before_mapping(box_mesh, ramp_volume, calibration):
    params = DensityFunctorParameters(
        rho_ash=RhoAshParameters(enabled=False),
        rho_app=RhoAppParameters(enabled=True),
    )
    with pytest.raises(InvalidStageChainError):
        run_material_mapping(box_mesh, ramp_volume, calibration, params, POWER_LAW)


def test_undefined_values_fail_the_run(box_mesh, ramp_volume, calibration):
    """Test NaN voxels under the mesh abort the run instead of being written"""
    data = np.array(ramp_volume.data)
    data[:, :, :] = np.nan
    data[0, 0, 0] = 1.0
    volume = Volume(data=data, spacing=ramp_volume.spacing, origin=ramp_volume.origin)

    with pytest.raises(MaterialError):
        run_material_mapping(box_mesh, volume, calibration, PARAMS, POWER_LAW)


def test_calculate_properties(calibration):
    mapping_filter = MaterialMappingFilter(
        BoneDensityFunctor(calibration, PARAMS), POWER_LAW
    )
    properties = mapping_filter.calculate_properties(np.array([0.0, 1000.0]))

    np.testing.assert_allclose(
        properties["density"], [0.09 / 1.14 / 0.6, 1.09 / 1.14 / 0.6]
    )
    assert np.all(properties["modulus"] > 0)
    assert mapping_filter.describe()["modulus"] == {"model": "power_law", "a": 6850.0, "b": 1.49}


@pytest.mark.parametrize(
    "options",
    [
        {"n_jobs": 0},
        {"chunk_size": 0},
        {"density_name": "inside_image"},
        {"modulus_name": "inside_image"},
        {"density_name": "E", "modulus_name": "E"},
    ],
)
def test_invalid_filter_options(calibration, options):
    with pytest.raises(ConfigError):
        MaterialMappingFilter(BoneDensityFunctor(calibration, PARAMS), POWER_LAW, **options)


def test_chunks_receive_shared_context():
    """Test shared keyword arguments reach every chunk, serial or pooled"""
    data = np.arange(20, dtype=np.float64).reshape(10, 2)
    serial = parallel_map_chunks(_scale_rows, data, chunk_size=3, context={"factor": 2.0})
    pooled = parallel_map_chunks(
        _scale_rows, data, n_jobs=2, chunk_size=3, context={"factor": 2.0}
    )
    np.testing.assert_array_equal(serial, data * 2.0)
    np.testing.assert_array_equal(pooled, serial)

    with pytest.raises(ValueError):
        parallel_map_chunks(_scale_rows, data, n_jobs=0, context={"factor": 2.0})


def _scale_rows(chunk, factor):
    return chunk * factor
