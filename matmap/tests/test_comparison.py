import pytest
import numpy as np
import pyvista as pv
from ..meshing.comparison import NodeMismatch, compare_grids
from ..utils.errors import GridMismatchError, TopologyMismatchError


@pytest.fixture
def mapped_grid(box_mesh):
    """Mesh carrying density and a vector field"""
    grid = box_mesh.copy()
    grid.point_data["density"] = np.linspace(0.1, 1.5, grid.n_points)
    grid.point_data["displacement"] = np.zeros((grid.n_points, 3))
    return grid


def test_identical_grids(mapped_grid):
    comparison = compare_grids(mapped_grid, mapped_grid.copy())
    assert comparison.ok
    assert sorted(comparison.compared_fields) == ["density", "displacement"]
    comparison.raise_for_mismatch()


def test_tolerance_controls_mismatches(mapped_grid):
    """Test a 1e-7 difference passes at 1e-6 but not at 1e-9"""
    actual = mapped_grid.copy()
    density = np.array(actual.point_data["density"])
    density[5] += 1e-7
    actual.point_data["density"] = density

    assert compare_grids(mapped_grid, actual, tolerance=1e-6).ok

    comparison = compare_grids(mapped_grid, actual, tolerance=1e-9)
    assert len(comparison.node_mismatches) == 1
    mismatch = comparison.node_mismatches[0]
    assert mismatch.index == 5
    assert mismatch.field == "density"
    assert mismatch.actual - mismatch.expected == pytest.approx(1e-7, rel=1e-3)


def test_vector_field_mismatch(mapped_grid):
    actual = mapped_grid.copy()
    displacement = np.array(actual.point_data["displacement"])
    displacement[2] = [0.0, 1.0, 0.0]
    actual.point_data["displacement"] = displacement

    comparison = compare_grids(mapped_grid, actual)
    assert comparison.node_mismatches == [
        NodeMismatch(2, "displacement", (0.0, 0.0, 0.0), (0.0, 1.0, 0.0))
    ]
    with pytest.raises(GridMismatchError):
        comparison.raise_for_mismatch()


def test_matching_nan_values(mapped_grid):
    expected = mapped_grid.copy()
    density = np.array(expected.point_data["density"])
    density[0] = np.nan
    expected.point_data["density"] = density
    actual = expected.copy()

    assert compare_grids(expected, actual).ok

    density = np.array(actual.point_data["density"])
    density[0] = 1.0
    actual.point_data["density"] = density
    assert compare_grids(expected, actual).node_mismatches[0].index == 0


def test_node_count_mismatch(mapped_grid):
    """Test differing node counts are reported without comparing values"""
    other = pv.ImageData(dimensions=(3, 3, 3)).cast_to_unstructured_grid()
    other.point_data["density"] = np.zeros(other.n_points)

    comparison = compare_grids(mapped_grid, other)
    assert not comparison.ok
    assert comparison.topology.expected_points == 64
    assert comparison.topology.actual_points == 27
    assert comparison.node_mismatches == []
    assert comparison.compared_fields == []
    with pytest.raises(TopologyMismatchError):
        comparison.raise_for_mismatch()


def test_coordinates_compared_on_request(mapped_grid):
    moved = mapped_grid.copy()
    moved.points[7] += np.array([0.0, 0.0, 0.5])

    assert compare_grids(mapped_grid, moved).ok

    comparison = compare_grids(mapped_grid, moved, compare_coordinates=True)
    assert comparison.topology is not None
    assert comparison.topology.first_index == 7


def test_fields_missing_from_actual(mapped_grid):
    actual = mapped_grid.copy()
    actual.point_data.remove("displacement")

    comparison = compare_grids(mapped_grid, actual)
    assert comparison.ok
    assert comparison.compared_fields == ["density"]
    assert comparison.missing_fields == ["displacement"]

    selected = compare_grids(mapped_grid, actual, fields=["density"])
    assert selected.missing_fields == []


def test_requested_field_missing_fails(mapped_grid):
    """Test a requested field absent from the actual grid is not a match"""
    actual = mapped_grid.copy()
    actual.point_data.remove("density")

    comparison = compare_grids(mapped_grid, actual, fields=["density"])
    assert not comparison.ok
    assert comparison.compared_fields == []
    assert comparison.unmatched_fields == ["density"]
    with pytest.raises(GridMismatchError):
        comparison.raise_for_mismatch()


def test_nothing_compared_fails(box_mesh):
    expected = box_mesh.copy()
    expected.point_data["density"] = np.ones(expected.n_points)
    actual = box_mesh.copy()
    actual.point_data["modulus"] = np.ones(actual.n_points)

    comparison = compare_grids(expected, actual)
    assert not comparison.ok
    assert comparison.missing_fields == ["density"]
    assert comparison.extra_fields == ["modulus"]


def test_fields_only_in_actual_are_listed(mapped_grid):
    actual = mapped_grid.copy()
    actual.point_data["modulus"] = np.ones(actual.n_points)

    comparison = compare_grids(mapped_grid, actual)
    assert comparison.ok
    assert comparison.extra_fields == ["modulus"]


def test_shape_mismatch_fails(mapped_grid):
    actual = mapped_grid.copy()
    actual.point_data["displacement"] = np.zeros((actual.n_points, 2))

    comparison = compare_grids(mapped_grid, actual)
    assert not comparison.ok
    assert comparison.unmatched_fields == ["displacement"]


def test_negative_tolerance(mapped_grid):
    with pytest.raises(ValueError):
        compare_grids(mapped_grid, mapped_grid, tolerance=-1.0)
