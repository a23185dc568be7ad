# matmap/meshing/comparison.py
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
import pyvista as pv

from ..utils.errors import GridMismatchError, TopologyMismatchError

logger = logging.getLogger(__name__)

Value = Union[float, Tuple[float, ...]]


@dataclass(frozen=True)
class NodeMismatch:
    """Point-data value differing beyond tolerance at one node"""

    index: int
    field: str
    expected: Value
    actual: Value


@dataclass(frozen=True)
class TopologyMismatch:
    """Grids that cannot be compared node by node"""

    reason: str
    expected_points: int
    actual_points: int
    first_index: Optional[int] = None


@dataclass
class GridComparison:
    """Result of comparing an expected grid with an actual one

    missing_fields lists expected (or requested) fields that could not be
    compared; extra_fields lists point data found only in the actual grid.
    unmatched_fields is the subset of missing_fields that fails the
    comparison: explicitly requested fields, fields whose shapes differ,
    and every missing field when nothing could be compared at all.
    """

    tolerance: float
    node_mismatches: List[NodeMismatch] = field(default_factory=list)
    topology: Optional[TopologyMismatch] = None
    compared_fields: List[str] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)
    extra_fields: List[str] = field(default_factory=list)
    unmatched_fields: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return (
            self.topology is None
            and not self.node_mismatches
            and not self.unmatched_fields
        )

    def raise_for_mismatch(self) -> None:
        """Raise if the grids differ

        Raises:
            TopologyMismatchError: Node count or coordinates differ
            GridMismatchError: Point data differs beyond tolerance or a
                required field cannot be compared
        """
        if self.topology is not None:
            raise TopologyMismatchError(
                "Grid topology differs",
                self.topology.reason,
                mismatch=self.topology,
            )
        if self.unmatched_fields:
            raise GridMismatchError(
                f"{len(self.unmatched_fields)} field(s) could not be compared",
                f"Fields: {', '.join(self.unmatched_fields)}",
                mismatches=self.node_mismatches,
            )
        if self.node_mismatches:
            first = self.node_mismatches[0]
            raise GridMismatchError(
                f"{len(self.node_mismatches)} point-data value(s) differ "
                f"beyond tolerance {self.tolerance}",
                f"First at node {first.index}, field '{first.field}': "
                f"expected {first.expected}, got {first.actual}",
                mismatches=self.node_mismatches,
            )


def _as_value(row: np.ndarray) -> Value:
    if row.size == 1:
        return float(row.reshape(-1)[0])
    return tuple(float(v) for v in row.reshape(-1))


def _check_topology(
    expected: pv.DataSet,
    actual: pv.DataSet,
    tolerance: float,
    compare_coordinates: bool,
) -> Optional[TopologyMismatch]:
    if expected.n_points != actual.n_points:
        return TopologyMismatch(
            reason=f"node count differs ({expected.n_points} != {actual.n_points})",
            expected_points=expected.n_points,
            actual_points=actual.n_points,
        )

    if compare_coordinates:
        diff = np.abs(
            np.asarray(expected.points, dtype=np.float64)
            - np.asarray(actual.points, dtype=np.float64)
        )
        moved = np.flatnonzero(np.any(diff > tolerance, axis=1))
        if moved.size:
            return TopologyMismatch(
                reason=f"{moved.size} node coordinate(s) differ",
                expected_points=expected.n_points,
                actual_points=actual.n_points,
                first_index=int(moved[0]),
            )
    return None


def compare_grids(
    expected: pv.DataSet,
    actual: pv.DataSet,
    tolerance: float = 1e-6,
    compare_coordinates: bool = False,
    fields: Optional[Iterable[str]] = None,
) -> GridComparison:
    """Compare the point data of two grids within an absolute tolerance

    Topology is checked first; a node count (or, optionally, coordinate)
    mismatch is reported on its own without comparing attributes.
    Without explicit fields, point data present in both grids is compared
    and fields found in only one grid are listed but do not fail the
    comparison unless no field could be compared. Explicitly requested
    fields must exist in both grids.

    Args:
        expected: Reference grid
        actual: Grid under test
        tolerance: Largest accepted absolute difference
        compare_coordinates: Also require node coordinates to match
        fields: Point-data names that must be compared (default: all shared)

    Returns:
        Comparison result
    """
    if tolerance < 0:
        raise ValueError(f"Invalid tolerance: {tolerance}")

    result = GridComparison(tolerance=tolerance)
    result.topology = _check_topology(expected, actual, tolerance, compare_coordinates)
    if result.topology is not None:
        logger.warning(f"Topology mismatch: {result.topology.reason}")
        return result

    required = fields is not None
    names = list(fields) if required else list(expected.point_data.keys())
    if not required:
        result.extra_fields = [
            name for name in actual.point_data.keys() if name not in expected.point_data
        ]

    for name in names:
        if name not in expected.point_data or name not in actual.point_data:
            result.missing_fields.append(name)
            if required:
                result.unmatched_fields.append(name)
            continue

        exp = np.asarray(expected.point_data[name], dtype=np.float64)
        act = np.asarray(actual.point_data[name], dtype=np.float64)
        exp = exp.reshape(exp.shape[0], -1)
        act = act.reshape(act.shape[0], -1)
        if exp.shape != act.shape:
            result.missing_fields.append(name)
            result.unmatched_fields.append(name)
            logger.warning(
                f"Field '{name}' has different shapes: {exp.shape} != {act.shape}"
            )
            continue

        both_nan = np.isnan(exp) & np.isnan(act)
        differs = (np.abs(exp - act) > tolerance) | (np.isnan(exp) != np.isnan(act))
        differs &= ~both_nan
        for index in np.flatnonzero(np.any(differs, axis=1)):
            result.node_mismatches.append(
                NodeMismatch(
                    index=int(index),
                    field=name,
                    expected=_as_value(exp[index]),
                    actual=_as_value(act[index]),
                )
            )
        result.compared_fields.append(name)

    if not result.compared_fields and (names or result.extra_fields):
        result.unmatched_fields = list(
            dict.fromkeys(result.missing_fields + result.extra_fields)
        )

    if result.missing_fields:
        logger.warning(
            f"Fields not compared: {', '.join(result.missing_fields)}"
        )
    if result.extra_fields:
        logger.warning(
            f"Fields only in actual grid: {', '.join(result.extra_fields)}"
        )
    logger.info(
        f"Compared {len(result.compared_fields)} field(s) on {expected.n_points} "
        f"nodes: {len(result.node_mismatches)} mismatch(es)"
    )
    return result
