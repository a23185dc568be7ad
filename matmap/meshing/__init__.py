# matmap/meshing/__init__.py
from .comparison import GridComparison, NodeMismatch, TopologyMismatch, compare_grids

__all__ = ["GridComparison", "NodeMismatch", "TopologyMismatch", "compare_grids"]
