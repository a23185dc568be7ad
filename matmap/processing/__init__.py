# matmap/processing/__init__.py
from .volume import Volume, make_volume
from .sampling import OUT_OF_BOUNDS, SAMPLING_POLICIES, sample, sample_points

__all__ = [
    "Volume",
    "make_volume",
    "OUT_OF_BOUNDS",
    "SAMPLING_POLICIES",
    "sample",
    "sample_points",
]
