# matmap/io/__init__.py
from .file_io import (
    load_calibration_table,
    load_mesh,
    load_volume,
    save_calibration_table,
    save_mesh,
)

__all__ = [
    "load_calibration_table",
    "load_mesh",
    "load_volume",
    "save_calibration_table",
    "save_mesh",
]
