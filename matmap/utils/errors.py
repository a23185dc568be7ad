# matmap/utils/errors.py
from typing import Optional, Dict, Any
import logging


class MatMapError(Exception):
    """Base exception class for material mapping errors"""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details
        self.context = context or {}
        self.logger = logging.getLogger(__name__)

        if context:
            self.logger.error(f"{message} - {details} - Context: {context}")
        else:
            self.logger.error(f"{message} - {details}")

        super().__init__(message)


class ConfigError(MatMapError):
    """Raised for configuration validation errors"""

    pass


class MissingInputError(MatMapError):
    """Raised when the volume, mesh or calibration is absent"""

    pass


class EmptyMeshError(MatMapError):
    """Raised when the input mesh has no nodes"""

    pass


class VolumeError(MatMapError):
    """Raised for unusable image volumes"""

    pass


class DegenerateCalibrationError(MatMapError):
    """Raised when no calibration line can be fitted to the points"""

    pass


class InvalidStageChainError(MatMapError):
    """Raised for density stage combinations that violate the stage order"""

    pass


class MaterialError(MatMapError):
    """Raised when density or modulus cannot be defined for a node"""

    pass


class TopologyMismatchError(MatMapError):
    """Raised when two compared grids do not share the same nodes"""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        mismatch: Any = None,
    ):
        super().__init__(message, details, context)
        self.mismatch = mismatch


class GridMismatchError(MatMapError):
    """Raised when compared grids differ in point data"""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        mismatches: Optional[list] = None,
    ):
        super().__init__(message, details, context)
        self.mismatches = mismatches or []


class ExportError(MatMapError):
    """Raised for file reading/writing errors"""

    pass
