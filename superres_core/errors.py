"""
superres_core.errors

Typed exceptions raised by the image container, the degradation model and
the solvers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SuperResolutionError(Exception):
    """Base super-resolution error."""


class DimensionMismatchError(SuperResolutionError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class StageConfigurationError(SuperResolutionError):
    pass


class ConfigurationError(SuperResolutionError):
    pass
