"""superres_core -- multi-frame super-resolution as a MAP inverse problem.

Modules
-------
image            NumericImage multi-channel container, resizing, color spaces
image_model      DegradationStage protocol, concrete stages, ImageModel chain
regularization   TV, bilateral TV and Tikhonov priors with exact adjoints
optimization     MapSolverOptions, MapSolver, IRLSMapSolver, conjugate gradient
config           YAML factories for options, models and regularizers
errors           Typed exception hierarchy
"""

from superres_core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    StageConfigurationError,
    SuperResolutionError,
)
from superres_core.image import (
    ImageDataReport,
    InterpolationMode,
    NumericImage,
    SpectralMode,
)
from superres_core.image_model import (
    DownsamplingStage,
    GaussianBlurStage,
    ImageModel,
    MotionShiftStage,
)
from superres_core.optimization import (
    IRLSMapSolver,
    IRLSMapSolverOptions,
    MapSolver,
    MapSolverOptions,
    SolverState,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DimensionMismatchError",
    "StageConfigurationError",
    "SuperResolutionError",
    "ImageDataReport",
    "InterpolationMode",
    "NumericImage",
    "SpectralMode",
    "DownsamplingStage",
    "GaussianBlurStage",
    "ImageModel",
    "MotionShiftStage",
    "IRLSMapSolver",
    "IRLSMapSolverOptions",
    "MapSolver",
    "MapSolverOptions",
    "SolverState",
]
