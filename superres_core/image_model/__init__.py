"""Degradation stages and the ImageModel that chains them."""

from superres_core.image_model.base import (
    AdjointCheckReport,
    BaseStage,
    DegradationStage,
)
from superres_core.image_model.image_model import ImageModel
from superres_core.image_model.stages import (
    STAGE_REGISTRY,
    DownsamplingStage,
    GaussianBlurStage,
    MotionShiftStage,
    get_stage,
)

__all__ = [
    "AdjointCheckReport",
    "BaseStage",
    "DegradationStage",
    "ImageModel",
    "STAGE_REGISTRY",
    "DownsamplingStage",
    "GaussianBlurStage",
    "MotionShiftStage",
    "get_stage",
]
