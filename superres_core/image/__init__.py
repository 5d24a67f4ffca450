"""Image container used throughout superres_core."""

from superres_core.image.enums import InterpolationMode, SpectralMode
from superres_core.image.image_data import NumericImage
from superres_core.image.report import ImageDataReport

__all__ = [
    "InterpolationMode",
    "SpectralMode",
    "NumericImage",
    "ImageDataReport",
]
