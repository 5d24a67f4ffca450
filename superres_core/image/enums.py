"""superres_core.image.enums
===========================

Interpolation and spectral modes for NumericImage.

Interpolation
-------------
nearest    pixel replication (up) / pixel selection (down)
linear     bilinear resampling
cubic      bicubic resampling
area       pixel-area averaging; models sensor integration
additive   zero-pad upsampling / block-sum downsampling (mutual adjoints)
"""

from __future__ import annotations

from enum import Enum


class InterpolationMode(str, Enum):
    """Resize policy used by ``NumericImage.resize_image``."""

    nearest = "nearest"
    linear = "linear"
    cubic = "cubic"
    area = "area"
    additive = "additive"


class SpectralMode(str, Enum):
    """Channel interpretation of a NumericImage."""

    monochrome = "monochrome"
    color_bgr = "color_bgr"
    color_ycrcb = "color_ycrcb"
