"""superres_core.image_model.stages
==================================

Concrete degradation stages and the STAGE_REGISTRY.

Resize modes per direction
--------------------------
=================  ==========================  ===============================
stage / method     forward (HR -> LR)          adjoint (LR -> HR)
=================  ==========================  ===============================
downsampling/area  ``area`` resize             nearest replication / k^2
                   (sensor integration)        (integer k), overlap-weight
                                               transpose otherwise
downsampling/      ``nearest`` resize          ``additive`` zero-pad upsample
decimate           (pixel selection)
psf_blur           zero-padded Gaussian        same (symmetric kernel)
motion_shift       bilinear shift by (dy, dx)  bilinear shift by (-dy, -dx)
=================  ==========================  ===============================

Area resampling is never used as an adjoint: averaging is not its own
transpose.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from superres_core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    StageConfigurationError,
)
from superres_core.image.enums import InterpolationMode
from superres_core.image.image_data import NumericImage
from superres_core.image_model.base import BaseStage, ImageSize


def _area_weights(src: int, dst: int) -> np.ndarray:
    """(dst, src) matrix of the weights OpenCV INTER_AREA uses on one axis.

    Mirrors ``computeResizeAreaTab``: each destination cell averages the
    source interval ``[d * scale, (d + 1) * scale)``, normalized by the part
    of the cell that lies inside the image.  Weights are rounded to float32
    as OpenCV stores them.
    """
    scale = 1.0 / (dst / src)
    weights = np.zeros((dst, src), dtype=np.float64)
    for d in range(dst):
        fs1 = d * scale
        fs2 = fs1 + scale
        cell = min(scale, src - fs1)
        s1 = math.ceil(fs1)
        s2 = min(math.floor(fs2), src - 1)
        s1 = min(s1, s2)
        if s1 - fs1 > 1e-3:
            weights[d, s1 - 1] += np.float32((s1 - fs1) / cell)
        for s in range(s1, s2):
            weights[d, s] += np.float32(1.0 / cell)
        if fs2 - s2 > 1e-3:
            weights[d, s2] += np.float32(min(fs2 - s2, 1.0, cell) / cell)
    return weights


# =========================================================================
# Resampling
# =========================================================================


class DownsamplingStage(BaseStage):
    """Resolution loss by ``scale`` >= 1.

    ``method="area"`` integrates HR pixels over each LR pixel footprint, the
    way a sensor does.  ``method="decimate"`` keeps one HR sample per LR
    pixel and needs an integer scale.
    """

    stage_id = "downsampling"
    _METHODS = ("area", "decimate")

    def __init__(self, scale: float, method: str = "area") -> None:
        scale = float(scale)
        if not scale >= 1.0:
            raise StageConfigurationError(
                f"Downsampling scale must be >= 1.0, got {scale}"
            )
        if method not in self._METHODS:
            raise StageConfigurationError(
                f"Unknown downsampling method '{method}'. Available: {list(self._METHODS)}"
            )
        if method == "decimate" and not scale.is_integer():
            raise StageConfigurationError(
                f"Decimation needs an integer scale, got {scale}"
            )
        self._scale = scale
        self.method = method

    @property
    def scale_factor(self) -> float:
        return self._scale

    def params(self) -> Dict[str, Any]:
        return {"scale": self._scale, "method": self.method}

    def output_size(self, image_size: ImageSize) -> ImageSize:
        rows, cols = image_size
        out = (int(round(rows / self._scale)), int(round(cols / self._scale)))
        if out[0] <= 0 or out[1] <= 0:
            raise DimensionMismatchError(
                f"Image of size {image_size} is too small to downsample by {self._scale}"
            )
        return out

    def input_size(self, image_size: ImageSize) -> ImageSize:
        rows, cols = image_size
        return (int(round(rows * self._scale)), int(round(cols * self._scale)))

    def forward(self, image: NumericImage, index: int) -> NumericImage:
        result = image.copy()
        mode = (
            InterpolationMode.area if self.method == "area" else InterpolationMode.nearest
        )
        result.resize_image(self.output_size(image.image_size), mode)
        return result

    def adjoint(self, image: NumericImage, index: int) -> NumericImage:
        hr_size = self.input_size(image.image_size)
        if self.method == "decimate":
            result = image.copy()
            result.resize_image(hr_size, InterpolationMode.additive)
            return result

        if self._scale.is_integer():
            result = image.copy()
            result.resize_image(hr_size, InterpolationMode.nearest)
            result.divide_in_place(self._scale * self._scale)
            return result

        lr_rows, lr_cols = image.image_size
        row_weights = _area_weights(hr_size[0], lr_rows)
        col_weights = _area_weights(hr_size[1], lr_cols)
        return image.map_channels(lambda plane: row_weights.T @ plane @ col_weights)


# =========================================================================
# Optics
# =========================================================================


class GaussianBlurStage(BaseStage):
    """Gaussian PSF blur with zero padding (self-adjoint)."""

    stage_id = "psf_blur"

    def __init__(self, sigma: float, truncate: float = 4.0) -> None:
        sigma = float(sigma)
        if not sigma >= 0.0:
            raise StageConfigurationError(f"Blur sigma must be >= 0, got {sigma}")
        if not truncate > 0.0:
            raise StageConfigurationError(f"Blur truncate must be > 0, got {truncate}")
        self.sigma = sigma
        self.truncate = float(truncate)

    def params(self) -> Dict[str, Any]:
        return {"sigma": self.sigma, "truncate": self.truncate}

    def _blur(self, plane: np.ndarray) -> np.ndarray:
        if self.sigma == 0.0:
            return plane
        return ndimage.gaussian_filter(
            plane, sigma=self.sigma, mode="constant", cval=0.0, truncate=self.truncate
        )

    def forward(self, image: NumericImage, index: int) -> NumericImage:
        return image.map_channels(self._blur)

    def adjoint(self, image: NumericImage, index: int) -> NumericImage:
        return image.map_channels(self._blur)


# =========================================================================
# Motion
# =========================================================================


class MotionShiftStage(BaseStage):
    """Per-observation translation by ``shifts[index] = (dy, dx)`` HR pixels.

    Bilinear interpolation with zero fill outside the image; the adjoint is
    the opposite shift under the same interpolation.
    """

    stage_id = "motion_shift"

    def __init__(self, shifts: Sequence[Sequence[float]]) -> None:
        parsed: List[Tuple[float, float]] = []
        for shift in shifts:
            if len(shift) != 2:
                raise StageConfigurationError(
                    f"Each motion shift must be (dy, dx), got {shift!r}"
                )
            parsed.append((float(shift[0]), float(shift[1])))
        if not parsed:
            raise StageConfigurationError("MotionShiftStage needs at least one shift")
        self.shifts = parsed

    @property
    def num_observations(self) -> int:
        return len(self.shifts)

    def params(self) -> Dict[str, Any]:
        return {"shifts": [list(s) for s in self.shifts]}

    def _shift_for(self, index: int) -> Tuple[float, float]:
        if not 0 <= index < len(self.shifts):
            raise IndexError(
                f"Observation index {index} out of range for {len(self.shifts)} shift(s)"
            )
        return self.shifts[index]

    @staticmethod
    def _shift(plane: np.ndarray, dy: float, dx: float) -> np.ndarray:
        if dy == 0.0 and dx == 0.0:
            return plane
        return ndimage.shift(
            plane, shift=[dy, dx], order=1, mode="grid-constant", cval=0.0
        )

    def forward(self, image: NumericImage, index: int) -> NumericImage:
        dy, dx = self._shift_for(index)
        return image.map_channels(lambda plane: self._shift(plane, dy, dx))

    def adjoint(self, image: NumericImage, index: int) -> NumericImage:
        dy, dx = self._shift_for(index)
        return image.map_channels(lambda plane: self._shift(plane, -dy, -dx))


# =========================================================================
# Registry
# =========================================================================

_ALL_STAGES = [
    DownsamplingStage,
    GaussianBlurStage,
    MotionShiftStage,
]

STAGE_REGISTRY: Dict[str, type] = {cls.stage_id: cls for cls in _ALL_STAGES}


def get_stage(stage_id: str, params: Optional[Dict[str, Any]] = None) -> BaseStage:
    """Look up a stage by ID and instantiate it with the given params.

    Raises ConfigurationError if the stage_id is not registered or the
    params do not match the stage's constructor.
    """
    if stage_id not in STAGE_REGISTRY:
        raise ConfigurationError(
            f"Unknown stage_id '{stage_id}'. "
            f"Available: {sorted(STAGE_REGISTRY.keys())}"
        )
    cls = STAGE_REGISTRY[stage_id]
    try:
        return cls(**(params or {}))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid params for stage '{stage_id}': {exc}") from exc
