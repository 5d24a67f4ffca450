"""superres_core.image_model.image_model
=======================================

ImageModel: an ordered chain of degradation stages that simulates how one
HR image becomes each LR observation.

The forward pass runs the stages in registration order; the adjoint pass
runs their adjoints in reverse order, so the chain's adjoint is exact
whenever every stage's adjoint is.  Stages keep no per-call state: the
adjoint of observation ``index`` is derived from the stage parameters and
``index`` alone.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from superres_core.errors import SuperResolutionError
from superres_core.image.image_data import NumericImage
from superres_core.image_model.base import (
    AdjointCheckReport,
    DegradationStage,
    ImageSize,
    check_size_round_trip,
    run_adjoint_check,
)

logger = logging.getLogger(__name__)


class ImageModel:
    """Composable forward/adjoint degradation model."""

    def __init__(self, stages: Tuple[DegradationStage, ...] = ()) -> None:
        self._stages: List[DegradationStage] = []
        for stage in stages:
            self.add_degradation_stage(stage)

    def add_degradation_stage(self, stage: DegradationStage) -> None:
        if not isinstance(stage, DegradationStage):
            raise TypeError(
                f"{type(stage).__name__} does not implement the DegradationStage protocol"
            )
        self._stages.append(stage)
        logger.debug(f"Added stage {stage.stage_id} (position {len(self._stages) - 1})")

    @property
    def stages(self) -> Tuple[DegradationStage, ...]:
        return tuple(self._stages)

    @property
    def scale_factor(self) -> float:
        """Combined resolution loss of the whole chain."""
        factor = 1.0
        for stage in self._stages:
            factor *= stage.scale_factor
        return factor

    def output_size(self, image_size: ImageSize) -> ImageSize:
        size = tuple(image_size)
        for stage in self._stages:
            size = stage.output_size(size)
        return size

    def input_size(self, image_size: ImageSize) -> ImageSize:
        size = tuple(image_size)
        for stage in reversed(self._stages):
            size = stage.input_size(size)
        return size

    # ---- Forward ----

    def apply_to_image(self, image: NumericImage, index: int) -> NumericImage:
        """Simulate LR observation ``index`` from an HR image.

        The input image is not modified.
        """
        current = image
        for position, stage in enumerate(self._stages):
            current = self._run(stage.forward, current, index, position, stage, "Forward")
        return current.copy() if current is image else current

    # ---- Adjoint ----

    def apply_adjoint(self, image: NumericImage, index: int) -> NumericImage:
        """Back-project an LR image (e.g. a residual) of observation ``index``."""
        current = image
        for position in reversed(range(len(self._stages))):
            stage = self._stages[position]
            current = self._run(stage.adjoint, current, index, position, stage, "Adjoint")
        return current.copy() if current is image else current

    @staticmethod
    def _run(fn, image, index, position, stage, direction) -> NumericImage:
        try:
            return fn(image, index)
        except (SuperResolutionError, IndexError):
            raise
        except Exception as exc:
            raise RuntimeError(
                f"{direction} pass failed at stage {position} "
                f"(stage_id={stage.stage_id}, index={index}): {exc}"
            ) from exc

    # ---- Introspection ----

    def serialize(self) -> Dict[str, Any]:
        return {
            "scale_factor": self.scale_factor,
            "stages": [stage.serialize() for stage in self._stages],
        }

    def check_adjoint(
        self,
        image_size: ImageSize,
        num_channels: int = 1,
        index: int = 0,
        n_trials: int = 3,
        tol: float = 1e-6,
        seed: int = 0,
    ) -> AdjointCheckReport:
        """Verify <Ax, y> == <x, A^T y> for the whole chain at one index."""
        lr_size = check_size_round_trip(self, image_size)
        return run_adjoint_check(
            "image_model",
            lambda image: self.apply_to_image(image, index),
            lambda image: self.apply_adjoint(image, index),
            x_size=image_size,
            y_size=lr_size,
            num_channels=num_channels,
            n_trials=n_trials,
            tol=tol,
            seed=seed,
        )

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        chain = " -> ".join(stage.stage_id for stage in self._stages) or "identity"
        return f"ImageModel({chain})"
