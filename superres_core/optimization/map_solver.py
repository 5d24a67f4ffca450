"""superres_core.optimization.map_solver
======================================

Options and abstract base for maximum a posteriori super-resolution
solvers.

A MAP solver holds the degradation model, the LR observations and a list
of weighted regularizers, and estimates the HR image minimizing

    sum_k rho(A_k x - y_k) + sum_i lambda_i R_i(x)
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from superres_core.errors import DimensionMismatchError
from superres_core.image.image_data import NumericImage
from superres_core.image_model.base import check_size_round_trip
from superres_core.image_model.image_model import ImageModel
from superres_core.regularization.base import Regularizer

logger = logging.getLogger(__name__)


class SolverState(str, Enum):
    """Lifecycle of a single solve."""

    initialized = "initialized"
    iterating = "iterating"
    converged = "converged"
    max_iterations_reached = "max_iterations_reached"


class MapSolverOptions(BaseModel):
    """Iteration limits and convergence thresholds shared by MAP solvers.

    The stored thresholds are base values.  Once the solver knows the
    problem size it calls :meth:`adjust_thresholds_adaptively`, and the
    ``effective_*`` properties scale the base values accordingly.  The
    adjustment is recomputed from the base values each time, so repeated
    calls with the same inputs give the same thresholds.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    max_num_solver_iterations: int = Field(
        50, ge=1, description="Upper bound on inner CG iterations per IRLS step."
    )
    gradient_norm_convergence_threshold: float = Field(
        1e-6, ge=0.0, allow_inf_nan=False,
        description="Base threshold on the CG residual norm.",
    )
    regularization_parameter: float = Field(
        0.01, ge=0.0, allow_inf_nan=False,
        description="Default weight for regularizers added without an explicit one.",
    )

    _num_parameters: Optional[int] = PrivateAttr(default=None)
    _regularization_parameter_sum: float = PrivateAttr(default=0.0)

    def adjust_thresholds_adaptively(
        self, num_parameters: int, regularization_parameter_sum: float
    ) -> None:
        """Record the problem size used to scale the convergence thresholds."""
        if num_parameters < 1:
            raise ValueError(f"num_parameters must be >= 1, got {num_parameters}")
        if not regularization_parameter_sum >= 0.0:
            raise ValueError(
                "regularization_parameter_sum must be >= 0, "
                f"got {regularization_parameter_sum}"
            )
        self._num_parameters = int(num_parameters)
        self._regularization_parameter_sum = float(regularization_parameter_sum)

    def _threshold_scale(self, power: float) -> float:
        if self._num_parameters is None:
            return 1.0
        return (self._num_parameters ** power) * (1.0 + self._regularization_parameter_sum)

    @property
    def effective_gradient_norm_convergence_threshold(self) -> float:
        return self.gradient_norm_convergence_threshold * self._threshold_scale(0.5)

    def _effective_thresholds(self) -> Dict[str, float]:
        return {
            "gradient_norm_convergence_threshold":
                self.effective_gradient_norm_convergence_threshold,
        }

    def describe(self) -> str:
        """Human-readable listing of all options and effective thresholds."""
        lines = [f"{type(self).__name__}:"]
        for name in type(self).model_fields:
            lines.append(f"  {name} = {getattr(self, name)}")
        if self._num_parameters is not None:
            lines.append(
                f"  adapted to {self._num_parameters} parameters, "
                f"regularization sum {self._regularization_parameter_sum:g}"
            )
            for name, value in self._effective_thresholds().items():
                lines.append(f"  effective {name} = {value:.6g}")
        return "\n".join(lines)


class MapSolver(ABC):
    """Abstract MAP solver over a fixed set of LR observations."""

    def __init__(
        self,
        options: MapSolverOptions,
        image_model: ImageModel,
        low_res_images: Sequence[NumericImage],
        print_solver_output: bool = True,
    ) -> None:
        if not isinstance(options, MapSolverOptions):
            raise TypeError(
                f"options must be a MapSolverOptions, got {type(options).__name__}"
            )
        images = list(low_res_images)
        if not images:
            raise DimensionMismatchError("At least one low-resolution image is required")

        reference = images[0]
        if reference.num_pixels == 0:
            raise DimensionMismatchError("Low-resolution images must not be empty")
        for index, image in enumerate(images[1:], start=1):
            if (image.image_size != reference.image_size
                    or image.num_channels != reference.num_channels):
                raise DimensionMismatchError(
                    f"Low-resolution image {index} has size {image.image_size} with "
                    f"{image.num_channels} channel(s), expected {reference.image_size} "
                    f"with {reference.num_channels}",
                    details={"index": index},
                )
        for stage in image_model.stages:
            expected = getattr(stage, "num_observations", None)
            if expected is not None and expected != len(images):
                raise DimensionMismatchError(
                    f"Stage '{stage.stage_id}' models {expected} observation(s), "
                    f"got {len(images)} low-resolution image(s)",
                    details={"expected": expected, "got": len(images)},
                )

        self.options = options.model_copy(deep=True)
        self.image_model = image_model
        self.print_solver_output = print_solver_output
        self.state = SolverState.initialized
        self._low_res_images: List[NumericImage] = images
        self._regularizers: List[Tuple[Regularizer, float]] = []

    # ---- Observations ----

    @property
    def low_res_images(self) -> Tuple[NumericImage, ...]:
        return tuple(self._low_res_images)

    @property
    def num_observations(self) -> int:
        return len(self._low_res_images)

    @property
    def low_res_image_size(self) -> Tuple[int, int]:
        return self._low_res_images[0].image_size

    @property
    def num_channels(self) -> int:
        return self._low_res_images[0].num_channels

    # ---- Regularization ----

    def add_regularizer(
        self, regularizer: Regularizer, regularization_parameter: Optional[float] = None
    ) -> None:
        """Add a prior weighted by ``regularization_parameter``.

        Falls back to ``options.regularization_parameter`` when no weight
        is given.
        """
        if not isinstance(regularizer, Regularizer):
            raise TypeError(
                f"Expected a Regularizer, got {type(regularizer).__name__}"
            )
        if regularization_parameter is None:
            weight = self.options.regularization_parameter
        else:
            weight = float(regularization_parameter)
        if not (math.isfinite(weight) and weight >= 0.0):
            raise ValueError(f"regularization_parameter must be finite and >= 0, got {weight}")
        self._regularizers.append((regularizer, weight))
        logger.debug(f"Added regularizer {regularizer.regularizer_id} (lambda={weight:g})")

    @property
    def regularizers(self) -> Tuple[Tuple[Regularizer, float], ...]:
        return tuple(self._regularizers)

    @property
    def regularization_parameter_sum(self) -> float:
        return float(sum(weight for _, weight in self._regularizers))

    # ---- Helpers ----

    def compute_data_residuals(self, estimate: NumericImage) -> List[NumericImage]:
        """``A_k x - y_k`` for every observation."""
        return [
            self.image_model.apply_to_image(estimate, index).subtract(observation)
            for index, observation in enumerate(self._low_res_images)
        ]

    def _validate_estimate(self, estimate: NumericImage) -> None:
        if estimate.num_channels != self.num_channels:
            raise DimensionMismatchError(
                f"Estimate has {estimate.num_channels} channel(s), observations "
                f"have {self.num_channels}",
                details={"estimate_channels": estimate.num_channels,
                         "observation_channels": self.num_channels},
            )
        lr_size = check_size_round_trip(self.image_model, estimate.image_size)
        if tuple(lr_size) != tuple(self.low_res_image_size):
            raise DimensionMismatchError(
                f"Estimate of size {estimate.image_size} maps to {tuple(lr_size)}, "
                f"observations have size {self.low_res_image_size}",
                details={"hr_size": estimate.image_size, "lr_size": tuple(lr_size),
                         "observation_size": self.low_res_image_size},
            )

    @abstractmethod
    def solve(self, initial_estimate: NumericImage) -> NumericImage:
        """Estimate the HR image starting from ``initial_estimate``."""
