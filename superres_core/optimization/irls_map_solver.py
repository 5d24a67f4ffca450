"""superres_core.optimization.irls_map_solver
===========================================

Iteratively reweighted least squares MAP solver.

Each outer iteration freezes per-residual weights at the current estimate
and solves the weighted normal equations

    sum_k A_k^T W_k A_k x + sum_i lambda_i D_i^T V_i D_i x = sum_k A_k^T W_k y_k

with conjugate gradient, warm-started at the current estimate.  ``l1``
data weights are ``1 / max(|r|, floor)``; ``l2`` weights are 1, which
turns the step into a plain regularized least-squares solve.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

import numpy as np
from pydantic import Field

from superres_core.image.image_data import NumericImage
from superres_core.image_model.image_model import ImageModel
from superres_core.optimization.conjugate_gradient import conjugate_gradient
from superres_core.optimization.map_solver import (
    MapSolver,
    MapSolverOptions,
    SolverState,
)

logger = logging.getLogger(__name__)


class IRLSMapSolverOptions(MapSolverOptions):
    """MapSolverOptions plus the outer IRLS loop controls."""

    max_num_irls_iterations: int = Field(
        20, ge=1, description="Upper bound on outer reweighting iterations."
    )
    irls_cost_difference_threshold: float = Field(
        1e-5, ge=0.0, allow_inf_nan=False,
        description="Base threshold on the change of the MAP cost between iterations.",
    )
    data_norm: Literal["l1", "l2"] = Field(
        "l1", description="Penalty on the data residuals."
    )
    irls_weight_floor: float = Field(
        1e-4, gt=0.0, allow_inf_nan=False,
        description="Lower bound on residual magnitudes when forming IRLS weights.",
    )

    @property
    def effective_irls_cost_difference_threshold(self) -> float:
        return self.irls_cost_difference_threshold * self._threshold_scale(1.0)

    def _effective_thresholds(self):
        thresholds = super()._effective_thresholds()
        thresholds["irls_cost_difference_threshold"] = (
            self.effective_irls_cost_difference_threshold
        )
        return thresholds


@dataclass
class IRLSSolveSummary:
    """Record of one IRLS solve."""

    state: SolverState
    num_irls_iterations: int
    initial_cost: float
    final_cost: float
    cost_history: List[float] = field(default_factory=list)
    cg_iterations: List[int] = field(default_factory=list)
    cg_residual_norms: List[float] = field(default_factory=list)
    gradient_norm_threshold: float = 0.0
    cost_difference_threshold: float = 0.0

    @property
    def converged(self) -> bool:
        return self.state == SolverState.converged

    def summary(self) -> str:
        return (
            f"IRLS {self.state.value} after {self.num_irls_iterations} iteration(s): "
            f"cost {self.initial_cost:.6g} -> {self.final_cost:.6g}, "
            f"CG steps {sum(self.cg_iterations)}"
        )


class IRLSMapSolver(MapSolver):
    """MAP estimation by iteratively reweighted least squares."""

    def __init__(
        self,
        options: IRLSMapSolverOptions,
        image_model: ImageModel,
        low_res_images: Sequence[NumericImage],
        print_solver_output: bool = True,
    ) -> None:
        if not isinstance(options, IRLSMapSolverOptions):
            raise TypeError(
                f"options must be an IRLSMapSolverOptions, got {type(options).__name__}"
            )
        super().__init__(options, image_model, low_res_images, print_solver_output)
        self.summary: Optional[IRLSSolveSummary] = None

    # ---- Operators on (C, H, W) arrays ----

    def _forward(self, x: np.ndarray, index: int) -> np.ndarray:
        return self.image_model.apply_to_image(NumericImage.from_array(x), index).to_array()

    def _adjoint(self, y: np.ndarray, index: int) -> np.ndarray:
        return self.image_model.apply_adjoint(NumericImage.from_array(y), index).to_array()

    # ---- Cost and weights ----

    def _data_cost(self, residual: np.ndarray) -> float:
        if self.options.data_norm == "l1":
            return float(np.sum(np.abs(residual)))
        return 0.5 * float(np.sum(residual ** 2))

    def _data_weights(self, residual: np.ndarray) -> np.ndarray:
        if self.options.data_norm == "l1":
            return 1.0 / np.maximum(np.abs(residual), self.options.irls_weight_floor)
        return np.ones_like(residual)

    def compute_cost(self, x: np.ndarray, observations: List[np.ndarray]) -> float:
        """MAP objective at ``x`` for ``(C, H, W)`` observation arrays."""
        cost = 0.0
        for index, observation in enumerate(observations):
            cost += self._data_cost(self._forward(x, index) - observation)
        for regularizer, weight in self._regularizers:
            if weight > 0.0:
                cost += weight * regularizer.cost(x)
        return cost

    # ---- Solve ----

    def solve(self, initial_estimate: NumericImage) -> NumericImage:
        """Run IRLS from ``initial_estimate`` and return the final estimate.

        ``initial_estimate`` is not modified.  Both terminal states return
        the estimate; ``self.state`` and ``self.summary`` tell them apart.
        """
        self._validate_estimate(initial_estimate)
        options = self.options
        spectral_mode = initial_estimate.spectral_mode

        x = initial_estimate.to_array()
        options.adjust_thresholds_adaptively(x.size, self.regularization_parameter_sum)
        gradient_threshold = options.effective_gradient_norm_convergence_threshold
        cost_threshold = options.effective_irls_cost_difference_threshold
        floor = options.irls_weight_floor

        observations = [image.to_array() for image in self._low_res_images]
        active_regularizers = [
            (regularizer, weight) for regularizer, weight in self._regularizers if weight > 0.0
        ]

        self.state = SolverState.initialized
        cost = self.compute_cost(x, observations)
        summary = IRLSSolveSummary(
            state=self.state,
            num_irls_iterations=0,
            initial_cost=cost,
            final_cost=cost,
            gradient_norm_threshold=gradient_threshold,
            cost_difference_threshold=cost_threshold,
        )
        if self.print_solver_output:
            logger.info(options.describe())
            logger.info(
                f"IRLS start: {self.num_observations} observation(s), "
                f"{len(active_regularizers)} regularizer(s), cost {cost:.6g}"
            )

        for iteration in range(1, options.max_num_irls_iterations + 1):
            self.state = SolverState.iterating

            data_weights = [
                self._data_weights(self._forward(x, index) - observation)
                for index, observation in enumerate(observations)
            ]
            prior_weights = [
                regularizer.irls_weights(regularizer.apply(x), floor)
                for regularizer, _ in active_regularizers
            ]

            def apply_normal(v: np.ndarray) -> np.ndarray:
                out = np.zeros_like(v)
                for index, weights in enumerate(data_weights):
                    out += self._adjoint(weights * self._forward(v, index), index)
                for (regularizer, weight), v_weights in zip(active_regularizers, prior_weights):
                    out += weight * regularizer.apply_adjoint(v_weights * regularizer.apply(v))
                return out

            rhs = np.zeros_like(x)
            for index, (weights, observation) in enumerate(zip(data_weights, observations)):
                rhs += self._adjoint(weights * observation, index)

            x, cg_steps, cg_residual = conjugate_gradient(
                apply_normal,
                rhs,
                x,
                max_iterations=options.max_num_solver_iterations,
                tolerance=gradient_threshold,
            )

            new_cost = self.compute_cost(x, observations)
            summary.num_irls_iterations = iteration
            summary.cost_history.append(new_cost)
            summary.cg_iterations.append(cg_steps)
            summary.cg_residual_norms.append(cg_residual)
            if self.print_solver_output:
                logger.info(
                    f"IRLS iteration {iteration}: cost {new_cost:.6g} "
                    f"(change {new_cost - cost:+.3e}), CG steps {cg_steps}, "
                    f"||r|| {cg_residual:.3e}"
                )

            difference = abs(cost - new_cost)
            cost = new_cost
            if difference < cost_threshold:
                self.state = SolverState.converged
                break
        else:
            self.state = SolverState.max_iterations_reached
            logger.warning(
                f"IRLS stopped after {options.max_num_irls_iterations} iteration(s) "
                f"without reaching the cost threshold {cost_threshold:.3e}"
            )

        summary.state = self.state
        summary.final_cost = cost
        self.summary = summary
        if self.print_solver_output:
            logger.info(summary.summary())

        return NumericImage.from_array(x, spectral_mode=spectral_mode)
