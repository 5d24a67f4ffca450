"""superres_core.image_model.base
================================

DegradationStage protocol, BaseStage convenience class and the adjoint
self-test shared by stages and whole image models.

Contract
--------
Every stage maps an HR-side NumericImage to an LR-side NumericImage with
``forward(image, index)`` and provides the exact transpose with
``adjoint(image, index)``:

    <A x, y> == <x, A^T y>   for all x, y and every observation index.

The solvers only ever see a stage through this pair, so an inexact adjoint
silently biases every gradient.  ``check_adjoint()`` verifies the identity
with random images.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Protocol, Tuple, runtime_checkable

import numpy as np

from superres_core.errors import DimensionMismatchError
from superres_core.image.image_data import NumericImage

logger = logging.getLogger(__name__)

ImageSize = Tuple[int, int]


# ---------------------------------------------------------------------------
# AdjointCheckReport
# ---------------------------------------------------------------------------


@dataclass
class AdjointCheckReport:
    """Result of check_adjoint() self-test."""

    passed: bool
    n_trials: int
    max_relative_error: float
    mean_relative_error: float
    tolerance: float
    details: List[Dict[str, float]]

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return (
            f"AdjointCheck [{status}]: max_rel_err={self.max_relative_error:.2e}, "
            f"tol={self.tolerance:.2e}, trials={self.n_trials}"
        )


def run_adjoint_check(
    name: str,
    forward: Callable[[NumericImage], NumericImage],
    adjoint: Callable[[NumericImage], NumericImage],
    x_size: ImageSize,
    y_size: ImageSize,
    num_channels: int = 1,
    n_trials: int = 3,
    tol: float = 1e-6,
    seed: int = 0,
) -> AdjointCheckReport:
    """Verify <Ax, y> == <x, A^T y> for random images."""
    rng = np.random.default_rng(seed)
    details: List[Dict[str, float]] = []
    max_err = 0.0

    for trial in range(n_trials):
        x = rng.standard_normal((num_channels,) + tuple(x_size))
        y = rng.standard_normal((num_channels,) + tuple(y_size))

        Ax = forward(NumericImage.from_array(x)).to_array()
        ATy = adjoint(NumericImage.from_array(y)).to_array()

        inner_Ax_y = float(np.sum(Ax.ravel() * y.ravel()))
        inner_x_ATy = float(np.sum(x.ravel() * ATy.ravel()))

        denom = max(abs(inner_Ax_y), abs(inner_x_ATy), 1e-30)
        rel_err = abs(inner_Ax_y - inner_x_ATy) / denom
        max_err = max(max_err, rel_err)

        details.append({
            "trial": trial,
            "inner_Ax_y": inner_Ax_y,
            "inner_x_ATy": inner_x_ATy,
            "rel_err": rel_err,
        })

    mean_err = float(np.mean([d["rel_err"] for d in details])) if details else 0.0

    report = AdjointCheckReport(
        passed=max_err < tol,
        n_trials=n_trials,
        max_relative_error=max_err,
        mean_relative_error=mean_err,
        tolerance=tol,
        details=details,
    )

    if not report.passed:
        logger.warning(f"Adjoint check FAILED for {name}: {report.summary()}")
    else:
        logger.debug(f"Adjoint check passed for {name}")

    return report


def check_size_round_trip(operator: Any, image_size: ImageSize) -> ImageSize:
    """Return the LR size of ``image_size`` if the adjoint maps back onto it.

    Raises DimensionMismatchError when ``input_size(output_size(s)) != s``,
    e.g. an HR size that is not a multiple of an integer downsampling scale.
    """
    lr_size = operator.output_size(image_size)
    hr_size = operator.input_size(lr_size)
    if tuple(hr_size) != tuple(image_size):
        raise DimensionMismatchError(
            f"HR size {tuple(image_size)} maps to LR size {tuple(lr_size)}, whose "
            f"adjoint has size {tuple(hr_size)}",
            details={"hr_size": tuple(image_size), "lr_size": tuple(lr_size)},
        )
    return lr_size


# ---------------------------------------------------------------------------
# Protocol (structural typing)
# ---------------------------------------------------------------------------


@runtime_checkable
class DegradationStage(Protocol):
    """Structural interface for every degradation stage."""

    stage_id: str

    @property
    def scale_factor(self) -> float:
        ...

    def forward(self, image: NumericImage, index: int) -> NumericImage:
        ...

    def adjoint(self, image: NumericImage, index: int) -> NumericImage:
        ...

    def output_size(self, image_size: ImageSize) -> ImageSize:
        ...

    def input_size(self, image_size: ImageSize) -> ImageSize:
        ...

    def serialize(self) -> Dict[str, Any]:
        ...


# ---------------------------------------------------------------------------
# BaseStage (convenience, not mandatory)
# ---------------------------------------------------------------------------


class BaseStage:
    """Convenience base for stages with sensible defaults.

    Subclasses validate their parameters in ``__init__`` and implement
    ``forward()`` and ``adjoint()``.  Neither may modify its input image.
    """

    stage_id: str = "base"

    @property
    def scale_factor(self) -> float:
        return 1.0

    def forward(self, image: NumericImage, index: int) -> NumericImage:
        raise NotImplementedError("Subclass must implement forward()")

    def adjoint(self, image: NumericImage, index: int) -> NumericImage:
        raise NotImplementedError("Subclass must implement adjoint()")

    def output_size(self, image_size: ImageSize) -> ImageSize:
        rows, cols = image_size
        return (rows, cols)

    def input_size(self, image_size: ImageSize) -> ImageSize:
        """HR size that the adjoint produces from an LR image of ``image_size``."""
        rows, cols = image_size
        return (rows, cols)

    def params(self) -> Dict[str, Any]:
        return {}

    def serialize(self) -> Dict[str, Any]:
        return {"stage_id": self.stage_id, "params": self.params()}

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.params().items())
        return f"{type(self).__name__}({args})"

    def check_adjoint(
        self,
        image_size: ImageSize,
        num_channels: int = 1,
        index: int = 0,
        n_trials: int = 3,
        tol: float = 1e-6,
        seed: int = 0,
    ) -> AdjointCheckReport:
        """Built-in adjoint consistency test for one observation index."""
        check_size_round_trip(self, image_size)
        return run_adjoint_check(
            self.stage_id,
            lambda image: self.forward(image, index),
            lambda image: self.adjoint(image, index),
            x_size=image_size,
            y_size=self.output_size(image_size),
            num_channels=num_channels,
            n_trials=n_trials,
            tol=tol,
            seed=seed,
        )
