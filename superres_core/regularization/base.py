"""superres_core.regularization.base
===================================

Regularizer interface used by the MAP solvers.

A regularizer is a linear difference operator ``D`` acting on a ``(C, H, W)``
estimate plus a penalty on its output.  For IRLS the penalty is expressed
through per-residual weights ``V`` such that the gradient of the penalty at
``x`` is ``D^T (V * D x)``:

* quadratic penalty ``1/2 |r|^2``   -> ``V = 1``
* absolute penalty  ``|r|``         -> ``V = 1 / max(|r|, floor)``
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from superres_core.image_model.base import AdjointCheckReport

logger = logging.getLogger(__name__)

Offset = Tuple[int, int]


def _axis_slices(n: int, d: int) -> Tuple[slice, slice]:
    """Index ranges ``a`` and ``b = a + d`` that both lie inside ``[0, n)``."""
    if d >= 0:
        return slice(0, max(n - d, 0)), slice(min(d, n), n)
    return slice(min(-d, n), n), slice(0, max(n + d, 0))


def shift_difference(x: np.ndarray, dy: int, dx: int) -> np.ndarray:
    """``out[..., i, j] = x[..., i + dy, j + dx] - x[..., i, j]``.

    Pixels whose neighbour falls outside the image get 0.
    """
    rows, cols = x.shape[-2:]
    ra, rb = _axis_slices(rows, dy)
    ca, cb = _axis_slices(cols, dx)
    out = np.zeros_like(x, dtype=np.float64)
    out[..., ra, ca] = x[..., rb, cb] - x[..., ra, ca]
    return out


def shift_difference_adjoint(r: np.ndarray, dy: int, dx: int) -> np.ndarray:
    """Exact transpose of :func:`shift_difference`."""
    rows, cols = r.shape[-2:]
    ra, rb = _axis_slices(rows, dy)
    ca, cb = _axis_slices(cols, dx)
    out = np.zeros_like(r, dtype=np.float64)
    out[..., rb, cb] += r[..., ra, ca]
    out[..., ra, ca] -= r[..., ra, ca]
    return out


class Regularizer:
    """Base class for shift-difference priors.

    Subclasses set ``regularizer_id``, build ``self.offsets`` and implement
    ``cost_from_residuals`` and ``irls_weights``.
    """

    regularizer_id: str = "base"

    def __init__(self, offsets: Sequence[Offset]) -> None:
        self.offsets: List[Offset] = [(int(dy), int(dx)) for dy, dx in offsets]

    # ---- Operator ----

    def apply(self, x: np.ndarray) -> np.ndarray:
        """Residual components ``D x`` with shape ``(K, C, H, W)``."""
        x = np.asarray(x, dtype=np.float64)
        return np.stack([shift_difference(x, dy, dx) for dy, dx in self.offsets], axis=0)

    def apply_adjoint(self, residuals: np.ndarray) -> np.ndarray:
        """``D^T r`` for residual components of shape ``(K, C, H, W)``."""
        out = np.zeros(residuals.shape[1:], dtype=np.float64)
        for k, (dy, dx) in enumerate(self.offsets):
            out += shift_difference_adjoint(residuals[k], dy, dx)
        return out

    # ---- Penalty ----

    def cost_from_residuals(self, residuals: np.ndarray) -> float:
        raise NotImplementedError("Subclass must implement cost_from_residuals()")

    def irls_weights(self, residuals: np.ndarray, floor: float) -> np.ndarray:
        raise NotImplementedError("Subclass must implement irls_weights()")

    def cost(self, x: np.ndarray) -> float:
        return self.cost_from_residuals(self.apply(x))

    # ---- Introspection ----

    def params(self) -> Dict[str, Any]:
        return {}

    def serialize(self) -> Dict[str, Any]:
        return {"regularizer_id": self.regularizer_id, "params": self.params()}

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.params().items())
        return f"{type(self).__name__}({args})"

    def check_adjoint(
        self,
        shape: Tuple[int, int, int],
        n_trials: int = 3,
        tol: float = 1e-10,
        seed: int = 0,
    ) -> AdjointCheckReport:
        """Verify <Dx, r> == <x, D^T r> for random ``(C, H, W)`` inputs."""
        rng = np.random.default_rng(seed)
        details: List[Dict[str, float]] = []
        for trial in range(n_trials):
            x = rng.standard_normal(shape)
            r = rng.standard_normal((len(self.offsets),) + tuple(shape))
            inner_Dx_r = float(np.sum(self.apply(x) * r))
            inner_x_DTr = float(np.sum(x * self.apply_adjoint(r)))
            denom = max(abs(inner_Dx_r), abs(inner_x_DTr), 1e-30)
            details.append({
                "trial": trial,
                "inner_Dx_r": inner_Dx_r,
                "inner_x_DTr": inner_x_DTr,
                "rel_err": abs(inner_Dx_r - inner_x_DTr) / denom,
            })
        errors = [d["rel_err"] for d in details]
        max_err = max(errors) if errors else 0.0
        report = AdjointCheckReport(
            passed=max_err < tol,
            n_trials=n_trials,
            max_relative_error=max_err,
            mean_relative_error=float(np.mean(errors)) if errors else 0.0,
            tolerance=tol,
            details=details,
        )
        if not report.passed:
            logger.warning(
                f"Adjoint check FAILED for {self.regularizer_id}: {report.summary()}"
            )
        return report
