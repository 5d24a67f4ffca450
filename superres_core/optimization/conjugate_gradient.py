"""superres_core.optimization.conjugate_gradient
===============================================

Matrix-free conjugate gradient for symmetric positive semi-definite
normal equations ``N x = b``.
"""

from __future__ import annotations

import logging
from typing import Callable, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def conjugate_gradient(
    apply_normal: Callable[[np.ndarray], np.ndarray],
    b: np.ndarray,
    x0: np.ndarray,
    max_iterations: int = 50,
    tolerance: float = 1e-6,
) -> Tuple[np.ndarray, int, float]:
    """Conjugate gradient warm-started at ``x0``.

    Args:
        apply_normal: Callable applying the normal operator ``N``.
        b: Right-hand side, same shape as ``x0``.
        x0: Initial guess (not modified).
        max_iterations: Upper bound on CG steps.
        tolerance: Stop once ``||b - N x||`` drops below this value.

    Returns:
        Tuple of (solution, number of CG steps taken, final residual norm).
    """
    x = np.array(x0, dtype=np.float64, copy=True)
    r = b - apply_normal(x)
    p = r.copy()
    rsold = float(np.vdot(r, r))
    num_iterations = 0

    for _ in range(max_iterations):
        if np.sqrt(rsold) < tolerance:
            break

        Ap = apply_normal(p)
        pAp = float(np.vdot(p, Ap))
        if pAp <= 0.0:
            break

        alpha = rsold / pAp
        x += alpha * p
        r -= alpha * Ap
        rsnew = float(np.vdot(r, r))
        p = r + (rsnew / rsold) * p
        rsold = rsnew
        num_iterations += 1

    residual_norm = float(np.sqrt(rsold))
    logger.debug(f"CG finished after {num_iterations} step(s), ||r|| = {residual_norm:.3e}")
    return x, num_iterations, residual_norm
