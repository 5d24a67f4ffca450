"""superres_core.regularization.regularizers
===========================================

Concrete priors and the REGULARIZER_REGISTRY.

total_variation            isotropic TV, sum of gradient magnitudes
bilateral_total_variation  sum over a (2P+1)-window of alpha^(|dy|+|dx|)
                           weighted absolute shift differences
tikhonov                   half the squared gradient norm
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import numpy as np

from superres_core.errors import ConfigurationError
from superres_core.regularization.base import Offset, Regularizer

_GRADIENT_OFFSETS = [(0, 1), (1, 0)]


class TotalVariationRegularizer(Regularizer):
    """Isotropic total variation: sum_p sqrt(gx_p^2 + gy_p^2)."""

    regularizer_id = "total_variation"

    def __init__(self) -> None:
        super().__init__(_GRADIENT_OFFSETS)

    def cost_from_residuals(self, residuals: np.ndarray) -> float:
        return float(np.sum(np.sqrt(np.sum(residuals ** 2, axis=0))))

    def irls_weights(self, residuals: np.ndarray, floor: float) -> np.ndarray:
        magnitude = np.sqrt(np.sum(residuals ** 2, axis=0))
        weights = 1.0 / np.maximum(magnitude, floor)
        return np.broadcast_to(weights, residuals.shape).copy()


class BilateralTotalVariationRegularizer(Regularizer):
    """Bilateral TV over a window of radius ``radius`` with decay ``alpha``.

    Each neighbour offset is counted once (half-plane), so the penalty of
    an offset and its mirror is not doubled.
    """

    regularizer_id = "bilateral_total_variation"

    def __init__(self, radius: int = 2, alpha: float = 0.7) -> None:
        radius = int(radius)
        alpha = float(alpha)
        if radius < 1:
            raise ValueError(f"BTV radius must be >= 1, got {radius}")
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"BTV alpha must be in (0, 1], got {alpha}")
        offsets: List[Offset] = [
            (dy, dx)
            for dy in range(0, radius + 1)
            for dx in range(-radius, radius + 1)
            if dy > 0 or dx > 0
        ]
        super().__init__(offsets)
        self.radius = radius
        self.alpha = alpha
        self._decay = np.array(
            [alpha ** (abs(dy) + abs(dx)) for dy, dx in offsets], dtype=np.float64
        ).reshape(-1, 1, 1, 1)

    def params(self) -> Dict[str, Any]:
        return {"radius": self.radius, "alpha": self.alpha}

    def cost_from_residuals(self, residuals: np.ndarray) -> float:
        return float(np.sum(self._decay * np.abs(residuals)))

    def irls_weights(self, residuals: np.ndarray, floor: float) -> np.ndarray:
        return self._decay / np.maximum(np.abs(residuals), floor)


class TikhonovRegularizer(Regularizer):
    """Quadratic smoothness prior: 1/2 * sum_p (gx_p^2 + gy_p^2)."""

    regularizer_id = "tikhonov"

    def __init__(self) -> None:
        super().__init__(_GRADIENT_OFFSETS)

    def cost_from_residuals(self, residuals: np.ndarray) -> float:
        return 0.5 * float(np.sum(residuals ** 2))

    def irls_weights(self, residuals: np.ndarray, floor: float) -> np.ndarray:
        return np.ones_like(residuals)


# =========================================================================
# Registry
# =========================================================================

_ALL_REGULARIZERS = [
    TotalVariationRegularizer,
    BilateralTotalVariationRegularizer,
    TikhonovRegularizer,
]

REGULARIZER_REGISTRY: Dict[str, type] = {
    cls.regularizer_id: cls for cls in _ALL_REGULARIZERS
}


def get_regularizer(
    regularizer_id: str, params: Optional[Dict[str, Any]] = None
) -> Regularizer:
    """Look up a regularizer by ID and instantiate it with the given params."""
    if regularizer_id not in REGULARIZER_REGISTRY:
        raise ConfigurationError(
            f"Unknown regularizer_id '{regularizer_id}'. "
            f"Available: {sorted(REGULARIZER_REGISTRY.keys())}"
        )
    cls = REGULARIZER_REGISTRY[regularizer_id]
    try:
        return cls(**(params or {}))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid params for regularizer '{regularizer_id}': {exc}"
        ) from exc
