"""Regularization priors for the MAP objective."""

from superres_core.regularization.base import Regularizer
from superres_core.regularization.regularizers import (
    REGULARIZER_REGISTRY,
    BilateralTotalVariationRegularizer,
    TikhonovRegularizer,
    TotalVariationRegularizer,
    get_regularizer,
)

__all__ = [
    "Regularizer",
    "REGULARIZER_REGISTRY",
    "BilateralTotalVariationRegularizer",
    "TikhonovRegularizer",
    "TotalVariationRegularizer",
    "get_regularizer",
]
