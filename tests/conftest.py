"""Shared pytest fixtures for superres_core tests."""

from __future__ import annotations

import numpy as np
import pytest

from superres_core.image.image_data import NumericImage

# 4x4 BGR test channels.
TEST_CHANNEL_B = np.array([
    [0.1, 0.2, 0.3, 0.4],
    [0.15, 0.25, 0.35, 0.45],
    [0.55, 0.75, 0.85, 0.95],
    [0.6, 0.65, 0.7, 0.75],
])
TEST_CHANNEL_G = np.array([
    [0.2, 0.3, 0.4, 0.45],
    [0.1, 0.2, 0.3, 0.4],
    [0.75, 0.65, 1.0, 1.0],
    [0.3, 0.35, 0.4, 0.45],
])
TEST_CHANNEL_R = np.array([
    [0.0, 0.05, 0.1, 0.1],
    [0.0, 0.0, 0.05, 0.1],
    [0.25, 0.1, 0.2, 0.2],
    [0.0, 0.05, 0.1, 0.15],
])


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def bgr_array() -> np.ndarray:
    """4x4x3 interleaved BGR image."""
    return np.stack([TEST_CHANNEL_B, TEST_CHANNEL_G, TEST_CHANNEL_R], axis=-1)


@pytest.fixture
def bgr_image(bgr_array: np.ndarray) -> NumericImage:
    return NumericImage(bgr_array, normalize=False)


@pytest.fixture
def smooth_hr_image() -> NumericImage:
    """16x16 single-channel smooth test scene."""
    rows, cols = np.mgrid[0:16, 0:16]
    scene = 0.5 + 0.3 * np.sin(rows / 3.0) * np.cos(cols / 4.0)
    return NumericImage(scene)


@pytest.fixture
def random_hr_image(rng: np.random.Generator) -> NumericImage:
    """12x12 two-channel random image."""
    return NumericImage.from_array(rng.random((2, 12, 12)))
