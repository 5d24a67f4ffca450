"""superres_core.image.report

Pixel range statistics for a NumericImage. Used by tests and for telemetry
about out-of-range estimates; the solver never reads it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


@dataclass
class ImageDataReport:
    """Counts of out-of-range pixels and the extrema of an image."""

    image_size: Tuple[int, int]
    num_channels: int
    num_pixels: int
    num_negative_pixels: int
    num_over_one_pixels: int
    channel_with_most_negative_pixels: int
    max_num_negative_pixels_in_one_channel: int
    channel_with_most_over_one_pixels: int
    max_num_over_one_pixels_in_one_channel: int
    smallest_pixel_value: float
    largest_pixel_value: float

    def summary(self) -> str:
        rows, cols = self.image_size
        return (
            f"ImageData [{rows}x{cols}x{self.num_channels}]: "
            f"negative={self.num_negative_pixels} "
            f"(max {self.max_num_negative_pixels_in_one_channel} "
            f"in channel {self.channel_with_most_negative_pixels}), "
            f"over_one={self.num_over_one_pixels} "
            f"(max {self.max_num_over_one_pixels_in_one_channel} "
            f"in channel {self.channel_with_most_over_one_pixels}), "
            f"range=[{self.smallest_pixel_value:.4g}, {self.largest_pixel_value:.4g}]"
        )


def build_image_data_report(
    channels: Sequence[np.ndarray], image_size: Tuple[int, int]
) -> ImageDataReport:
    """Compute an ImageDataReport from a list of equally sized channels.

    Ties on the per-channel maxima resolve to the lowest channel index.
    An image without channels reports zero counts, channel index -1 and
    NaN extrema.
    """
    rows, cols = image_size
    if len(channels) == 0:
        return ImageDataReport(
            image_size=(rows, cols),
            num_channels=0,
            num_pixels=0,
            num_negative_pixels=0,
            num_over_one_pixels=0,
            channel_with_most_negative_pixels=-1,
            max_num_negative_pixels_in_one_channel=0,
            channel_with_most_over_one_pixels=-1,
            max_num_over_one_pixels_in_one_channel=0,
            smallest_pixel_value=float("nan"),
            largest_pixel_value=float("nan"),
        )

    negative_counts = np.array([int(np.count_nonzero(c < 0.0)) for c in channels])
    over_one_counts = np.array([int(np.count_nonzero(c > 1.0)) for c in channels])

    return ImageDataReport(
        image_size=(rows, cols),
        num_channels=len(channels),
        num_pixels=rows * cols,
        num_negative_pixels=int(negative_counts.sum()),
        num_over_one_pixels=int(over_one_counts.sum()),
        channel_with_most_negative_pixels=int(np.argmax(negative_counts)),
        max_num_negative_pixels_in_one_channel=int(negative_counts.max()),
        channel_with_most_over_one_pixels=int(np.argmax(over_one_counts)),
        max_num_over_one_pixels_in_one_channel=int(over_one_counts.max()),
        smallest_pixel_value=float(min(c.min() for c in channels)),
        largest_pixel_value=float(max(c.max() for c in channels)),
    )
