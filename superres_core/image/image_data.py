"""superres_core.image.image_data
================================

NumericImage: the multi-channel image container used by the degradation
model and the solvers.

Storage
-------
* One C-contiguous ``float64`` plane per channel, all sharing
  ``(rows, cols)``.
* Pixels are addressed in row-major order within a channel.
* Inputs are always copied; two images never share channel memory.

Normalization
-------------
With ``normalize=True`` integer inputs are divided by the maximum of their
dtype (``uint8`` -> 1/255) so intensities land in [0, 1].  Floating point
inputs are assumed to be normalized already and are stored verbatim, as
is everything added with ``normalize=False``.
"""

from __future__ import annotations

import logging
import numbers
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from superres_core.errors import DimensionMismatchError
from superres_core.image.enums import InterpolationMode, SpectralMode
from superres_core.image.report import ImageDataReport, build_image_data_report

logger = logging.getLogger(__name__)

ResizeTarget = Union[float, Tuple[int, int]]

_CV2_INTERPOLATION = {
    InterpolationMode.nearest: cv2.INTER_NEAREST,
    InterpolationMode.linear: cv2.INTER_LINEAR,
    InterpolationMode.cubic: cv2.INTER_CUBIC,
    InterpolationMode.area: cv2.INTER_AREA,
}


def _as_plane(data: np.ndarray, normalize: bool) -> np.ndarray:
    """Copy ``data`` into a C-contiguous float64 plane."""
    arr = np.asarray(data)
    if normalize and np.issubdtype(arr.dtype, np.integer):
        scale = float(np.iinfo(arr.dtype).max)
        return np.array(arr, dtype=np.float64, order="C") / scale
    return np.array(arr, dtype=np.float64, order="C")


def _check_scalar(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(
            f"Expected a real scalar, got {type(value).__name__}"
        )
    return float(value)


def _additive_resize(plane: np.ndarray, rows: int, cols: int) -> np.ndarray:
    """Zero-pad upsampling or block-sum downsampling by integer factors."""
    src_rows, src_cols = plane.shape
    if rows >= src_rows and cols >= src_cols:
        if rows % src_rows or cols % src_cols:
            raise DimensionMismatchError(
                f"Additive upsampling needs integer factors: "
                f"({src_rows}, {src_cols}) -> ({rows}, {cols})"
            )
        ky, kx = rows // src_rows, cols // src_cols
        upsampled = np.zeros((rows, cols), dtype=np.float64)
        upsampled[::ky, ::kx] = plane
        return upsampled
    if rows <= src_rows and cols <= src_cols:
        if src_rows % rows or src_cols % cols:
            raise DimensionMismatchError(
                f"Additive downsampling needs integer factors: "
                f"({src_rows}, {src_cols}) -> ({rows}, {cols})"
            )
        ky, kx = src_rows // rows, src_cols // cols
        return np.ascontiguousarray(
            plane.reshape(rows, ky, cols, kx).sum(axis=(1, 3))
        )
    raise DimensionMismatchError(
        f"Additive resize cannot grow one axis and shrink the other: "
        f"({src_rows}, {src_cols}) -> ({rows}, {cols})"
    )


class NumericImage:
    """Multi-channel 2-D image with float64 samples.

    Parameters
    ----------
    image : ndarray, optional
        ``(H, W)`` single-channel or ``(H, W, C)`` interleaved image.  A
        3-channel interleaved image is interpreted as BGR.
    normalize : bool
        Scale integer inputs into [0, 1].
    spectral_mode : SpectralMode, optional
        Override the inferred channel interpretation.
    """

    def __init__(
        self,
        image: Optional[np.ndarray] = None,
        normalize: bool = True,
        spectral_mode: Optional[SpectralMode] = None,
    ) -> None:
        self._channels: List[np.ndarray] = []
        self._spectral_mode = SpectralMode.monochrome
        self._borrow_count = 0

        if image is not None:
            arr = np.asarray(image)
            if arr.ndim == 2:
                self.add_channel(arr, normalize=normalize)
            elif arr.ndim == 3:
                for channel_index in range(arr.shape[2]):
                    self.add_channel(arr[:, :, channel_index], normalize=normalize)
                if arr.shape[2] == 3:
                    self._spectral_mode = SpectralMode.color_bgr
            else:
                raise DimensionMismatchError(
                    f"Expected a 2-D or 3-D image array, got shape {arr.shape}"
                )

        if spectral_mode is not None:
            self._spectral_mode = SpectralMode(spectral_mode)

    # ---- Alternate constructors ----

    @classmethod
    def from_pixel_values(
        cls,
        values: Sequence[float],
        size: Tuple[int, int],
        num_channels: int = 1,
    ) -> "NumericImage":
        """Build an image from a flat channel-major buffer of raw values.

        Values are copied verbatim (no normalization).
        """
        flat = np.asarray(values, dtype=np.float64).ravel()
        rows, cols = size
        num_pixels = rows * cols
        if flat.size != num_pixels * num_channels:
            raise DimensionMismatchError(
                f"Expected {num_pixels * num_channels} values for "
                f"{num_channels} channel(s) of size {size}, got {flat.size}"
            )
        image = cls()
        for channel_index in range(num_channels):
            start = channel_index * num_pixels
            image.add_channel_values(flat[start:start + num_pixels], size)
        return image

    @classmethod
    def from_array(
        cls,
        stack: np.ndarray,
        spectral_mode: Optional[SpectralMode] = None,
    ) -> "NumericImage":
        """Build an image from a ``(C, H, W)`` array (copied, not normalized)."""
        arr = np.asarray(stack, dtype=np.float64)
        if arr.ndim != 3:
            raise DimensionMismatchError(
                f"Expected a (C, H, W) array, got shape {arr.shape}"
            )
        image = cls(spectral_mode=spectral_mode)
        image._channels = [
            np.array(arr[c], dtype=np.float64, order="C") for c in range(arr.shape[0])
        ]
        return image

    def copy(self) -> "NumericImage":
        """Deep copy: channel data is duplicated."""
        clone = NumericImage(spectral_mode=self._spectral_mode)
        clone._channels = [plane.copy() for plane in self._channels]
        return clone

    def to_array(self) -> np.ndarray:
        """Return a ``(C, H, W)`` copy of all channels."""
        if not self._channels:
            return np.zeros((0, 0, 0), dtype=np.float64)
        return np.stack(self._channels, axis=0)

    # ---- Properties ----

    @property
    def num_channels(self) -> int:
        return len(self._channels)

    @property
    def image_size(self) -> Tuple[int, int]:
        """``(rows, cols)``; ``(0, 0)`` for an image without channels."""
        if not self._channels:
            return (0, 0)
        rows, cols = self._channels[0].shape
        return (rows, cols)

    @property
    def num_pixels(self) -> int:
        rows, cols = self.image_size
        return rows * cols

    @property
    def spectral_mode(self) -> SpectralMode:
        return self._spectral_mode

    def __repr__(self) -> str:
        rows, cols = self.image_size
        return (
            f"NumericImage(size=({rows}, {cols}), channels={self.num_channels}, "
            f"spectral_mode={self._spectral_mode.value})"
        )

    # ---- Channels ----

    def _append_plane(self, plane: np.ndarray) -> None:
        if plane.ndim != 2:
            raise DimensionMismatchError(
                f"A channel must be 2-D, got shape {plane.shape}"
            )
        if self._channels and plane.shape != self.image_size:
            raise DimensionMismatchError(
                f"Channel of size {plane.shape} does not match image size "
                f"{self.image_size}",
                details={"expected": self.image_size, "got": plane.shape},
            )
        self._channels.append(plane)

    def add_channel(self, data: np.ndarray, normalize: bool = True) -> None:
        """Append a copy of a 2-D array as a new channel."""
        self._append_plane(_as_plane(data, normalize))

    def add_channel_values(self, values: Sequence[float], size: Tuple[int, int]) -> None:
        """Append a channel from a flat row-major buffer of raw values."""
        rows, cols = size
        flat = np.asarray(values, dtype=np.float64).ravel()
        if flat.size != rows * cols:
            raise DimensionMismatchError(
                f"Expected {rows * cols} values for size {size}, got {flat.size}"
            )
        self._append_plane(np.array(flat, dtype=np.float64).reshape(rows, cols))

    def _check_channel(self, channel: int) -> int:
        if not 0 <= channel < len(self._channels):
            raise IndexError(
                f"Channel {channel} out of range for {len(self._channels)} channel(s)"
            )
        return channel

    def get_pixel_value(self, channel: int, index: int) -> float:
        """Read one sample by row-major flat index."""
        plane = self._channels[self._check_channel(channel)]
        if not 0 <= index < plane.size:
            raise IndexError(f"Pixel index {index} out of range for {plane.size} pixels")
        return float(plane.flat[index])

    def get_channel_image(self, channel: int) -> np.ndarray:
        """Return a copy of one channel as a 2-D array."""
        return self._channels[self._check_channel(channel)].copy()

    @contextmanager
    def mutable_channel_data(self, channel: int) -> Iterator[np.ndarray]:
        """Borrow a writable flat view of one channel for the ``with`` block.

        The view has exactly ``num_pixels`` elements and writes go straight
        into the image.  It becomes read-only when the block exits.  While
        any view is borrowed, operations that replace channel storage
        (resize, color conversion) raise ``RuntimeError``.
        """
        plane = self._channels[self._check_channel(channel)]
        view = plane.reshape(-1)
        self._borrow_count += 1
        try:
            yield view
        finally:
            self._borrow_count -= 1
            view.flags.writeable = False

    def _check_not_borrowed(self, operation: str) -> None:
        if self._borrow_count:
            raise RuntimeError(
                f"Cannot {operation} while {self._borrow_count} mutable channel "
                f"view(s) are borrowed"
            )

    def map_channels(self, fn: Callable[[np.ndarray], np.ndarray]) -> "NumericImage":
        """Return a new image with ``fn`` applied to a copy of every channel."""
        result = NumericImage(spectral_mode=self._spectral_mode)
        planes = [_as_plane(fn(plane.copy()), normalize=False) for plane in self._channels]
        for plane in planes:
            result._append_plane(plane)
        return result

    # ---- Resize ----

    def _resolve_target_size(self, target: ResizeTarget) -> Tuple[int, int]:
        rows, cols = self.image_size
        if isinstance(target, (tuple, list)):
            if len(target) != 2:
                raise DimensionMismatchError(f"Target size must be (rows, cols), got {target}")
            target_rows, target_cols = int(target[0]), int(target[1])
        else:
            scale = float(target)
            if scale <= 0.0:
                raise DimensionMismatchError(f"Scale factor must be positive, got {scale}")
            target_rows = int(round(rows * scale))
            target_cols = int(round(cols * scale))
        if target_rows <= 0 or target_cols <= 0:
            raise DimensionMismatchError(
                f"Resize of ({rows}, {cols}) by {target} gives an empty image"
            )
        return target_rows, target_cols

    def resize_image(
        self,
        target: ResizeTarget,
        mode: InterpolationMode = InterpolationMode.nearest,
    ) -> None:
        """Resize every channel to ``target`` (scale factor or ``(rows, cols)``).

        All channels are resized before any is replaced, so a failure leaves
        the image untouched.
        """
        self._check_not_borrowed("resize")
        if not self._channels:
            return
        mode = InterpolationMode(mode)
        rows, cols = self._resolve_target_size(target)
        if (rows, cols) == self.image_size:
            return

        if mode == InterpolationMode.additive:
            resized = [_additive_resize(plane, rows, cols) for plane in self._channels]
        else:
            flag = _CV2_INTERPOLATION[mode]
            resized = [
                np.ascontiguousarray(
                    cv2.resize(plane, (cols, rows), interpolation=flag), dtype=np.float64
                )
                for plane in self._channels
            ]
        logger.debug(
            f"Resized {self.image_size} -> {(rows, cols)} "
            f"({mode.value}, {len(resized)} channel(s))"
        )
        self._channels = resized

    # ---- Color ----

    def change_color_space(
        self, mode: SpectralMode, luminance_only: bool = False
    ) -> None:
        """Convert between BGR and YCrCb.

        With ``luminance_only`` the result keeps only the Y channel.  This
        cannot be undone without a color reference (see
        ``interpolate_color_from``).
        """
        self._check_not_borrowed("change color space")
        mode = SpectralMode(mode)
        if luminance_only and mode != SpectralMode.color_ycrcb:
            raise ValueError("luminance_only requires a YCrCb target")

        if mode == self._spectral_mode:
            if luminance_only:
                self._channels = self._channels[:1]
            return

        if SpectralMode.monochrome in (mode, self._spectral_mode):
            raise DimensionMismatchError(
                f"Cannot convert {self._spectral_mode.value} to {mode.value}"
            )
        if self.num_channels != 3:
            raise DimensionMismatchError(
                f"Converting {self._spectral_mode.value} to {mode.value} needs 3 "
                f"channels, image has {self.num_channels}"
            )

        code = (
            cv2.COLOR_BGR2YCrCb
            if mode == SpectralMode.color_ycrcb
            else cv2.COLOR_YCrCb2BGR
        )
        interleaved = np.stack(self._channels, axis=-1).astype(np.float32)
        converted = cv2.cvtColor(interleaved, code)
        channels = [
            np.ascontiguousarray(converted[:, :, c], dtype=np.float64) for c in range(3)
        ]
        if luminance_only:
            channels = channels[:1]
        self._channels = channels
        self._spectral_mode = mode

    def interpolate_color_from(self, reference: "NumericImage") -> None:
        """Append the chroma channels of ``reference`` to this luminance image.

        The reference may have a different resolution; its chroma channels
        are resized to this image's size with linear interpolation.  A BGR
        reference is converted to YCrCb first (on a copy).
        """
        self._check_not_borrowed("interpolate color")
        if self.num_channels != 1:
            raise DimensionMismatchError(
                f"Color interpolation needs a single luminance channel, "
                f"image has {self.num_channels}"
            )
        if reference.num_channels < 3:
            raise DimensionMismatchError(
                f"Color reference needs at least 3 channels, has {reference.num_channels}"
            )

        color_reference = reference
        if reference.spectral_mode == SpectralMode.color_bgr:
            color_reference = reference.copy()
            color_reference.change_color_space(SpectralMode.color_ycrcb)
        elif reference.spectral_mode != SpectralMode.color_ycrcb:
            raise DimensionMismatchError(
                f"Color reference must be BGR or YCrCb, got "
                f"{reference.spectral_mode.value}"
            )

        rows, cols = self.image_size
        chroma = []
        for plane in color_reference._channels[1:]:
            if plane.shape == (rows, cols):
                chroma.append(plane.copy())
            else:
                chroma.append(np.ascontiguousarray(
                    cv2.resize(plane, (cols, rows), interpolation=cv2.INTER_LINEAR),
                    dtype=np.float64,
                ))
        self._channels = self._channels[:1] + chroma
        self._spectral_mode = SpectralMode.color_ycrcb

    # ---- Arithmetic ----

    def _check_same_shape(self, other: "NumericImage", operation: str) -> None:
        if not isinstance(other, NumericImage):
            raise TypeError(f"Cannot {operation} {type(other).__name__} and NumericImage")
        if other.num_channels != self.num_channels or other.image_size != self.image_size:
            raise DimensionMismatchError(
                f"Cannot {operation} images of shape "
                f"{self.image_size}x{self.num_channels} and "
                f"{other.image_size}x{other.num_channels}",
                details={
                    "left": (self.image_size, self.num_channels),
                    "right": (other.image_size, other.num_channels),
                },
            )

    def multiply_in_place(self, scalar: float) -> None:
        value = _check_scalar(scalar)
        for plane in self._channels:
            plane *= value

    def divide_in_place(self, scalar: float) -> None:
        value = _check_scalar(scalar)
        if value == 0.0:
            raise ZeroDivisionError("Cannot divide an image by zero")
        for plane in self._channels:
            plane /= value

    def add_in_place(self, other: "NumericImage") -> None:
        self._check_same_shape(other, "add")
        for plane, other_plane in zip(self._channels, other._channels):
            plane += other_plane

    def subtract_in_place(self, other: "NumericImage") -> None:
        self._check_same_shape(other, "subtract")
        for plane, other_plane in zip(self._channels, other._channels):
            plane -= other_plane

    def multiply(self, scalar: float) -> "NumericImage":
        result = self.copy()
        result.multiply_in_place(scalar)
        return result

    def divide(self, scalar: float) -> "NumericImage":
        result = self.copy()
        result.divide_in_place(scalar)
        return result

    def add(self, other: "NumericImage") -> "NumericImage":
        result = self.copy()
        result.add_in_place(other)
        return result

    def subtract(self, other: "NumericImage") -> "NumericImage":
        result = self.copy()
        result.subtract_in_place(other)
        return result

    # ---- Diagnostics ----

    def get_image_data_report(self) -> ImageDataReport:
        return build_image_data_report(self._channels, self.image_size)
