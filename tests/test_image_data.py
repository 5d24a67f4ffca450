"""test_image_data.py

NumericImage container behavior.

Tests
-----
* Channels are copied on insert and addressed in row-major order.
* Scoped mutable views write through to the image.
* Resizing (nearest, additive) matches known 4x4 results.
* BGR <-> YCrCb conversion and color interpolation match OpenCV.
* Arithmetic, shape checks and the data report.
"""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from superres_core.errors import DimensionMismatchError
from superres_core.image import InterpolationMode, NumericImage, SpectralMode

PIXEL_TOLERANCE = 1.0 / 255.0

RESIZE_PIXELS = np.array([
    [0.1, 0.2, 0.3, 0.4],
    [0.5, 0.6, 0.7, 0.8],
    [0.9, 1.0, 0.0, 0.2],
    [0.4, 0.6, 0.8, 1.0],
])


def _ycrcb(bgr_array: np.ndarray) -> np.ndarray:
    converted = cv2.cvtColor(bgr_array.astype(np.float32), cv2.COLOR_BGR2YCrCb)
    return converted.astype(np.float64)


class TestChannels:
    """Adding and reading channels."""

    def test_empty_image(self) -> None:
        image = NumericImage()
        assert image.num_channels == 0
        assert image.image_size == (0, 0)
        assert image.num_pixels == 0
        assert image.to_array().shape == (0, 0, 0)

    def test_add_normalized_uint8_channel(self) -> None:
        channel = np.array([
            [0.1, 0.2, 0.3, 0.4, 0.5],
            [0.15, 0.25, 0.35, 0.45, 0.55],
            [0.6, 0.65, 0.7, 0.75, 0.8],
        ])
        converted = np.round(channel * 255).astype(np.uint8)
        converted_before = converted.copy()

        image = NumericImage()
        image.add_channel(converted)
        assert image.num_channels == 1
        assert image.image_size == (3, 5)
        assert image.num_pixels == 15
        assert abs(image.get_pixel_value(0, 0) - 0.1) < PIXEL_TOLERANCE
        assert abs(image.get_pixel_value(0, 8) - 0.45) < PIXEL_TOLERANCE
        assert abs(image.get_pixel_value(0, 11) - 0.65) < PIXEL_TOLERANCE

        # Float input is already normalized.
        image_2 = NumericImage(channel)
        np.testing.assert_allclose(
            image.get_channel_image(0), image_2.get_channel_image(0), atol=PIXEL_TOLERANCE
        )
        np.testing.assert_array_equal(converted, converted_before)

    def test_mutable_channel_data_writes_through(self) -> None:
        image = NumericImage(np.full((3, 5), 0.5))
        with image.mutable_channel_data(0) as pixels:
            assert pixels.shape == (15,)
            pixels[:] = 0.33
        for i in range(15):
            assert image.get_pixel_value(0, i) == pytest.approx(0.33)
        np.testing.assert_allclose(image.get_channel_image(0), np.full((3, 5), 0.33))

    def test_mutable_view_is_released_after_block(self) -> None:
        image = NumericImage(np.zeros((2, 2)))
        with image.mutable_channel_data(0) as pixels:
            pixels[0] = 1.0
        with pytest.raises(ValueError):
            pixels[1] = 2.0
        assert image.get_pixel_value(0, 1) == 0.0

    def test_storage_is_kept_while_view_is_borrowed(self, bgr_image: NumericImage) -> None:
        image = NumericImage(np.zeros((2, 2)))
        with image.mutable_channel_data(0) as pixels:
            with pytest.raises(RuntimeError):
                image.resize_image(2)
            pixels[0] = 9.0
        assert image.image_size == (2, 2)
        assert image.get_pixel_value(0, 0) == 9.0

        # Released views no longer block resizing.
        image.resize_image(2)
        assert image.image_size == (4, 4)

        with bgr_image.mutable_channel_data(1):
            with pytest.raises(RuntimeError):
                bgr_image.change_color_space(SpectralMode.color_ycrcb)
        assert bgr_image.spectral_mode == SpectralMode.color_bgr

        luminance = NumericImage(np.zeros((4, 4)))
        with luminance.mutable_channel_data(0):
            with pytest.raises(RuntimeError):
                luminance.interpolate_color_from(bgr_image)
        assert luminance.num_channels == 1

    def test_many_channels(self) -> None:
        image = NumericImage()
        for i in range(11):
            image.add_channel(np.full((3, 5), 1.0 / (i + 1)))
        assert image.num_channels == 11
        assert image.image_size == (3, 5)

    def test_add_channel_values(self) -> None:
        values = [
            0.1, 0.2, 0.3, 0.4, 0.5,
            0.15, 0.25, 0.35, 0.45, 0.55,
            0.55, 0.75, 0.85, 0.95, 1.05,
            -0.3, 0.6, 0.65, 0.7, 0.75,
        ]
        expected = np.array(values).reshape(4, 5)

        image_1 = NumericImage()
        image_1.add_channel_values(values, (4, 5))
        assert image_1.num_channels == 1
        assert image_1.image_size == (4, 5)
        np.testing.assert_array_equal(image_1.get_channel_image(0), expected)

        image_2 = NumericImage(expected, normalize=False)
        image_2.add_channel_values(values, (4, 5))
        assert image_2.num_channels == 2
        np.testing.assert_array_equal(image_2.get_channel_image(1), expected)

    def test_mismatched_channel_rejected(self) -> None:
        image = NumericImage(np.zeros((3, 3)))
        with pytest.raises(DimensionMismatchError):
            image.add_channel(np.zeros((3, 4)))
        with pytest.raises(DimensionMismatchError):
            image.add_channel(np.zeros(9))
        with pytest.raises(DimensionMismatchError):
            image.add_channel_values([0.0] * 8, (3, 3))

    def test_out_of_range_access(self) -> None:
        image = NumericImage(np.zeros((2, 2)))
        with pytest.raises(IndexError):
            image.get_pixel_value(1, 0)
        with pytest.raises(IndexError):
            image.get_pixel_value(0, 4)
        with pytest.raises(IndexError):
            with image.mutable_channel_data(3):
                pass


class TestConstructors:
    """Alternate constructors and copying."""

    def test_from_pixel_values_copies(self) -> None:
        values = np.array([1.0, 0.5, 0.9, 100, 0, -50, -0.1, 0.0, 1])
        image = NumericImage.from_pixel_values(values, (3, 3))
        assert image.num_channels == 1
        for i in range(9):
            assert image.get_pixel_value(0, i) == values[i]

        with image.mutable_channel_data(0) as pixels:
            pixels[0] = 0.0
            pixels[3] = 1.0
        assert values[0] == 1.0
        assert values[3] == 100

    def test_from_pixel_values_multichannel(self) -> None:
        values = np.concatenate([
            [1.0, 0.5, 0.9, 100, 0, -50, -0.1, 0.0, 1],
            np.arange(10, 100, 10, dtype=np.float64),
            np.arange(1, 10, dtype=np.float64),
            np.arange(1, 10) / 10.0,
        ])
        image = NumericImage.from_pixel_values(values, (3, 3), num_channels=4)
        assert image.num_channels == 4
        for channel in range(4):
            for pixel in range(9):
                assert image.get_pixel_value(channel, pixel) == values[channel * 9 + pixel]

        with image.mutable_channel_data(1) as pixels:
            pixels[5] = -500
        assert values[9 + 5] == 60

    def test_from_pixel_values_wrong_length(self) -> None:
        with pytest.raises(DimensionMismatchError):
            NumericImage.from_pixel_values([0.0] * 10, (3, 3), num_channels=1)

    def test_not_normalized_keeps_values(self) -> None:
        data = np.array([[0.5, 1.5, 100], [-25, 0.0, -30], [55, 1.98, 1000]])
        image = NumericImage(data, normalize=False)
        for i in range(9):
            assert image.get_pixel_value(0, i) == data.flat[i]

    def test_interleaved_three_channels_is_bgr(self, bgr_array: np.ndarray) -> None:
        image = NumericImage(bgr_array)
        assert image.num_channels == 3
        assert image.spectral_mode == SpectralMode.color_bgr
        np.testing.assert_array_equal(image.get_channel_image(2), bgr_array[:, :, 2])

    def test_copy_is_independent(self) -> None:
        image = NumericImage()
        for i in range(10):
            image.add_channel(np.full((25, 25), 5 * i, dtype=np.uint8))
        clone = image.copy()
        assert clone.num_channels == 10
        assert clone.image_size == (25, 25)
        np.testing.assert_array_equal(clone.to_array(), image.to_array())

        clone.multiply_in_place(2.0)
        assert image.get_pixel_value(1, 0) == pytest.approx(5 / 255)
        assert clone.get_pixel_value(1, 0) == pytest.approx(10 / 255)

    def test_array_round_trip(self, rng: np.random.Generator) -> None:
        stack = rng.random((3, 4, 5))
        image = NumericImage.from_array(stack)
        np.testing.assert_array_equal(image.to_array(), stack)
        stack[0, 0, 0] = -1.0
        assert image.get_pixel_value(0, 0) != -1.0


class TestResize:
    """Resizing with nearest and additive interpolation."""

    @pytest.fixture
    def image(self) -> NumericImage:
        image = NumericImage()
        for _ in range(10):
            image.add_channel(RESIZE_PIXELS, normalize=False)
        return image

    @pytest.mark.parametrize("target", [(2, 2), 0.5])
    def test_nearest_downsample(self, image: NumericImage, target) -> None:
        expected = np.array([[0.1, 0.3], [0.9, 0.0]])
        image.resize_image(target, InterpolationMode.nearest)
        assert image.image_size == (2, 2)
        for channel in range(10):
            np.testing.assert_array_equal(image.get_channel_image(channel), expected)

    @pytest.mark.parametrize("target", [(8, 8), 2.0])
    def test_nearest_upsample(self, image: NumericImage, target) -> None:
        expected = np.repeat(np.repeat(RESIZE_PIXELS, 2, axis=0), 2, axis=1)
        image.resize_image(target, InterpolationMode.nearest)
        for channel in range(10):
            np.testing.assert_array_equal(image.get_channel_image(channel), expected)

    def test_additive_upsample_zero_pads(self) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        image.resize_image(2, InterpolationMode.additive)
        expected = np.zeros((8, 8))
        expected[::2, ::2] = RESIZE_PIXELS
        np.testing.assert_array_equal(image.get_channel_image(0), expected)

    def test_additive_downsample_sums_blocks(self) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        image.resize_image(0.5, InterpolationMode.additive)
        expected = np.array([
            [0.1 + 0.2 + 0.5 + 0.6, 0.3 + 0.4 + 0.7 + 0.8],
            [0.9 + 1.0 + 0.4 + 0.6, 0.0 + 0.2 + 0.8 + 1.0],
        ])
        np.testing.assert_allclose(image.get_channel_image(0), expected)

    def test_nearest_up_then_additive_down(self) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        image.resize_image(2, InterpolationMode.nearest)
        image.resize_image(0.5, InterpolationMode.additive)
        np.testing.assert_allclose(image.get_channel_image(0), 4 * RESIZE_PIXELS)

    def test_additive_non_integer_rejected(self) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        with pytest.raises(DimensionMismatchError):
            image.resize_image((6, 6), InterpolationMode.additive)
        np.testing.assert_array_equal(image.get_channel_image(0), RESIZE_PIXELS)

    @pytest.mark.parametrize("target", [0, -1.0, (0, 4), (4, -2), 0.01])
    def test_invalid_targets(self, target) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        with pytest.raises(DimensionMismatchError):
            image.resize_image(target)

    def test_area_matches_opencv(self) -> None:
        image = NumericImage(RESIZE_PIXELS, normalize=False)
        image.resize_image((2, 2), InterpolationMode.area)
        expected = cv2.resize(RESIZE_PIXELS, (2, 2), interpolation=cv2.INTER_AREA)
        np.testing.assert_allclose(image.get_channel_image(0), expected)


class TestColor:
    """BGR <-> YCrCb conversion and color interpolation."""

    def test_bgr_to_ycrcb_and_back(self, bgr_image: NumericImage, bgr_array: np.ndarray) -> None:
        expected = _ycrcb(bgr_array)
        bgr_image.change_color_space(SpectralMode.color_ycrcb)
        assert bgr_image.num_channels == 3
        assert bgr_image.spectral_mode == SpectralMode.color_ycrcb
        for channel in range(3):
            np.testing.assert_allclose(
                bgr_image.get_channel_image(channel), expected[:, :, channel],
                atol=PIXEL_TOLERANCE,
            )

        bgr_image.change_color_space(SpectralMode.color_bgr)
        for channel in range(3):
            np.testing.assert_allclose(
                bgr_image.get_channel_image(channel), bgr_array[:, :, channel],
                atol=PIXEL_TOLERANCE,
            )

    def test_resize_after_conversion(self, bgr_image: NumericImage, bgr_array: np.ndarray) -> None:
        bgr_image.change_color_space(SpectralMode.color_ycrcb)
        bgr_image.resize_image(2, InterpolationMode.nearest)
        assert bgr_image.image_size == (8, 8)
        expected = cv2.resize(_ycrcb(bgr_array), (8, 8), interpolation=cv2.INTER_NEAREST)
        for channel in range(3):
            np.testing.assert_allclose(
                bgr_image.get_channel_image(channel), expected[:, :, channel],
                atol=PIXEL_TOLERANCE,
            )

    def test_luminance_only(self, bgr_image: NumericImage, bgr_array: np.ndarray) -> None:
        bgr_image.change_color_space(SpectralMode.color_ycrcb, luminance_only=True)
        assert bgr_image.num_channels == 1
        np.testing.assert_allclose(
            bgr_image.get_channel_image(0), _ycrcb(bgr_array)[:, :, 0], atol=PIXEL_TOLERANCE
        )
        with pytest.raises(DimensionMismatchError):
            bgr_image.change_color_space(SpectralMode.color_bgr)

    def test_monochrome_cannot_convert(self) -> None:
        image = NumericImage(np.zeros((2, 2)))
        with pytest.raises(DimensionMismatchError):
            image.change_color_space(SpectralMode.color_ycrcb)
        image.change_color_space(SpectralMode.monochrome)
        assert image.num_channels == 1

    def test_interpolate_color_same_size(self, bgr_array: np.ndarray) -> None:
        converted = _ycrcb(bgr_array)
        luminance = NumericImage(converted[:, :, 0], normalize=False)
        reference = NumericImage(bgr_array, normalize=False)
        reference.change_color_space(SpectralMode.color_ycrcb)

        luminance.interpolate_color_from(reference)
        assert luminance.num_channels == 3
        assert luminance.spectral_mode == SpectralMode.color_ycrcb
        for channel in range(3):
            np.testing.assert_allclose(
                luminance.get_channel_image(channel), converted[:, :, channel],
                atol=PIXEL_TOLERANCE,
            )

    def test_interpolate_color_upsampled(self, bgr_array: np.ndarray) -> None:
        converted = _ycrcb(bgr_array)
        luminance = NumericImage(converted[:, :, 0], normalize=False)
        luminance.resize_image(2, InterpolationMode.linear)
        expected = cv2.resize(converted, (8, 8), interpolation=cv2.INTER_LINEAR)
        np.testing.assert_allclose(
            luminance.get_channel_image(0), expected[:, :, 0], atol=PIXEL_TOLERANCE
        )

        # BGR reference is converted on a copy.
        reference = NumericImage(bgr_array, normalize=False)
        luminance.interpolate_color_from(reference)
        assert reference.spectral_mode == SpectralMode.color_bgr
        for channel in range(3):
            np.testing.assert_allclose(
                luminance.get_channel_image(channel), expected[:, :, channel],
                atol=PIXEL_TOLERANCE,
            )

    def test_interpolate_color_requirements(self, bgr_image: NumericImage) -> None:
        with pytest.raises(DimensionMismatchError):
            bgr_image.copy().interpolate_color_from(bgr_image)
        luminance = NumericImage(np.zeros((4, 4)))
        with pytest.raises(DimensionMismatchError):
            luminance.interpolate_color_from(NumericImage(np.zeros((4, 4))))


class TestArithmetic:
    """Scalar and image arithmetic."""

    def test_multiply_divide_add(self, bgr_image: NumericImage) -> None:
        tripled = bgr_image.copy()
        tripled.multiply_in_place(3.0)
        assert tripled.get_pixel_value(0, 0) == pytest.approx(0.3)
        assert tripled.get_pixel_value(1, 1) == pytest.approx(0.9)
        assert tripled.get_pixel_value(2, 2) == pytest.approx(0.3)

        negated = bgr_image.multiply(-2.0)
        assert negated.get_pixel_value(0, 4) == pytest.approx(-0.3)
        assert negated.get_pixel_value(1, 4) == pytest.approx(-0.2)
        assert negated.get_pixel_value(2, 15) == pytest.approx(-0.3)

        halved = bgr_image.divide(2.0)
        assert halved.get_pixel_value(0, 5) == pytest.approx(0.125)
        assert halved.get_pixel_value(1, 7) == pytest.approx(0.2)
        assert halved.get_pixel_value(2, 4) == pytest.approx(0.0)

        total = tripled.add(halved)
        assert total.get_pixel_value(0, 0) == pytest.approx(0.35)
        assert total.get_pixel_value(1, 1) == pytest.approx(1.05)
        assert total.get_pixel_value(2, 2) == pytest.approx(0.35)

        # Pure operations leave the source untouched.
        assert bgr_image.get_pixel_value(0, 0) == pytest.approx(0.1)

    @pytest.mark.parametrize("scalar", [3.7, -2.5, 0.01, 1e3, -1.0])
    def test_multiply_then_divide_is_identity(
        self, rng: np.random.Generator, scalar: float
    ) -> None:
        image = NumericImage.from_array(rng.standard_normal((2, 5, 5)))
        restored = image.multiply(scalar).divide(scalar)
        np.testing.assert_allclose(restored.to_array(), image.to_array(), rtol=1e-12, atol=1e-15)

    def test_addition_commutes(self, rng: np.random.Generator) -> None:
        a = NumericImage.from_array(rng.standard_normal((3, 6, 4)))
        b = NumericImage.from_array(rng.random((3, 6, 4)) * 10.0)
        np.testing.assert_array_equal(a.add(b).to_array(), b.add(a).to_array())

    def test_subtract(self, bgr_image: NumericImage) -> None:
        difference = bgr_image.subtract(bgr_image)
        np.testing.assert_array_equal(difference.to_array(), np.zeros((3, 4, 4)))

    def test_shape_mismatch(self, bgr_image: NumericImage) -> None:
        with pytest.raises(DimensionMismatchError):
            bgr_image.add(NumericImage(np.zeros((4, 4))))
        with pytest.raises(DimensionMismatchError):
            bgr_image.subtract_in_place(NumericImage(np.zeros((2, 2, 3))))

    def test_divide_by_zero(self, bgr_image: NumericImage) -> None:
        with pytest.raises(ZeroDivisionError):
            bgr_image.divide(0.0)

    def test_no_implicit_conversion(self, bgr_image: NumericImage) -> None:
        with pytest.raises(TypeError):
            bgr_image.add(1.0)
        with pytest.raises(TypeError):
            bgr_image.multiply(bgr_image)


class TestImageDataReport:
    """Pixel statistics report."""

    def test_report_values(self) -> None:
        values = [
            -0.1, 0.2, 0.3, 0.4, -0.5,
            0.15, 0.25, -1.35, 0.45, 0.55,
            0.6, 1.65, 0.7, 0.75, 1.8,
            0.6, 1.5, 0.33, 0.1, 0.2,
            1.82, 0.15, 0.35, 3.54, 0.5,
            1.6, 0.62, 1.0, 9.23, -9.9,
        ]
        image = NumericImage.from_pixel_values(values, (3, 5), num_channels=2)
        report = image.get_image_data_report()
        assert report.image_size == (3, 5)
        assert report.num_channels == 2
        assert report.num_negative_pixels == 4
        assert report.num_over_one_pixels == 7
        assert report.channel_with_most_negative_pixels == 0
        assert report.max_num_negative_pixels_in_one_channel == 3
        assert report.channel_with_most_over_one_pixels == 1
        assert report.max_num_over_one_pixels_in_one_channel == 5
        assert report.smallest_pixel_value == -9.9
        assert report.largest_pixel_value == 9.23
        assert report.summary().startswith("ImageData [3x5x2]")
