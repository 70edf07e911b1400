"""Tests for luminance, blur and Sobel edge stage."""

import numpy as np

from docscan.detection.edges import (
    compute_edge_map,
    gaussian_blur,
    gaussian_kernel,
    sobel_magnitude,
    to_luminance,
)
from tests.synthetic import make_outlined_page, make_rgba


class TestLuminance:
    """Test perceptual luminance conversion."""

    def test_weights(self) -> None:
        pixels = np.zeros((1, 3, 4), dtype=np.uint8)
        pixels[0, 0, 0] = 255  # red
        pixels[0, 1, 1] = 255  # green
        pixels[0, 2, 2] = 255  # blue
        lum = to_luminance(pixels)
        np.testing.assert_allclose(lum[0], [0.299 * 255, 0.587 * 255, 0.114 * 255])

    def test_gray_is_identity(self) -> None:
        lum = to_luminance(make_rgba(4, 4, 100))
        np.testing.assert_allclose(lum, 100.0)

    def test_alpha_ignored(self) -> None:
        pixels = make_rgba(2, 2, 50)
        pixels[:, :, 3] = 0
        np.testing.assert_allclose(to_luminance(pixels), 50.0)


class TestGaussianBlur:
    """Test separable Gaussian blur."""

    def test_kernel_size_and_normalization(self) -> None:
        kernel = gaussian_kernel(2.0)
        assert len(kernel) == 13  # ceil(2 * 3) * 2 + 1
        assert abs(kernel.sum() - 1.0) < 1e-12
        np.testing.assert_allclose(kernel, kernel[::-1])
        assert np.argmax(kernel) == 6

    def test_constant_image_unchanged(self) -> None:
        lum = np.full((20, 30), 77.0)
        np.testing.assert_allclose(gaussian_blur(lum, 2.0), 77.0)

    def test_clamped_borders_keep_edge_value(self) -> None:
        """Clamping repeats border samples, so a flat border row stays flat."""
        lum = np.zeros((30, 30))
        lum[:, 15:] = 200.0
        blurred = gaussian_blur(lum, 2.0)
        np.testing.assert_allclose(blurred[:, 0], 0.0, atol=1e-6)
        np.testing.assert_allclose(blurred[:, -1], 200.0, atol=1e-6)

    def test_step_is_smoothed_monotonically(self) -> None:
        lum = np.zeros((10, 40))
        lum[:, 20:] = 255.0
        row = gaussian_blur(lum, 2.0)[5]
        assert np.all(np.diff(row) >= -1e-9)
        assert 0 < row[19] < 255
        assert 0 < row[20] < 255


class TestSobel:
    """Test Sobel gradient magnitude."""

    def test_border_pixels_zero(self) -> None:
        rng = np.random.RandomState(0)
        edges = sobel_magnitude(rng.rand(20, 25) * 255)
        assert np.all(edges[0, :] == 0)
        assert np.all(edges[-1, :] == 0)
        assert np.all(edges[:, 0] == 0)
        assert np.all(edges[:, -1] == 0)

    def test_constant_has_no_edges(self) -> None:
        assert np.all(sobel_magnitude(np.full((10, 10), 90.0)) == 0)

    def test_vertical_step(self) -> None:
        lum = np.zeros((5, 6))
        lum[:, 3:] = 10.0
        edges = sobel_magnitude(lum)
        # Pixels either side of the step see gx = 4 * 10, gy = 0
        np.testing.assert_allclose(edges[2, 2], 40.0)
        np.testing.assert_allclose(edges[2, 3], 40.0)
        assert edges[2, 1] == 0

    def test_tiny_image(self) -> None:
        edges = sobel_magnitude(np.ones((2, 2)))
        assert edges.shape == (2, 2)
        assert np.all(edges == 0)


class TestEdgeMap:
    """Test the composed edge stage."""

    def test_outline_produces_edges_near_box(self) -> None:
        edges = compute_edge_map(make_outlined_page())
        assert edges.shape == (300, 400)
        # Strong response along the outline, none in the flat interior
        assert edges[50, 200] > 50
        assert edges[150, 200] < 1e-6

    def test_uniform_image_has_flat_edge_map(self) -> None:
        edges = compute_edge_map(make_rgba(40, 60, 128))
        np.testing.assert_allclose(edges, 0.0, atol=1e-9)
