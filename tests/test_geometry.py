"""Tests for homography solving and perspective resampling."""

import tracemalloc

import numpy as np
import pytest

from docscan.errors import SingularTransformError
from docscan.geometry.homography import (
    apply_homography,
    compute_homography,
    compute_output_dimensions,
    gaussian_elimination,
)
from docscan.geometry.perspective import (
    bilinear_sample,
    correct_perspective,
    warp_perspective,
)
from tests.synthetic import make_gradient, make_rgba


class TestGaussianElimination:
    """Test the linear solver."""

    def test_solves_random_system(self) -> None:
        rng = np.random.RandomState(4)
        a = rng.rand(8, 8) + np.eye(8) * 4
        x = rng.rand(8)
        np.testing.assert_allclose(gaussian_elimination(a, a @ x), x, rtol=1e-9)

    def test_needs_pivoting(self) -> None:
        """Zero on the diagonal is handled by row swaps."""
        a = np.array([[0.0, 1.0], [1.0, 0.0]])
        np.testing.assert_allclose(gaussian_elimination(a, [3.0, 5.0]), [5.0, 3.0])

    def test_singular_raises(self) -> None:
        a = np.array([[1.0, 2.0], [2.0, 4.0]])
        with pytest.raises(SingularTransformError):
            gaussian_elimination(a, [1.0, 2.0])

    def test_inputs_not_modified(self) -> None:
        a = np.array([[2.0, 1.0], [1.0, 3.0]])
        b = np.array([1.0, 2.0])
        gaussian_elimination(a, b)
        np.testing.assert_array_equal(a, [[2.0, 1.0], [1.0, 3.0]])


class TestComputeHomography:
    """Test DLT homography estimation."""

    def test_round_trip_maps_points(self) -> None:
        src = np.array([[12.5, 30.0], [410.0, 18.0], [430.0, 300.0], [5.0, 280.0]])
        dst = np.array([[0.0, 0.0], [299.0, 0.0], [299.0, 199.0], [0.0, 199.0]])
        h = compute_homography(src, dst)

        assert h.shape == (9,)
        assert h[8] == 1.0
        for (sx, sy), (dx, dy) in zip(src, dst):
            x, y = apply_homography(h, sx, sy)
            assert abs(x - dx) <= 1e-6 * max(1.0, abs(dx))
            assert abs(y - dy) <= 1e-6 * max(1.0, abs(dy))

    def test_identity(self) -> None:
        pts = np.array([[0, 0], [100, 0], [100, 50], [0, 50]], dtype=float)
        h = compute_homography(pts, pts)
        np.testing.assert_allclose(h, [1, 0, 0, 0, 1, 0, 0, 0, 1], atol=1e-9)

    def test_array_application(self) -> None:
        src = np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float)
        dst = np.array([[0, 0], [20, 0], [20, 20], [0, 20]], dtype=float)
        h = compute_homography(src, dst)
        xs, ys = apply_homography(h, np.array([5.0, 10.0]), np.array([5.0, 0.0]))
        np.testing.assert_allclose(xs, [10.0, 20.0])
        np.testing.assert_allclose(ys, [10.0, 0.0], atol=1e-9)

    def test_degenerate_source_is_singular(self) -> None:
        src = np.array([[5, 5], [5, 5], [5, 5], [5, 5]], dtype=float)
        dst = np.array([[0, 0], [99, 0], [99, 99], [0, 99]], dtype=float)
        with pytest.raises(SingularTransformError):
            compute_homography(src, dst)

    def test_wrong_shape(self) -> None:
        with pytest.raises(ValueError):
            compute_homography(np.zeros((3, 2)), np.zeros((4, 2)))


class TestComputeOutputDimensions:
    """Test output dimension computation from corners."""

    def test_rectangle(self) -> None:
        corners = np.array([[0, 0], [300, 0], [300, 150], [0, 150]], dtype=np.float32)
        assert compute_output_dimensions(corners) == (300, 150)

    def test_averages_opposite_edges(self) -> None:
        corners = np.array([[0, 0], [200, 0], [180, 300], [20, 300]], dtype=np.float32)
        w, h = compute_output_dimensions(corners)
        assert w == 180  # (200 + 160) / 2
        left = np.hypot(20, 300)
        assert h == int(np.floor(left + 0.5))

    def test_minimum_size(self) -> None:
        corners = np.array([[0, 0], [20, 0], [20, 10], [0, 10]], dtype=np.float32)
        assert compute_output_dimensions(corners) == (100, 100)


class TestBilinearSample:
    """Test bilinear interpolation."""

    def test_integer_coordinates_exact(self) -> None:
        image = make_gradient(20, 30)
        samples = bilinear_sample(image, np.array([3.0, 17.0]), np.array([4.0, 11.0]))
        np.testing.assert_array_equal(samples[0], image[4, 3])
        np.testing.assert_array_equal(samples[1], image[11, 17])

    def test_midpoint_average(self) -> None:
        image = np.zeros((1, 2, 4), dtype=np.uint8)
        image[0, 0] = [10, 20, 30, 255]
        image[0, 1] = [20, 40, 60, 255]
        sample = bilinear_sample(image, np.array(0.5), np.array(0.0))
        np.testing.assert_array_equal(sample, [15, 30, 45, 255])

    def test_coordinates_clamped(self) -> None:
        image = make_gradient(10, 10)
        samples = bilinear_sample(image, np.array([-50.0, 500.0]), np.array([-3.0, 99.0]))
        np.testing.assert_array_equal(samples[0], image[0, 0])
        np.testing.assert_array_equal(samples[1], image[9, 9])


class TestCorrectPerspective:
    """Test perspective correction."""

    def test_full_frame_identity(self) -> None:
        """Corners on the full bounding rectangle reproduce the image."""
        image = make_gradient(150, 200)
        corners = np.array([[0, 0], [200, 0], [200, 150], [0, 150]], dtype=np.float32)

        result = correct_perspective(image, corners)
        assert result.shape == image.shape
        assert result.dtype == np.uint8
        diff = np.abs(result.astype(int) - image.astype(int))
        assert diff.max() <= 3

    def test_crop_region(self) -> None:
        image = np.zeros((200, 300, 4), dtype=np.uint8)
        image[:, :, 3] = 255
        image[50:151, 50:251, :3] = 200
        corners = np.array([[50, 50], [250, 50], [250, 150], [50, 150]], dtype=np.float32)

        result = correct_perspective(image, corners)
        assert result.shape == (100, 200, 4)
        assert np.all(result[:, :, :3] == 200)

    def test_keystone_is_flattened(self) -> None:
        """A trapezoid drawn in the image becomes a filled rectangle."""
        image = np.zeros((300, 400, 4), dtype=np.uint8)
        image[:, :, 3] = 255
        for y in range(50, 251):
            inset = int(round((250 - y) * 0.25))
            image[y, 50 + inset:351 - inset, :3] = 255
        corners = np.array([[100, 50], [300, 50], [350, 250], [50, 250]], dtype=np.float32)

        result = correct_perspective(image, corners)
        interior = result[5:-5, 5:-5, 0]
        assert interior.mean() > 240

    def test_warp_rows_independent_of_banding(self) -> None:
        image = make_gradient(600, 80)
        h = np.array([1, 0, 0.3, 0, 1, 0.7, 0, 0, 1], dtype=float)
        result = warp_perspective(image, h, 80, 600)
        expected = bilinear_sample(
            image,
            *np.meshgrid(np.arange(80) + 0.3, np.arange(600) + 0.7),
        )
        np.testing.assert_array_equal(result, expected)

    def test_warp_memory_scales_with_output(self) -> None:
        """A small output from a large source never copies the whole source."""
        source = make_rgba(2000, 2000, 128)
        identity = np.array([1, 0, 0, 0, 1, 0, 0, 0, 1], dtype=float)

        tracemalloc.start()
        try:
            result = warp_perspective(source, identity, 200, 200)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert result.shape == (200, 200, 4)
        assert np.all(result == np.array([128, 128, 128, 255], dtype=np.uint8))
        assert peak < source.nbytes, f"peak {peak} bytes for a {source.nbytes} byte source"
