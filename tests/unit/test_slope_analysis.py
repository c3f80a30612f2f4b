"""
Unit tests for slope_analysis.py - smoothing and Sobel slope estimation.
"""

import numpy as np
import pytest

from slope_api.slope_analysis import GAUSS5, gaussian_smooth, slope_degrees, sobel_gradient

S = 16


class TestGaussianSmooth:

    def test_kernel_weights(self):
        assert GAUSS5.sum() == 273
        assert np.array_equal(GAUSS5, GAUSS5.T)

    def test_constant_field_unchanged(self):
        """A flat field must come back bit-identical."""
        field = np.full((3 * S, 3 * S), 2000.0)
        assert np.array_equal(gaussian_smooth(field), field)

    def test_linear_ramp_preserved_away_from_borders(self):
        cols = np.arange(3 * S, dtype=np.float64)
        field = np.tile(cols * 7.5, (3 * S, 1))
        smoothed = gaussian_smooth(field)

        assert np.allclose(smoothed[:, 2:-2], field[:, 2:-2])

    def test_border_clamps_instead_of_zero_padding(self):
        """Zero padding would drag the border down; clamping keeps it in range."""
        field = np.full((10, 10), 100.0)
        field[:, 0] = 50.0
        smoothed = gaussian_smooth(field)

        assert smoothed.min() >= 50.0
        assert smoothed[5, 0] > 50.0

    def test_spike_is_spread(self):
        field = np.zeros((11, 11))
        field[5, 5] = 273.0
        smoothed = gaussian_smooth(field)

        assert smoothed[5, 5] == pytest.approx(41.0)
        assert smoothed[3, 3] == pytest.approx(1.0)
        assert smoothed.sum() == pytest.approx(273.0)

    def test_rejects_even_kernel(self):
        with pytest.raises(ValueError):
            gaussian_smooth(np.zeros((5, 5)), np.ones((4, 4)))


class TestSobelGradient:

    def test_unit_ramp_in_x(self):
        field = np.tile(np.arange(10, dtype=np.float64), (10, 1))
        dz_dx, dz_dy = sobel_gradient(field, (slice(1, 9), slice(1, 9)))

        assert np.allclose(dz_dx, 1.0)
        assert np.allclose(dz_dy, 0.0)

    def test_y_grows_southward(self):
        field = np.tile(np.arange(10, dtype=np.float64)[:, None], (1, 10))
        dz_dx, dz_dy = sobel_gradient(field, (slice(1, 9), slice(1, 9)))

        assert np.allclose(dz_dx, 0.0)
        assert np.allclose(dz_dy, 1.0)

    def test_region_needs_margin(self):
        with pytest.raises(ValueError):
            sobel_gradient(np.zeros((10, 10)), (slice(0, 5), slice(1, 5)))


class TestSlopeDegrees:

    def test_flat_field_is_zero_everywhere(self):
        field = np.full((3 * S, 3 * S), 1234.5)
        angles = slope_degrees(field, S, meters_per_pixel=25.0)

        assert angles.shape == (S, S)
        assert np.all(angles == 0.0)

    @pytest.mark.parametrize("rise_per_pixel,expected", [(1.0, 45.0), (np.sqrt(3.0), 60.0), (1 / np.sqrt(3.0), 30.0)])
    def test_ramp_angles(self, rise_per_pixel, expected):
        res = 25.0
        rows = np.arange(3 * S, dtype=np.float64)[:, None]
        field = np.tile(rows * rise_per_pixel * res, (1, 3 * S))

        assert np.allclose(slope_degrees(field, S, res), expected)

    def test_diagonal_ramp(self):
        res = 10.0
        idx = np.arange(3 * S, dtype=np.float64)
        field = (idx[None, :] + idx[:, None]) * res / np.sqrt(2.0)

        assert np.allclose(slope_degrees(field, S, res), 45.0)

    def test_only_center_block_is_measured(self):
        """A cliff inside a neighbor block but away from the center does not register."""
        field = np.zeros((3 * S, 3 * S))
        field[:, : S // 2] = 500.0
        assert np.all(slope_degrees(field, S, 20.0) == 0.0)

    def test_shape_validation(self):
        with pytest.raises(ValueError):
            slope_degrees(np.zeros((10, 10)), S, 10.0)
        with pytest.raises(ValueError):
            slope_degrees(np.zeros((3 * S, 3 * S)), S, 0.0)
