"""Local interpolation methods."""

import numpy as np
import pytest

from gapcube.timeseries.interpolation import interpolate

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("method", ["linear", "spline", "periodic_spline"])
def test_passes_through_samples(method):
    x = np.array([0.0, 16.0, 32.0, 48.0, 80.0])
    y = np.array([0.2, 0.35, 0.6, 0.55, 0.3])
    np.testing.assert_allclose(interpolate(x, y, x, method), y, atol=1e-10)


def test_linear_fills_between_samples():
    out = interpolate([0.0, 10.0, 20.0], [0.0, 1.0, 3.0], [5.0, 15.0])
    np.testing.assert_allclose(out, [0.5, 2.0])


def test_extrapolation_follows_boundary_slope():
    out = interpolate([0.0, 10.0, 20.0], [0.0, 1.0, 3.0], [-10.0, 30.0])
    np.testing.assert_allclose(out, [-1.0, 5.0])


def test_single_sample_is_constant():
    np.testing.assert_allclose(interpolate([5.0], [0.4], [0.0, 5.0, 9.0], "spline"), 0.4)


def test_two_samples_use_a_line():
    out = interpolate([0.0, 10.0], [0.0, 1.0], [5.0], "spline")
    np.testing.assert_allclose(out, [0.5])


def test_periodic_spline_wraps_around_the_year():
    period = 365.25
    x = np.arange(0.0, 340.0, 30.0)
    y = np.sin(2 * np.pi * x / period)
    x_target = np.array([345.0, 360.0])

    out = interpolate(x, y, x_target, "periodic_spline", period=period)
    np.testing.assert_allclose(out, np.sin(2 * np.pi * x_target / period), atol=1e-3)


def test_unknown_method():
    with pytest.raises(ValueError, match="Unknown interpolation method"):
        interpolate([0.0, 1.0, 2.0], [0.0, 1.0, 0.0], [0.5], "nearest")


def test_periodic_spline_over_two_years_keeps_the_trend():
    period = 365.25
    x = np.arange(0.0, 731.0, 30.0)
    y = x / period
    mid = x[:-1] + 15.0

    out = interpolate(x, y, mid, "periodic_spline", period=period)
    np.testing.assert_allclose(out, mid / period, atol=1e-8)


def test_periodic_spline_over_two_years_extends_along_boundary_slope():
    period = 365.25
    x = np.arange(0.0, 731.0, 30.0)
    y = x / period

    out = interpolate(x, y, np.array([-30.0, 780.0]), "periodic_spline", period=period)
    np.testing.assert_allclose(out, np.array([-30.0, 780.0]) / period, atol=1e-8)
