import numpy as np
import pytest

from pyrspl.smoothing import AVGDEV_AXIS, LOG_SMOOTHING, SAMPLE_COUNT_AXIS, optimal_smoothing


def test_table_shapes():
    for nc, ad, table in zip(SAMPLE_COUNT_AXIS, AVGDEV_AXIS, LOG_SMOOTHING):
        assert len(table) == len(nc)
        assert all(len(row) == len(ad) for row in table)


def test_table_corners():
    assert np.isclose(optimal_smoothing(1, 5, 1e-4), 1e-5)
    assert np.isclose(optimal_smoothing(1, 1000, 0.05), 10.0 ** -4.4)
    assert np.isclose(optimal_smoothing(2, 25, 0.0001), 10.0 ** -5.0)


def test_clamped_outside_table():
    assert optimal_smoothing(1, 1, 1e-6) == optimal_smoothing(1, 5, 1e-4)
    assert optimal_smoothing(1, 10 ** 6, 0.5) == optimal_smoothing(1, 200, 0.05)


def test_interpolates_in_log_space():
    # geometric midpoint of two average deviation columns
    ad = np.sqrt(0.0025 * 0.005)
    assert np.isclose(optimal_smoothing(1, 10, ad), 10.0 ** ((-5.6 - 5.1) / 2.0))


@pytest.mark.parametrize("di", [3, 4, 5])
def test_higher_dimensions(di):
    s = optimal_smoothing(di, 500, 0.01)
    assert s > 0.0 and np.isfinite(s)
