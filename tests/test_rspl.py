import numpy as np
import pytest

from pyrspl import RsplFit, SolveReport


def _linear_2d(n=200, seed=0):
    rng = np.random.default_rng(seed)
    p = rng.random((n, 2))
    v = 0.1 + 0.5 * p[:, 0] + 0.3 * p[:, 1]
    return p, v


def test_no_data_leaves_default_grid():
    fit = RsplFit(np.zeros((0, 1)), np.zeros((0, 1)), 9)

    assert fit.fit() is False
    assert fit.grid.values.shape == (9, 1)
    assert np.all(fit.grid.values == 0.5)
    assert fit.solve_reports == []


def test_linear_1d_recovered():
    p = np.linspace(0.0, 1.0, 11)
    v = 0.2 + 0.6 * p
    fit = RsplFit(p, v, 17)
    fit.fit()

    nodes = fit.grid.node_positions()[:, 0]
    assert np.allclose(fit.grid.values[:, 0], 0.2 + 0.6 * nodes, atol=1e-3)
    assert not fit.non_monotonic


def test_linear_2d_recovered():
    p, v = _linear_2d()
    fit = RsplFit(p, v, (9, 9))
    non_mono = fit.fit()

    nodes = fit.grid.node_positions()
    assert np.allclose(fit.grid.values[:, 0], 0.1 + 0.5 * nodes[:, 0] + 0.3 * nodes[:, 1], atol=1e-3)
    assert non_mono is False
    assert fit.grid.as_array().shape == (9, 9, 1)


def test_multiple_output_channels():
    p, v = _linear_2d()
    values = np.stack([v, 1.0 - v], axis=1)
    fit = RsplFit(p, values, (9, 5))
    fit.fit()

    assert fit.grid.values.shape == (45, 2)
    assert np.allclose(fit.grid.values[:, 0] + fit.grid.values[:, 1], 1.0, atol=2e-3)
    # one report per channel per resolution
    assert len(fit.solve_reports) == 2 * len(fit.ladder)
    assert all(isinstance(r, SolveReport) for r in fit.solve_reports)
    assert fit.solve_reports[-1].res == (9, 5)


def test_oscillating_data_is_non_monotonic():
    p = np.array([0.0, 0.25, 0.5, 0.75, 1.0])
    v = np.array([0.0, 1.0, 0.0, 1.0, 0.0])
    fit = RsplFit(p, v, 9)

    assert fit.fit() is True
    assert fit.grid.values.shape == (9, 1)
    assert np.all(fit.grid.values > -0.5) and np.all(fit.grid.values < 1.5)
    # nodes with data follow it closely
    assert fit.grid.values[4, 0] < 0.25 and fit.grid.values[2, 0] > 0.75


def test_symmetric_domain():
    p, v = _linear_2d()
    fit = RsplFit(p, v, (17, 5), symmetric_domain=True)
    fit.fit()

    nodes = fit.grid.node_positions()
    assert np.allclose(fit.grid.values[:, 0], 0.1 + 0.5 * nodes[:, 0] + 0.3 * nodes[:, 1], atol=1e-3)


def test_mirrored_samples_give_mirrored_grid_1d():
    p = np.array([0.1, 0.3, 0.5, 0.7, 0.9])
    v = np.array([0.2, 0.7, 0.4, 0.7, 0.2])
    fit = RsplFit(p, v, 33, tolerance=1e-9)
    fit.fit()

    x = fit.grid.values[:, 0]
    assert np.allclose(x, x[::-1], atol=1e-4)


def test_mirrored_samples_give_mirrored_grid_2d():
    rng = np.random.default_rng(7)
    half = rng.random((60, 2))
    p = np.concatenate([half, 1.0 - half])
    v = np.tile(0.5 + 0.3 * np.sin(3.0 * half[:, 0]) * half[:, 1], 2)
    fit = RsplFit(p, v, (17, 17), tolerance=1e-9)
    fit.fit()

    x = fit.grid.as_array()[..., 0]
    assert np.allclose(x, x[::-1, ::-1], atol=1e-3)


@pytest.mark.parametrize(
    "res, fdi, n",
    [
        ((9,), 1, 200),
        ((9, 9), 2, 1000),
        ((5, 5, 5), 1, 1000),
        ((4, 4, 4, 4), 2, 2000),
    ],
)
def test_linear_data_exact_at_minimum_smoothing(res, fdi, n):
    rng = np.random.default_rng(len(res))
    p = rng.random((n, len(res)))
    slopes = np.linspace(0.1, 0.4, len(res))
    v = np.stack([0.1 + p @ slopes + 0.05 * f for f in range(fdi)], axis=1)
    fit = RsplFit(p, v, res, smoothness=-1e-12, tolerance=1e-12)
    fit.fit()

    nodes = fit.grid.node_positions()
    expected = np.stack([0.1 + nodes @ slopes + 0.05 * f for f in range(fdi)], axis=1)
    assert np.abs(fit.grid.values - expected).max() < 1e-8

    final = [r for r in fit.solve_reports if r.res == tuple(res)]
    assert len(final) >= fdi
    assert all(r.error <= 1e-12 for r in final)


def test_weights_pull_towards_heavier_points():
    p = np.array([0.25, 0.25, 0.75, 0.75])
    v = np.array([0.0, 1.0, 0.0, 1.0])
    k = np.array([1.0, 3.0, 1.0, 3.0])
    fit = RsplFit(p, v, 5, weights=k)
    fit.fit()

    assert np.allclose(fit.grid.values, 0.75, atol=1e-2)


def test_weak_default_function():
    p = np.array([0.0])
    v = np.array([0.2])
    fit = RsplFit(p, v, 5, weak_function=lambda pos: [1.0])
    fit.fit()

    assert abs(fit.grid.values[0, 0] - 0.2) < 0.05
    assert fit.grid.values[-1, 0] > 0.5


def test_two_pass():
    p, v = _linear_2d(seed=3)
    v = v + 0.05 * np.sin(8.0 * p[:, 0])
    fit = RsplFit(p, v, (9, 9), two_pass=True)
    fit.fit()

    assert np.all(np.isfinite(fit.grid.values))
    # both passes run over the whole ladder
    assert len(fit.solve_reports) == 2 * len(fit.ladder)
    rms = np.sqrt(np.mean((fit.grid.values[:, 0] - 0.5) ** 2))
    assert rms < 0.5


def test_extra_fit_reduces_error():
    rng = np.random.default_rng(5)
    p = rng.random(30)
    v = 0.5 + 0.4 * np.sin(6.0 * p)

    def rms(extra_fit):
        fit = RsplFit(p, v, 17, smoothness=-1e-4, extra_fit=extra_fit)
        fit.fit()
        nodes = fit.grid.node_positions()[:, 0]
        return np.sqrt(np.mean((np.interp(p, nodes, fit.grid.values[:, 0]) - v) ** 2)), fit

    base, _ = rms(0)
    extra, fit = rms(1)
    assert extra < base
    assert len(fit.solve_reports) == 2 * len(fit.ladder)


def test_non_uniform_node_positions():
    ipos = np.linspace(0.0, 1.0, 9) ** 2
    p = np.linspace(0.0, 1.0, 9)
    v = 0.2 + 0.5 * ipos
    fit = RsplFit(p, v, 9, ipos=[ipos])
    fit.fit()

    assert np.allclose(fit.grid.values[:, 0], v, atol=1e-3)


def test_grid_extended_to_data():
    p = np.array([-0.5, 0.0, 0.5, 1.0])
    v = np.array([0.0, 0.1, 0.2, 0.3])

    fit = RsplFit(p, v, 5, extend="always")
    fit.fit()
    assert fit.grid.low[0] == -0.5 and fit.grid.high[0] == 1.0


def test_default_extend_is_silent(capsys):
    p = np.array([-0.25, 0.5, 1.5])
    v = np.array([0.0, 0.1, 0.2])
    fit = RsplFit(p, v, 5)
    fit.fit()

    assert capsys.readouterr().out == ""
    assert fit.grid.low[0] == -0.25 and fit.grid.high[0] == 1.5


def test_extend_warning(capsys):
    p = np.array([0.0, 0.5, 1.5])
    v = np.array([0.0, 0.1, 0.2])
    fit = RsplFit(p, v, 5, extend="warn")
    fit.fit()

    out = capsys.readouterr().out
    assert "[RSPL:extend] ghigh[0] was increased by 0.500000" in out
    assert fit.grid.high[0] == 1.5


def test_verbose(capsys):
    p, v = _linear_2d(n=50)
    RsplFit(p, v, (9, 9), verbose=True).fit()

    out = capsys.readouterr().out
    assert "[RSPL:solve] channel 0 res (9, 9)" in out


def test_nan_rows_dropped():
    p, v = _linear_2d(n=60)
    v[3] = np.nan
    p[7, 1] = np.nan
    fit = RsplFit(p, v, (5, 5))
    fit.fit()

    assert len(fit.data["p"]) == 58
    assert np.all(np.isfinite(fit.grid.values))


@pytest.mark.parametrize(
    "positions, values, resolution, kwargs, match",
    [
        (np.zeros((3, 5)), np.zeros(3), (4, 4, 4, 4, 4), {}, "di = 5"),
        (np.zeros(3), np.zeros(3), 1, {}, ">= 2"),
        (np.zeros(3), np.zeros((3, 11)), 5, {}, "fdi = 11"),
        (np.array([0.0, 1.2]), np.zeros(2), 5, {"extend": "never"}, "falls above"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"weights": np.array([1.0, 0.0])}, "weights"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"extend": "sometimes"}, "Invalid extend"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"ipos": [[0.0, 0.5, 0.5, 0.7, 1.0]]}, "nearly zero"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"ipos": [[0.0, 0.5, 1.0]]}, "5 entries"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"tolerance": 0.0}, "Tolerance"),
        (np.array([0.0, 1.0]), np.zeros(2), 5, {"weak_function": 3.0}, "callable"),
    ],
)
def test_fatal_errors(positions, values, resolution, kwargs, match):
    with pytest.raises(ValueError, match=match):
        RsplFit(positions, values, resolution, **kwargs).fit()
