"""
Test: Path representation & analytics

Time-weighted mean/variance in closed form, resampling of the continuous
path, discrete ESS estimator and the frozen-path lifecycle.

Run:
    python -m pytest tests/test_metrics.py -v
"""

import numpy as np
import pytest

from pdmpcore.analyze import drop_burn_in, summarize
from pdmpcore.metrics import _autocorr, ess, path_ess, path_mean, path_var, sample_path, uniform_grid
from pdmpcore.models import Path


def two_segment_path():
    """A: 2 unități de timp în 0; B: 1 unitate de la 0 la 3 (viteză 3)."""
    path = Path(np.array([0.0]))
    path.append(2.0, np.array([0.0]), np.array([0.0]))
    path.append(3.0, np.array([3.0]), np.array([3.0]))
    return path.freeze()


# ============================================================
# LIFECYCLE
# ============================================================

def test_frozen_path_is_read_only():
    path = two_segment_path()
    with pytest.raises(RuntimeError):
        path.append(4.0, np.array([3.0]), np.array([0.0]))
    with pytest.raises(ValueError):
        path.positions[0, 0] = 1.0


def test_analytics_need_frozen_path():
    path = Path(np.zeros(2))
    path.append(1.0, np.ones(2), np.ones(2))
    with pytest.raises(RuntimeError):
        path_mean(path)


def test_segments_view():
    segs = list(two_segment_path().segments())
    assert [(s.t_start, s.t_end) for s in segs] == [(0.0, 2.0), (2.0, 3.0)]
    assert segs[1].position(2.5)[0] == pytest.approx(1.5)


# ============================================================
# MEAN / VARIANCE
# ============================================================

def test_mean_of_two_segments():
    # (2·0 + 1·1.5) / 3 = 0.5
    np.testing.assert_allclose(path_mean(two_segment_path()), [0.5])


def test_variance_of_two_segments():
    # E[x²] = (1/3) ∫_0^1 (3s)² ds = 1  ⇒  Var = 1 - 0.25
    np.testing.assert_allclose(path_var(two_segment_path()), [0.75])


def test_mean_is_not_breakpoint_average():
    path = two_segment_path()
    assert path.positions.mean() != pytest.approx(path_mean(path)[0])


def test_burn_in_drops_the_start():
    cut = drop_burn_in(two_segment_path(), 1.0)
    assert cut.t_start == 1.0 and cut.total_time == pytest.approx(2.0)
    # pe [1, 3]: (1·0 + 1·1.5) / 2
    np.testing.assert_allclose(path_mean(cut), [0.75])
    with pytest.raises(ValueError):
        drop_burn_in(two_segment_path(), 5.0)


# ============================================================
# RESAMPLING
# ============================================================

def test_sample_path_interpolates():
    xs = sample_path(two_segment_path(), [0.0, 1.0, 2.0, 2.5, 3.0])
    np.testing.assert_allclose(xs[:, 0], [0.0, 0.0, 0.0, 1.5, 3.0])


def test_sample_path_is_idempotent():
    path = two_segment_path()
    grid = uniform_grid(path, 57)
    first = sample_path(path, grid)
    second = sample_path(path, grid)
    np.testing.assert_array_equal(first, second)


def test_sample_path_rejects_bad_times():
    path = two_segment_path()
    with pytest.raises(ValueError):
        sample_path(path, [2.0, 1.0])
    with pytest.raises(ValueError):
        sample_path(path, [0.0, 3.5])


def test_empty_path_samples_start_point():
    path = Path(np.array([1.0, 2.0])).freeze()
    xs = sample_path(path, [0.0, 0.0])
    np.testing.assert_array_equal(xs, [[1.0, 2.0], [1.0, 2.0]])


# ============================================================
# ESS
# ============================================================

def test_ess_of_iid_series_is_close_to_n():
    y = np.random.default_rng(0).normal(size=(5000, 2))
    e = ess(y)
    assert e.shape == (2,)
    assert np.all((e > 0.7 * 5000) & (e < 1.3 * 5000))


def test_ess_of_ar1_series():
    rng = np.random.default_rng(1)
    phi, n = 0.9, 20000
    y = np.empty(n)
    y[0] = 0.0
    for k in range(1, n):
        y[k] = phi * y[k - 1] + rng.normal()
    expected = n * (1 - phi) / (1 + phi)
    e = ess(y)[0]
    assert 0.5 * expected < e < 2.0 * expected


def test_ess_constant_series_is_nan():
    assert np.isnan(ess(np.ones(100))[0])


def test_path_ess_shape():
    rng = np.random.default_rng(2)
    path = Path(np.zeros(3))
    t, x = 0.0, np.zeros(3)
    for _ in range(500):
        v = rng.normal(size=3)
        dt = rng.exponential()
        t, x = t + dt, x + dt * v
        path.append(t, x, v)
    path.freeze()
    e = path_ess(path, n_grid=400)
    assert e.shape == (3,)
    assert np.all(e > 0)

    s = summarize(path, n_grid=400)
    assert set(s) == {'mean', 'var', 'ess'}


def test_autocorrelation_matches_direct_sum():
    y = np.random.default_rng(3).normal(size=300).cumsum()
    rho = _autocorr(y)
    assert rho.shape == (300,)
    assert rho[0] == pytest.approx(1.0)
    d = y - y.mean()
    for lag in (1, 5, 40):
        expected = (d[:-lag] * d[lag:]).sum() / (d * d).sum()
        assert rho[lag] == pytest.approx(expected, rel=1e-8, abs=1e-10)
    assert _autocorr(np.full(50, 2.5)) is None
