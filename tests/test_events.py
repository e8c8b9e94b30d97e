"""
Test: Event-time oracle (thinning with a linear bound)

Exact inversion of the linear-rate Poisson process, exponential event times
for a constant rate (KS test), bound violation, budget/horizon handling and
the control-variate gradient.

Run:
    python -m pytest tests/test_events.py -v
"""

import math

import numpy as np
import pytest
from scipy import stats

from pdmpcore.errors import NumericAssumptionError
from pdmpcore.events import (
    ControlVariateOracle,
    LinearBound,
    ThinningOracle,
    draw_linear_poisson_time,
)
from pdmpcore.kernels import REFRESH_KERNELS, refresh_gaussian, refresh_sphere
from pdmpcore.targets import GaussianTarget, LinearTarget, LogisticRegression, simulate_logistic_data


# ============================================================
# LINEAR-RATE POISSON INVERSION
# ============================================================

def test_zero_rate_never_fires():
    rng = np.random.default_rng(0)
    assert math.isinf(draw_linear_poisson_time(0.0, 0.0, rng))


def test_constant_rate_inversion():
    E = np.random.default_rng(5).exponential()
    t = draw_linear_poisson_time(2.5, 0.0, np.random.default_rng(5))
    assert t == pytest.approx(E / 2.5)


@pytest.mark.parametrize("c0,c1", [(0.0, 1.0), (1.0, 3.0), (1e3, 1e-6), (0.2, 50.0)])
def test_linear_rate_solves_cumulative_intensity(c0, c1):
    E = np.random.default_rng(11).exponential()
    t = draw_linear_poisson_time(c0, c1, np.random.default_rng(11))
    assert t > 0
    assert LinearBound(c0, c1).cumulative(t) == pytest.approx(E, rel=1e-10)


def test_linear_bound_rejects_negative_coefficients():
    with pytest.raises(ValueError):
        LinearBound(-1.0, 0.0)
    with pytest.raises(ValueError):
        LinearBound(0.0, -1.0)


def test_shifted_bound():
    g = LinearBound(1.0, 2.0)
    assert g.shifted(3.0).rate(0.5) == pytest.approx(g.rate(3.5))


# ============================================================
# THINNING
# ============================================================

def test_constant_intensity_gives_exponential_times():
    lam0 = 1.7
    rng = np.random.default_rng(2024)
    oracle = ThinningOracle(LinearTarget([lam0, 0.0]), rng)
    x, v = np.zeros(2), np.array([1.0, 0.0])
    assert oracle.reset(x) == 1

    times = []
    for _ in range(3000):
        cand = oracle.next_event(x, v, horizon=math.inf)
        # majorantul coincide cu rata: nicio respingere
        assert cand.n_evals == 1 and cand.n_rejected == 0
        times.append(cand.time)

    res = stats.kstest(times, 'expon', args=(0.0, 1.0 / lam0))
    assert res.pvalue > 1e-3


def test_bound_violation_is_fatal():
    class Underestimated(GaussianTarget):
        @property
        def lipschitz(self):
            return 0.0

    oracle = ThinningOracle(Underestimated([0.0]), np.random.default_rng(1))
    x, v = np.array([1.0]), np.array([1.0])
    oracle.reset(x)
    # rata adevărată 1 + t crește, majorantul (L = 0) rămâne 1
    with pytest.raises(NumericAssumptionError):
        oracle.next_event(x, v, horizon=math.inf)


def test_no_gradient_spent_beyond_horizon():
    oracle = ThinningOracle(LinearTarget([1e-3]), np.random.default_rng(3))
    x, v = np.array([0.0]), np.array([1.0])
    oracle.reset(x)
    cand = oracle.next_event(x, v, horizon=1e-6)
    assert math.isinf(cand.time)
    assert cand.n_evals == 0
    assert not cand.exhausted


def test_budget_exhaustion_reports_checked_interval():
    oracle = ThinningOracle(GaussianTarget([0.0, 0.0]), np.random.default_rng(4))
    x, v = np.array([3.0, 3.0]), np.array([-1.0, 0.0])
    oracle.reset(x)
    cand = oracle.next_event(x, v, horizon=math.inf, max_evals=0)
    assert cand.exhausted and cand.stopped_at == 0.0 and cand.n_evals == 0

    cand = oracle.next_event(x, v, horizon=math.inf, max_evals=2)
    assert cand.n_evals <= 2


def test_gaussian_thinning_respects_bound():
    rng = np.random.default_rng(7)
    P = np.array([[2.0, 0.5], [0.5, 1.0]])
    oracle = ThinningOracle(GaussianTarget([0.0, 0.0], P), rng)
    x = np.array([1.0, -2.0])
    oracle.reset(x)
    for _ in range(200):
        v = rng.normal(size=2)
        cand = oracle.next_event(x, v, horizon=math.inf)
        assert cand.time > 0
        assert cand.gradient is not None
        x = x + cand.time * v


# ============================================================
# CONTROL VARIATES
# ============================================================

class _FixedIndex:
    """Stand-in pentru Generator: întoarce mereu observația j."""

    def __init__(self, j):
        self.j = j

    def integers(self, n):
        return self.j


def _logistic(n=40, p=3, seed=0):
    X, y, _ = simulate_logistic_data(n, p, np.random.default_rng(seed))
    return LogisticRegression(X, y, prior_var=4.0)


def test_cv_gradient_is_unbiased():
    model = _logistic()
    x_ref = np.array([0.2, 0.1, 0.0])
    g_ref = model.gradient(x_ref)
    x = np.array([0.5, 0.3, 0.7])
    avg = np.mean([model.cv_gradient(x, x_ref, g_ref, _FixedIndex(j)) for j in range(model.N)], axis=0)
    np.testing.assert_allclose(avg, model.gradient(x), rtol=1e-10, atol=1e-10)


def test_cv_lipschitz_dominates_every_observation():
    model = _logistic()
    x_ref = np.zeros(3)
    g_ref = model.gradient(x_ref)
    rng = np.random.default_rng(9)
    for _ in range(50):
        x = np.abs(rng.normal(size=3))
        for j in range(model.N):
            g = model.cv_gradient(x, x_ref, g_ref, _FixedIndex(j))
            assert np.linalg.norm(g - g_ref) <= model.cv_lipschitz * np.linalg.norm(x - x_ref) + 1e-9


def test_reference_refresh_policy():
    model = _logistic()
    oracle = ControlVariateOracle(model, np.random.default_rng(0), refresh_every=2)
    x0 = np.ones(3)
    assert oracle.reset(x0) == 1
    np.testing.assert_array_equal(oracle.x_ref, x0)

    x1 = np.array([0.5, 0.5, 0.5])
    assert oracle.on_bounce(x1, None) == 0
    np.testing.assert_array_equal(oracle.x_ref, x0)
    assert oracle.on_bounce(x1, None) == 1
    np.testing.assert_array_equal(oracle.x_ref, x1)
    np.testing.assert_allclose(oracle.g_ref, model.gradient(x1))


def test_reference_never_moves_by_default():
    model = _logistic()
    x_star = np.array([0.1, 0.2, 0.3])
    oracle = ControlVariateOracle(model, np.random.default_rng(0), x_ref=x_star)
    oracle.reset(np.ones(3))
    np.testing.assert_array_equal(oracle.x_ref, x_star)
    for _ in range(10):
        assert oracle.on_bounce(np.zeros(3), None) == 0
    x, v = np.ones(3), np.array([1.0, 0.0, 0.0])
    oracle.next_event(x, v, horizon=5.0)
    np.testing.assert_array_equal(oracle.x_ref, x_star)


# ============================================================
# LOG-DENSITY CONSISTENT WITH THE GRADIENT
# ============================================================

def _fd_gradient(f, x, h=1e-6):
    g = np.empty_like(x)
    for k in range(x.size):
        e = np.zeros_like(x)
        e[k] = h
        g[k] = (f(x + e) - f(x - e)) / (2 * h)
    return g


@pytest.mark.parametrize("model", [
    LinearTarget([1.0, -2.0, 0.5]),
    GaussianTarget([0.3, 0.1, 0.8], np.array([[3.0, 0.5, 0.0], [0.5, 2.0, 0.2], [0.0, 0.2, 1.0]])),
    _logistic(),
])
def test_log_density_matches_gradient(model):
    # ∇U = -∇ log π
    x = np.array([0.4, 0.7, 0.2])
    fd = _fd_gradient(model.log_density, x)
    np.testing.assert_allclose(-fd, model.gradient(x), rtol=1e-5, atol=1e-6)


# ============================================================
# REFRESH KERNELS
# ============================================================

def test_sphere_refresh_is_unit_norm():
    rng = np.random.default_rng(0)
    for p in (1, 2, 5):
        v = refresh_sphere(p, rng)
        assert v.shape == (p,)
        assert np.linalg.norm(v) == pytest.approx(1.0)


def test_gaussian_refresh_is_standard_normal():
    rng = np.random.default_rng(1)
    draws = np.array([refresh_gaussian(3, rng) for _ in range(4000)])
    assert set(REFRESH_KERNELS) == {'sphere', 'gaussian'}
    np.testing.assert_allclose(draws.mean(axis=0), 0.0, atol=0.08)
    np.testing.assert_allclose(draws.var(axis=0), 1.0, atol=0.1)
