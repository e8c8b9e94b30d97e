# src/pdmpcore/metrics.py

# Despre NumPy (np):
#  - Toate calculele sunt vectorizate pe segmente (axis=0) și pe dimensiuni.
#  - Traiectoria e liniară pe bucăți, deci integralele în timp (medie,
#    varianță) au formă închisă pe fiecare segment; nu discretizăm.

from typing import Optional
import numpy as np
from statsmodels.tsa.stattools import acf

from .models import Path


def uniform_grid(path: Path, n: int) -> np.ndarray:
    """n momente echidistante în [t_start, t_end] (capetele incluse)."""
    if n < 2:
        raise ValueError("uniform_grid needs n >= 2.")
    return np.linspace(path.t_start, path.t_end, n)


def sample_path(path: Path, times) -> np.ndarray:
    """
    Poziția traiectoriei la momentele cerute.

    Parametri
    ---------
    path  : Path înghețat
    times : array-like, shape (n,), nedescrescător, în [t_start, t_end]

    Returnează
    ----------
    np.ndarray, shape (n, p)

    Observații
    ----------
    - Segmentul care conține t se găsește cu np.searchsorted (O(log K) per t),
      apoi x(t) = x_k + (t - t_k) v_k.
    - Funcție pură: același `times` dă mereu același rezultat (path e doar-citire).
    """
    path._require_frozen()
    t = np.asarray(times, float).reshape(-1)
    if t.size and np.any(np.diff(t) < 0):
        raise ValueError("times must be non-decreasing.")
    tol = 1e-12 * max(1.0, abs(path.t_end))
    if t.size and (t[0] < path.t_start - tol or t[-1] > path.t_end + tol):
        raise ValueError(f"times must lie in [{path.t_start}, {path.t_end}].")

    K = len(path)
    if K == 0:
        return np.repeat(path.positions[:1], t.size, axis=0)

    idx = np.searchsorted(path.times, t, side='right') - 1
    idx = np.clip(idx, 0, K - 1)
    dt = (t - path.times[idx])[:, None]
    return path.positions[idx] + dt * path.velocities[idx]


def path_mean(path: Path) -> np.ndarray:
    """
    Media ponderată în timp a poziției:
      x̄ = (1/T) Σ_k ∫_{t_k}^{t_{k+1}} x(t) dt = (1/T) Σ_k Δt_k (x_k + x_{k+1}) / 2
    (trapez exact, poziția fiind afină pe segment).
    """
    path._require_frozen()
    T = path.total_time
    if T <= 0:
        return path.positions[0].copy()
    dt = np.diff(path.times)[:, None]
    mid = 0.5 * (path.positions[:-1] + path.positions[1:])
    return (dt * mid).sum(axis=0) / T


def path_var(path: Path, mean: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Varianța ponderată în timp, pe dimensiuni:
      ∫_0^Δ (a + s b)² ds = Δ a² + Δ² a b + Δ³ b² / 3,   a = x_k, b = v_k
      Var = (1/T) Σ_k [...] - x̄²
    """
    path._require_frozen()
    T = path.total_time
    if T <= 0:
        return np.zeros(path.dims)
    m = path_mean(path) if mean is None else mean
    dt = np.diff(path.times)[:, None]
    a = path.positions[:-1] - m          # centrăm ca să evităm anularea
    b = path.velocities
    second = (dt * a ** 2 + dt ** 2 * a * b + dt ** 3 * b ** 2 / 3.0).sum(axis=0) / T
    return np.maximum(second, 0.0)


def _autocorr(y: np.ndarray) -> Optional[np.ndarray]:
    """Autocorelația empirică pe toate lag-urile (statsmodels, prin FFT)."""
    if np.ptp(y) == 0:
        return None
    return acf(y, nlags=y.size - 1, fft=True)


def _ess_1d(y: np.ndarray) -> float:
    n = y.size
    rho = _autocorr(y)
    if rho is None:
        # serie constantă: ESS nedefinit
        return float('nan')

    # Geyer, secvența inițială pozitivă și monotonă: Γ_k = ρ_{2k} + ρ_{2k+1}
    n_pairs = n // 2
    gamma = rho[0:2 * n_pairs:2] + rho[1:2 * n_pairs:2]
    tau = -1.0
    prev = np.inf
    for g in gamma:
        if g <= 0:
            break
        g = min(g, prev)
        tau += 2.0 * g
        prev = g
    tau = max(tau, 1.0 / np.log10(max(n, 10)))
    return n / tau


def ess(series) -> np.ndarray:
    """
    ESS discret per dimensiune pentru o serie (n,) sau (n, p):
      ESS = n / τ,   τ = -1 + 2 Σ_k Γ_k   (trunchiere Geyer).
    """
    y = np.asarray(series, float)
    if y.ndim == 1:
        y = y[:, None]
    if y.shape[0] < 4:
        raise ValueError("ess needs at least 4 points.")
    return np.array([_ess_1d(y[:, k]) for k in range(y.shape[1])])


def path_ess(path: Path, n_grid: int = 1000) -> np.ndarray:
    """
    ESS al traiectoriei continue: re-eșantionare pe o grilă uniformă de
    n_grid puncte, apoi estimatorul discret `ess`.
    """
    grid = uniform_grid(path, n_grid)
    return ess(sample_path(path, grid))
