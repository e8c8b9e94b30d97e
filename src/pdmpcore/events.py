# src/pdmpcore/events.py

# Despre NumPy (np):
#  - Toate extragerile aleatoare trec prin np.random.Generator primit din
#    exterior (Simulator); nu folosim starea globală np.random.*.
#  - Vectorii x, v, gradientul au shape (p,).

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import numpy as np

from .errors import NumericAssumptionError
from .targets import TargetModel

logger = logging.getLogger(__name__)

# =============================================================================
# PROCES POISSON NEOMOGEN CU RATĂ LINIARĂ  (inversie exactă)
# -----------------------------------------------------------------------------
# Rata majorantă de-a lungul razei:   g(t) = c0 + c1 t,   c0, c1 >= 0
# Intensitatea cumulată:              G(t) = c0 t + c1 t² / 2
# Cu E ~ Exp(1), primul eveniment este soluția pozitivă a lui G(t) = E:
#   c1 = 0:  t = E / c0                     (t = inf dacă și c0 = 0)
#   c1 > 0:  t = (-c0 + sqrt(c0² + 2 c1 E)) / c1
#
# Thinning (Lewis–Shedler): candidatul t e acceptat cu probabilitatea
# λ(t)/g(t), unde λ(t) = max(0, ∇U(x + t v)·v) este rata BPS adevărată.
# La respingere reluăm din t cu ACELAȘI majorant deplasat:
#   g_τ(s) = g(τ + s) = (c0 + c1 τ) + c1 s.
# =============================================================================


@dataclass(frozen=True)
class LinearBound:
    """Majorant afin g(t) = c0 + c1 t pe raza curentă."""
    c0: float
    c1: float

    def __post_init__(self):
        if self.c0 < 0 or self.c1 < 0:
            raise ValueError(f"LinearBound needs c0, c1 >= 0, got ({self.c0}, {self.c1})")

    def rate(self, t: float) -> float:
        return self.c0 + self.c1 * t

    def cumulative(self, t: float) -> float:
        return self.c0 * t + 0.5 * self.c1 * t * t

    def shifted(self, tau: float) -> "LinearBound":
        return LinearBound(self.c0 + self.c1 * tau, self.c1)


def draw_linear_poisson_time(c0: float, c1: float, rng: np.random.Generator) -> float:
    """Primul eveniment al unui proces Poisson cu rata c0 + c1 t (inversie)."""
    E = rng.exponential()
    if c1 == 0.0:
        return E / c0 if c0 > 0.0 else math.inf
    # forma 2E / (c0 + sqrt(c0² + 2 c1 E)) evită anularea când c1 E << c0²
    return 2.0 * E / (c0 + math.sqrt(c0 * c0 + 2.0 * c1 * E))


@dataclass
class EventCandidate:
    """
    Rezultatul unei interogări a oracolului.
      time       : momentul evenimentului acceptat (inf dacă nu există în orizont)
      gradient   : gradientul (estimat) în x + time·v, folosit la bounce
      n_evals    : evaluări de gradient consumate
      n_rejected : încercări respinse de thinning
      stopped_at : dacă bugetul de evaluări s-a epuizat fără eveniment, ultimul
                   moment verificat (nu există eveniment în [0, stopped_at])
    """
    time: float
    gradient: Optional[np.ndarray]
    n_evals: int
    n_rejected: int = 0
    stopped_at: float = math.inf

    @property
    def exhausted(self) -> bool:
        return not math.isinf(self.stopped_at)


class EventOracle(ABC):
    """
    Oracolul de timpi de eveniment (Strategy, ales la construcție).
    Orice implementare expune next_event(x, v, horizon).
    """

    @abstractmethod
    def next_event(self, x: np.ndarray, v: np.ndarray, horizon: float,
                   max_evals: float = math.inf) -> EventCandidate:
        ...

    def reset(self, x0: np.ndarray) -> int:
        """Pregătește oracolul pentru un lanț nou. Returnează evaluările consumate."""
        return 0

    def on_bounce(self, x: np.ndarray, gradient: np.ndarray) -> int:
        """Notificare după un bounce acceptat. Returnează evaluările consumate."""
        return 0


class ThinningOracle(EventOracle):
    """
    Thinning cu gradient complet și majorant liniar construit din ultimul
    punct în care am evaluat gradientul (x_ref, g_ref):

      ∇U(x + t v)·v <= g_ref·v + L ||x + t v - x_ref|| ||v||
                    <= [max(0, g_ref·v) + L ||x - x_ref|| ||v||] + [L ||v||²] t

    Fiecare încercare costă o evaluare de gradient; (x_ref, g_ref) se
    actualizează la ultima evaluare, deci majorantul se strânge pe măsură ce
    lanțul avansează.
    """

    def __init__(self, target: TargetModel, rng: np.random.Generator,
                 rtol: float = 1e-8, atol: float = 1e-10):
        self.target = target
        self.rng = rng
        self.rtol, self.atol = rtol, atol
        self.x_ref = None
        self.g_ref = None

    @property
    def L(self) -> float:
        return self.target.lipschitz

    def reset(self, x0):
        self.x_ref = np.array(x0, float)
        self.g_ref = self._grad(self.x_ref)
        return 1

    def _grad(self, y):
        return self.target.gradient(y)

    def bound(self, x: np.ndarray, v: np.ndarray) -> LinearBound:
        nv = float(np.linalg.norm(v))
        c0 = max(0.0, float(self.g_ref @ v)) + self.L * float(np.linalg.norm(x - self.x_ref)) * nv
        return LinearBound(c0, self.L * nv * nv)

    def _record(self, y, g):
        self.x_ref, self.g_ref = y, g

    def next_event(self, x, v, horizon, max_evals=math.inf):
        if self.g_ref is None:
            raise RuntimeError("Oracle used before reset(x0).")
        g = self.bound(x, v)
        tau = 0.0
        n_evals = n_rej = 0
        while True:
            if n_evals >= max_evals:
                return EventCandidate(math.inf, None, n_evals, n_rej, stopped_at=tau)
            gt = g.shifted(tau)
            dt = draw_linear_poisson_time(gt.c0, gt.c1, self.rng)
            tau += dt
            if math.isinf(tau) or tau > horizon:
                return EventCandidate(math.inf, None, n_evals, n_rej)

            y = x + tau * v
            grad = self._grad(y)
            n_evals += 1
            self._record(y, grad)

            lam = max(0.0, float(grad @ v))
            bound_rate = g.rate(tau)
            if lam > bound_rate * (1.0 + self.rtol) + self.atol:
                raise NumericAssumptionError(
                    f"Event rate {lam:.6g} exceeds linear bound {bound_rate:.6g} at t={tau:.6g}; "
                    f"the Lipschitz constant L={self.L:.6g} is too small for this target."
                )
            if self.rng.uniform() * bound_rate <= lam:
                return EventCandidate(tau, grad, n_evals, n_rej)
            n_rej += 1


class ControlVariateOracle(ThinningOracle):
    """
    Thinning cu gradient estimat prin control variates în jurul unui punct
    de referință fix x*:

      ĝ(y) = ∇U(x*) + N [∇U_j(y) - ∇U_j(x*)],   j ~ Unif{1..N}

    Majorantul folosește L_cv (valabil pentru orice j), iar x* NU se mută
    după fiecare încercare (altfel ar trebui un gradient complet).

    Politica de reîmprospătare a lui x*:
      refresh_every = 0  -> niciodată (x* = x_ref dat sau x0)
      refresh_every = K  -> x* <- poziția curentă după fiecare K bounce-uri
                            acceptate (un gradient complet, numărat ca 1).
    """

    def __init__(self, target: TargetModel, rng: np.random.Generator,
                 x_ref: Optional[np.ndarray] = None, refresh_every: int = 0,
                 rtol: float = 1e-8, atol: float = 1e-10):
        super().__init__(target, rng, rtol=rtol, atol=atol)
        if refresh_every < 0:
            raise ValueError("refresh_every must be >= 0.")
        self.refresh_every = int(refresh_every)
        self._fixed_ref = None if x_ref is None else np.asarray(x_ref, float)
        self._since_refresh = 0

    @property
    def L(self) -> float:
        return self.target.cv_lipschitz

    def reset(self, x0):
        ref = x0 if self._fixed_ref is None else self._fixed_ref
        self.x_ref = np.array(ref, float)
        self.g_ref = self.target.gradient(self.x_ref)
        self._since_refresh = 0
        logger.debug("Control-variate reference point set at %s", self.x_ref)
        return 1

    def _grad(self, y):
        return self.target.cv_gradient(y, self.x_ref, self.g_ref, self.rng)

    def _record(self, y, g):
        # x* rămâne fix între reîmprospătări
        pass

    def on_bounce(self, x, gradient):
        if self.refresh_every == 0:
            return 0
        self._since_refresh += 1
        if self._since_refresh < self.refresh_every:
            return 0
        self.x_ref = np.array(x, float)
        self.g_ref = self.target.gradient(self.x_ref)
        self._since_refresh = 0
        return 1
