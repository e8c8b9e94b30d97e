# src/pdmpcore/targets.py

# Despre NumPy (np):
#  - x (parametrii) are shape (p,); designul X are shape (N, p).
#  - Gradientul logistic se calculează vectorizat pe observații (X.T @ r),
#    deci paralelismul "pe date" rămâne intern modelului (BLAS).
#  - Modelele NU țin RNG propriu: pentru gradientul cu control variates
#    primesc un np.random.Generator din exterior.

"""
MODELE ȚINTĂ (colaboratori externi ai sampler-ului)
===================================================
Sampler-ul lucrează cu potențialul U(x) = -log π(x) și are nevoie doar de:
  - gradient(x)         : ∇U(x), shape (p,)
  - lipschitz           : L cu ||∇U(x) - ∇U(y)|| <= L ||x - y||
Opțional:
  - log_density(x)      : log π(x) (doar pentru diagnostice)
  - cv_gradient(...)    : estimator nedeplasat al lui ∇U cu control variates
  - cv_lipschitz        : L valabil pentru FIECARE estimare cv_gradient
"""

from abc import ABC, abstractmethod
from typing import Optional
import numpy as np


class TargetModel(ABC):
    """Interfața minimală a unui model țintă."""

    @property
    @abstractmethod
    def dims(self) -> int:
        ...

    @property
    @abstractmethod
    def lipschitz(self) -> float:
        ...

    @abstractmethod
    def gradient(self, x: np.ndarray) -> np.ndarray:
        ...

    def log_density(self, x: np.ndarray) -> float:
        raise NotImplementedError(f"{type(self).__name__} does not provide log_density.")

    @property
    def cv_lipschitz(self) -> float:
        return self.lipschitz

    def cv_gradient(self, x: np.ndarray, x_ref: np.ndarray, g_ref: np.ndarray,
                    rng: np.random.Generator) -> np.ndarray:
        # fără subeșantionare: estimatorul "exact"
        return self.gradient(x)


class LinearTarget(TargetModel):
    """
    U(x) = a·x  (densitate exponențială restrânsă la domeniu).
    Gradient constant => rata de-a lungul razei este constantă max(0, a·v),
    util pentru a verifica thinning-ul contra unei exponențiale exacte.
    """

    def __init__(self, a):
        self.a = np.asarray(a, float)

    @property
    def dims(self) -> int:
        return self.a.size

    @property
    def lipschitz(self) -> float:
        return 0.0

    def gradient(self, x):
        return self.a.copy()

    def log_density(self, x):
        return -float(self.a @ x)


class GaussianTarget(TargetModel):
    """
    U(x) = ½ (x-μ)ᵀ P (x-μ), P = matricea de precizie (simetrică, PD).
    L = λ_max(P).
    """

    def __init__(self, mean, precision=None):
        self.mean = np.asarray(mean, float)
        p = self.mean.size
        self.P = np.eye(p) if precision is None else np.asarray(precision, float)
        if self.P.shape != (p, p):
            raise ValueError(f"precision must have shape ({p}, {p}), got {self.P.shape}")
        self._L = float(np.max(np.linalg.eigvalsh(self.P)))

    @property
    def dims(self) -> int:
        return self.mean.size

    @property
    def lipschitz(self) -> float:
        return self._L

    def gradient(self, x):
        return self.P @ (x - self.mean)

    def log_density(self, x):
        d = x - self.mean
        return -0.5 * float(d @ self.P @ d)


def _sigmoid(z):
    # formă stabilă numeric pentru z mari în modul
    out = np.empty_like(z, dtype=float)
    pos = z >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-z[pos]))
    ez = np.exp(z[~pos])
    out[~pos] = ez / (1.0 + ez)
    return out


class LogisticRegression(TargetModel):
    """
    Regresie logistică bayesiană:
      y_j ∈ {0, 1},  P(y_j = 1 | θ) = σ(X_j·θ),   prior θ ~ N(0, σ_0² I)

    Potențial (log-posterior negativ):
      U(θ) = Σ_j [ log(1 + exp(X_j·θ)) - y_j X_j·θ ] + ||θ||² / (2 σ_0²)
      ∇U(θ) = Xᵀ (σ(Xθ) - y) + θ / σ_0²

    Constante Lipschitz (σ' <= 1/4):
      L     = ¼ λ_max(XᵀX) + 1/σ_0²
      L_cv  = N · ¼ max_j ||X_j||² + 1/σ_0²   (valabil pt. orice observație j)

    Control variates (o singură observație j uniformă):
      ĝ(θ) = ∇U(θ*) + N [∇U_j(θ) - ∇U_j(θ*)]
    este nedeplasat: E_j[ĝ(θ)] = ∇U(θ).
    """

    def __init__(self, X, y, prior_var: float = 100.0):
        self.X = np.asarray(X, float)
        self.y = np.asarray(y, float).reshape(-1)
        if self.X.shape[0] != self.y.shape[0]:
            raise ValueError("X and y must have the same number of rows.")
        if prior_var <= 0:
            raise ValueError("prior_var must be positive.")
        self.prior_prec = 1.0 / float(prior_var)
        self.N = self.X.shape[0]

        self._L = 0.25 * float(np.max(np.linalg.eigvalsh(self.X.T @ self.X))) + self.prior_prec
        row_sq = (self.X ** 2).sum(axis=1)
        self._L_cv = self.N * 0.25 * float(row_sq.max()) + self.prior_prec

    @property
    def dims(self) -> int:
        return self.X.shape[1]

    @property
    def lipschitz(self) -> float:
        return self._L

    @property
    def cv_lipschitz(self) -> float:
        return self._L_cv

    def gradient(self, x):
        r = _sigmoid(self.X @ x) - self.y
        return self.X.T @ r + self.prior_prec * x

    def log_density(self, x):
        z = self.X @ x
        # log(1 + e^z) stabil: logaddexp(0, z)
        nll = float(np.sum(np.logaddexp(0.0, z) - self.y * z))
        return -(nll + 0.5 * self.prior_prec * float(x @ x))

    def cv_gradient(self, x, x_ref, g_ref, rng):
        j = int(rng.integers(self.N))
        Xj = self.X[j]
        diff = _sigmoid(np.array([Xj @ x]))[0] - _sigmoid(np.array([Xj @ x_ref]))[0]
        # termenul de prior e exact (nu se subeșantionează)
        return g_ref + self.N * diff * Xj + self.prior_prec * (x - x_ref)

    def mode(self, x0: Optional[np.ndarray] = None, iters: int = 200, tol: float = 1e-10):
        """
        Estimare a modului (Newton cu proiecție pe x >= 0), folosită ca punct
        de referință θ* pentru control variates.
        """
        x = np.zeros(self.dims) if x0 is None else np.asarray(x0, float).copy()
        for _ in range(iters):
            g = self.gradient(x)
            s = _sigmoid(self.X @ x)
            H = (self.X * (s * (1 - s))[:, None]).T @ self.X + self.prior_prec * np.eye(self.dims)
            step = np.linalg.solve(H, g)
            x_new = np.maximum(x - step, 0.0)
            if np.linalg.norm(x_new - x) < tol:
                return x_new
            x = x_new
        return x


def simulate_logistic_data(n: int, p: int, rng: np.random.Generator, theta=None):
    """
    Date sintetice pentru experimentul cu constrângeri de nenegativitate:
      X_jk ~ N(0, 1),  θ_true >= 0 (implicit |N(0,1)| cu jumătate din coordonate 0),
      y_j ~ Bernoulli(σ(X_j·θ_true)).
    Returnează (X, y, theta_true).
    """
    X = rng.normal(size=(n, p))
    if theta is None:
        theta = np.abs(rng.normal(size=p))
        theta[rng.permutation(p)[: p // 2]] = 0.0
    theta = np.asarray(theta, float)
    y = (rng.uniform(size=n) < _sigmoid(X @ theta)).astype(float)
    return X, y, theta
