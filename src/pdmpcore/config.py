# src/pdmpcore/config.py

# Despre NumPy (np):
#  - x0, v0 (și opțional x_ref) sunt np.ndarray de shape (p,).
#  - Reproductibilitate: seed-ul construiește UN np.random.Generator,
#    deținut de Simulator; nu se atinge starea globală np.random.
#  - Limitele T / maxgradeval pot fi math.inf (dar nu ambele).

import math
from dataclasses import dataclass, field
from typing import Optional
import numpy as np

from .errors import ConfigError


@dataclass(frozen=True)
class RunConfig:
    """
    ============================================================================
    CONFIGURAȚIA UNEI RULĂRI PDMP
    ============================================================================

    SCOP
    ----
    Reunește parametrii *numerici* ai simulatorului. Restul codului citește
    exclusiv din acest obiect ⇒ setările sunt centralizate și reproductibile.
    Domeniul (Polygon) și modelul țintă NU fac parte din configurație: se dau
    separat la construcția Simulator-ului.

    DINAMICA (Bouncy Particle Sampler restrâns la poligon)
    ------------------------------------------------------
      dx/dt = v                                   (mișcare rectilinie)
      bounce   cu rata λ(x, v) = max(0, ∇U(x)·v)  v ← reflexie față de ∇U
      frontieră la primul n·x = c                 v ← reflexie speculară
      refresh  cu rata constantă λ_ref            v ← extras din referință

    OPRIRE
    ------
    Bucla se oprește când timpul simulat ajunge la T SAU când numărul de
    evaluări de gradient ajunge la maxgradeval. Cel puțin una dintre limite
    trebuie să fie finită.

    Fișiere rezultate (în output_dir):
      - path.dat        : t, x1..xp, v1..vp   (scheletul traiectoriei)
      - diagnostics.dat : key, value          (contoarele rulării)
      - samples.dat     : t, x1..xp           (traiectoria pe grilă uniformă)
      - summary.dat     : dim, mean, var, ess
    """

    # -----------------------
    # STARE INIȚIALĂ
    # -----------------------

    x0: np.ndarray = field(default_factory=lambda: np.ones(2))
    # Poziția de start (shape (p,)). Trebuie să fie în domeniu (toate fețele).

    v0: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0]))
    # Viteza de start (shape (p,)), nenulă. Tipic ||v0|| = 1.

    # -----------------------
    # LIMITE DE OPRIRE
    # -----------------------

    T: float = 1000.0
    # Timpul simulat maxim. math.inf => doar maxgradeval oprește bucla.

    maxgradeval: float = math.inf
    # Numărul maxim de evaluări de gradient. math.inf => doar T oprește bucla.

    # ------------
    # ALGORITM
    # ------------

    lambda_ref: float = 1.0
    # Rata procesului de refresh (Poisson omogen). 0 => refresh dezactivat.

    refresh: str = "sphere"
    # Distribuția de referință a vitezei la refresh: "sphere" | "gaussian".

    oracle: str = "thinning"
    # "thinning" → gradient complet la fiecare încercare;
    # "cv"       → gradient cu control variates (subeșantionare, o observație).

    x_ref: Optional[np.ndarray] = None
    # Punctul de referință θ* pentru "cv" (ex. modul posteriorului). None => x0.

    ref_refresh_every: int = 0
    # Politica de reîmprospătare a lui θ* ("cv"): 0 = niciodată;
    # K > 0 = θ* se mută în poziția curentă după fiecare K bounce-uri.

    feas_tol: float = 1e-9
    # Toleranța pentru verificarea fezabilității lui x0 (n·x0 >= c - tol).

    seed: Optional[int] = None
    # Sămânța RNG (np.random.default_rng(seed)).

    # --------
    # OUTPUT
    # --------

    output_dir: str = "output"
    # Directorul în care sunt scrise fișierele .dat (TSV).

    n_grid: int = 1000
    # Numărul de puncte ale grilei uniforme pentru samples.dat și ESS.

    log_every: int = 10000
    # La câte iterații se scrie un mesaj de progres (nivel DEBUG).

    # ---------------
    # VIZUALIZARE
    # ---------------

    enable_vpython: bool = False
    # Dacă True, pornește animația VPython după simulare (pasivă, doar grafică).

    viz_trail: bool = True
    # Dacă True, desenează traseul particulei în animație.

    def validate(self):
        """
        Verificările care nu depind de domeniu/model (acelea se fac în
        Simulator). Ridică ConfigError.
        """
        x0 = np.asarray(self.x0, float)
        v0 = np.asarray(self.v0, float)
        if x0.ndim != 1 or v0.shape != x0.shape:
            raise ConfigError(f"x0 and v0 must be 1-D with the same length, got {x0.shape} and {v0.shape}")
        if not np.all(np.isfinite(x0)) or not np.all(np.isfinite(v0)):
            raise ConfigError("x0 and v0 must be finite.")
        if not np.any(v0 != 0.0):
            raise ConfigError("v0 must be a non-zero vector.")
        if math.isinf(self.T) and math.isinf(self.maxgradeval):
            raise ConfigError("T and maxgradeval cannot both be infinite: the run would never stop.")
        if not self.T > 0:
            raise ConfigError(f"T must be positive, got {self.T}")
        if not self.maxgradeval > 0:
            raise ConfigError(f"maxgradeval must be positive, got {self.maxgradeval}")
        if not self.lambda_ref >= 0 or math.isinf(self.lambda_ref):
            raise ConfigError(f"lambda_ref must be finite and >= 0, got {self.lambda_ref}")
        if self.refresh not in ("sphere", "gaussian"):
            raise ConfigError(f"Unknown refresh kernel: {self.refresh}")
        if self.oracle not in ("thinning", "cv"):
            raise ConfigError(f"Unknown oracle: {self.oracle}")
        if self.ref_refresh_every < 0:
            raise ConfigError("ref_refresh_every must be >= 0.")
        if self.x_ref is not None and np.asarray(self.x_ref).shape != x0.shape:
            raise ConfigError("x_ref must have the same shape as x0.")
        if self.n_grid < 2:
            raise ConfigError("n_grid must be >= 2.")
        return self
