# src/pdmpcore/boundaries.py

# Despre NumPy (np):
#  - Normalele fețelor sunt stocate ca matrice (F, p): o față pe rând.
#  - Toate produsele n·x, n·v se calculează vectorizat (A @ x), cost O(F·p).
#  - Nu împărțim niciodată la n·v ≈ 0: fețele paralele cu raza sunt excluse
#    cu o mască înainte de împărțire.

from typing import Optional, Sequence, Tuple
import numpy as np


class HalfSpace:
    """
    Semi-spațiu: n·x >= c, cu n UNIT (||n||=1) după normalizare.
    Reflexie speculară (elastică) pe fața n·x = c:
      v' = v - 2 (v·n) n
    """
    def __init__(self, n: np.ndarray, c: float):
        n = np.asarray(n, float)
        n_norm = np.linalg.norm(n)
        if n_norm == 0:
            raise ValueError("Normal vector must be non-zero.")
        # împărțim și interceptul la ||n|| ca mulțimea fezabilă să nu se schimbe
        self.n = n / n_norm
        self.c = float(c) / n_norm

    def slack(self, x: np.ndarray) -> float:
        """n·x - c  (>= 0 în interior, = 0 pe față)."""
        return float(self.n @ x - self.c)

    def reflect(self, v: np.ndarray) -> np.ndarray:
        return v - 2.0 * (v @ self.n) * self.n


class Polygon:
    """
    Domeniu poligonal convex = intersecția semi-spațiilor {x : n_i·x >= c_i}.

    Fețele sunt ordonate; indicele feței (0..F-1) este cel raportat de
    `next_boundary`. Domeniul este imuabil pe durata unei rulări.

    Detecție de impact pentru raza x + t v (t > 0):
      t_i = (c_i - n_i·x) / (n_i·v),  valid doar dacă n_i·v < 0
      (raza se îndreaptă spre față din partea fezabilă).
      t_hit = min_i t_i.
    """

    def __init__(self, normals: Sequence[Sequence[float]], intercepts: Sequence[float],
                 eps: float = 1e-12):
        A = np.atleast_2d(np.asarray(normals, float))
        b = np.asarray(intercepts, float).reshape(-1)
        if A.shape[0] != b.shape[0]:
            raise ValueError(f"Got {A.shape[0]} normals but {b.shape[0]} intercepts.")
        if A.shape[0] == 0:
            raise ValueError("Polygon needs at least one face.")

        self.faces = [HalfSpace(n, c) for n, c in zip(A, b)]
        # forma "stivuită" pentru calcul vectorizat
        self.A = np.vstack([f.n for f in self.faces])    # (F, p)
        self.b = np.array([f.c for f in self.faces])     # (F,)
        self.eps = float(eps)

    # --- constructori uzuali ---------------------------------------------------

    @classmethod
    def orthant(cls, p: int) -> "Polygon":
        """Ortantul nenegativ: x_i >= 0 pentru toți i (constrângerea din regresia logistică)."""
        return cls(np.eye(p), np.zeros(p))

    @classmethod
    def box(cls, lo, hi) -> "Polygon":
        """Cutie axis-aligned lo <= x <= hi (2p fețe: întâi cele 'min', apoi cele 'max')."""
        lo = np.asarray(lo, float)
        hi = np.asarray(hi, float)
        if lo.shape != hi.shape:
            raise ValueError("box: lo and hi must have the same shape.")
        if np.any(hi <= lo):
            raise ValueError("box: need lo < hi on every axis.")
        p = lo.size
        I = np.eye(p)
        return cls(np.vstack([I, -I]), np.concatenate([lo, -hi]))

    # --- interogări ------------------------------------------------------------

    @property
    def dims(self) -> int:
        return self.A.shape[1]

    def __len__(self) -> int:
        return len(self.faces)

    def slack(self, x: np.ndarray) -> np.ndarray:
        """Vectorul n_i·x - c_i, shape (F,)."""
        return self.A @ x - self.b

    def contains(self, x: np.ndarray, tol: float = 0.0) -> bool:
        return bool(np.all(self.slack(np.asarray(x, float)) >= -tol))

    def next_boundary(self, x: np.ndarray, v: np.ndarray,
                      horizon: float = np.inf) -> Tuple[float, Optional[int]]:
        """
        Primul impact al razei x + t v cu o față.

        Returnează (t_hit, face). Dacă nicio față nu e atinsă în [0, horizon]
        returnează (inf, None) – rezultatul "fără frontieră".

        Observații numerice:
          - |n·v| <= eps·||v||  => fața e considerată inaccesibilă (raza e
            paralelă cu ea), NU împărțim la zero;
          - dacă x a ieșit marginal din domeniu (eroare de rotunjire) și se
            îndepărtează în continuare, t_hit = 0 (reflexie imediată).
        """
        nv = self.A @ v                                      # (F,)
        s = self.A @ x - self.b                              # (F,)  slack
        approaching = nv < -self.eps * max(np.linalg.norm(v), 1.0)
        if not np.any(approaching):
            return np.inf, None

        idx = np.where(approaching)[0]
        t = -s[idx] / nv[idx]                                # >= 0 în interior
        t = np.maximum(t, 0.0)

        k = int(np.argmin(t))
        t_hit = float(t[k])
        if t_hit > horizon:
            return np.inf, None
        return t_hit, int(idx[k])

    def reflect(self, v: np.ndarray, face: int) -> np.ndarray:
        """v' = v - 2 (v·n) n  pentru fața `face` (n unit)."""
        return self.faces[face].reflect(v)

    def normal(self, face: int) -> np.ndarray:
        return self.faces[face].n
