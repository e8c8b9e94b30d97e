# src/pdmpcore/kernels.py

import numpy as np

# =============================================================================
# TRANZIȚII DE VITEZĂ
# -----------------------------------------------------------------------------
# 1) Bounce BPS (Bouncy Particle Sampler): reflexie pe hiperplanul ortogonal
#    gradientului în punctul evenimentului:
#      v' = v - 2 (∇U·v / ||∇U||²) ∇U
#    Păstrează ||v|| și schimbă semnul componentei de-a lungul lui ∇U.
#
# 2) Reflexie pe frontieră: aceeași formulă cu normala feței în loc de ∇U
#    (vezi boundaries.HalfSpace.reflect).
#
# 3) Refresh: viteza se re-extrage din distribuția de referință, independent
#    de starea curentă:
#      "sphere"   -> uniform pe sfera unitate  (||v'|| = 1)
#      "gaussian" -> N(0, I_p)                 (||v'|| variabil)
# =============================================================================


def bps_bounce(v: np.ndarray, grad: np.ndarray) -> np.ndarray:
    g2 = float(grad @ grad)
    if g2 == 0.0:
        # rata e 0 când ∇U = 0, deci un eveniment acceptat aici nu poate apărea
        return v.copy()
    return v - 2.0 * (float(grad @ v) / g2) * grad


def refresh_sphere(p: int, rng: np.random.Generator) -> np.ndarray:
    z = rng.normal(size=p)
    return z / np.linalg.norm(z)


def refresh_gaussian(p: int, rng: np.random.Generator) -> np.ndarray:
    return rng.normal(size=p)


REFRESH_KERNELS = {
    'sphere': refresh_sphere,
    'gaussian': refresh_gaussian,
}
