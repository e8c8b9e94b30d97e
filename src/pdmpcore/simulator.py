# src/pdmpcore/simulator.py

# Despre NumPy (np):
#  - Starea lanțului este (x, v), ambele np.ndarray de shape (p,).
#  - Un singur np.random.Generator per lanț, partajat cu oracolul; lanțuri
#    diferite primesc generatoare independente (SeedSequence.spawn).

import logging
import math
import time
from concurrent.futures import ProcessPoolExecutor
from typing import Callable, List, Optional, Sequence

import numpy as np
from threadpoolctl import threadpool_limits

from .boundaries import Polygon
from .config import RunConfig
from .errors import ConfigError
from .events import ControlVariateOracle, EventOracle, ThinningOracle
from .kernels import REFRESH_KERNELS, bps_bounce
from .models import EventKind, Path
from .targets import TargetModel

logger = logging.getLogger(__name__)


def make_oracle(target: TargetModel, cfg: RunConfig, rng: np.random.Generator) -> EventOracle:
    """Alege oracolul (Strategy) după cfg.oracle."""
    if cfg.oracle == 'thinning':
        return ThinningOracle(target, rng)
    if cfg.oracle == 'cv':
        return ControlVariateOracle(target, rng, x_ref=cfg.x_ref,
                                    refresh_every=cfg.ref_refresh_every)
    raise ConfigError(f"Unknown oracle: {cfg.oracle}")


class Simulator:
    """
    MOTORUL DE SIMULARE PDMP (SRP)
    ------------------------------
    • Validează configurația față de domeniu și model (înainte de orice pas).
    • La fiecare iterație "întrece" trei ceasuri:
        t_b  – primul impact cu o față a poligonului,
        t_e  – următorul bounce al țintei (oracol, thinning),
        t_r  – următorul refresh ~ Exp(λ_ref);
      câștigă minimul (la egalitate: frontieră > bounce > refresh).
    • Avansează x ← x + t v, adaugă segmentul în Path, aplică tranziția.
    • Se oprește la elapsed >= T sau ngradeval >= maxgradeval.

    Lanțul e secvențial prin natura lui (fiecare pas depinde de precedentul).
    """

    def __init__(self, target: TargetModel, domain: Polygon, cfg: RunConfig,
                 oracle: Optional[EventOracle] = None,
                 rng: Optional[np.random.Generator] = None):
        cfg.validate()
        self.cfg = cfg
        self.target = target
        self.domain = domain

        self.x0 = np.asarray(cfg.x0, float).copy()
        self.v0 = np.asarray(cfg.v0, float).copy()
        p = self.x0.size
        if domain.dims != p:
            raise ConfigError(f"x0 has {p} coordinates but the domain lives in {domain.dims} dimensions.")
        if target.dims != p:
            raise ConfigError(f"x0 has {p} coordinates but the target expects {target.dims}.")

        slack = domain.slack(self.x0)
        bad = np.where(slack < -cfg.feas_tol)[0]
        if bad.size:
            raise ConfigError(
                f"x0 is infeasible: violates face(s) {bad.tolist()} "
                f"(slack {slack[bad].tolist()})."
            )

        self.rng = np.random.default_rng(cfg.seed) if rng is None else rng
        self.oracle = make_oracle(target, cfg, self.rng) if oracle is None else oracle
        self.refresh_kernel = REFRESH_KERNELS[cfg.refresh]

    def _draw_refresh_time(self) -> float:
        lam = self.cfg.lambda_ref
        return self.rng.exponential(1.0 / lam) if lam > 0 else math.inf

    def run(self, callback: Optional[Callable] = None) -> Path:
        """
        Rulează lanțul până la oprire și returnează traiectoria înghețată.

        callback(iteration, x, v, elapsed) -> False oprește bucla între două
        iterații (anulare cooperativă pentru un driver extern).
        """
        cfg, domain = self.cfg, self.domain
        T, max_evals = cfg.T, cfg.maxgradeval

        x, v = self.x0.copy(), self.v0.copy()
        path = Path(x)
        diag = path.diagnostics
        elapsed = 0.0

        logger.info("PDMP run started: p=%d, faces=%d, T=%s, maxgradeval=%s, lambda_ref=%g, oracle=%s",
                    x.size, len(domain), T, max_evals, cfg.lambda_ref, type(self.oracle).__name__)
        clock0 = time.perf_counter()

        diag.ngradeval += self.oracle.reset(x)

        while elapsed < T and diag.ngradeval < max_evals:
            diag.nloops += 1

            # 1) frontieră și refresh (nu consumă gradient)
            t_b, face = domain.next_boundary(x, v)
            t_r = self._draw_refresh_time()
            remaining = T - elapsed

            # 2) oracolul nu caută dincolo de primul ceas concurent
            horizon = min(t_b, t_r, remaining)
            cand = self.oracle.next_event(x, v, horizon, max_evals - diag.ngradeval)
            diag.ngradeval += cand.n_evals

            # 3) câștigătorul; comparațiile stricte dau precedența la egalitate
            t, kind = t_b, EventKind.BOUNDARY
            if cand.time < t:
                t, kind = cand.time, EventKind.BOUNCE
            if t_r < t:
                t, kind = t_r, EventKind.REFRESH
            if cand.exhausted and cand.stopped_at < t:
                t, kind = cand.stopped_at, EventKind.HORIZON
            if remaining < t:
                t, kind = remaining, EventKind.HORIZON
            if math.isinf(t):
                raise RuntimeError(
                    "No boundary, event or refresh ahead: the trajectory escapes to infinity "
                    "(improper target on an unbounded domain?)."
                )

            # 4) deplasare + segment
            v_seg = v
            x = x + t * v
            if kind is EventKind.BOUNDARY:
                # aterizare exactă pe față (fără derivă numerică în afara domeniului)
                n = domain.normal(face)
                s = float(n @ x) - domain.b[face]
                if s < 0.0:
                    x = x - s * n
            elapsed += t
            path.append(elapsed, x, v_seg)

            # 5) tranziția
            if kind is EventKind.BOUNDARY:
                v = domain.reflect(v, face)
                diag.nboundary += 1
            elif kind is EventKind.BOUNCE:
                v = bps_bounce(v, cand.gradient)
                diag.nbounce += 1
                diag.ngradeval += self.oracle.on_bounce(x, cand.gradient)
            elif kind is EventKind.REFRESH:
                v = self.refresh_kernel(x.size, self.rng)
                diag.nrefresh += 1

            if cfg.log_every and diag.nloops % cfg.log_every == 0:
                logger.debug("loop %d | t=%.6g | grad evals=%d | bounces=%d | boundary hits=%d",
                             diag.nloops, elapsed, diag.ngradeval, diag.nbounce, diag.nboundary)

            if callback is not None and callback(diag.nloops, x, v, elapsed) is False:
                logger.info("Run aborted by callback at loop %d (t=%.6g).", diag.nloops, elapsed)
                break

        diag.clocktime = time.perf_counter() - clock0
        path.freeze()
        logger.info("PDMP run finished: t=%.6g, loops=%d, grad evals=%d, bounces=%d, "
                    "boundary hits=%d, refreshes=%d, %.3fs",
                    path.total_time, diag.nloops, diag.ngradeval, diag.nbounce,
                    diag.nboundary, diag.nrefresh, diag.clocktime)
        return path


# -----------------------------------------------------------------------------
# Lanțuri independente în paralel (procese separate, fără stare partajată).
# Fiecare worker își limitează firele BLAS ca să nu se "calce" pe CPU când
# gradientul modelului e vectorizat pe date.
# -----------------------------------------------------------------------------

def _run_chain(target, domain, cfg, seed_seq, blas_threads):
    with threadpool_limits(limits=blas_threads):
        rng = np.random.default_rng(seed_seq)
        return Simulator(target, domain, cfg, rng=rng).run()


def run_chains(target: TargetModel, domain: Polygon, cfgs: Sequence[RunConfig],
               seed: Optional[int] = None, n_workers: int = 1,
               blas_threads: int = 1) -> List[Path]:
    """
    Rulează câte un lanț pentru fiecare configurație din `cfgs`.
    Generatoarele sunt derivate din `seed` cu SeedSequence.spawn, deci
    lanțurile sunt independente și reproductibile (cfg.seed e ignorat aici).
    n_workers = 1 → rulare secvențială în procesul curent.
    """
    children = np.random.SeedSequence(seed).spawn(len(cfgs))
    for cfg in cfgs:
        cfg.validate()

    if n_workers <= 1:
        return [_run_chain(target, domain, cfg, ss, blas_threads) for cfg, ss in zip(cfgs, children)]

    logger.info("Running %d chains on %d worker processes.", len(cfgs), n_workers)
    with ProcessPoolExecutor(max_workers=n_workers) as pool:
        futures = [pool.submit(_run_chain, target, domain, cfg, ss, blas_threads)
                   for cfg, ss in zip(cfgs, children)]
        return [f.result() for f in futures]
