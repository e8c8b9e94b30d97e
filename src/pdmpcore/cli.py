# src/pdmpcore/cli.py

# Despre NumPy (np):
#  - Vectorii din linia de comandă (x0, v0, box) devin np.ndarray de shape (p,).
#  - Reproductibilitate: --seed construiește np.random.default_rng(seed); datele
#    sintetice ale regresiei logistice folosesc un generator separat (--data-seed).

import argparse
import logging
import math
import os

import numpy as np
from threadpoolctl import threadpool_info

from .boundaries import Polygon
from .config import RunConfig
from .io import DataWriter
from .metrics import path_ess, path_mean, path_var, sample_path, uniform_grid
from .simulator import Simulator, run_chains
from .targets import GaussianTarget, LogisticRegression, simulate_logistic_data

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO'):
    """Configurează logger-ul rădăcină (consolă)."""
    logging.basicConfig(level=level.upper(),
                        format='%(asctime)s - %(levelname)s - %(message)s',
                        force=True)
    # cu ce BLAS e legat NumPy (contează pentru gradientul vectorizat pe date)
    for lib in threadpool_info():
        logger.debug("threadpool: %s %s num_threads=%s",
                     lib.get("internal_api"), lib.get("filename"), lib.get("num_threads"))


def _limit(value: float) -> float:
    # 0 sau negativ pe linia de comandă = fără limită
    return math.inf if value <= 0 else value


def parse_args(argv=None):
    """
    Parsează argumentele din linia de comandă.
    Expunem ținta, domeniul, limitele de oprire și parametrii algoritmului.
    """
    p = argparse.ArgumentParser(description='Constrained PDMP (Bouncy Particle Sampler) on a polygonal domain')

    # --- OUTPUT ---
    p.add_argument('--output', type=str, default='output',
                   help="Directorul unde se vor scrie fișierele .dat (TSV).")
    p.add_argument('--log-level', type=str, default='INFO',
                   help="Nivelul de logging (DEBUG/INFO/WARNING).")

    # --- ȚINTA ---
    p.add_argument('--target', type=str, default='logistic', choices=['logistic', 'gaussian'],
                   help="'logistic' = regresie logistică bayesiană pe date sintetice; "
                        "'gaussian' = N(mean, I) restrânsă la domeniu.")
    p.add_argument('--dims', type=int, default=5,
                   help="Dimensiunea p a parametrului.")
    p.add_argument('--n-obs', type=int, default=1000,
                   help="Numărul de observații (doar pentru 'logistic').")
    p.add_argument('--prior-var', type=float, default=100.0,
                   help="Varianța priorului gaussian N(0, σ² I) ('logistic').")
    p.add_argument('--data-seed', type=int, default=0,
                   help="Sămânța pentru datele sintetice ('logistic').")
    p.add_argument('--mean', type=float, nargs='+', default=None,
                   help="Media țintei gaussiene (len=dims). Implicit: vector nul.")

    # --- DOMENIU ---
    p.add_argument('--domain', type=str, default='orthant', choices=['orthant', 'box'],
                   help="'orthant' = x >= 0; 'box' = lo <= x <= hi (vezi --box).")
    p.add_argument('--box', type=float, nargs=2, default=[0.0, 1.0],
                   help="Capetele cutiei (aceleași pe toate axele): lo hi.")

    # --- STARE INIȚIALĂ ---
    p.add_argument('--x0', type=float, nargs='+', default=None,
                   help="Poziția de start (len=dims). Implicit: modul (logistic) sau centrul/1 (gaussian).")
    p.add_argument('--v0', type=float, nargs='+', default=None,
                   help="Viteza de start (len=dims). Implicit: (1,...,1)/sqrt(p).")

    # --- OPRIRE ---
    p.add_argument('--T', type=float, default=1000.0,
                   help="Timpul simulat maxim (<=0 = nelimitat).")
    p.add_argument('--maxgradeval', type=float, default=0,
                   help="Evaluări de gradient maxime (<=0 = nelimitat).")

    # --- ALGORITM ---
    p.add_argument('--lambda-ref', type=float, default=1.0,
                   help="Rata de refresh (0 = dezactivat).")
    p.add_argument('--refresh', type=str, default='sphere', choices=['sphere', 'gaussian'])
    p.add_argument('--oracle', type=str, default='thinning', choices=['thinning', 'cv'],
                   help="'thinning' = gradient complet; 'cv' = control variates (subeșantionare).")
    p.add_argument('--ref-refresh-every', type=int, default=0,
                   help="Mută punctul de referință cv la fiecare K bounce-uri (0 = niciodată).")
    p.add_argument('--seed', type=int, default=None,
                   help="Sămânța RNG a simulării.")
    p.add_argument('--n-grid', type=int, default=1000,
                   help="Puncte pe grila uniformă pentru samples.dat și ESS.")

    # --- LANȚURI PARALELE ---
    p.add_argument('--chains', type=int, default=1,
                   help="Numărul de lanțuri independente.")
    p.add_argument('--workers', type=int, default=1,
                   help="Procese pentru lanțuri (1 = secvențial).")
    p.add_argument('--blas-threads', type=int, default=1,
                   help="Fire BLAS per lanț (threadpoolctl).")

    # --- VIZUALIZARE ---
    p.add_argument('--enable-vpython', action='store_true',
                   help="Animează traiectoria (lanțul 0) în VPython după simulare.")
    p.add_argument('--no-trail', action='store_true',
                   help="Fără trasee în animație.")

    return p.parse_args(argv)


def build_problem(a):
    """Construiește (target, domain, x_ref implicit) din argumente."""
    p = a.dims
    if a.domain == 'orthant':
        domain = Polygon.orthant(p)
    else:
        lo, hi = a.box
        domain = Polygon.box(np.full(p, lo), np.full(p, hi))

    x_ref = None
    if a.target == 'logistic':
        data_rng = np.random.default_rng(a.data_seed)
        X, y, theta = simulate_logistic_data(a.n_obs, p, data_rng)
        logger.info("Synthetic logistic data: n=%d, p=%d, theta_true=%s", a.n_obs, p, np.round(theta, 3))
        target = LogisticRegression(X, y, prior_var=a.prior_var)
        x_ref = target.mode()
        if not domain.contains(x_ref):
            x_ref = None
    else:
        mean = np.zeros(p) if a.mean is None else np.asarray(a.mean, float)
        if mean.shape != (p,):
            raise ValueError(f'--mean must have length {p}')
        target = GaussianTarget(mean)
    return target, domain, x_ref


def default_x0(a, domain, x_ref):
    if a.x0 is not None:
        return np.asarray(a.x0, float)
    if x_ref is not None:
        return x_ref.copy()
    if a.domain == 'box':
        return np.full(a.dims, 0.5 * (a.box[0] + a.box[1]))
    return np.ones(a.dims)


def write_outputs(path, output_dir, n_grid):
    """Scrie traiectoria, contoarele, grila și sumarul; returnează căile."""
    writer = DataWriter(output_dir)
    grid = uniform_grid(path, n_grid)
    xs = sample_path(path, grid)
    m = path_mean(path)
    files = [
        writer.write_path(path),
        writer.write_diagnostics(path.diagnostics),
        writer.write_samples(grid, xs),
        writer.write_summary(m, path_var(path, m), path_ess(path, n_grid)),
    ]
    return files, xs


def main(argv=None):
    """
    Flux:
      1) Parsează argumentele, configurează logging-ul.
      2) Construiește ținta, domeniul și RunConfig.
      3) Rulează lanțul (sau lanțurile).
      4) Scrie .dat și, opțional, animă traiectoria.
    """
    a = parse_args(argv)
    setup_logging(a.log_level)

    target, domain, x_ref = build_problem(a)
    x0 = default_x0(a, domain, x_ref)
    v0 = np.ones(a.dims) / math.sqrt(a.dims) if a.v0 is None else np.asarray(a.v0, float)

    if x0.shape != (a.dims,):
        raise ValueError(f'--x0 must have length {a.dims}')
    if v0.shape != (a.dims,):
        raise ValueError(f'--v0 must have length {a.dims}')

    cfg = RunConfig(
        x0=x0, v0=v0,
        T=_limit(a.T), maxgradeval=_limit(a.maxgradeval),
        lambda_ref=a.lambda_ref, refresh=a.refresh,
        oracle=a.oracle, x_ref=x_ref, ref_refresh_every=a.ref_refresh_every,
        seed=a.seed, output_dir=a.output, n_grid=a.n_grid,
        enable_vpython=a.enable_vpython, viz_trail=not a.no_trail,
    )

    if a.chains <= 1:
        paths = [Simulator(target, domain, cfg).run()]
        out_dirs = [cfg.output_dir]
    else:
        paths = run_chains(target, domain, [cfg] * a.chains, seed=a.seed,
                           n_workers=a.workers, blas_threads=a.blas_threads)
        out_dirs = [os.path.join(cfg.output_dir, f'chain_{k}') for k in range(a.chains)]

    xs0 = None
    for k, (path, out_dir) in enumerate(zip(paths, out_dirs)):
        files, xs = write_outputs(path, out_dir, cfg.n_grid)
        if k == 0:
            xs0 = xs
        for f in files:
            print('Wrote:', f)
        d = path.diagnostics
        print(f'[chain {k}] nboundary={d.nboundary} nbounce={d.nbounce} nrefresh={d.nrefresh} '
              f'ngradeval={d.ngradeval} nloops={d.nloops} clocktime={d.clocktime:.3f}s')

    if cfg.enable_vpython and a.dims in (2, 3):
        from .vis import animate_path_vpython
        animate_path_vpython(xs0, domain=domain, viz_trail=cfg.viz_trail)


if __name__ == '__main__':
    main()
