# src/pdmpcore/io.py

# Despre NumPy (np) / pandas:
#  - Scheletul traiectoriei (times, positions, velocities) se scrie ca un
#    singur tabel: un rând per punct de rupere.
#  - Ultimul rând nu are viteză (traiectoria se termină acolo) ⇒ NaN.

import os
import numpy as np
import pandas as pd

from .models import Diagnostics, Path


def _xcols(p):
    return [f'x{k + 1}' for k in range(p)]


def _vcols(p):
    return [f'v{k + 1}' for k in range(p)]


class DataWriter:
    """
    Clasa responsabilă DOAR de scrierea pe disc a rezultatelor
    (SRP: Single Responsibility). Produce fișiere .dat (TSV) ușor de
    importat în gnuplot/matplotlib/Excel.

    Convenții:
      - separare cu TAB ('\t')
      - fără index pandas
      - float_format='%.10g'  -> 10 cifre semnificative (traiectoria se
                                 re-citește și se re-eșantionează)
    """

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)

    def _write(self, df, name):
        path = os.path.join(self.output_dir, name)
        df.to_csv(path, sep='\t', index=False, float_format='%.10g')
        return path

    def write_path(self, path: Path):
        """
        <output_dir>/path.dat
          Coloane: t, x1..xp, v1..vp   (v pe rândul k = viteza segmentului k)
        """
        p = path.dims
        vel = np.vstack([path.velocities, np.full((1, p), np.nan)])
        data = np.column_stack([path.times, path.positions, vel])
        df = pd.DataFrame(data, columns=['t'] + _xcols(p) + _vcols(p))
        return self._write(df, 'path.dat')

    def write_diagnostics(self, diag: Diagnostics):
        """<output_dir>/diagnostics.dat
          Coloane: key, value"""
        df = pd.DataFrame(list(diag.as_dict().items()), columns=['key', 'value'])
        return self._write(df, 'diagnostics.dat')

    def write_samples(self, t, xs):
        """<output_dir>/samples.dat
          Coloane: t, x1..xp"""
        xs = np.atleast_2d(xs)
        df = pd.DataFrame(np.column_stack([t, xs]), columns=['t'] + _xcols(xs.shape[1]))
        return self._write(df, 'samples.dat')

    def write_summary(self, mean, var, ess):
        """<output_dir>/summary.dat
          Coloane: dim, mean, var, ess"""
        p = len(mean)
        df = pd.DataFrame({'dim': np.arange(1, p + 1), 'mean': mean, 'var': var, 'ess': ess})
        return self._write(df, 'summary.dat')


def read_path(filename: str) -> Path:
    """
    Reconstruiește un Path înghețat dintr-un path.dat. Dacă lângă el există
    diagnostics.dat, contoarele sunt încărcate și ele.
    """
    if not os.path.isfile(filename):
        raise FileNotFoundError(f"Nu am găsit fișierul: {os.path.abspath(filename)}")
    df = pd.read_csv(filename, sep='\t')
    df.columns = [c.strip() for c in df.columns]
    xcols = [c for c in df.columns if c.startswith('x')]
    vcols = [c for c in df.columns if c.startswith('v')]
    if 't' not in df.columns or not xcols or len(xcols) != len(vcols):
        raise ValueError(f"{filename}: expected columns t, x1..xp, v1..vp; got {list(df.columns)}")

    t = df['t'].to_numpy(float)
    X = df[xcols].to_numpy(float)
    V = df[vcols].to_numpy(float)

    path = Path(X[0], t0=t[0])
    for k in range(1, len(t)):
        path.append(t[k], X[k], V[k - 1])

    diag_file = os.path.join(os.path.dirname(filename), 'diagnostics.dat')
    if os.path.isfile(diag_file):
        dd = pd.read_csv(diag_file, sep='\t')
        values = dict(zip(dd['key'], dd['value']))
        for name, default in Diagnostics().as_dict().items():
            if name in values:
                setattr(path.diagnostics, name, type(default)(values[name]))
    return path.freeze()
