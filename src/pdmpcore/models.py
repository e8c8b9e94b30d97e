# src/pdmpcore/models.py

# Despre NumPy (np):
#  - Scheletul traiectoriei se ține în liste Python în timpul rulării
#    (append O(1)) și se "îngheață" în tablouri np.ndarray la final.
#  - times: (K+1,), positions: (K+1, p), velocities: (K, p).

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Iterator, NamedTuple
import numpy as np


class EventKind(Enum):
    BOUNDARY = 'boundary'
    BOUNCE = 'bounce'
    REFRESH = 'refresh'
    # nu e un eveniment PDMP: segmentul a fost tăiat la orizontul T
    HORIZON = 'horizon'


@dataclass
class Diagnostics:
    """
    Contoarele unei rulări (numele câmpurilor sunt fixe, se scriu ca atare
    în diagnostics.dat):
      nboundary : reflexii pe frontieră
      nbounce   : bounce-uri acceptate (evenimente ale țintei)
      nrefresh  : reîmprospătări ale vitezei
      ngradeval : evaluări de gradient (inclusiv încercările respinse)
      nloops    : iterații ale buclei principale
      clocktime : timp de ceas [s]
    """
    nboundary: int = 0
    nbounce: int = 0
    nrefresh: int = 0
    ngradeval: int = 0
    nloops: int = 0
    clocktime: float = 0.0

    def as_dict(self):
        return asdict(self)


class Segment(NamedTuple):
    """Bucată liniară: x(t) = x_start + (t - t_start) v, pentru t în [t_start, t_end]."""
    t_start: float
    t_end: float
    x_start: np.ndarray
    v: np.ndarray

    @property
    def duration(self) -> float:
        return self.t_end - self.t_start

    def position(self, t: float) -> np.ndarray:
        return self.x_start + (t - self.t_start) * self.v


class Path:
    """
    Traiectoria PDMP (schelet liniar pe bucăți).

    Ciclu de viață:
      - creată goală cu punctul de start (t0, x0);
      - extinsă de Simulator cu append(t_end, x_end, v) la fiecare eveniment;
      - înghețată cu freeze() la oprire; după aceea e doar-citire.

    SRP: clasa doar stochează scheletul; interpolarea, media și ESS sunt în
    metrics.py.
    """

    def __init__(self, x0: np.ndarray, t0: float = 0.0):
        x0 = np.asarray(x0, float)
        self.dims = x0.size
        self._t = [float(t0)]
        self._x = [x0.copy()]
        self._v = []
        self._frozen = False
        self.diagnostics = Diagnostics()

    def append(self, t_end: float, x_end: np.ndarray, v: np.ndarray):
        if self._frozen:
            raise RuntimeError("Path is frozen; no more segments can be appended.")
        if t_end < self._t[-1]:
            raise ValueError(f"Segment ends at {t_end} before previous breakpoint {self._t[-1]}.")
        self._t.append(float(t_end))
        self._x.append(np.array(x_end, float))
        self._v.append(np.array(v, float))

    def freeze(self):
        if self._frozen:
            return self
        self.times = np.asarray(self._t, float)
        self.positions = np.vstack(self._x)
        self.velocities = (np.vstack(self._v) if self._v
                           else np.zeros((0, self.dims)))
        # tablourile înghețate nu se mai pot modifica pe loc
        for arr in (self.times, self.positions, self.velocities):
            arr.setflags(write=False)
        self._t = self._x = self._v = None
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _require_frozen(self):
        if not self._frozen:
            raise RuntimeError("Path must be frozen before it is analysed.")

    def __len__(self) -> int:
        """Numărul de segmente."""
        return len(self.velocities) if self._frozen else len(self._v)

    @property
    def t_start(self) -> float:
        return float(self.times[0]) if self._frozen else self._t[0]

    @property
    def t_end(self) -> float:
        return float(self.times[-1]) if self._frozen else self._t[-1]

    @property
    def total_time(self) -> float:
        return self.t_end - self.t_start

    def segments(self) -> Iterator[Segment]:
        self._require_frozen()
        for k in range(len(self.velocities)):
            yield Segment(float(self.times[k]), float(self.times[k + 1]),
                          self.positions[k], self.velocities[k])
