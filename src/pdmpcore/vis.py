# src/pdmpcore/vis.py

"""
VIZUALIZARE VPYTHON (OPȚIONALĂ)
===============================
Scop:
  - să vedem traiectoria PDMP (linii drepte + reflexii) în domeniul poligonal;
  - să plotăm seriile x_k(t) re-eșantionate pe grilă (trace plots).

Important:
  - Vizualizarea este *pasivă*: nu afectează traiectoria sau fișierele .dat.
  - Se animă traiectoria re-eșantionată (sample_path pe grilă uniformă),
    nu scheletul brut, ca viteza de pe ecran să fie proporțională cu timpul.
  - Pentru D=2 randăm cu z=0 (plan XY) și desenăm fețele poligonului ca
    segmente tăiate la fereastra de vizualizare.

Dependență:
  - Necesită `vpython` (pip install vpython).
"""

from __future__ import annotations
import numpy as np


def _vec_from_point(p, scale, D, vector):
    """Construiește un vector VPython dintr-un punct 2D/3D, punând z=0 în 2D."""
    if D == 2:
        x, y = (p * scale).tolist()
        return vector(x, y, 0.0)
    x, y, z = (p * scale).tolist()
    return vector(x, y, z)


def _face_segment_2d(n, c, lo, hi):
    """
    Capetele dreptei n·x = c tăiate la dreptunghiul [lo, hi] (2D).
    Returnează None dacă dreapta nu trece prin fereastră.
    """
    pts = []
    for axis in (0, 1):
        other = 1 - axis
        if abs(n[other]) < 1e-12:
            continue
        for fixed in (lo[axis], hi[axis]):
            val = (c - n[axis] * fixed) / n[other]
            if lo[other] - 1e-9 <= val <= hi[other] + 1e-9:
                p = np.empty(2)
                p[axis], p[other] = fixed, val
                pts.append(p)
    if len(pts) < 2:
        return None
    pts = np.array(pts)
    # cele două puncte cele mai depărtate
    d = ((pts[:, None, :] - pts[None, :, :]) ** 2).sum(axis=2)
    i, j = np.unravel_index(np.argmax(d), d.shape)
    return pts[i], pts[j]


def animate_path_vpython(
    xs: np.ndarray,
    domain=None,
    viz_trail: bool = True,
    auto_close: bool = True,
    fps: int = 60,
):
    """
    Animează traiectoria re-eșantionată.

    Parametri
    ---------
    xs : np.ndarray, shape (n, D), D ∈ {2, 3}
        Pozițiile la momentele grilei (ieșirea lui sample_path).
    domain : Polygon sau None
        Dacă D=2, fețele se desenează ca segmente albe.
    viz_trail : bool
        Trasee VPython (utile ca să se vadă reflexiile).
    auto_close : bool
        Închide fereastra la final (batch-friendly). Pentru demo, pune False.
    """
    try:
        from vpython import canvas, vector, sphere, color, rate, curve
    except Exception as e:
        raise RuntimeError('VPython is not installed. Run `pip install vpython`.') from e

    xs = np.asarray(xs, float)
    n, D = xs.shape
    if D not in (2, 3):
        raise ValueError(f"animate_path_vpython: D must be 2 or 3, got {D}")

    # --- AUTO-SCALE: fereastra = bounding box al traiectoriei (+10%) ----------
    lo, hi = xs.min(axis=0), xs.max(axis=0)
    pad = 0.1 * np.maximum(hi - lo, 1e-12)
    lo, hi = lo - pad, hi + pad
    center = 0.5 * (lo + hi)
    half_extent = 0.5 * float(np.max(hi - lo))
    scale = 4.0 / half_extent if half_extent > 0 else 1.0

    scene = canvas(title='PDMP path (BPS on polygon)', width=900, height=600,
                   background=color.black)

    if domain is not None and D == 2:
        for face in domain.faces:
            seg = _face_segment_2d(face.n, face.c, lo, hi)
            if seg is None:
                continue
            a, b = seg
            curve(pos=[_vec_from_point(a - center, scale, D, vector),
                       _vec_from_point(b - center, scale, D, vector)],
                  color=color.white, radius=0.01)

    ball = sphere(pos=_vec_from_point(xs[0] - center, scale, D, vector),
                  radius=0.05, color=color.orange, make_trail=viz_trail, retain=2000)

    for k in range(1, n):
        rate(fps)
        ball.pos = _vec_from_point(xs[k] - center, scale, D, vector)

    if auto_close:
        try:
            scene.delete()
        except Exception:
            scene.visible = False


# ---------- 2D plotting (VPython graph + gcurve) ----------

def plot_timeseries_vpython(
    t: np.ndarray,
    series: dict,
    title: str = "Trace plot PDMP",
    xlabel: str = "t",
    ylabel: str = "x_k(t)",
    legend: bool = True
):
    """
    Plotează serii temporale 2D (t, y) folosind VPython (graph + gcurve).
    Această fereastră NU se închide automat (util pentru inspectare manuală).

    series : dict[str, np.ndarray]  {nume_curba -> valori_y}, toate de shape (n,)
    """
    try:
        from vpython import graph, gcurve, color
    except Exception as e:
        raise RuntimeError('VPython is not installed. Run `pip install vpython`.') from e

    palette = [color.red, color.green, color.blue, color.cyan,
               color.magenta, color.yellow, color.white, color.orange]
    names = list(series.keys())

    full_title = f"{title} | {' | '.join(names)}" if legend else title
    g = graph(title=full_title, xtitle=xlabel, ytitle=ylabel,
              width=900, height=600, fast=False)

    curves = [gcurve(graph=g, color=palette[i % len(palette)], label=name)
              for i, name in enumerate(names)]

    # Downsample simplu dacă seria e lungă (pentru performanță UI)
    n = len(t)
    step = max(1, n // 5000)
    for k in range(0, n, step):
        x = float(t[k])
        for c, name in zip(curves, names):
            c.plot(x, float(series[name][k]))
