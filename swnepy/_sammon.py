# pylint: disable=C0103, C0116, C0114, W0511
from __future__ import annotations

import logging

import numpy as np

from ._errors import ConvergenceError, DegenerateInputError

logger = logging.getLogger("swnepy")


def cmdscale(d: np.ndarray, k: int = 2) -> np.ndarray:
    """
    Classical (Torgerson) multidimensional scaling of a distance matrix.

    Axes with a non-positive eigenvalue are filled by rotating the layout
    onto the diagonal, so a collinear configuration still spans every axis.
    """
    n = d.shape[0]
    # [n, n]
    J = np.eye(n) - np.ones((n, n)) / n
    B = -0.5 * J @ (d**2) @ J

    vals, vecs = np.linalg.eigh(B)
    order = np.argsort(vals)[::-1][:k]
    vals, vecs = vals[order], vecs[:, order]

    # fix eigenvector signs so the layout is reproducible
    signs = np.sign(vecs[np.abs(vecs).argmax(axis=0), np.arange(vecs.shape[1])])
    signs[signs == 0] = 1
    vecs = vecs * signs

    positive = vals > max(vals[0], 0) * 1e-10
    # [n, k]
    points = np.zeros((n, k))
    points[:, positive] = vecs[:, positive] * np.sqrt(vals[positive])

    if not positive.all():
        base = points[:, positive].sum(axis=1) if positive.any() else np.zeros(n)
        n_fill = (~positive).sum() + 1
        points[:, positive] /= np.sqrt(n_fill)
        points[:, ~positive] = base[:, np.newaxis] / np.sqrt(n_fill)
    return points


def _stress(d: np.ndarray, y: np.ndarray, iu: tuple, tot: float) -> float:
    # [n, n]
    dy = np.sqrt(((y[:, np.newaxis] - y[np.newaxis]) ** 2).sum(axis=2))
    ee = d[iu] - dy[iu]
    return float(np.sum(ee**2 / d[iu]) / tot)


def _step(d: np.ndarray, y: np.ndarray, magic: float) -> np.ndarray:
    n = d.shape[0]
    off = ~np.eye(n, dtype=bool)

    # [n, n, k]
    xv = y[:, np.newaxis] - y[np.newaxis]
    # [n, n]
    dpj = np.sqrt((xv**2).sum(axis=2))
    dpj[~off] = 1
    dt = np.where(off, d, 1)

    dq = dt - dpj
    dr = dt * dpj
    dq[~off] = 0

    # [n, k]
    e1 = np.sum(xv * (dq / dr)[..., np.newaxis], axis=1)
    e2 = np.sum(
        (
            dq[..., np.newaxis]
            - xv**2 * (1.0 + dq / dpj)[..., np.newaxis] / dpj[..., np.newaxis]
        )
        / dr[..., np.newaxis]
        * off[..., np.newaxis],
        axis=1,
    )
    return y + magic * e1 / np.abs(e2)


def sammon(
    d: np.ndarray,
    y: np.ndarray | None = None,
    k: int = 2,
    n_iter: int = 250,
    magic: float = 0.2,
) -> tuple[np.ndarray, float]:
    """
    Sammon's nonlinear mapping of a distance matrix into ``k`` dimensions.

    Runs the full ``n_iter`` pseudo-Newton iterations, halting early only when
    the step size collapses because every trial step increases the stress.

    :param d: symmetric [n, n] distance matrix with positive off-diagonal entries
    :type d: np.ndarray
    :param y: initial [n, k] configuration, defaults to classical MDS of ``d``
    :type y: np.ndarray | None, optional
    :param k: output dimensionality, defaults to 2
    :type k: int, optional
    :param n_iter: number of iterations, defaults to 250
    :type n_iter: int, optional
    :param magic: initial step size, defaults to 0.2
    :type magic: float, optional
    :return: [n, k] configuration and its final stress
    :rtype: tuple[np.ndarray, float]
    """
    d = np.asarray(d, dtype=np.float64)
    n = d.shape[0]
    if d.ndim != 2 or d.shape[1] != n:
        raise DegenerateInputError(f"Distances must be a square matrix, got {d.shape}")
    if not np.isfinite(d).all():
        raise DegenerateInputError("Infs or NaNs are not allowed in distances")

    iu = np.triu_indices(n, 1)
    if (d[iu] <= 0).any():
        raise DegenerateInputError("Zero or negative distance between objects")

    y = cmdscale(d, k) if y is None else np.array(y, dtype=np.float64)
    if len(np.unique(np.round(y, 12), axis=0)) < n:
        raise ConvergenceError("Initial configuration has duplicates")

    tot = d[iu].sum()
    e = eprev = _stress(d, y, iu, tot)
    logger.debug("Initial stress        : %7.5f", e)

    for i in range(1, n_iter + 1):
        while True:
            with np.errstate(divide="ignore", invalid="ignore"):
                xu = _step(d, y, magic)
            e = _stress(d, xu, iu, tot) if np.isfinite(xu).all() else np.inf
            if e <= eprev:
                break
            magic *= 0.2
            if magic <= 1e-3:
                break

        if e > eprev:
            e = eprev
            logger.debug("stress after %3d iters: %7.5f (step collapsed)", i - 1, e)
            break

        magic = min(magic * 1.5, 0.5)
        eprev = e
        # move the centroid to the origin
        y = xu - xu.mean(axis=0)

        if i % 10 == 0:
            logger.debug("stress after %3d iters: %7.5f, magic = %5.3f", i, e, magic)

    return y, e
