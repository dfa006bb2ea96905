# pylint: disable=C0103, C0116, C0114, W0511
"""
Information coefficient (IC) between two vectors.

The IC is a signed, bounded transform of the mutual information estimated
from a 2-D gaussian kernel density evaluated on a regular grid::

    IC = sign(rho) * sqrt(1 - exp(-2 * MI))

Bandwidths are chosen per vector by cross-validation on a binned
approximation (``ucv`` -- unbiased, ``bcv`` -- biased), then shrunk as the
absolute correlation between the vectors grows.
"""
from __future__ import annotations

import numpy as np

from scipy.optimize import minimize_scalar
from scipy.stats import norm

from ._errors import InvalidConfigurationError, ShapeMismatchError

_N_BINS = 1000
_DELMAX = 1000
_JITTER = 1e-9


def _pair_counts(x: np.ndarray, nb: int = _N_BINS) -> tuple[np.ndarray, float]:
    """Histogram of binned pairwise distances, ``cnt[l]`` pairs are ``l`` bins apart."""
    rang = (x.max() - x.min()) * 1.01
    d = rang / nb

    # truncation towards zero, bins are anchored at 0 and not at min(x)
    bins = np.trunc(x / d).astype(np.int64)
    bins -= bins.min()
    occ = np.bincount(bins).astype(np.float64)

    # [2 * len(occ) - 1], lag 0 in the middle
    lags = np.correlate(occ, occ, mode="full")[occ.shape[0] - 1 :]
    lags[0] = (lags[0] - x.shape[0]) / 2

    cnt = np.zeros(nb)
    m = min(nb, lags.shape[0])
    cnt[:m] = lags[:m]
    return cnt, d


def _ucv_score(h: float, n: int, d: float, cnt: np.ndarray) -> float:
    hh = h / 4
    delta = (np.arange(cnt.shape[0]) * d / hh) ** 2
    keep = delta < _DELMAX
    delta = delta[keep]
    term = np.exp(-delta / 4) - np.sqrt(8.0) * np.exp(-delta / 2)
    total = np.sum(term * cnt[keep])
    return (0.5 + total / n) / (n * hh * np.sqrt(np.pi))


def _bcv_score(h: float, n: int, d: float, cnt: np.ndarray) -> float:
    hh = h / 4
    delta = (np.arange(cnt.shape[0]) * d / hh) ** 2
    keep = delta < _DELMAX
    delta = delta[keep]
    term = np.exp(-delta / 4) * (delta**2 - 12 * delta + 12)
    total = np.sum(term * cnt[keep])
    return (1 + total / (32.0 * n)) / (2.0 * n * hh * np.sqrt(np.pi))


_BANDWIDTH_SCORES = {"ucv": _ucv_score, "bcv": _bcv_score}


def bandwidth_cv(x: np.ndarray, method: str = "ucv") -> float:
    """Cross-validated gaussian kernel bandwidth for a 1-D sample."""
    if method not in _BANDWIDTH_SCORES:
        raise InvalidConfigurationError(
            f"Unknown bandwidth rule '{method}'. Must be one of: "
            f"{', '.join(_BANDWIDTH_SCORES)}"
        )
    score = _BANDWIDTH_SCORES[method]

    n = x.shape[0]
    hmax = 1.144 * np.sqrt(np.var(x, ddof=1)) * n ** (-1 / 5) * 4
    if not (np.isfinite(hmax) and hmax > 0):
        return np.nan
    lower, upper = 0.1 * hmax, hmax
    cnt, d = _pair_counts(x)

    res = minimize_scalar(
        score,
        bounds=(lower, upper),
        args=(n, d, cnt),
        method="bounded",
        options={"xatol": 0.1 * lower},
    )
    return float(res.x)


def kde2d(
    x: np.ndarray, y: np.ndarray, h: np.ndarray, n_grid: int = 25
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Bivariate normal kernel density on a square grid spanning the data range."""
    nx = x.shape[0]
    gx = np.linspace(x.min(), x.max(), n_grid)
    gy = np.linspace(y.min(), y.max(), n_grid)
    h = np.asarray(h, dtype=np.float64) / 4

    # [n_grid, nx]
    ax = (gx[:, np.newaxis] - x[np.newaxis]) / h[0]
    ay = (gy[:, np.newaxis] - y[np.newaxis]) / h[1]

    # [n_grid, n_grid] = [n_grid, nx] x [nx, n_grid]
    z = norm.pdf(ax) @ norm.pdf(ay).T / (nx * h[0] * h[1])
    return gx, gy, z


def grid_information(
    z: np.ndarray, dx: float, dy: float
) -> dict[str, float]:
    """Joint / marginal differential entropies and mutual information of a gridded density."""
    # [n_grid, n_grid]
    FXY = z + np.finfo(np.float64).eps
    PXY = FXY / (FXY.sum() * dx * dy)
    # [n_grid]
    PX = PXY.sum(axis=1) * dy
    PY = PXY.sum(axis=0) * dx

    HXY = -np.sum(PXY * np.log(PXY)) * dx * dy
    HX = -np.sum(PX * np.log(PX)) * dx
    HY = -np.sum(PY * np.log(PY)) * dy
    MI = np.sum(PXY * np.log(PXY / np.outer(PX, PY))) * dx * dy

    return {"HXY": HXY, "HX": HX, "HY": HY, "MI": MI}


def mutual_inf(
    x,
    y,
    n_grid: int = 25,
    bandwidth: str = "ucv",
    random_state: int | np.random.Generator | None = None,
) -> float:
    """
    Information coefficient between ``x`` and ``y``, in [-1, 1].

    Positions where either vector is missing are dropped; fewer than three
    complete pairs give 0. A non-finite intermediate result also gives 0.

    :param x: first vector
    :type x: array-like
    :param y: second vector, same length as ``x``
    :type y: array-like
    :param n_grid: grid size used for the kernel density estimate, defaults to 25
    :type n_grid: int, optional
    :param bandwidth: cross-validation rule for the per-vector bandwidths, ``ucv`` or ``bcv``, defaults to "ucv"
    :type bandwidth: str, optional
    :param random_state: seed or generator for the tie-breaking jitter, defaults to None
    :type random_state: int | np.random.Generator | None, optional
    :return: information coefficient
    :rtype: float
    """
    x = np.asarray(x, dtype=np.float64).ravel()
    y = np.asarray(y, dtype=np.float64).ravel()
    if x.shape != y.shape:
        raise ShapeMismatchError(
            f"x and y must have the same length, got {x.shape[0]} and {y.shape[0]}"
        )

    overlap = np.isfinite(x) & np.isfinite(y)
    if overlap.sum() < 3:
        return 0.0

    rng = np.random.default_rng(random_state)
    x = x[overlap] + _JITTER * rng.uniform(size=overlap.sum())
    y = y[overlap] + _JITTER * rng.uniform(size=overlap.sum())

    with np.errstate(all="ignore"):
        delta = np.array([bandwidth_cv(x, bandwidth), bandwidth_cv(y, bandwidth)])
        rho = np.corrcoef(x, y)[0, 1]
        delta *= 1 - 0.75 * abs(rho)

        gx, gy, z = kde2d(x, y, delta, n_grid=n_grid)
        info = grid_information(z, gx[1] - gx[0], gy[1] - gy[0])

        ic = np.sign(rho) * np.sqrt(1 - np.exp(-2 * info["MI"]))

    if not np.isfinite(ic):
        return 0.0
    return float(ic)
