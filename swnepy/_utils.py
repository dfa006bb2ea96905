# pylint: disable=C0103, C0116, C0114, C0115, W0511
from __future__ import annotations

import enum
import logging

import numpy as np
import pandas as pd

from scipy import sparse
from scipy.stats import rankdata
from sklearn.decomposition import PCA
from sklearn.metrics.pairwise import cosine_similarity, euclidean_distances

from ._errors import (
    ConvergenceError,
    DegenerateInputError,
    InvalidConfigurationError,
    ShapeMismatchError,
)
from ._mutual_info import mutual_inf
from ._sammon import sammon

logger = logging.getLogger("swnepy")


class _TagEnum(str, enum.Enum):
    @classmethod
    def parse(cls, value: str | "_TagEnum"):
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = cls._synonyms().get(key, key)
        try:
            return cls(key)
        except ValueError as e:
            raise InvalidConfigurationError(
                f"Unknown {cls.__name__} '{value}'. "
                f"Must be one of: {', '.join(m.value for m in cls)}"
            ) from e

    @classmethod
    def _synonyms(cls) -> dict:
        return {}


class DistanceMetric(_TagEnum):
    PEARSON = "pearson"
    IC = "ic"
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"

    @classmethod
    def _synonyms(cls) -> dict:
        return {
            "cor": "pearson",
            "correlation": "pearson",
            "mutual": "ic",
            "information": "ic",
            "mutual information": "ic",
            "mutual-information": "ic",
            "mutual_information": "ic",
        }


class NormalizeMethod(_TagEnum):
    SCALE = "scale"
    RANK = "rank"
    BOUNDED = "bounded"


class AssociationMetric(_TagEnum):
    PEARSON = "pearson"
    SPEARMAN = "spearman"
    IC = "ic"

    @classmethod
    def _synonyms(cls) -> dict:
        return {"cor": "pearson", "correlation": "pearson", "mutual": "ic"}


def _scale(x: np.ndarray, n_ranks: int) -> np.ndarray:
    sd = x.std(ddof=1) if x.shape[0] > 1 else 0.0
    if not np.isfinite(sd) or sd == 0:
        raise DegenerateInputError(
            "Cannot scale a vector with zero variance"
        )
    return (x - x.mean()) / sd


def _rank(x: np.ndarray, n_ranks: int) -> np.ndarray:
    # average ranks for ties
    return rankdata(x) / x.shape[0] * n_ranks


def _bounded(x: np.ndarray, n_ranks: int) -> np.ndarray:
    x_min, x_max = x.min(), x.max()
    if not x_max > x_min:
        raise DegenerateInputError(
            f"Cannot min-max normalize a vector with zero range (all values equal {x_min})"
        )
    return (x - x_min) / (x_max - x_min)


_NORMALIZERS = {
    NormalizeMethod.SCALE: _scale,
    NormalizeMethod.RANK: _rank,
    NormalizeMethod.BOUNDED: _bounded,
}


def _normalize_vector(
    x, method: str | NormalizeMethod = "scale", n_ranks: int = 10000
) -> np.ndarray:
    method = NormalizeMethod.parse(method)
    x = np.asarray(x, dtype=np.float64)
    if x.ndim != 1 or x.shape[0] == 0:
        raise ShapeMismatchError(
            f"Expected a non-empty 1-D vector, got shape {x.shape}"
        )
    return _NORMALIZERS[method](x, n_ranks)


def _normalize_columns(
    X: pd.DataFrame, method: str | NormalizeMethod = "bounded"
) -> pd.DataFrame:
    """Normalizes every column of ``X`` independently."""
    method = NormalizeMethod.parse(method)
    out = {}
    for col in X.columns:
        try:
            out[col] = _normalize_vector(X[col].to_numpy(), method)
        except DegenerateInputError as e:
            raise DegenerateInputError(f"Column '{col}': {e}") from e
    return pd.DataFrame(out, index=X.index, columns=X.columns)


def _as_frame(
    X, row_prefix: str, col_prefix: str
) -> pd.DataFrame:
    if isinstance(X, pd.DataFrame):
        return X.astype(np.float64)
    if sparse.issparse(X):
        X = X.toarray()
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ShapeMismatchError(f"Expected a 2-D matrix, got shape {X.shape}")
    return pd.DataFrame(
        X,
        index=[f"{row_prefix}_{i + 1}" for i in range(X.shape[0])],
        columns=[f"{col_prefix}_{j + 1}" for j in range(X.shape[1])],
    )


def _check_nonnegative(H: pd.DataFrame, what: str = "H"):
    values = H.to_numpy()
    if not np.isfinite(values).all():
        raise DegenerateInputError(f"{what} contains non-finite values")
    if (values < 0).any():
        raise DegenerateInputError(f"{what} must be nonnegative")


def _factor_distances(
    M: np.ndarray, metric: DistanceMetric, random_seed: int | None = 1
) -> np.ndarray:
    # M: [k, d], factors as rows
    if metric is DistanceMetric.PEARSON:
        sim = np.corrcoef(M)
    elif metric is DistanceMetric.COSINE:
        sim = cosine_similarity(M)
    elif metric is DistanceMetric.IC:
        rng = np.random.default_rng(random_seed)
        k = M.shape[0]
        sim = np.eye(k)
        for i in range(1, k):
            for j in range(i):
                sim[i, j] = sim[j, i] = mutual_inf(M[i], M[j], random_state=rng)
    else:
        dist = euclidean_distances(M)
        np.fill_diagonal(dist, 0)
        return dist

    if not np.isfinite(sim).all():
        raise DegenerateInputError(
            f"{metric.value} similarity between factors is undefined "
            "(a factor has zero variance or zero norm)"
        )
    dist = np.sqrt(np.clip(2 * (1 - sim), 0, None))
    np.fill_diagonal(dist, 0)
    return dist


def _get_factor_coords(
    H: pd.DataFrame,
    method: str = "sammon",
    pca_red: bool = False,
    distance: str | DistanceMetric = "cosine",
    n_iter: int = 250,
    random_seed: int | None = 1,
) -> pd.DataFrame:
    distance = DistanceMetric.parse(distance)
    if method != "sammon":
        raise InvalidConfigurationError(
            f"Invalid factor projection method '{method}'. Only 'sammon' is supported"
        )

    k, n = H.shape
    if k < 2:
        raise DegenerateInputError(
            f"At least 2 factors are needed to compute factor coordinates, got {k}"
        )

    # [k, n]
    M = H.to_numpy(dtype=np.float64)
    if pca_red:
        # factors are the observations, full rank is kept
        M = PCA(n_components=min(k, n), svd_solver="full").fit_transform(M)

    # [k, k]
    H_dist = _factor_distances(M, distance, random_seed=random_seed)

    off_diag = ~np.eye(k, dtype=bool)
    if (H_dist[off_diag] <= 0).any():
        i, j = np.argwhere((H_dist <= 0) & off_diag)[0]
        raise DegenerateInputError(
            f"Zero {distance.value} distance between factors "
            f"'{H.index[i]}' and '{H.index[j]}'"
        )

    logger.info(
        "Projecting %i factors with Sammon mapping (%s distance, %i iterations)",
        k,
        distance.value,
        n_iter,
    )
    # [k, 2]
    coords, stress = sammon(H_dist, k=2, n_iter=n_iter)
    if not np.isfinite(stress) or not np.isfinite(coords).all():
        raise ConvergenceError("Sammon mapping produced a non-finite layout")
    logger.debug("Sammon mapping final stress: %.5f", stress)

    try:
        coords = np.column_stack(
            [_normalize_vector(coords[:, m], "bounded") for m in range(2)]
        )
    except DegenerateInputError as e:
        raise DegenerateInputError(
            f"Factor layout collapsed onto a line: {e}"
        ) from e

    return pd.DataFrame(coords, index=H.index.copy(), columns=["x", "y"])


def _resolve_n_pull(n_pull: int | None, k: int) -> int:
    if n_pull is not None and n_pull < 3:
        n_pull = 3
    if n_pull is None or n_pull > k:
        n_pull = k
    return int(n_pull)


def _align_to_anchors(W: pd.DataFrame, anchors: pd.DataFrame) -> pd.DataFrame:
    if W.shape[0] != anchors.shape[0]:
        raise ShapeMismatchError(
            f"Weight matrix has {W.shape[0]} rows but there are "
            f"{anchors.shape[0]} anchor coordinates"
        )
    if set(W.index) == set(anchors.index):
        return W.loc[anchors.index]
    return W


def _get_sample_coords(
    W: pd.DataFrame,
    H_coords: pd.DataFrame,
    alpha: float = 1,
    n_pull: int | None = None,
) -> pd.DataFrame:
    if alpha < 0:
        raise InvalidConfigurationError(f"alpha must be >= 0, got {alpha}")

    W = _align_to_anchors(W, H_coords)
    k, n = W.shape
    n_pull = _resolve_n_pull(n_pull, k)

    # [k, m], [k, 2]
    weights = W.to_numpy(dtype=np.float64)
    anchors = H_coords[["x", "y"]].to_numpy(dtype=np.float64)

    # [n_pull, m] stable: ties keep the original factor order
    pull_ix = np.argsort(-weights, axis=0, kind="stable")[:n_pull]
    pull_w = np.take_along_axis(weights, pull_ix, axis=0) ** alpha
    with np.errstate(divide="ignore", invalid="ignore"):
        pull_w = pull_w / pull_w.sum(axis=0, keepdims=True)

    # [m, 2] = sum over n_pull of [n_pull, m, 1] * [n_pull, m, 2]
    coords = np.sum(pull_w[..., np.newaxis] * anchors[pull_ix], axis=0)

    bad = ~np.isfinite(coords).all(axis=1)
    if bad.any():
        raise DegenerateInputError(
            f"{bad.sum()} entities have no usable pull weights "
            f"(e.g. '{W.columns[bad][0]}'): top weights sum to zero or are negative"
        )

    return pd.DataFrame(coords, index=W.columns.copy(), columns=["x", "y"])


def _as_similarity(S, ids: pd.Index, cols: pd.Index | None = None) -> sparse.csr_matrix:
    """Returns ``S`` as CSR aligned to ``ids`` (rows) and ``cols`` (columns)."""
    cols = ids if cols is None else cols
    if isinstance(S, pd.DataFrame):
        if set(S.index) != set(ids) or set(S.columns) != set(cols):
            raise InvalidConfigurationError(
                "Similarity matrix identifiers must match the sample identifiers: "
                f"{len(set(ids).symmetric_difference(S.index))} row and "
                f"{len(set(cols).symmetric_difference(S.columns))} column names differ"
            )
        S = S.loc[ids, cols]
        if hasattr(S, "sparse"):
            return S.sparse.to_coo().tocsr().astype(np.float64)
        return sparse.csr_matrix(S.to_numpy(dtype=np.float64))

    S = sparse.csr_matrix(S, dtype=np.float64)
    if S.shape != (len(ids), len(cols)):
        raise ShapeMismatchError(
            f"Similarity matrix has shape {S.shape}, expected ({len(ids)}, {len(cols)})"
        )
    return S


def _prepare_snn(
    S: sparse.spmatrix, min_snn: float = 0.0, snn_exp: float = 1.0
) -> sparse.csr_matrix:
    S = sparse.csr_matrix(S, dtype=np.float64, copy=True)
    if (S.data < 0).any():
        raise DegenerateInputError("Similarity matrix must be nonnegative")

    S.data[S.data < min_snn] = 0
    S.eliminate_zeros()
    S.data = S.data**snn_exp

    # [n]
    row_sums = np.asarray(S.sum(axis=1)).ravel()
    empty = ~(row_sums > 0)
    if empty.any():
        raise DegenerateInputError(
            f"{empty.sum()} of {S.shape[0]} similarity rows sum to zero "
            f"after flooring at min_snn={min_snn}"
        )

    return sparse.csr_matrix(sparse.diags(1 / row_sums) @ S)


def _smooth(S: sparse.csr_matrix, X: np.ndarray) -> np.ndarray:
    # [n, d] = [n, n] x [n, d]
    return np.asarray(S @ X)
