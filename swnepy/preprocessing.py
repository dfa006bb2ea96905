# pylint: disable=C0103, W0511, C0114
from __future__ import annotations

import logging

from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from scipy import sparse

from ._utils import (
    NormalizeMethod,
    _as_similarity,
    _normalize_vector,
    _prepare_snn,
    _smooth,
)


logger = logging.getLogger("swnepy")


def normalize_vector(
    x, method: str | NormalizeMethod = "scale", n_ranks: int = 10000
) -> np.ndarray:
    """
    Rescales a numeric vector.

    ``scale`` centers and divides by the standard deviation,
    ``rank`` maps each value to its fractional rank times ``n_ranks``,
    ``bounded`` min-max normalizes to [0, 1].
    Zero variance (``scale``) or zero range (``bounded``) raise ``DegenerateInputError``.

    :param x: vector to normalize
    :type x: array-like
    :param method: one of ``scale``, ``rank``, ``bounded``, defaults to "scale"
    :type method: str | NormalizeMethod, optional
    :param n_ranks: target rank range for ``rank``, defaults to 10000
    :type n_ranks: int, optional
    :return: normalized copy of ``x``
    :rtype: np.ndarray
    """
    return _normalize_vector(x, method=method, n_ranks=n_ranks)


def prepare_snn(
    snn,
    sample_names: Iterable[str] | None = None,
    min_snn: float = 0.0,
    snn_exp: float = 1.0,
) -> sparse.csr_matrix:
    """
    Floors, exponentiates and row-normalizes a sample similarity matrix
    (e.g. shared nearest neighbors counts), so each row sums to 1.

    :param snn: samples x samples similarity, sparse matrix or labelled ``pd.DataFrame``
    :type snn: scipy.sparse.spmatrix | pd.DataFrame
    :param sample_names: order of samples; a labelled ``snn`` is reindexed to it, defaults to None
    :type sample_names: Iterable[str] | None, optional
    :param min_snn: entries below this value are zeroed, defaults to 0.0
    :type min_snn: float, optional
    :param snn_exp: exponent applied to the surviving entries, defaults to 1.0
    :type snn_exp: float, optional
    :return: row-normalized similarity matrix
    :rtype: scipy.sparse.csr_matrix
    """
    if sample_names is None:
        if isinstance(snn, pd.DataFrame):
            sample_names = snn.index
        else:
            sample_names = pd.RangeIndex(snn.shape[0])
    S = _as_similarity(snn, pd.Index(sample_names))
    return _prepare_snn(S, min_snn=min_snn, snn_exp=snn_exp)


def smooth_snn(snn_norm: sparse.spmatrix, values):
    """
    Diffuses ``values`` (samples in rows) over a row-normalized similarity
    matrix, blending each sample with its neighbors.

    :param snn_norm: output of :func:`prepare_snn`
    :type snn_norm: scipy.sparse.spmatrix
    :param values: [n_samples, d] scores or coordinates
    :type values: np.ndarray | pd.DataFrame
    :return: smoothed values, a ``pd.DataFrame`` if ``values`` is one
    """
    if isinstance(values, pd.DataFrame):
        return pd.DataFrame(
            _smooth(snn_norm, values.to_numpy(dtype=np.float64)),
            index=values.index,
            columns=values.columns,
        )
    return _smooth(snn_norm, np.asarray(values, dtype=np.float64))


def filter_genesets(
    genesets: Mapping[str, Iterable[str]],
    gene_names: Iterable[str],
    min_size: int = 5,
    max_size: int = 500,
) -> dict[str, list[str]]:
    """
    Keeps only the genes present in ``gene_names``, then drops genesets with
    ``min_size`` or fewer, or ``max_size`` or more, genes.

    :param genesets: geneset name -> member genes
    :type genesets: Mapping[str, Iterable[str]]
    :param gene_names: genes available in the data
    :type gene_names: Iterable[str]
    :param min_size: minimum geneset size (exclusive), defaults to 5
    :type min_size: int, optional
    :param max_size: maximum geneset size (exclusive), defaults to 500
    :type max_size: int, optional
    :rtype: dict[str, list[str]]
    """
    gene_names = set(gene_names)
    filtered = {
        name: [g for g in genes if g in gene_names] for name, genes in genesets.items()
    }
    filtered = {
        name: genes
        for name, genes in filtered.items()
        if min_size < len(genes) < max_size
    }
    logger.info(
        "%i out of %i genesets passed size filtering", len(filtered), len(genesets)
    )
    return filtered


def genesets_indicator(
    genesets: Mapping[str, Iterable[str]], inv: bool = False
) -> pd.DataFrame:
    """Genes x genesets boolean membership matrix (negated if ``inv``)."""
    genes = pd.unique(np.concatenate([np.asarray(list(v), dtype=object) for v in genesets.values()]))
    ind = pd.DataFrame(False, index=genes, columns=list(genesets))
    for name, members in genesets.items():
        ind.loc[list(members), name] = True
    return ~ind if inv else ind


def flatten_groups(groups: Mapping[str, Iterable[str]]) -> pd.Series:
    """
    Converts group -> samples lists into a sample -> group ``pd.Series``.
    Samples belonging to several groups are removed.
    """
    pairs = [(s, g) for g, samples in groups.items() for s in samples]
    flat = pd.Series([g for _, g in pairs], index=[s for s, _ in pairs], dtype=object)

    duplicated = flat.index.duplicated(keep=False)
    if duplicated.any():
        logger.warning(
            "Removing %i samples belonging to multiple groups",
            len(set(flat.index[duplicated])),
        )
        flat = flat[~duplicated]
    return flat


def unflatten_groups(groups: pd.Series) -> dict[str, list[str]]:
    """Converts a sample -> group ``pd.Series`` into group -> samples lists."""
    return {
        g: list(groups.index[groups == g]) for g in pd.unique(groups.to_numpy())
    }
