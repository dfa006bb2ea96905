# pylint: disable=C0103, C0116, C0114, C0115, W0511
from __future__ import annotations

import logging
import warnings

from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from anndata import AnnData
from joblib import Parallel, delayed
from scipy import sparse
from scipy.stats import rankdata

import scanpy as sc

from ._errors import (
    DegenerateInputError,
    InvalidConfigurationError,
    ShapeMismatchError,
)
from ._mutual_info import mutual_inf
from ._utils import (
    AssociationMetric,
    DistanceMetric,
    _as_frame,
    _as_similarity,
    _check_nonnegative,
    _get_factor_coords,
    _get_sample_coords,
    _normalize_columns,
    _prepare_snn,
    _resolve_n_pull,
    _smooth,
)
from .embedding import SWNEEmbedding


logger = logging.getLogger("swnepy")

__all__ = [
    "mutual_inf",
    "get_factor_coords",
    "get_sample_coords",
    "embed_swne",
    "embed_features",
    "embed_genesets",
    "embed_contours",
    "project_swne",
    "rename_factors",
    "factor_association",
    "summarize_assoc_features",
    "check_gene_embedding",
    "swne",
    "map_swne",
]


def get_factor_coords(
    H,
    method: str = "sammon",
    pca_red: bool = False,
    distance: str | DistanceMetric = "cosine",
    n_iter: int = 250,
    random_seed: int | None = 1,
) -> pd.DataFrame:
    """
    Places the factors in 2-D: pairwise factor distances are embedded with
    Sammon mapping and each axis is min-max normalized to [0, 1].

    :param H: factor scores, factors x samples
    :type H: pd.DataFrame | np.ndarray
    :param method: projection method, only "sammon" is supported, defaults to "sammon"
    :type method: str, optional
    :param pca_red: if to replace factors by their principal component scores (full rank) before computing distances, defaults to False
    :type pca_red: bool, optional
    :param distance: ``pearson``, ``ic`` (mutual information), ``cosine`` or ``euclidean``, defaults to "cosine"
    :type distance: str | DistanceMetric, optional
    :param n_iter: number of Sammon mapping iterations, defaults to 250
    :type n_iter: int, optional
    :param random_seed: seed of the information coefficient jitter, defaults to 1
    :type random_seed: int | None, optional
    :return: factors x (``x``, ``y``) coordinates
    :rtype: pd.DataFrame
    """
    H = _as_frame(H, "factor", "sample")
    return _get_factor_coords(
        H,
        method=method,
        pca_red=pca_red,
        distance=distance,
        n_iter=n_iter,
        random_seed=random_seed,
    )


def get_sample_coords(
    H, H_coords: pd.DataFrame, alpha: float = 1, n_pull: int | None = None
) -> pd.DataFrame:
    """
    Places every column of ``H`` at the barycenter of its ``n_pull`` strongest
    factors, weights raised to the power ``alpha``.

    :param H: weights, factors x entities
    :type H: pd.DataFrame | np.ndarray
    :param H_coords: factor coordinates with ``x`` and ``y`` columns
    :type H_coords: pd.DataFrame
    :param alpha: pull exponent, defaults to 1
    :type alpha: float, optional
    :param n_pull: number of factors pulling on each entity, clamped to [3, n_factors]. All factors if None, defaults to None
    :type n_pull: int | None, optional
    :return: entities x (``x``, ``y``) coordinates
    :rtype: pd.DataFrame
    """
    H = _as_frame(H, "factor", "sample")
    return _get_sample_coords(H, H_coords, alpha=alpha, n_pull=n_pull)


def embed_swne(
    H,
    snn=None,
    alpha_exp: float = 1,
    snn_exp: float = 1.0,
    n_pull: int | None = None,
    proj_method: str = "sammon",
    pca_red: bool = False,
    dist_use: str | DistanceMetric = "cosine",
    snn_factor_proj: bool = True,
    min_snn: float = 0.0,
    n_iter: int = 250,
    random_seed: int | None = 1,
) -> SWNEEmbedding:
    """
    Embeds factors and samples in 2 dimensions.

    Factors are placed by Sammon mapping of their pairwise distances
    (computed on neighbor-smoothed scores if ``snn`` is given), samples are
    pulled towards the factors by their raw scores, and sample coordinates
    are then smoothed over the similarity matrix.

    :param H: nonnegative factor scores, factors x samples. Samples with all-zero scores are dropped
    :type H: pd.DataFrame | np.ndarray
    :param snn: samples x samples similarity (e.g. shared nearest neighbors), defaults to None
    :type snn: scipy.sparse.spmatrix | pd.DataFrame | None, optional
    :param alpha_exp: increasing ``alpha_exp`` increases how much the factors "pull" the samples, defaults to 1
    :type alpha_exp: float, optional
    :param snn_exp: decreasing ``snn_exp`` increases the effect of the similarity matrix on the embedding, defaults to 1.0
    :type snn_exp: float, optional
    :param n_pull: number of factors pulling on each sample, clamped to [3, n_factors]. All factors if None, defaults to None
    :type n_pull: int | None, optional
    :param proj_method: factor projection method, only "sammon" is supported, defaults to "sammon"
    :type proj_method: str, optional
    :param pca_red: if to run PCA on the factors before computing distances, defaults to False
    :type pca_red: bool, optional
    :param dist_use: factor distance: ``pearson``, ``ic``, ``cosine`` or ``euclidean``, defaults to "cosine"
    :type dist_use: str | DistanceMetric, optional
    :param snn_factor_proj: if to smooth factor scores over ``snn`` before projecting the factors, defaults to True
    :type snn_factor_proj: bool, optional
    :param min_snn: similarity entries below this value are zeroed, defaults to 0.0
    :type min_snn: float, optional
    :param n_iter: number of Sammon mapping iterations, defaults to 250
    :type n_iter: int, optional
    :param random_seed: seed of the information coefficient jitter, defaults to 1
    :type random_seed: int | None, optional
    :return: embedding with factor (``H_coords``) and sample (``sample_coords``) coordinates
    :rtype: SWNEEmbedding
    """
    # Errors
    dist_use = DistanceMetric.parse(dist_use)
    if proj_method != "sammon":
        raise InvalidConfigurationError(
            f"Invalid factor projection method '{proj_method}'. Only 'sammon' is supported"
        )
    if alpha_exp < 0:
        raise InvalidConfigurationError(f"alpha_exp must be >= 0, got {alpha_exp}")

    H = _as_frame(H, "factor", "sample")
    _check_nonnegative(H)

    S = None
    if snn is not None:
        S = _as_similarity(snn, H.columns)

    # [n]
    keep = (H.sum(axis=0) > 0).to_numpy()
    if not keep.any():
        raise DegenerateInputError("All samples have zero factor scores")
    if not keep.all():
        logger.warning(
            "Removing %i out of %i samples with all-zero factor scores",
            (~keep).sum(),
            keep.shape[0],
        )
        H = H.loc[:, keep]

    if S is not None:
        S = _prepare_snn(S[keep][:, keep], min_snn=min_snn, snn_exp=snn_exp)

    if S is not None and snn_factor_proj:
        # [k, n] = ([n, n] x [n, k]).T
        H_smooth = pd.DataFrame(
            _smooth(S, H.to_numpy().T).T, index=H.index, columns=H.columns
        )
    else:
        H_smooth = H

    H_coords = _get_factor_coords(
        H_smooth,
        method=proj_method,
        pca_red=pca_red,
        distance=dist_use,
        n_iter=n_iter,
        random_seed=random_seed,
    )
    H_coords["name"] = H_coords.index.astype(str)

    # samples are pulled by the raw (unsmoothed) scores
    sample_coords = _get_sample_coords(H, H_coords, alpha=alpha_exp, n_pull=n_pull)
    if S is not None:
        sample_coords = pd.DataFrame(
            _smooth(S, sample_coords.to_numpy()),
            index=sample_coords.index,
            columns=sample_coords.columns,
        )

    return SWNEEmbedding(H_coords=H_coords, sample_coords=sample_coords)


def _embed_assoc(
    embedding: SWNEEmbedding,
    assoc: pd.DataFrame,
    alpha_exp: float,
    n_pull: int | None,
    scale_cols: bool,
    overwrite: bool,
) -> SWNEEmbedding:
    # assoc: [k, entities]
    if assoc.shape[0] != embedding.n_factors:
        raise ShapeMismatchError(
            f"Association matrix has {assoc.shape[0]} factors, "
            f"the embedding has {embedding.n_factors}"
        )
    if assoc.columns.duplicated().any():
        raise InvalidConfigurationError(
            f"Duplicated identifiers to embed: {list(assoc.columns[assoc.columns.duplicated()])}"
        )

    if scale_cols:
        assoc = _normalize_columns(assoc, "bounded")
    elif (assoc.to_numpy() < 0).any():
        warnings.warn(
            "Associations contain negative values, consider `scale_cols=True` "
            "to rescale them to [0, 1] before embedding"
        )

    feature_coords = _get_sample_coords(
        assoc, embedding.H_coords, alpha=alpha_exp, n_pull=n_pull
    )
    feature_coords["name"] = feature_coords.index.astype(str)

    return embedding.with_feature_coords(feature_coords, overwrite=overwrite)


def embed_features(
    embedding: SWNEEmbedding,
    feature_assoc: pd.DataFrame,
    features_embed: Iterable[str] | None = None,
    alpha_exp: float = 1,
    n_pull: int | None = None,
    scale_cols: bool = True,
    overwrite: bool = True,
) -> SWNEEmbedding:
    """
    Embeds features relative to the factor coordinates of ``embedding``.

    :param embedding: existing embedding from :func:`embed_swne`
    :type embedding: SWNEEmbedding
    :param feature_assoc: feature loadings or associations, features x factors
    :type feature_assoc: pd.DataFrame
    :param features_embed: names of features to embed, all features if None, defaults to None
    :type features_embed: Iterable[str] | None, optional
    :param alpha_exp: increasing ``alpha_exp`` increases how much the factors "pull" the features, defaults to 1
    :type alpha_exp: float, optional
    :param n_pull: number of factors pulling on each feature, defaults to None
    :type n_pull: int | None, optional
    :param scale_cols: if to min-max scale each feature's associations to [0, 1], defaults to True
    :type scale_cols: bool, optional
    :param overwrite: if to replace existing feature coordinates rather than append to them, defaults to True
    :type overwrite: bool, optional
    :return: copy of ``embedding`` with ``feature_coords``
    :rtype: SWNEEmbedding
    """
    feature_assoc = _as_frame(feature_assoc, "feature", "factor")
    features_embed = (
        list(feature_assoc.index) if features_embed is None else list(features_embed)
    )

    missing = [f for f in features_embed if f not in feature_assoc.index]
    if missing:
        raise ShapeMismatchError(
            f"{len(missing)} features are not present in feature_assoc: {missing[:10]}"
        )

    # [k, n_features]
    assoc = feature_assoc.loc[features_embed].T
    return _embed_assoc(embedding, assoc, alpha_exp, n_pull, scale_cols, overwrite)


def embed_genesets(
    embedding: SWNEEmbedding,
    feature_assoc: pd.DataFrame,
    genesets_embed: Mapping[str, Iterable[str]],
    alpha_exp: float = 1,
    n_pull: int | None = None,
    scale_cols: bool = True,
    overwrite: bool = False,
) -> SWNEEmbedding:
    """
    Embeds genesets relative to the factor coordinates of ``embedding``.
    A geneset's association with a factor is the mean association of its genes.

    :param embedding: existing embedding from :func:`embed_swne`
    :type embedding: SWNEEmbedding
    :param feature_assoc: gene loadings or associations, genes x factors
    :type feature_assoc: pd.DataFrame
    :param genesets_embed: geneset name -> member genes
    :type genesets_embed: Mapping[str, Iterable[str]]
    :param alpha_exp: increasing ``alpha_exp`` increases how much the factors "pull" the genesets, defaults to 1
    :type alpha_exp: float, optional
    :param n_pull: number of factors pulling on each geneset, defaults to None
    :type n_pull: int | None, optional
    :param scale_cols: if to min-max scale each geneset's associations to [0, 1], defaults to True
    :type scale_cols: bool, optional
    :param overwrite: if to replace existing feature coordinates rather than append to them, defaults to False
    :type overwrite: bool, optional
    :return: copy of ``embedding`` with updated ``feature_coords``
    :rtype: SWNEEmbedding
    """
    feature_assoc = _as_frame(feature_assoc, "feature", "factor")

    columns = {}
    for name, genes in genesets_embed.items():
        genes = list(genes)
        if not genes:
            raise DegenerateInputError(f"Geneset '{name}' is empty")
        missing = [g for g in genes if g not in feature_assoc.index]
        if missing:
            raise ShapeMismatchError(
                f"{len(missing)} genes of geneset '{name}' are not present "
                f"in feature_assoc: {missing[:10]}"
            )
        columns[name] = feature_assoc.loc[genes].mean(axis=0)

    # [k, n_genesets]
    assoc = pd.DataFrame(columns, index=feature_assoc.columns)
    return _embed_assoc(embedding, assoc, alpha_exp, n_pull, scale_cols, overwrite)


def embed_contours(
    embedding: SWNEEmbedding,
    contour_feature: pd.Series,
    sample_coords: pd.DataFrame | None = None,
    levels_use: Iterable | None = None,
    cutoff_use: float | None = None,
) -> SWNEEmbedding:
    """
    Selects the samples outlined by a contour: those whose label is in
    ``levels_use`` (categorical ``contour_feature``) or whose value is above
    ``cutoff_use`` (numeric ``contour_feature``).

    :param embedding: existing embedding
    :type embedding: SWNEEmbedding
    :param contour_feature: per-sample labels or values, indexed by sample
    :type contour_feature: pd.Series
    :param sample_coords: sample coordinates to use, defaults to ``embedding.sample_coords``
    :type sample_coords: pd.DataFrame | None, optional
    :param levels_use: labels to outline (categorical ``contour_feature``), defaults to None
    :type levels_use: Iterable | None, optional
    :param cutoff_use: threshold (numeric ``contour_feature``). By default the value of the top third, defaults to None
    :type cutoff_use: float | None, optional
    :return: copy of ``embedding`` with ``contour_data``
    :rtype: SWNEEmbedding
    """
    if sample_coords is None:
        sample_coords = embedding.sample_coords

    if not contour_feature.index.isin(sample_coords.index).all():
        raise ShapeMismatchError(
            "contour_feature must be indexed by the same samples as sample_coords"
        )
    contour_feature = contour_feature.reindex(sample_coords.index)

    if isinstance(contour_feature.dtype, pd.CategoricalDtype) or pd.api.types.is_object_dtype(
        contour_feature
    ) or pd.api.types.is_string_dtype(contour_feature):
        if levels_use is None:
            raise InvalidConfigurationError(
                "levels_use must be given for a categorical contour_feature"
            )
        levels_use = list(levels_use)
        levels = set(contour_feature.dropna().unique())
        if isinstance(contour_feature.dtype, pd.CategoricalDtype):
            levels |= set(contour_feature.cat.categories)
        unknown = [lvl for lvl in levels_use if lvl not in levels]
        if unknown:
            raise InvalidConfigurationError(
                f"Selected levels do not exist in contour_feature: {unknown}"
            )
        mask = contour_feature.isin(levels_use).to_numpy()
    elif pd.api.types.is_numeric_dtype(contour_feature):
        if cutoff_use is None:
            values = np.sort(contour_feature.dropna().to_numpy())[::-1]
            idx = max(int(np.round(values.shape[0] / 3)), 1) - 1
            cutoff_use = values[idx]
        mask = (contour_feature > cutoff_use).to_numpy()
    else:
        raise InvalidConfigurationError(
            "contour_feature must be either categorical or numeric"
        )

    contour_data = sample_coords.loc[mask, ["x", "y"]]
    if contour_data.shape[0] == 0:
        raise DegenerateInputError("No samples selected for the contour")

    return embedding.replace(contour_data=contour_data)


def project_swne(
    embedding: SWNEEmbedding,
    H_test,
    snn=None,
    alpha_exp: float = 1,
    snn_exp: float = 1.0,
    n_pull: int | None = None,
) -> SWNEEmbedding:
    """
    Projects new samples onto an existing embedding.

    New samples are pulled towards the fixed factor coordinates. If ``snn``
    linking new samples to the embedded ones is given, each new sample is
    then blended with its own position and its embedded neighbors' positions.

    :param embedding: existing embedding from :func:`embed_swne`
    :type embedding: SWNEEmbedding
    :param H_test: factor scores of the new samples, factors x new samples
    :type H_test: pd.DataFrame | np.ndarray
    :param snn: new samples x embedded samples similarity, defaults to None
    :type snn: scipy.sparse.spmatrix | pd.DataFrame | None, optional
    :param alpha_exp: increasing ``alpha_exp`` increases how much the factors "pull" the samples, defaults to 1
    :type alpha_exp: float, optional
    :param snn_exp: decreasing ``snn_exp`` increases the effect of the similarity matrix, defaults to 1.0
    :type snn_exp: float, optional
    :param n_pull: number of factors pulling on each sample, defaults to None
    :type n_pull: int | None, optional
    :return: copy of ``embedding`` with the new samples as ``sample_coords``
    :rtype: SWNEEmbedding
    """
    H_test = _as_frame(H_test, "factor", "sample")
    _check_nonnegative(H_test, "H_test")

    empty = (H_test.sum(axis=0) <= 0).to_numpy()
    if empty.any():
        raise DegenerateInputError(
            f"{empty.sum()} new samples have all-zero factor scores: "
            f"{list(H_test.columns[empty][:10])}"
        )

    # [n_test, 2]
    sample_coords = _get_sample_coords(
        H_test, embedding.H_coords, alpha=alpha_exp, n_pull=n_pull
    )

    if snn is not None:
        train_coords = embedding.sample_coords[["x", "y"]]
        n_test = sample_coords.shape[0]

        # [n_test, n_train]
        S_cross = _as_similarity(snn, sample_coords.index, train_coords.index)
        # [n_test, n_test + n_train]
        S = sparse.hstack(
            [sparse.identity(n_test, format="csr"), S_cross], format="csr"
        )
        S = _prepare_snn(S, min_snn=0.0, snn_exp=snn_exp)

        # [n_test + n_train, 2]
        coords_all = np.vstack([sample_coords.to_numpy(), train_coords.to_numpy()])
        sample_coords = pd.DataFrame(
            _smooth(S, coords_all), index=sample_coords.index, columns=["x", "y"]
        )

    return embedding.replace(sample_coords=sample_coords)


def rename_factors(
    embedding: SWNEEmbedding,
    name_mapping: Mapping[str, str],
    set_empty: bool = True,
) -> SWNEEmbedding:
    """
    Renames factors to something more interpretable. Factors with an empty
    name are not plotted.

    :param embedding: existing embedding
    :type embedding: SWNEEmbedding
    :param name_mapping: old name -> new name
    :type name_mapping: Mapping[str, str]
    :param set_empty: if to set the names of factors that were not renamed to "", defaults to True
    :type set_empty: bool, optional
    :rtype: SWNEEmbedding
    """
    old_names = embedding.H_coords["name"]
    new_names = old_names.map(lambda name: name_mapping.get(name, name))
    if set_empty:
        new_names[~old_names.isin(list(name_mapping))] = ""

    renamed = embedding.copy()
    renamed.H_coords["name"] = new_names
    return renamed


def _feature_assoc(
    v: np.ndarray,
    scores: np.ndarray,
    metric: AssociationMetric,
    seed: np.random.SeedSequence,
) -> np.ndarray:
    # v: [n], scores: [k, n]
    if metric is AssociationMetric.IC:
        rng = np.random.default_rng(seed)
        return np.array([mutual_inf(u, v, random_state=rng) for u in scores])

    if metric is AssociationMetric.SPEARMAN:
        v = rankdata(v)
        scores = np.apply_along_axis(rankdata, 1, scores)

    with np.errstate(divide="ignore", invalid="ignore"):
        return np.array([np.corrcoef(u, v)[0, 1] for u in scores])


def factor_association(
    feature_mat,
    nmf_scores,
    metric: str | AssociationMetric = "ic",
    n_jobs: int = 1,
    random_seed: int | None = 1,
) -> pd.DataFrame:
    """
    Associations between every feature and every factor, e.g. to find the
    top genes or genesets of each factor.

    :param feature_mat: features x samples
    :type feature_mat: pd.DataFrame | np.ndarray
    :param nmf_scores: factor scores, factors x samples
    :type nmf_scores: pd.DataFrame | np.ndarray
    :param metric: ``pearson``, ``spearman`` or ``ic`` (information coefficient), defaults to "ic"
    :type metric: str | AssociationMetric, optional
    :param n_jobs: number of joblib workers, defaults to 1
    :type n_jobs: int, optional
    :param random_seed: seed of the information coefficient jitter, defaults to 1
    :type random_seed: int | None, optional
    :return: features x factors associations
    :rtype: pd.DataFrame
    """
    metric = AssociationMetric.parse(metric)
    labelled = isinstance(feature_mat, pd.DataFrame) and isinstance(
        nmf_scores, pd.DataFrame
    )
    feature_mat = _as_frame(feature_mat, "feature", "sample")
    nmf_scores = _as_frame(nmf_scores, "factor", "sample")

    if feature_mat.shape[1] != nmf_scores.shape[1]:
        raise ShapeMismatchError(
            f"feature_mat has {feature_mat.shape[1]} samples, "
            f"nmf_scores has {nmf_scores.shape[1]}"
        )
    if set(feature_mat.columns) == set(nmf_scores.columns):
        feature_mat = feature_mat[nmf_scores.columns]
    elif labelled:
        raise ShapeMismatchError(
            "Sample names of feature_mat and nmf_scores differ: "
            f"{len(set(feature_mat.columns) ^ set(nmf_scores.columns))} names are not shared"
        )

    # [f, n], [k, n]
    X = feature_mat.to_numpy()
    scores = nmf_scores.to_numpy()

    # one seed per feature, results don't depend on n_jobs
    seeds = np.random.SeedSequence(random_seed).spawn(X.shape[0])

    logger.info(
        "Computing %s associations of %i features with %i factors",
        metric.value,
        X.shape[0],
        scores.shape[0],
    )
    assoc = Parallel(n_jobs=n_jobs)(
        delayed(_feature_assoc)(X[i], scores, metric, seeds[i])
        for i in range(X.shape[0])
    )

    return pd.DataFrame(
        np.vstack(assoc).reshape(X.shape[0], scores.shape[0]),
        index=feature_mat.index,
        columns=nmf_scores.index,
    )


def summarize_assoc_features(
    feature_factor_assoc: pd.DataFrame,
    features_return: int = 10,
    features_use: Iterable[str] | None = None,
) -> pd.DataFrame:
    """
    Top associated features of each factor as a long table with
    ``feature``, ``factor`` and ``assoc_score`` columns.
    Ties keep the original feature order.

    :param feature_factor_assoc: features x factors associations from :func:`factor_association`
    :type feature_factor_assoc: pd.DataFrame
    :param features_return: number of top features to return for each factor, defaults to 10
    :type features_return: int, optional
    :param features_use: only consider a subset of features, defaults to None
    :type features_use: Iterable[str] | None, optional
    :rtype: pd.DataFrame
    """
    if features_use is not None:
        features_use = list(features_use)
        missing = [f for f in features_use if f not in feature_factor_assoc.index]
        if missing:
            raise ShapeMismatchError(
                f"{len(missing)} features are not present in the association matrix: {missing[:10]}"
            )
        feature_factor_assoc = feature_factor_assoc.loc[features_use]

    features = feature_factor_assoc.index.to_numpy()
    tables = []
    for factor in feature_factor_assoc.columns:
        scores = feature_factor_assoc[factor].to_numpy(dtype=np.float64)
        top = np.argsort(-scores, kind="stable")[:features_return]
        tables.append(
            pd.DataFrame(
                {"feature": features[top], "factor": factor, "assoc_score": scores[top]}
            )
        )

    return pd.concat(tables, ignore_index=True)


def check_gene_embedding(
    W: pd.DataFrame,
    norm_counts: pd.DataFrame,
    genes_embed: Iterable[str],
    sample_groups: pd.Series,
    min_cluster_logfc: float = 1.5,
    min_factor_logfc: float = 1.5,
    eps: float = 1e-4,
) -> pd.DataFrame:
    """
    Checks whether genes are good candidates for embedding: a gene should be
    specific both to one factor and to one sample group.

    The factor logFC compares a gene's largest (column-normalized) loading
    with the mean of its remaining loadings. The cluster logFC compares the
    gene's mean in its top group with its mean in all other samples.
    Embedded genes below either threshold are reported with a warning.

    :param W: gene loadings, genes x factors
    :type W: pd.DataFrame
    :param norm_counts: normalized expression, genes x samples
    :type norm_counts: pd.DataFrame
    :param genes_embed: genes that are (to be) embedded
    :type genes_embed: Iterable[str]
    :param sample_groups: group label of each sample, indexed by sample
    :type sample_groups: pd.Series
    :param min_cluster_logfc: minimum cluster logFC for an embedded gene, defaults to 1.5
    :type min_cluster_logfc: float, optional
    :param min_factor_logfc: minimum factor logFC for an embedded gene, defaults to 1.5
    :type min_factor_logfc: float, optional
    :param eps: pseudocount of the fold-changes, defaults to 1e-4
    :type eps: float, optional
    :return: genes x (``cluster``, ``factor``, ``embedded``), embedded genes last
    :rtype: pd.DataFrame
    """
    if not W.index.equals(norm_counts.index):
        raise InvalidConfigurationError("Row names of W must match row names of norm_counts")
    if W.shape[1] < 2:
        raise DegenerateInputError("At least 2 factors are needed to compute factor logFC")

    missing = norm_counts.columns[~norm_counts.columns.isin(sample_groups.index)]
    if len(missing) > 0:
        raise ShapeMismatchError(
            f"{len(missing)} samples of norm_counts have no group (e.g. '{missing[0]}')"
        )
    groups = sample_groups.reindex(norm_counts.columns).astype(str)
    if groups.nunique() < 2:
        raise DegenerateInputError("At least 2 sample groups are needed to compute cluster logFC")

    # [g, k]
    W = W / W.sum(axis=0)
    Wv = W.to_numpy(dtype=np.float64)
    w_max = Wv.max(axis=1)
    w_rest = (Wv.sum(axis=1) - w_max) / (Wv.shape[1] - 1)
    factor_logfc = np.log2((w_max + eps) / (w_rest + eps))

    # [g, n]
    X = norm_counts.to_numpy(dtype=np.float64)
    # [g, n_groups]
    group_means = norm_counts.T.groupby(groups.to_numpy()).mean().T
    top_group = group_means.to_numpy().argmax(axis=1)
    in_top = groups.to_numpy()[np.newaxis] == group_means.columns.to_numpy()[top_group][:, np.newaxis]
    in_mean = (X * in_top).sum(axis=1) / in_top.sum(axis=1)
    out_mean = (X * ~in_top).sum(axis=1) / (~in_top).sum(axis=1)
    cluster_logfc = np.log2((in_mean + eps) / (out_mean + eps))

    genes_embed = set(genes_embed)
    gene_logfc = pd.DataFrame(
        {
            "cluster": cluster_logfc,
            "factor": factor_logfc,
            "embedded": W.index.isin(genes_embed),
        },
        index=W.index,
    )
    gene_logfc = gene_logfc.sort_values("embedded", kind="stable")

    embedded = gene_logfc[gene_logfc["embedded"]]
    warning_genes = embedded.index[
        (embedded["cluster"] < min_cluster_logfc) | (embedded["factor"] < min_factor_logfc)
    ]
    if len(warning_genes) > 0:
        logger.warning(
            "The following genes may not be good candidates for embedding: %s",
            ", ".join(map(str, warning_genes)),
        )

    return gene_logfc


def swne(
    adata: AnnData,
    basis: str = "X_nmf",
    neighbors_key: str | None = "neighbors",
    factor_names: Iterable[str] | None = None,
    key_added: str = "X_swne",
    uns_key: str = "swne",
    alpha_exp: float = 1,
    snn_exp: float = 1.0,
    n_pull: int | None = None,
    pca_red: bool = False,
    dist_use: str = "cosine",
    snn_factor_proj: bool = True,
    min_snn: float = 0.0,
    n_iter: int = 250,
    random_seed: int | None = 1,
) -> None:
    """
    Runs :func:`embed_swne` on factor scores stored in ``adata.obsm[basis]``,
    saves sample coordinates to ``adata.obsm[key_added]`` and the embedding
    with its parameters to ``adata.uns[uns_key]``.

    :param adata: AnnData object with factor scores
    :type adata: AnnData
    :param basis: ``adata.obsm[basis]`` should contain nonnegative factor scores (cells x factors), defaults to "X_nmf"
    :type basis: str, optional
    :param neighbors_key: ``adata.uns`` key of the neighbors graph used as similarity matrix. It's computed with ``sc.pp.neighbors`` on ``basis`` if absent. If None, no similarity smoothing is done, defaults to "neighbors"
    :type neighbors_key: str | None, optional
    :param factor_names: names of the factors, defaults to "factor_1", "factor_2", ...
    :type factor_names: Iterable[str] | None, optional
    :param key_added: slot of ``adata.obsm`` where coordinates are saved, defaults to "X_swne"
    :type key_added: str, optional
    :param uns_key: slot of ``adata.uns`` where the embedding is saved, defaults to "swne"
    :type uns_key: str, optional

    Other parameters are passed to :func:`embed_swne`.
    """
    assert basis in adata.obsm, f"Factor scores are expected to be saved in adata.obsm['{basis}']"

    X = adata.obsm[basis]
    X = X.toarray() if sparse.issparse(X) else np.asarray(X)
    factor_names = (
        [f"factor_{i + 1}" for i in range(X.shape[1])]
        if factor_names is None
        else list(factor_names)
    )
    if len(factor_names) != X.shape[1]:
        raise ShapeMismatchError(
            f"{len(factor_names)} factor names given for {X.shape[1]} factors"
        )

    # [k, N] = [N, k].T
    H = pd.DataFrame(X.T, index=factor_names, columns=adata.obs_names)

    snn = None
    if neighbors_key is not None:
        if neighbors_key not in adata.uns:
            logger.info(
                "Neighbors graph '%s' not found, computing it on '%s'", neighbors_key, basis
            )
            sc.pp.neighbors(adata, use_rep=basis, key_added=neighbors_key)
        else:
            logger.info("Using precomputed neighbors graph '%s'", neighbors_key)
        conn_key = adata.uns[neighbors_key].get("connectivities_key", "connectivities")
        snn = adata.obsp[conn_key]

    embedding = embed_swne(
        H,
        snn=snn,
        alpha_exp=alpha_exp,
        snn_exp=snn_exp,
        n_pull=n_pull,
        pca_red=pca_red,
        dist_use=dist_use,
        snn_factor_proj=snn_factor_proj,
        min_snn=min_snn,
        n_iter=n_iter,
        random_seed=random_seed,
    )

    # cells dropped for all-zero scores get NaN coordinates
    adata.obsm[key_added] = (
        embedding.sample_coords.reindex(adata.obs_names)[["x", "y"]].to_numpy()
    )
    adata.uns[uns_key] = {
        **embedding.to_uns(),
        "params": {
            "basis": basis,
            "neighbors_key": neighbors_key,
            "alpha_exp": alpha_exp,
            "snn_exp": snn_exp,
            "n_pull": _resolve_n_pull(n_pull, X.shape[1]),
            "pca_red": pca_red,
            "dist_use": DistanceMetric.parse(dist_use).value,
            "snn_factor_proj": snn_factor_proj,
            "min_snn": min_snn,
            "n_iter": n_iter,
        },
    }


def map_swne(
    adata_query: AnnData,
    adata_ref: AnnData,
    basis: str = "X_nmf",
    snn=None,
    key_added: str = "X_swne",
    uns_key: str = "swne",
    alpha_exp: float | None = None,
    snn_exp: float | None = None,
    n_pull: int | None = None,
) -> None:
    """
    Projects ``adata_query`` onto the embedding of ``adata_ref`` (see :func:`swne`)
    with :func:`project_swne`. Saves coordinates to ``adata_query.obsm[key_added]``.

    :param adata_query: query AnnData object with factor scores in ``adata_query.obsm[basis]``, computed against the reference factors
    :type adata_query: AnnData
    :param adata_ref: reference AnnData object with an embedding in ``adata_ref.uns[uns_key]``
    :type adata_ref: AnnData
    :param basis: slot of ``adata_query.obsm`` with factor scores, defaults to "X_nmf"
    :type basis: str, optional
    :param snn: query cells x reference cells similarity, defaults to None
    :type snn: scipy.sparse.spmatrix | pd.DataFrame | None, optional
    :param key_added: slot of ``adata_query.obsm`` where coordinates are saved, defaults to "X_swne"
    :type key_added: str, optional
    :param uns_key: slot of ``adata_ref.uns`` with the reference embedding, defaults to "swne"
    :type uns_key: str, optional
    :param alpha_exp: pull exponent, defaults to the one used for the reference
    :type alpha_exp: float | None, optional
    :param snn_exp: similarity exponent, defaults to the one used for the reference
    :type snn_exp: float | None, optional
    :param n_pull: number of factors pulling on each cell, defaults to the one used for the reference
    :type n_pull: int | None, optional
    """
    assert (
        uns_key in adata_ref.uns
    ), f"SWNE embedding not found in adata_ref.uns['{uns_key}']. First, run swnepy.tl.swne on adata_ref."
    assert basis in adata_query.obsm, f"Factor scores are expected to be saved in adata_query.obsm['{basis}']"

    embedding = SWNEEmbedding.from_uns(adata_ref.uns[uns_key])
    params = adata_ref.uns[uns_key].get("params", {})

    X = adata_query.obsm[basis]
    X = X.toarray() if sparse.issparse(X) else np.asarray(X)
    if X.shape[1] != embedding.n_factors:
        raise ShapeMismatchError(
            f"adata_query.obsm['{basis}'] has {X.shape[1]} factors, "
            f"the reference embedding has {embedding.n_factors}"
        )

    # [k, Nq] = [Nq, k].T
    H_test = pd.DataFrame(X.T, index=embedding.H_coords.index, columns=adata_query.obs_names)

    projected = project_swne(
        embedding,
        H_test,
        snn=snn,
        alpha_exp=params.get("alpha_exp", 1) if alpha_exp is None else alpha_exp,
        snn_exp=params.get("snn_exp", 1.0) if snn_exp is None else snn_exp,
        n_pull=params.get("n_pull") if n_pull is None else n_pull,
    )
    adata_query.obsm[key_added] = projected.sample_coords[["x", "y"]].to_numpy()
