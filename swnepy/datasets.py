from __future__ import annotations

import numpy as np
import pandas as pd

from scipy import sparse
from sklearn.neighbors import kneighbors_graph


def simulated_factors(
    n_factors: int = 4,
    n_samples: int = 120,
    n_features: int = 60,
    n_neighbors: int = 10,
    random_seed: int = 0,
) -> dict:
    """
    Small synthetic dataset shaped like the output of a nonnegative factorization.

    Samples fall into ``n_factors`` groups, each dominated by one factor.
    Returns a dict with:

        - ``H``: factor scores, factors x samples
        - ``W``: feature loadings, features x factors
        - ``X``: noisy reconstruction ``W @ H``, features x samples
        - ``groups``: group label of each sample
        - ``snn``: shared nearest neighbors counts between samples (sparse, samples x samples)
    """
    rng = np.random.default_rng(random_seed)

    factor_names = [f"factor_{i + 1}" for i in range(n_factors)]
    sample_names = [f"cell_{j + 1}" for j in range(n_samples)]
    feature_names = [f"gene_{g + 1}" for g in range(n_features)]

    # [n_samples]
    group = np.arange(n_samples) % n_factors

    # [k, n]
    H = rng.gamma(shape=1.0, scale=0.2, size=(n_factors, n_samples))
    H[group, np.arange(n_samples)] += rng.uniform(1.0, 2.0, size=n_samples)

    # [f, k], each feature is a marker of one factor
    W = rng.gamma(shape=1.0, scale=0.1, size=(n_features, n_factors))
    W[np.arange(n_features), np.arange(n_features) % n_factors] += rng.uniform(
        0.5, 1.5, size=n_features
    )

    # [f, n]
    X = W @ H + rng.gamma(shape=1.0, scale=0.05, size=(n_features, n_samples))

    # shared neighbors: [n, n] = [n, n] x [n, n].T
    knn = kneighbors_graph(H.T, n_neighbors=n_neighbors, include_self=True)
    snn = sparse.csr_matrix(knn @ knn.T, dtype=np.float64)

    return {
        "H": pd.DataFrame(H, index=factor_names, columns=sample_names),
        "W": pd.DataFrame(W, index=feature_names, columns=factor_names),
        "X": pd.DataFrame(X, index=feature_names, columns=sample_names),
        "groups": pd.Series(
            [factor_names[g] for g in group], index=sample_names, name="group"
        ),
        "snn": snn,
    }
