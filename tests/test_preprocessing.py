import numpy as np
import pandas as pd
import pytest

from scipy import sparse

import swnepy as sw


class TestPreprocessing:
    data = sw.datasets.simulated_factors(random_seed=0)

    @staticmethod
    def assert_equals(f, s, threshold=1e-7):
        assert (abs(f - s) < threshold).all()

    def test_normalize_vector_bounded(self):
        x = np.random.default_rng(0).normal(size=50)
        x_scaled = sw.pp.normalize_vector(x, method="bounded")

        assert x_scaled.min() == 0
        assert x_scaled.max() == 1
        assert x_scaled.argmin() == x.argmin()
        assert x_scaled.argmax() == x.argmax()
        self.assert_equals(sw.pp.normalize_vector(x_scaled, method="bounded"), x_scaled)

    def test_normalize_vector_scale(self):
        x = np.random.default_rng(1).gamma(2.0, size=100)
        x_scaled = sw.pp.normalize_vector(x, method="scale")

        assert abs(x_scaled.mean()) < 1e-10
        assert abs(x_scaled.std(ddof=1) - 1) < 1e-10

    def test_normalize_vector_rank(self):
        self.assert_equals(
            sw.pp.normalize_vector([30, 10, 20], method="rank", n_ranks=3),
            np.array([3.0, 1.0, 2.0]),
        )
        # ties get their average rank
        self.assert_equals(
            sw.pp.normalize_vector([1, 1, 2, 3], method="rank", n_ranks=4),
            np.array([1.5, 1.5, 3.0, 4.0]),
        )

    def test_normalize_vector_degenerate(self):
        with pytest.raises(sw.DegenerateInputError):
            sw.pp.normalize_vector([2.0, 2.0, 2.0], method="bounded")
        with pytest.raises(sw.DegenerateInputError):
            sw.pp.normalize_vector([2.0, 2.0, 2.0], method="scale")
        with pytest.raises(sw.InvalidConfigurationError):
            sw.pp.normalize_vector([1.0, 2.0], method="zscore")

    def test_prepare_snn_rows_sum_to_one(self):
        snn = self.data["snn"]
        snn_before = snn.copy()
        snn_norm = sw.pp.prepare_snn(snn, min_snn=2, snn_exp=0.5)

        assert sparse.issparse(snn_norm)
        self.assert_equals(np.asarray(snn_norm.sum(axis=1)).ravel(), 1.0)
        # entries below the floor are dropped
        assert snn_norm.nnz == (snn >= 2).sum()
        # input is left untouched
        assert (snn != snn_before).nnz == 0

    def test_prepare_snn_floor_above_max(self):
        snn = self.data["snn"]
        with pytest.raises(sw.DegenerateInputError):
            sw.pp.prepare_snn(snn, min_snn=snn.max() + 1)

    def test_prepare_snn_dataframe_reindexed(self):
        names = ["a", "b", "c"]
        snn = pd.DataFrame(
            [[1.0, 1.0, 0.0], [1.0, 1.0, 2.0], [0.0, 2.0, 2.0]], index=names, columns=names
        )
        shuffled = snn.loc[["c", "a", "b"], ["b", "c", "a"]]

        snn_norm = sw.pp.prepare_snn(shuffled, sample_names=names).toarray()
        self.assert_equals(snn_norm, (snn / snn.sum(axis=1).to_numpy()[:, None]).to_numpy())

    def test_prepare_snn_mismatched_names(self):
        snn = pd.DataFrame(np.eye(2), index=["a", "b"], columns=["a", "b"])
        with pytest.raises(sw.InvalidConfigurationError):
            sw.pp.prepare_snn(snn, sample_names=["a", "z"])

    def test_smooth_snn(self):
        snn_norm = sw.pp.prepare_snn(sparse.csr_matrix(np.array([[1.0, 1.0], [0.0, 1.0]])))
        coords = pd.DataFrame({"x": [0.0, 1.0], "y": [1.0, 0.0]}, index=["a", "b"])

        smoothed = sw.pp.smooth_snn(snn_norm, coords)

        assert list(smoothed.index) == ["a", "b"]
        self.assert_equals(smoothed.to_numpy(), np.array([[0.5, 0.5], [1.0, 0.0]]))

    def test_filter_genesets(self):
        genesets = {
            "small": ["g1", "g2"],
            "medium": [f"g{i}" for i in range(10)],
            "missing_genes": ["g1", "g2", "x1", "x2", "x3", "x4", "x5"],
        }
        gene_names = [f"g{i}" for i in range(20)]

        filtered = sw.pp.filter_genesets(genesets, gene_names, min_size=5, max_size=500)

        assert list(filtered) == ["medium"]
        assert filtered["medium"] == genesets["medium"]

    def test_genesets_indicator(self):
        ind = sw.pp.genesets_indicator({"s1": ["a", "b"], "s2": ["b", "c"]})

        assert list(ind.index) == ["a", "b", "c"]
        assert list(ind.columns) == ["s1", "s2"]
        assert ind.loc["b"].all()
        assert not ind.loc["a", "s2"]
        assert sw.pp.genesets_indicator({"s1": ["a", "b"], "s2": ["b", "c"]}, inv=True).loc["a", "s2"]

    def test_flatten_groups(self):
        groups = {"g1": ["c1", "c2"], "g2": ["c3", "c2"]}

        flat = sw.pp.flatten_groups(groups)

        assert dict(flat) == {"c1": "g1", "c3": "g2"}
        assert sw.pp.unflatten_groups(flat) == {"g1": ["c1"], "g2": ["c3"]}
