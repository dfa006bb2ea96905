import numpy as np
import pandas as pd
import pytest

from sklearn.metrics.pairwise import euclidean_distances

import swnepy as sw
from swnepy._mutual_info import bandwidth_cv, kde2d, mutual_inf
from swnepy._sammon import cmdscale, sammon


class TestMutualInf:
    rng = np.random.default_rng(42)
    x = rng.normal(size=150)
    y = x**2 + rng.normal(scale=0.3, size=150)

    def test_self_association(self):
        assert mutual_inf(self.x, self.x, random_state=0) > 0.9
        assert mutual_inf(self.x, -self.x, random_state=0) < -0.9

    def test_symmetric(self):
        ic_xy = mutual_inf(self.x, self.y, random_state=3)
        ic_yx = mutual_inf(self.y, self.x, random_state=3)
        assert abs(ic_xy - ic_yx) < 1e-3

    def test_bounded(self):
        rng = np.random.default_rng(7)
        for _ in range(5):
            u, v = rng.gamma(1.0, size=(2, 40))
            assert -1 <= mutual_inf(u, v, random_state=rng) <= 1

    def test_nonmonotonic_association(self):
        noise = np.random.default_rng(5).normal(size=150)
        assert abs(mutual_inf(self.x, self.y, random_state=0)) > abs(
            mutual_inf(self.x, noise, random_state=0)
        )

    def test_too_few_pairs(self):
        x = [1.0, np.nan, 3.0, 4.0]
        y = [np.nan, 2.0, 5.0, np.nan]
        assert mutual_inf(x, y) == 0
        assert mutual_inf([1.0, 2.0], [2.0, 1.0]) == 0

    def test_missing_values_dropped(self):
        x = np.array([1.0, np.nan, 2.0, 3.0, 4.0, 5.0, 6.0, np.nan])
        y = np.array([1.2, 7.0, 2.1, 3.1, 3.9, 5.2, 6.1, 8.0])
        keep = np.isfinite(x) & np.isfinite(y)

        ic = mutual_inf(x, y, random_state=0)

        assert ic > 0
        assert ic == mutual_inf(x[keep], y[keep], random_state=0)

    def test_undefined_bandwidth(self):
        # jitter vanishes next to 1e10, the constant vector has no bandwidth
        assert mutual_inf([1e10] * 10, np.arange(10.0), random_state=0) == 0

    def test_reproducible(self):
        assert mutual_inf(self.x, self.y, random_state=11) == mutual_inf(
            self.x, self.y, random_state=11
        )

    def test_bandwidth_rules(self):
        for rule in ["ucv", "bcv"]:
            h = bandwidth_cv(self.x, rule)
            assert 0 < h < 1.144 * self.x.std(ddof=1) * len(self.x) ** (-1 / 5) * 4 + 1e-12
        with pytest.raises(sw.InvalidConfigurationError):
            bandwidth_cv(self.x, "silverman")

    def test_kde2d_integrates_to_one(self):
        gx, gy, z = kde2d(self.x, self.x, np.array([4.0, 4.0]), n_grid=100)
        # grid covers the data range only, most of the mass is inside
        mass = z.sum() * (gx[1] - gx[0]) * (gy[1] - gy[0])
        assert 0.5 < mass < 1.05


class TestSammon:
    points = np.random.default_rng(0).uniform(size=(6, 2))
    d = euclidean_distances(points)

    def test_cmdscale_recovers_planar_distances(self):
        y = cmdscale(self.d, k=2)
        assert np.allclose(euclidean_distances(y), self.d, atol=1e-8)

    def test_cmdscale_collinear(self):
        d = euclidean_distances(np.array([[0.0], [1.0], [3.0]]))
        y = cmdscale(d, k=2)

        assert np.allclose(euclidean_distances(y), d, atol=1e-8)
        assert np.ptp(y[:, 0]) > 0
        assert np.ptp(y[:, 1]) > 0

    def test_sammon_preserves_planar_distances(self):
        y, stress = sammon(self.d, n_iter=50)

        assert y.shape == (6, 2)
        assert stress < 1e-8
        assert np.allclose(euclidean_distances(y), self.d, atol=1e-4)

    def test_sammon_reduces_stress(self):
        rng = np.random.default_rng(1)
        d = euclidean_distances(rng.normal(size=(8, 5)))
        y0 = rng.normal(size=(8, 2))

        _, stress_0 = sammon(d, y=y0, n_iter=0)
        _, stress = sammon(d, y=y0, n_iter=100)
        assert stress < stress_0

    def test_sammon_zero_distance(self):
        d = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0], [1.0, 1.0, 0.0]])
        with pytest.raises(sw.DegenerateInputError):
            sammon(d)

    def test_sammon_duplicated_start(self):
        y0 = np.array([[0.0, 0.0], [0.0, 0.0], [1.0, 0.5], [0.2, 0.9], [0.7, 0.1], [0.4, 0.4]])
        with pytest.raises(sw.ConvergenceError):
            sammon(self.d, y=y0)


class TestFactorCoords:
    data = sw.datasets.simulated_factors(n_factors=4, n_samples=80, random_seed=1)

    @pytest.mark.parametrize("distance", ["pearson", "ic", "cosine", "euclidean"])
    def test_factor_coords_bounded(self, distance):
        H = self.data["H"]
        coords = sw.tl.get_factor_coords(H, distance=distance)

        assert coords.shape == (4, 2)
        assert list(coords.index) == list(H.index)
        assert list(coords.columns) == ["x", "y"]
        assert (coords.min(axis=0) == 0).all()
        assert (coords.max(axis=0) == 1).all()

    def test_factor_coords_two_factors(self):
        H = self.data["H"].iloc[:2]
        coords = sw.tl.get_factor_coords(H)

        assert coords.shape == (2, 2)
        assert (coords.min(axis=0) == 0).all()
        assert (coords.max(axis=0) == 1).all()

    def test_factor_coords_pca_red(self):
        coords = sw.tl.get_factor_coords(self.data["H"], pca_red=True, distance="euclidean")
        assert coords.shape == (4, 2)

    def test_factor_coords_metric_synonyms(self):
        H = self.data["H"]
        assert np.array_equal(
            sw.tl.get_factor_coords(H, distance="correlation").to_numpy(),
            sw.tl.get_factor_coords(H, distance="pearson").to_numpy(),
        )
        assert sw.DistanceMetric.parse("Mutual Information") is sw.DistanceMetric.IC

    def test_factor_coords_deterministic(self):
        H = self.data["H"]
        assert np.array_equal(
            sw.tl.get_factor_coords(H, distance="ic", random_seed=5).to_numpy(),
            sw.tl.get_factor_coords(H, distance="ic", random_seed=5).to_numpy(),
        )

    def test_factor_coords_errors(self):
        with pytest.raises(sw.DegenerateInputError):
            sw.tl.get_factor_coords(self.data["H"].iloc[:1])
        with pytest.raises(sw.InvalidConfigurationError):
            sw.tl.get_factor_coords(self.data["H"], distance="manhattan")
        with pytest.raises(sw.InvalidConfigurationError):
            sw.tl.get_factor_coords(self.data["H"], method="mds")


class TestSampleCoords:
    H_coords = pd.DataFrame(
        {"x": [0.0, 1.0, 0.0, 1.0], "y": [0.0, 0.0, 1.0, 1.0]},
        index=["f1", "f2", "f3", "f4"],
    )

    def test_uniform_weights_centroid(self):
        W = pd.DataFrame(np.ones((4, 3)), index=self.H_coords.index)
        coords = sw.tl.get_sample_coords(W, self.H_coords, n_pull=4)

        assert np.allclose(coords.to_numpy(), self.H_coords.mean(axis=0).to_numpy())

    def test_one_hot_weights(self):
        W = pd.DataFrame(np.eye(4), index=self.H_coords.index, columns=list("abcd"))
        for alpha in [0.5, 1, 3]:
            coords = sw.tl.get_sample_coords(W, self.H_coords, alpha=alpha, n_pull=3)
            assert np.array_equal(coords.to_numpy(), self.H_coords.to_numpy())
            assert list(coords.index) == list("abcd")

    def test_alpha_zero_top_centroid(self):
        W = pd.DataFrame([[5.0], [4.0], [3.0], [0.1]], index=self.H_coords.index)
        coords = sw.tl.get_sample_coords(W, self.H_coords, alpha=0, n_pull=3)

        assert np.allclose(coords.to_numpy(), self.H_coords.iloc[:3].mean(axis=0).to_numpy())

    def test_alpha_sharpens_pull(self):
        W = pd.DataFrame([[3.0], [1.0], [1.0], [1.0]], index=self.H_coords.index)
        anchor = self.H_coords.loc["f1"].to_numpy()
        dist = [
            np.linalg.norm(
                sw.tl.get_sample_coords(W, self.H_coords, alpha=alpha).to_numpy()[0] - anchor
            )
            for alpha in [0, 1, 2, 4]
        ]
        assert dist == sorted(dist, reverse=True)

    def test_n_pull_clamped(self):
        W = pd.DataFrame([[5.0], [4.0], [3.0], [0.1]], index=self.H_coords.index)
        assert np.array_equal(
            sw.tl.get_sample_coords(W, self.H_coords, n_pull=1).to_numpy(),
            sw.tl.get_sample_coords(W, self.H_coords, n_pull=3).to_numpy(),
        )
        assert np.array_equal(
            sw.tl.get_sample_coords(W, self.H_coords, n_pull=10).to_numpy(),
            sw.tl.get_sample_coords(W, self.H_coords, n_pull=None).to_numpy(),
        )

    def test_rows_aligned_by_factor_name(self):
        W = pd.DataFrame([[5.0], [4.0], [3.0], [0.1]], index=self.H_coords.index)
        assert np.array_equal(
            sw.tl.get_sample_coords(W.iloc[::-1], self.H_coords).to_numpy(),
            sw.tl.get_sample_coords(W, self.H_coords).to_numpy(),
        )

    def test_errors(self):
        with pytest.raises(sw.ShapeMismatchError):
            sw.tl.get_sample_coords(np.ones((3, 2)), self.H_coords)
        with pytest.raises(sw.DegenerateInputError):
            sw.tl.get_sample_coords(np.zeros((4, 2)), self.H_coords)
        with pytest.raises(sw.InvalidConfigurationError):
            sw.tl.get_sample_coords(np.ones((4, 2)), self.H_coords, alpha=-1)
