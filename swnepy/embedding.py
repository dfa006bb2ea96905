# pylint: disable=C0103, C0116, C0114, C0115, W0511
from __future__ import annotations

import pandas as pd

from ._errors import InvalidConfigurationError


class SWNEEmbedding:
    """
    Factor and sample coordinates of a similarity weighted nonnegative embedding.

    ``H_coords`` is indexed by factor with columns ``x``, ``y``, ``name``
    (an empty ``name`` hides the factor when plotting).
    ``sample_coords`` is indexed by sample with columns ``x``, ``y``.
    ``feature_coords`` (features or genesets, with a ``name`` column) and
    ``contour_data`` (a subset of sample coordinates) are optional.
    """

    def __init__(
        self,
        H_coords: pd.DataFrame,
        sample_coords: pd.DataFrame,
        feature_coords: pd.DataFrame | None = None,
        contour_data: pd.DataFrame | None = None,
    ) -> None:

        self.H_coords = H_coords
        self.sample_coords = sample_coords
        self.feature_coords = feature_coords
        self.contour_data = contour_data

    @property
    def n_factors(self) -> int:
        return self.H_coords.shape[0]

    @property
    def n_samples(self) -> int:
        return self.sample_coords.shape[0]

    def copy(self) -> "SWNEEmbedding":
        return SWNEEmbedding(
            H_coords=self.H_coords.copy(),
            sample_coords=self.sample_coords.copy(),
            feature_coords=None
            if self.feature_coords is None
            else self.feature_coords.copy(),
            contour_data=None if self.contour_data is None else self.contour_data.copy(),
        )

    def replace(self, **slots) -> "SWNEEmbedding":
        """Returns a copy with some of the coordinate tables replaced.

        Factor coordinates are fixed for the lifetime of an embedding and
        can't be replaced.
        """
        if "H_coords" in slots:
            raise InvalidConfigurationError(
                "Factor coordinates of an embedding can't be replaced, run embed_swne instead"
            )
        new = self.copy()
        for slot, value in slots.items():
            if not hasattr(new, slot):
                raise InvalidConfigurationError(f"Unknown embedding slot '{slot}'")
            setattr(new, slot, None if value is None else value.copy())
        return new

    def with_feature_coords(
        self, feature_coords: pd.DataFrame, overwrite: bool = True
    ) -> "SWNEEmbedding":
        if overwrite or self.feature_coords is None:
            return self.replace(feature_coords=feature_coords)

        duplicated = self.feature_coords.index.intersection(feature_coords.index)
        if len(duplicated) > 0:
            raise InvalidConfigurationError(
                f"{len(duplicated)} features are already embedded "
                f"(e.g. '{duplicated[0]}'). Set overwrite=True to replace the feature coordinates"
            )
        return self.replace(
            feature_coords=pd.concat([self.feature_coords, feature_coords])
        )

    def to_uns(self) -> dict:
        """Plain dict of the coordinate tables, suitable for ``adata.uns``."""
        uns = {"H_coords": self.H_coords, "sample_coords": self.sample_coords}
        if self.feature_coords is not None:
            uns["feature_coords"] = self.feature_coords
        if self.contour_data is not None:
            uns["contour_data"] = self.contour_data
        return uns

    @classmethod
    def from_uns(cls, uns: dict) -> "SWNEEmbedding":
        assert (
            "H_coords" in uns and "sample_coords" in uns
        ), "SWNE embedding is expected to contain 'H_coords' and 'sample_coords'"
        H_coords = uns["H_coords"].copy()
        # empty strings may come back as NaN from h5ad
        H_coords["name"] = H_coords["name"].fillna("").astype(str)
        return cls(H_coords=H_coords, sample_coords=uns["sample_coords"]).replace(
            feature_coords=uns.get("feature_coords"),
            contour_data=uns.get("contour_data"),
        )

    def __repr__(self) -> str:
        descr = f"SWNEEmbedding with n_factors × n_samples = {self.n_factors} × {self.n_samples}"
        if self.feature_coords is not None:
            descr += f"\n    feature_coords: {self.feature_coords.shape[0]}"
        if self.contour_data is not None:
            descr += f"\n    contour_data: {self.contour_data.shape[0]}"
        return descr
