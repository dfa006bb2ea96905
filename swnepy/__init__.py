"""
SWNE (similarity weighted nonnegative embedding):

1. Factor coordinates
    - (optionally) smooth factor scores over a sample similarity matrix,
        e.g. shared nearest neighbors, floored at min_snn, raised to snn_exp
        and row-normalized
    - pairwise factor distances: sqrt(2 * (1 - similarity)) for pearson,
        information coefficient or cosine similarity, or euclidean distance
    - Sammon mapping of the distances into 2-D (250 iterations by default)
    - min-max normalization of each axis to [0, 1]

2. Sample coordinates
    - each sample is placed at the barycenter of its n_pull strongest factors,
        weighted by its (raw) factor scores raised to alpha_exp
    - (optionally) coordinates are smoothed over the similarity matrix

3. Features and genesets
    - placed like samples, using feature x factor loadings or associations
        (min-max scaled per feature) as weights

4. Projection
    - new samples are pulled by the fixed factor coordinates and blended
        with their neighbors among already embedded samples

5*. Factor annotation
    - feature x factor associations (pearson, spearman, information coefficient)
        and top features of each factor
"""

from . import preprocessing as pp
from . import tools as tl
from . import datasets
from ._errors import (
    SWNEError,
    InvalidConfigurationError,
    DegenerateInputError,
    ShapeMismatchError,
    ConvergenceError,
)
from ._utils import DistanceMetric, NormalizeMethod, AssociationMetric
from .embedding import SWNEEmbedding
