"""
k-nearest-neighbor index over a point cloud.

Supports:
- "brute": exact Euclidean search from the full pairwise distance matrix (numpy)
- "kd_tree", "ball_tree", "auto": scikit-learn NearestNeighbors

Points are rows here: X is (N, D). The LLE fit transposes its (D, N) input
before building the index.

Notes
-----
Brute force is O(N^2 D) in time and O(N^2) in memory. For large N use one of
the tree algorithms.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import numpy as np
import torch
from sklearn.neighbors import NearestNeighbors

from lle_errors import InputTooSmall, InvalidConfiguration

Array = Union[np.ndarray, torch.Tensor]

ALGORITHMS = ("brute", "kd_tree", "ball_tree", "auto")


def _as_int(name: str, value: Any) -> int:
    """`value` as a plain int; non-integral values are rejected rather than truncated."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
    return int(value)


def _to_numpy(x: Array) -> np.ndarray:
    if isinstance(x, np.ndarray):
        return x
    if isinstance(x, torch.Tensor):
        return x.detach().cpu().numpy()
    return np.asarray(x)


@dataclass(frozen=True, eq=False)
class NeighborIndex:
    algorithm: str
    k: int
    points: np.ndarray                       # (N, D) fitted points
    estimator: Optional[Any] = None          # sklearn NearestNeighbors, None for brute

    @property
    def n_points(self) -> int:
        return int(self.points.shape[0])


def pairwise_sq_dists(X: np.ndarray, Y: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Exact pairwise squared Euclidean distances. O(N M d).
    X: (N,d), Y: (M,d), defaults to X
    Returns: (N,M)
    """
    if Y is None:
        Y = X
    # ||x-y||^2 = ||x||^2 + ||y||^2 - 2 x·y
    XX = np.sum(X * X, axis=1, keepdims=True)  # (N,1)
    YY = np.sum(Y * Y, axis=1, keepdims=True)  # (M,1)
    D = XX + YY.T - 2.0 * (X @ Y.T)
    np.maximum(D, 0.0, out=D)
    return D


def build_neighbor_index(
    X: Array,
    k: int,
    *,
    algorithm: str = "brute",
    metric: str = "euclidean",
) -> NeighborIndex:
    """
    Fit a neighbor index for k-NN queries.

    Parameters
    ----------
    X : (N, D)
        Points, one per row.
    k : int
        Number of neighbors per query (self excluded), 1 <= k < N.
    algorithm : str
        One of ALGORITHMS.
    metric : str
        Distance metric for the scikit-learn backends. Brute force is
        Euclidean only.

    Returns
    -------
    NeighborIndex
    """
    if algorithm not in ALGORITHMS:
        raise InvalidConfiguration(f"Unknown neighbor algorithm: {algorithm!r}; expected one of {ALGORITHMS}")

    X = np.asarray(_to_numpy(X), dtype=np.float64)
    if X.ndim != 2:
        raise InvalidConfiguration(f"data must be a 2-D matrix, got shape {X.shape}")
    N = X.shape[0]
    if N < 2:
        raise InputTooSmall(f"need at least 2 points for a neighbor graph, got {N}")
    k = _as_int("k", k)
    if k < 1 or k >= N:
        raise InvalidConfiguration(f"k must satisfy 1 <= k < n (n={N}), got k={k}")

    if algorithm == "brute":
        if metric != "euclidean":
            raise InvalidConfiguration("brute force neighbor search supports metric='euclidean' only")
        return NeighborIndex(algorithm=algorithm, k=k, points=X)

    nn = NearestNeighbors(n_neighbors=k, algorithm=algorithm, metric=metric)
    nn.fit(X)
    return NeighborIndex(algorithm=algorithm, k=k, points=X, estimator=nn)


def knn(index: NeighborIndex, X: Optional[Array] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Query the k nearest fitted points.

    With X=None the fitted points themselves are queried and a point is
    never listed as its own neighbor.

    Returns
    -------
    nn_d   : (M, k) float64 Euclidean distances, ascending per row
    nn_idx : (M, k) int64 indices into the fitted points
    """
    k = index.k
    if X is not None:
        X = np.asarray(_to_numpy(X), dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != index.points.shape[1]:
            raise InvalidConfiguration(
                f"query points must be (M, {index.points.shape[1]}), got shape {X.shape}"
            )

    if index.estimator is not None:
        nn_d, nn_idx = index.estimator.kneighbors(X, n_neighbors=k, return_distance=True)
        return np.asarray(nn_d, dtype=np.float64), np.asarray(nn_idx, dtype=np.int64)

    if X is None:
        D = pairwise_sq_dists(index.points)
        np.fill_diagonal(D, np.inf)  # self protection
    else:
        D = pairwise_sq_dists(X, index.points)

    # stable sort: equal distances keep the lower index first
    order = np.argsort(D, axis=1, kind="stable")[:, :k]
    nn_idx = order.astype(np.int64, copy=False)
    nn_d = np.sqrt(np.take_along_axis(D, order, axis=1))
    return nn_d, nn_idx
