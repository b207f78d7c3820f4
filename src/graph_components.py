"""
Connectivity of the kNN graph.

The LLE cost matrix only gives a coherent embedding on a connected graph, so
the fit is restricted to the largest connected component of the symmetrized
neighbor relation. Points outside it are dropped.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy import sparse
from scipy.sparse.csgraph import connected_components


def adjacency_matrix(nn_idx: np.ndarray) -> sparse.csr_matrix:
    """
    Unweighted undirected adjacency (N,N) from neighbor lists nn_idx (N,k).

    i ~ j if j is a neighbor of i or i is a neighbor of j. Edges are 1.0
    rather than distances so that duplicate points (distance 0) stay connected.
    """
    nn_idx = np.asarray(nn_idx, dtype=np.int64)
    N, k = nn_idx.shape
    rows = np.repeat(np.arange(N), k)
    cols = nn_idx.reshape(-1)
    keep = rows != cols
    A = sparse.csr_matrix(
        (np.ones(int(keep.sum()), dtype=np.float64), (rows[keep], cols[keep])),
        shape=(N, N),
    )
    A = A.maximum(A.T)  # union of both directions
    A.data[:] = 1.0     # duplicate (i,j) pairs were summed on construction
    return A.tocsr()


def largest_component(A: sparse.spmatrix) -> Tuple[sparse.csr_matrix, np.ndarray]:
    """
    Largest connected component of an undirected graph.

    Ties between equally large components go to the one containing the lowest
    vertex index: connected_components numbers components in order of their
    lowest vertex, and argmax returns the first maximum.

    Returns
    -------
    subgraph : (n', n') adjacency restricted to the component
    members  : (n',) ascending original vertex indices
    """
    A = sparse.csr_matrix(A)
    n_comp, labels = connected_components(A, directed=False)
    if n_comp <= 1:
        members = np.arange(A.shape[0], dtype=np.int64)
        return A, members
    counts = np.bincount(labels)
    lcc = int(np.argmax(counts))
    members = np.flatnonzero(labels == lcc).astype(np.int64)
    return A[members][:, members].tocsr(), members


def remap_neighbors(nn_idx: np.ndarray, members: np.ndarray) -> np.ndarray:
    """
    Translate neighbor lists of retained points into local indices.

    nn_idx  : (N, k) original neighbor indices for every original point
    members : (n',) ascending original indices of retained points

    Returns (n', k) local indices. A neighbor that was dropped is replaced by
    the point's own local index, so k stays fixed and the point simply
    references itself.
    """
    nn_idx = np.asarray(nn_idx, dtype=np.int64)
    members = np.asarray(members, dtype=np.int64)
    N = nn_idx.shape[0]
    n = members.shape[0]

    local = np.full(N, -1, dtype=np.int64)
    local[members] = np.arange(n, dtype=np.int64)

    E = local[nn_idx[members]]  # (n', k), -1 where the neighbor was dropped
    own = np.broadcast_to(np.arange(n, dtype=np.int64)[:, None], E.shape)
    return np.where(E < 0, own, E)
