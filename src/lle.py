"""
Locally Linear Embedding (LLE).

Reference: Roweis & Saul (2000), "Nonlinear Dimensionality Reduction by
Locally Linear Embedding", Science 290:2323.

Pipeline: kNN graph -> largest connected component -> local reconstruction
weights -> sparse cost matrix M = (I - W)^T (I - W) -> bottom eigenvectors.

Data layout follows the column convention: X is (D, N), one observation per
column, and the embedding is (out_dim, N').
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np
import torch
from scipy import sparse

from graph_components import adjacency_matrix, largest_component, remap_neighbors
from knn_graph import NeighborIndex, _as_int, _to_numpy, build_neighbor_index, knn
from lle_errors import InvalidConfiguration, SingularLocalSystem
from spectral import spectral_embedding

Array = np.ndarray


@dataclass(frozen=True)
class LLEConfig:
    k: int = 12
    maxoutdim: int = 2
    nntype: str = "brute"
    tol: float = 1e-5
    eigen_solver: str = "auto"


def _readonly(a: Array) -> Array:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


@dataclass(frozen=True, eq=False)
class LLE:
    """
    Fitted locally linear embedding.

    Built once by fit_lle() and never mutated; array fields are read-only.
    """
    d: int
    nearestneighbors: NeighborIndex
    component: Array             # (N',) original indices of retained points
    lam: Array                   # (out_dim,) eigenvalues, ascending
    proj: Array                  # (out_dim, N') embedding
    config: LLEConfig = field(default_factory=LLEConfig)
    diagnostics: dict = field(default_factory=dict, compare=False)

    def size(self) -> Tuple[int, int]:
        return (self.d, int(self.proj.shape[0]))

    def eigvals(self) -> Array:
        return self.lam

    def neighbors(self) -> int:
        return self.nearestneighbors.k

    def vertices(self) -> Array:
        return self.component

    def predict(self) -> Array:
        """Stored embedding of the retained points, (out_dim, N')."""
        return self.proj

    def summary(self) -> str:
        indim, outdim = self.size()
        return f"LLE(indim = {indim}, outdim = {outdim}, neighbors = {self.neighbors()})"

    def __repr__(self) -> str:
        return self.summary()


# ---------------------------------------------------------------------
# Local reconstruction weights
# ---------------------------------------------------------------------
def reconstruction_weights(X: Array, nn_idx: Array, *, tol: float = 0.0) -> Array:
    """
    Weights reconstructing each point from its neighbors.

    For point i with neighbors J, solves (Z^T Z + tol I) w = 1 with
    Z = X[:, J] - x_i, then normalizes w to sum to 1. Weights may be
    negative. A neighbor list may repeat the point itself (see
    remap_neighbors); that column of Z is zero and needs tol > 0.

    Parameters
    ----------
    X : (D, N)
        Retained points, one per column.
    nn_idx : (N, k)
        Local neighbor indices.
    tol : float
        Ridge added to the local Gram matrix.

    Returns
    -------
    W : (N, k) weights, rows sum to 1
    """
    X = np.asarray(X, dtype=np.float64)
    nn_idx = np.asarray(nn_idx, dtype=np.int64)
    N, k = nn_idx.shape
    ones = np.ones(k, dtype=np.float64)
    reg = float(tol) * np.eye(k)

    weights = np.empty((N, k), dtype=np.float64)
    for i in range(N):
        J = nn_idx[i]
        Z = X[:, J] - X[:, i:i+1]  # (D, k)
        G = Z.T @ Z + reg
        try:
            w = np.linalg.solve(G, ones)
        except np.linalg.LinAlgError as exc:
            raise SingularLocalSystem(i, str(exc), tol) from exc
        s = w.sum()
        if not np.all(np.isfinite(w)) or s == 0.0 or not np.isfinite(s):
            raise SingularLocalSystem(i, "solution is not finite", tol)
        weights[i] = w / s
    return weights


# ---------------------------------------------------------------------
# Cost matrix
# ---------------------------------------------------------------------
def weight_matrix(weights: Array, nn_idx: Array) -> sparse.csr_matrix:
    """Sparse W (N,N) with W[i, J[l]] = w[l]; repeated neighbors are summed."""
    nn_idx = np.asarray(nn_idx, dtype=np.int64)
    N, k = nn_idx.shape
    rows = np.repeat(np.arange(N), k)
    return sparse.csr_matrix((np.asarray(weights).reshape(-1), (rows, nn_idx.reshape(-1))), shape=(N, N))


def cost_matrix(weights: Array, nn_idx: Array) -> sparse.csr_matrix:
    """
    Embedding cost M = (I - W)^T (I - W) = I - W - W^T + W^T W.

    Assembled as a coordinate list and compressed once; coinciding entries
    are summed, since several points share neighbors.
    """
    weights = np.asarray(weights, dtype=np.float64)
    nn_idx = np.asarray(nn_idx, dtype=np.int64)
    N, k = nn_idx.shape

    # identity
    diag = np.arange(N)
    # -w at (i, J[l]) and (J[l], i)
    own = np.repeat(np.arange(N), k)
    nbr = nn_idx.reshape(-1)
    wflat = weights.reshape(-1)
    # + w[l] w[m] at (J[l], J[m])
    ww = weights[:, :, None] * weights[:, None, :]                     # (N, k, k)
    outer_r = np.broadcast_to(nn_idx[:, :, None], (N, k, k)).reshape(-1)
    outer_c = np.broadcast_to(nn_idx[:, None, :], (N, k, k)).reshape(-1)

    rows = np.concatenate([diag, own, nbr, outer_r])
    cols = np.concatenate([diag, nbr, own, outer_c])
    vals = np.concatenate([np.ones(N), -wflat, -wflat, ww.reshape(-1)])

    M = sparse.coo_matrix((vals, (rows, cols)), shape=(N, N))
    return M.tocsr()  # sums duplicates


# ---------------------------------------------------------------------
# Fit / predict
# ---------------------------------------------------------------------
def fit_lle(
    X: Union[Array, torch.Tensor],
    *,
    k: int = 12,
    maxoutdim: int = 2,
    nntype: str = "brute",
    tol: float = 1e-5,
    eigen_solver: str = "auto",
    random_state: Optional[int] = None,
) -> LLE:
    """
    Fit a locally linear embedding model to `X`.

    Parameters
    ----------
    X : (D, N)
        Observations, one per column.
    k : int
        Number of nearest neighbors for the local reconstruction.
    maxoutdim : int
        Dimension of the embedding.
    nntype : str
        Neighbor search algorithm: "brute", "kd_tree", "ball_tree", "auto".
    tol : float
        Ridge for the local Gram matrices, applied only when k > maxoutdim.
    eigen_solver : str
        "auto", "dense", "arpack" or "lobpcg".
    random_state : int, optional
        Seed for iterative eigen solvers.

    Returns
    -------
    LLE

    Examples
    --------
    >>> M = fit_lle(np.random.rand(3, 100))   # construct LLE model
    >>> R = M.predict()                       # (2, N') embedding
    """
    X = np.asarray(_to_numpy(X), dtype=np.float64)
    if X.ndim != 2:
        raise InvalidConfiguration(f"data must be a (D, N) matrix, got shape {X.shape}")
    if not np.all(np.isfinite(X)):
        raise InvalidConfiguration("data contains NaN or infinite values")
    maxoutdim = _as_int("maxoutdim", maxoutdim)
    if maxoutdim < 1:
        raise InvalidConfiguration(f"maxoutdim must be >= 1, got {maxoutdim}")
    if tol < 0:
        raise InvalidConfiguration(f"tol must be non-negative, got {tol}")
    config = LLEConfig(k=_as_int("k", k), maxoutdim=maxoutdim, nntype=nntype, tol=float(tol), eigen_solver=eigen_solver)

    # Construct NN graph
    NN = build_neighbor_index(X.T, config.k, algorithm=nntype)
    nn_d, nn_idx = knn(NN)
    A = adjacency_matrix(nn_idx)
    _, C = largest_component(A)

    n_total = X.shape[1]
    Xc = X[:, C]
    d, n = Xc.shape
    if n != n_total:
        warnings.warn(
            f"kNN graph is disconnected: dropping {n_total - n} of {n_total} points "
            f"outside the largest connected component",
            UserWarning,
            stacklevel=2,
        )
    E = remap_neighbors(nn_idx, C)

    if config.k > maxoutdim:
        warnings.warn("k > maxoutdim: regularization will be used", RuntimeWarning, stacklevel=2)
        ridge = config.tol
    else:
        ridge = 0.0

    # Reconstruct weights and compute embedding
    weights = reconstruction_weights(Xc, E, tol=ridge)
    M = cost_matrix(weights, E)
    res = spectral_embedding(M, maxoutdim, solver=eigen_solver, random_state=random_state)

    diagnostics = dict(res.diagnostics)
    diagnostics.update({
        "n_points": n_total,
        "n_retained": n,
        "n_dropped": n_total - n,
        "median_nn_dist": float(np.median(nn_d)),
        "regularization": ridge,
        "trivial_eigval": res.trivial_eigval,
    })

    return LLE(
        d=d,
        nearestneighbors=NN,
        component=_readonly(C),
        lam=_readonly(res.eigvals),
        proj=_readonly(res.Y),
        config=config,
        diagnostics=diagnostics,
    )


def predict(R: LLE) -> Array:
    """Transform the data fitted to the LLE model `R` into its reduced-space representation."""
    return R.predict()
