"""
Bottom eigenvectors of the LLE cost matrix.

Three interchangeable solvers for the smallest eigenpairs of a symmetric PSD
matrix:
- "dense":  numpy.linalg.eigh on the densified matrix
- "arpack": scipy.sparse.linalg.eigsh in shift-invert mode just below 0
- "lobpcg": torch.lobpcg on a dense float64 tensor
"auto" picks arpack for large matrices with few requested pairs, dense otherwise.

"auto" never picks lobpcg. Without a preconditioner it converges poorly on LLE
cost matrices, whose bottom eigenvalues are clustered near machine zero. Its
output is checked against the eigen residual and rejected with
NumericalFailure when it has not converged.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import torch
from scipy import sparse
from scipy.sparse.linalg import ArpackError, ArpackNoConvergence, eigsh

from lle_errors import InsufficientEigenpairs, InvalidConfiguration, NumericalFailure

SOLVERS = ("auto", "dense", "arpack", "lobpcg")

# M is PSD and exactly singular along the constant vector, so shift-invert
# around a point just below 0 keeps M - sigma*I factorizable.
ARPACK_SHIFT = -1e-6

# accepted relative residual, as a multiple of the lobpcg tolerance
LOBPCG_RESIDUAL_FACTOR = 10.0


@dataclass
class SpectralResult:
    Y: np.ndarray                # (out_dim, N) coordinates, one column per point
    eigvals: np.ndarray          # (out_dim,) smallest non-trivial eigenvalues, ascending
    trivial_eigval: float        # discarded eigenvalue (~0)
    trivial_eigvec: np.ndarray   # (N,) discarded eigenvector (~constant)
    solver: str
    diagnostics: dict


def _lobpcg_call(A: torch.Tensor, k: int, X: torch.Tensor, largest: bool, iters: int, tol: float = 1e-6):
    """Compatibility wrapper: torch.lobpcg API differs across torch versions."""
    # Newer API: maxiter keyword
    try:
        return torch.lobpcg(A, k=k, B=None, X=X, largest=largest, maxiter=iters, tol=tol)
    except TypeError:
        pass
    # Older API: niter keyword
    try:
        return torch.lobpcg(A, k=k, B=None, X=X, largest=largest, niter=iters, tol=tol)
    except TypeError:
        pass
    return torch.lobpcg(A, k=k, B=None, X=X, largest=largest, tol=tol)


def _choose_solver(solver: str, N: int, nev: int) -> str:
    if solver == "auto":
        return "arpack" if (N > 200 and nev < 10) else "dense"
    # sparse solvers cannot serve every request size
    if solver == "arpack" and nev >= N:
        return "dense"
    if solver == "lobpcg" and N < 3 * nev:
        return "dense"
    return solver


def relative_residuals(M, evals: np.ndarray, evecs: np.ndarray) -> np.ndarray:
    """Per-column ||M v - lam v|| / (||M||_inf ||v||)."""
    R = np.asarray(M @ evecs) - evecs * evals[None, :]
    scale = float(np.max(abs(M).sum(axis=1))) or 1.0
    return np.linalg.norm(R, axis=0) / (scale * np.linalg.norm(evecs, axis=0))


def _dense_eigh(M) -> Tuple[np.ndarray, np.ndarray]:
    Md = M.toarray() if sparse.issparse(M) else np.asarray(M, dtype=np.float64)
    try:
        return np.linalg.eigh(Md)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure(f"dense eigen-decomposition failed: {exc}") from exc


def decompose(
    M,
    nev: int,
    *,
    solver: str = "auto",
    tol: float = 0.0,
    max_iter: Optional[int] = None,
    random_state: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Smallest `nev` eigenpairs of a symmetric matrix.

    Parameters
    ----------
    M : (N, N) sparse or dense symmetric matrix
    nev : int
        Number of eigenpairs.
    solver : str
        One of SOLVERS.
    tol : float
        Convergence tolerance for arpack/lobpcg (0 means machine precision
        for arpack, 1e-8 for lobpcg).
    max_iter : int, optional
        Iteration cap for arpack/lobpcg.
    random_state : int, optional
        Seed for the iterative solvers' starting vectors.

    Returns
    -------
    eigvals : (nev,) ascending
    eigvecs : (N, nev)
    """
    if solver not in SOLVERS:
        raise InvalidConfiguration(f"Unknown eigen solver: {solver!r}; expected one of {SOLVERS}")
    N = M.shape[0]
    nev = int(nev)
    if nev < 1:
        raise InvalidConfiguration("nev must be positive")
    if nev > N:
        raise InsufficientEigenpairs(nev, N, detail=f"matrix is {N}x{N}")

    kind = _choose_solver(solver, N, nev)
    rng = np.random.default_rng(random_state)

    if kind == "dense":
        evals, evecs = _dense_eigh(M)
    elif kind == "arpack":
        v0 = rng.uniform(-1.0, 1.0, N)
        try:
            evals, evecs = eigsh(
                sparse.csc_matrix(M), k=nev, sigma=ARPACK_SHIFT, which="LM",
                tol=tol, maxiter=max_iter, v0=v0,
            )
        except (ArpackNoConvergence, ArpackError, RuntimeError) as exc:
            raise NumericalFailure(f"arpack eigen-decomposition failed: {exc}") from exc
    else:
        Mt = torch.from_numpy(M.toarray() if sparse.issparse(M) else np.asarray(M, dtype=np.float64))
        gen = torch.Generator().manual_seed(int(rng.integers(0, 2**31 - 1)))
        X0 = torch.randn((N, nev), dtype=torch.float64, generator=gen)
        iters = int(max_iter) if max_iter is not None else 500
        lobpcg_tol = tol or 1e-8
        try:
            ev_t, V_t = _lobpcg_call(Mt, k=nev, X=X0, largest=False, iters=iters, tol=lobpcg_tol)
        except RuntimeError as exc:
            raise NumericalFailure(f"lobpcg eigen-decomposition failed: {exc}") from exc
        evals = ev_t.detach().cpu().numpy()
        evecs = V_t.detach().cpu().numpy()
        # torch.lobpcg returns its last iterate without complaint
        res = relative_residuals(M, evals, evecs)
        limit = LOBPCG_RESIDUAL_FACTOR * lobpcg_tol
        if not np.all(res <= limit):
            raise NumericalFailure(
                f"lobpcg did not converge in {iters} iterations: "
                f"max relative residual {np.max(res):.3e} > {limit:.1e}"
            )

    order = np.argsort(evals)[:nev]
    evals = np.asarray(evals[order], dtype=np.float64)
    evecs = np.asarray(evecs[:, order], dtype=np.float64)
    if evals.shape[0] < nev or not np.all(np.isfinite(evals)):
        raise InsufficientEigenpairs(nev, int(np.sum(np.isfinite(evals))), detail=f"{kind} solver")
    return evals, evecs


def spectral_embedding(
    M,
    out_dim: int,
    *,
    solver: str = "auto",
    tol: float = 0.0,
    max_iter: Optional[int] = None,
    random_state: Optional[int] = None,
) -> SpectralResult:
    """
    Bottom non-trivial eigenvectors of M as embedding coordinates.

    Computes out_dim+1 smallest eigenpairs, drops the smallest (the constant
    vector with eigenvalue ~0) and scales the rest by sqrt(N), so that each
    coordinate has unit mean square over the points.
    """
    N = M.shape[0]
    out_dim = int(out_dim)
    if out_dim < 1:
        raise InvalidConfiguration("out_dim must be positive")
    if N < out_dim + 1:
        raise InsufficientEigenpairs(
            out_dim + 1, N,
            detail=f"{N} retained points cannot give {out_dim} non-trivial coordinates",
        )

    evals, evecs = decompose(
        M, out_dim + 1, solver=solver, tol=tol, max_iter=max_iter, random_state=random_state
    )
    kind = _choose_solver(solver, N, out_dim + 1)

    # drop first eigenvector (constant)
    V = evecs[:, 1:out_dim + 1]
    Y = V.T * np.sqrt(N)
    ev = evals[1:out_dim + 1].copy()

    diagnostics = {
        "M_trace": float(M.diagonal().sum()),
        "M_min_eig": float(evals[0]),
        "M_gap_after_const": float(evals[1] - evals[0]),
        "solver": kind,
    }
    return SpectralResult(
        Y=Y,
        eigvals=ev,
        trivial_eigval=float(evals[0]),
        trivial_eigvec=evecs[:, 0].copy(),
        solver=kind,
        diagnostics=diagnostics,
    )
