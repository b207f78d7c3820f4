#!/usr/bin/env python3
"""
Fit LLE on a synthetic manifold and report how well the embedding recovers it.

Guarantees:
- ALWAYS prints numeric summaries (model, retained points, spectrum, affine fit)
- CSV of the embedding always saved if --save_plots is given, PNG scatter next to it
"""
from __future__ import annotations

import argparse
import os
from typing import Tuple

import numpy as np
from PIL import Image, ImageDraw

from knn_graph import ALGORITHMS
from lle import fit_lle
from spectral import SOLVERS


# ---------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------

def make_swiss_roll(n: int, noise: float, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """(3, n) swiss roll and its (2, n) intrinsic coordinates (angle, height)."""
    t = 1.5 * np.pi * (1.0 + 2.0 * rng.random(n))
    h = 21.0 * rng.random(n)
    X = np.vstack([t * np.cos(t), h, t * np.sin(t)])
    X += noise * rng.standard_normal(X.shape)
    return X, np.vstack([t, h])


def make_plane(n: int, noise: float, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Flat grid tilted into 3D."""
    side = int(np.ceil(np.sqrt(n)))
    u, v = np.meshgrid(np.arange(side, dtype=np.float64), np.arange(side, dtype=np.float64))
    T = np.vstack([u.ravel(), v.ravel()])[:, :n]
    basis = np.linalg.qr(rng.standard_normal((3, 2)))[0]  # orthonormal (3,2)
    X = basis @ T + noise * rng.standard_normal((3, T.shape[1]))
    return X, T


def make_two_blobs(n: int, noise: float, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Two far apart gaussian blobs of unequal size; the second is smaller."""
    n1 = int(round(0.6 * n))
    n2 = n - n1
    A = rng.standard_normal((3, n1))
    B = rng.standard_normal((3, n2)) + np.array([[100.0], [0.0], [0.0]])
    X = np.hstack([A, B])
    X += noise * rng.standard_normal(X.shape)
    return X, X[:2].copy()


DATASETS = {
    "swiss_roll": make_swiss_roll,
    "plane": make_plane,
    "two_blobs": make_two_blobs,
}


# ---------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------

def affine_fit_r2(Y: np.ndarray, T: np.ndarray) -> float:
    """
    R^2 of the best affine map Y -> T (both (p, N)).
    1.0 means the embedding is an affine image of the ground truth.
    """
    Yh = np.vstack([Y, np.ones((1, Y.shape[1]))]).T   # (N, p+1)
    coef, *_ = np.linalg.lstsq(Yh, T.T, rcond=None)
    resid = T.T - Yh @ coef
    ss_res = float(np.sum(resid * resid))
    Tc = T.T - T.T.mean(axis=0, keepdims=True)
    ss_tot = float(np.sum(Tc * Tc))
    return 1.0 - ss_res / ss_tot if ss_tot > 0 else float("nan")


def _save_embedding_plot(Y: np.ndarray, color: np.ndarray, outpath: str, title: str):
    """
    Save the first two embedding coordinates.
    - CSV always
    - PNG scatter, points shaded by `color`
    """
    csv_path = os.path.splitext(outpath)[0] + ".csv"
    with open(csv_path, "w", encoding="utf-8") as f:
        f.write("point," + ",".join(f"y{j}" for j in range(Y.shape[0])) + "\n")
        for i in range(Y.shape[1]):
            f.write(f"{i}," + ",".join(f"{y}" for y in Y[:, i]) + "\n")

    if Y.shape[0] < 2:
        print("[warn] embedding has one coordinate; skipping PNG scatter")
        return

    W, H = 700, 700
    pad = 50
    img = Image.new("RGB", (W, H), (255, 255, 255))
    dr = ImageDraw.Draw(img)

    x, y = Y[0], Y[1]
    xmin, xmax = float(x.min()), float(x.max())
    ymin, ymax = float(y.min()), float(y.max())
    sx = (W - 2 * pad) / max(xmax - xmin, 1e-12)
    sy = (H - 2 * pad) / max(ymax - ymin, 1e-12)

    c = np.asarray(color, dtype=np.float64)
    c = (c - c.min()) / max(float(c.max() - c.min()), 1e-12)
    for xi, yi, ci in zip(x, y, c):
        px = pad + (xi - xmin) * sx
        py = H - pad - (yi - ymin) * sy
        shade = (int(255 * ci), 60, int(255 * (1.0 - ci)))
        dr.ellipse((px - 3, py - 3, px + 3, py + 3), fill=shade)

    dr.text((pad, 10), title[:80], fill=(0, 0, 0))
    img.save(outpath)


# ---------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------

def main():
    p = argparse.ArgumentParser(description="Locally linear embedding of a synthetic manifold")
    p.add_argument("--dataset", type=str, default="swiss_roll", choices=sorted(DATASETS))
    p.add_argument("--n", type=int, default=1000)
    p.add_argument("--noise", type=float, default=0.0)
    p.add_argument("--seed", type=int, default=0)
    p.add_argument("--k", type=int, default=12)
    p.add_argument("--out_dim", type=int, default=2)
    p.add_argument("--nntype", type=str, default="brute", choices=list(ALGORITHMS))
    p.add_argument("--tol", type=float, default=1e-5)
    p.add_argument("--eigen_solver", type=str, default="auto", choices=list(SOLVERS))
    p.add_argument("--save_npz", type=str, default="")
    p.add_argument("--save_plots", type=str, default="")
    args = p.parse_args()

    rng = np.random.default_rng(args.seed)
    X, T = DATASETS[args.dataset](args.n, args.noise, rng)

    model = fit_lle(
        X, k=args.k, maxoutdim=args.out_dim, nntype=args.nntype,
        tol=args.tol, eigen_solver=args.eigen_solver, random_state=args.seed,
    )
    Y = model.predict()
    C = model.vertices()
    diag = model.diagnostics

    # -----------------------------------------------------------------
    # ALWAYS print numeric summaries
    # -----------------------------------------------------------------
    print("\n=== LLE summary ===")
    print(model.summary())
    print(f"Dataset = {args.dataset}, n = {X.shape[1]}, noise = {args.noise}, seed = {args.seed}")
    print(f"Retained points = {len(C)} / {X.shape[1]}")
    if diag["n_dropped"] > 0:
        print(f"[warn] {diag['n_dropped']} points outside the largest connected component were dropped")
    print(f"Regularization = {diag['regularization']:g}, eigen solver = {diag['solver']}")
    print(f"Trivial eigenvalue = {diag['trivial_eigval']:.3e}")
    print("Eigenvalues:", [float(v) for v in model.eigvals()])
    r2 = affine_fit_r2(Y, T[:, C])
    print(f"Affine fit R^2 against intrinsic coordinates = {r2:.4f}")
    print("===================\n")

    # -----------------------------------------------------------------
    # Optional saving
    # -----------------------------------------------------------------
    if args.save_plots:
        os.makedirs(args.save_plots, exist_ok=True)
        _save_embedding_plot(
            Y,
            T[0, C],
            os.path.join(args.save_plots, f"lle_{args.dataset}.png"),
            f"LLE {args.dataset} (k={args.k}, n={X.shape[1]})",
        )

    if args.save_npz:
        np.savez_compressed(
            args.save_npz,
            embedding=Y,
            component=C,
            eigvals=model.eigvals(),
            affine_r2=r2,
            run_args=vars(args),
        )


if __name__ == "__main__":
    main()
