import sys

import numpy as np

import run_lle_analysis
from run_lle_analysis import affine_fit_r2, make_plane, make_two_blobs


def test_affine_fit_r2_of_affine_image_is_one():
    rng = np.random.default_rng(0)
    T = rng.standard_normal((2, 50))
    A = np.array([[2.0, -1.0], [0.5, 3.0]])
    Y = A @ T + np.array([[4.0], [-2.0]])
    assert affine_fit_r2(Y, T) > 1.0 - 1e-10


def test_affine_fit_r2_of_noise_is_low():
    rng = np.random.default_rng(1)
    T = rng.standard_normal((2, 500))
    Y = rng.standard_normal((2, 500))
    assert affine_fit_r2(Y, T) < 0.1


def test_dataset_shapes():
    rng = np.random.default_rng(2)
    X, T = make_plane(50, 0.0, rng)
    assert X.shape == (3, 50)
    assert T.shape == (2, 50)
    X, T = make_two_blobs(50, 0.0, rng)
    assert X.shape == (3, 50)


def test_main_prints_summary_and_saves(tmp_path, monkeypatch, capsys):
    npz = tmp_path / "run.npz"
    plots = tmp_path / "plots"
    monkeypatch.setattr(sys, "argv", [
        "run_lle_analysis.py",
        "--dataset", "plane",
        "--n", "100",
        "--k", "10",
        "--noise", "0.001",
        "--save_npz", str(npz),
        "--save_plots", str(plots),
    ])
    run_lle_analysis.main()

    out = capsys.readouterr().out
    assert "LLE(indim = 3, outdim = 2, neighbors = 10)" in out
    assert "Retained points = 100 / 100" in out
    assert (plots / "lle_plane.png").exists()
    assert (plots / "lle_plane.csv").exists()
    data = np.load(npz, allow_pickle=True)
    assert data["embedding"].shape == (2, 100)


def test_main_reports_dropped_cluster(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", [
        "run_lle_analysis.py",
        "--dataset", "two_blobs",
        "--n", "60",
        "--k", "8",
    ])
    run_lle_analysis.main()
    out = capsys.readouterr().out
    assert "Retained points = 36 / 60" in out
    assert "[warn] 24 points" in out
