import numpy as np
import pytest

from condecon.training.mixture import (
    DegenerateProbabilityError,
    MixtureSpec,
    cell_probability,
    mixtures_from_table,
    parameter_table,
    sample_mixture,
    sigma_grid,
)
from condecon.training.distance import latent_distance


def _spec(centers, sigmas, weights):
    return MixtureSpec(
        centers=np.asarray(centers, dtype=int),
        sigmas=np.asarray(sigmas, dtype=float),
        weights=np.asarray(weights, dtype=float),
    )


# ---------------------------------------------------------------------------
# sigma_grid
# ---------------------------------------------------------------------------

def test_sigma_grid_log_spaced():
    grid = sigma_grid(0.1, 10.0)
    assert np.isclose(grid[0], 0.1)
    assert np.isclose(grid[-1], 10.0)
    assert grid.size == 20001
    assert np.allclose(np.diff(np.log10(grid)), 1e-4)


def test_sigma_grid_single_value():
    grid = sigma_grid(0.5, 0.5)
    assert np.allclose(grid, [0.5])


# ---------------------------------------------------------------------------
# sample_mixture
# ---------------------------------------------------------------------------

def test_sample_mixture_ranges():
    rng = np.random.default_rng(3)
    grid = sigma_grid(0.2, 2.0)
    for _ in range(200):
        spec = sample_mixture(rng, 40, grid, min_cent=2, max_cent=4)
        assert 2 <= spec.n_centers <= 4
        assert len(np.unique(spec.centers)) == spec.n_centers
        assert np.all((spec.centers >= 0) & (spec.centers < 40))
        assert np.all((spec.sigmas >= 0.2 - 1e-12) & (spec.sigmas <= 2.0 + 1e-12))
        assert np.all(spec.weights > 0)
        assert np.isclose(spec.weights.sum(), 1.0)


def test_sample_mixture_covers_center_range():
    rng = np.random.default_rng(0)
    grid = sigma_grid(1.0, 2.0)
    counts = {sample_mixture(rng, 10, grid, 1, 3).n_centers for _ in range(100)}
    assert counts == {1, 2, 3}


def test_sample_mixture_reproducible():
    grid = sigma_grid(0.5, 5.0)
    a = sample_mixture(np.random.default_rng(11), 30, grid)
    b = sample_mixture(np.random.default_rng(11), 30, grid)
    assert np.array_equal(a.centers, b.centers)
    assert np.array_equal(a.sigmas, b.sigmas)
    assert np.array_equal(a.weights, b.weights)


# ---------------------------------------------------------------------------
# cell_probability
# ---------------------------------------------------------------------------

def test_cell_probability_single_center():
    d = latent_distance(np.array([[0.0], [1.0], [2.0]]), dims=1)
    prob = cell_probability(_spec([0], [1.0], [1.0]), d)
    expected = np.exp(-np.array([0.0, 1.0, 4.0]) / 2)
    assert np.allclose(prob, expected / expected.sum())
    assert np.argmax(prob) == 0


def test_cell_probability_weights_and_sigmas():
    d = latent_distance(np.array([[0.0], [1.0], [5.0]]), dims=1)
    spec = _spec([0, 2], [0.5, 2.0], [0.25, 0.75])
    dens = (
        0.25 / (np.sqrt(2 * np.pi) * 0.5) * np.exp(-d[:, 0] ** 2 / (2 * 0.25))
        + 0.75 / (np.sqrt(2 * np.pi) * 2.0) * np.exp(-d[:, 2] ** 2 / (2 * 4.0))
    )
    assert np.allclose(cell_probability(spec, d), dens / dens.sum())


def test_cell_probability_is_distribution(reference):
    _, latent = reference
    d = latent_distance(latent, dims=5)
    rng = np.random.default_rng(5)
    grid = sigma_grid(0.5, 3.0)
    for _ in range(50):
        prob = cell_probability(sample_mixture(rng, 50, grid, 1, 5), d)
        assert prob.shape == (50,)
        assert np.all(prob >= 0)
        assert abs(prob.sum() - 1.0) < 1e-9


def test_cell_probability_degenerate():
    d = np.array([[0.0, 1e6], [1e6, 0.0]])
    # zero mixing weights leave nothing to normalise
    spec = _spec([0, 1], [1e-3, 1e-3], [0.0, 0.0])
    with pytest.raises(DegenerateProbabilityError):
        cell_probability(spec, d)


# ---------------------------------------------------------------------------
# parameter_table
# ---------------------------------------------------------------------------

def test_parameter_table_layout():
    mixtures = [_spec([4], [0.3], [1.0]), _spec([1, 7, 2], [0.5, 1.0, 2.0], [0.2, 0.3, 0.5])]
    table = parameter_table(mixtures, max_cent=3)
    assert table.shape == (2, 10)
    assert list(table.columns[:4]) == ["num.centers", "center.1", "center.2", "center.3"]
    assert list(table.columns[-3:]) == ["mix.1", "mix.2", "mix.3"]
    assert table.loc[0, "num.centers"] == 1
    assert table.loc[0, "center.1"] == 4
    assert table.loc[0, ["center.2", "center.3", "sigma.2", "sigma.3", "mix.2", "mix.3"]].eq(0).all()
    assert table.loc[1, "sigma.3"] == 2.0

    restored = mixtures_from_table(table)
    assert [m.n_centers for m in restored] == [1, 3]
    assert np.array_equal(restored[1].centers, [1, 7, 2])


def test_parameter_table_too_many_centers():
    with pytest.raises(ValueError, match="max_cent"):
        parameter_table([_spec([0, 1], [1.0, 1.0], [0.5, 0.5])], max_cent=1)
