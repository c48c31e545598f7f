import numpy as np
import pytest
from scipy import sparse

from condecon.training.bulk import (
    DegenerateBulkError,
    aggregate_bulk,
    cell_weight_matrix,
    cpm_normalize,
)
from condecon.training.sampling import iter_batches, pick_cells


# ---------------------------------------------------------------------------
# pick_cells / iter_batches
# ---------------------------------------------------------------------------

def test_pick_cells_respects_support():
    prob = np.array([0.0, 0.5, 0.0, 0.25, 0.25])
    picks = pick_cells(prob, 200, np.random.default_rng(1))
    assert picks.shape == (200,)
    assert set(np.unique(picks)) <= {1, 3, 4}


def test_pick_cells_reproducible():
    prob = np.full(10, 0.1)
    a = pick_cells(prob, 25, np.random.default_rng(4))
    b = pick_cells(prob, 25, np.random.default_rng(4))
    assert np.array_equal(a, b)


def test_iter_batches_uneven():
    batches = list(iter_batches(55, 20))
    assert [len(b) for b in batches] == [20, 20, 15]
    assert [i for b in batches for i in b] == list(range(55))


def test_iter_batches_even_and_large_step():
    assert [len(b) for b in iter_batches(40, 20)] == [20, 20]
    assert [len(b) for b in iter_batches(7, 100)] == [7]


def test_iter_batches_bad_step():
    with pytest.raises(ValueError):
        list(iter_batches(10, 0))


# ---------------------------------------------------------------------------
# bulk aggregation
# ---------------------------------------------------------------------------

def test_cell_weight_matrix_counts():
    picks = np.array([[0, 0, 2], [1, 2, 2]])
    W = cell_weight_matrix(picks, n_cells=4)
    assert sparse.issparse(W)
    expected = np.array([[2, 0], [0, 1], [1, 2], [0, 0]])
    assert np.array_equal(W.toarray(), expected)


def test_aggregate_bulk_known_values():
    count = np.array([[1.0, 0.0], [0.0, 3.0]])
    picks = np.array([[0, 0], [1, 1], [0, 1]])
    bulk = aggregate_bulk(count, picks)
    expected = np.array([[1e6, 0.0, 0.25e6], [0.0, 1e6, 0.75e6]])
    assert np.allclose(bulk, expected)


def test_aggregate_bulk_sparse_matches_dense():
    rng = np.random.default_rng(2)
    count = rng.poisson(2.0, size=(15, 12)).astype(float) + 1.0
    picks = rng.integers(0, 12, size=(6, 8))
    dense = aggregate_bulk(count, picks)
    from_sparse = aggregate_bulk(sparse.csr_matrix(count), picks)
    assert dense.shape == (15, 6)
    assert np.allclose(dense, from_sparse)
    assert np.allclose(dense.sum(axis=0), 1e6)
    assert np.all(dense >= 0)


def test_aggregate_bulk_zero_column():
    count = np.array([[0.0, 2.0], [0.0, 1.0]])
    picks = np.array([[1, 1], [0, 0]])
    with pytest.raises(DegenerateBulkError) as excinfo:
        aggregate_bulk(count, picks, offset=40)
    assert excinfo.value.columns == [41]


def test_cpm_normalize_scale():
    raw = np.array([[1.0, 3.0], [1.0, 1.0]])
    assert np.allclose(cpm_normalize(raw), [[5e5, 7.5e5], [5e5, 2.5e5]])
