"""
Aggregation of sampled cells into synthetic bulk profiles.

For a batch of examples the sampled cell indices are turned into a sparse
cells x examples occurrence matrix ``W``; the synthetic bulk of the batch is
``count @ W`` with every column rescaled to one million (counts per million).
"""

from __future__ import annotations

import numpy as np
from scipy import sparse

from condecon.training.mixture import NumericalFaultError

CPM_SCALE = 1e6


class DegenerateBulkError(NumericalFaultError):
    """Sampled cells carry no counts for one or more examples."""

    def __init__(self, message: str, columns=()):
        super().__init__(message)
        self.columns = list(columns)


def cell_weight_matrix(picks: np.ndarray, n_cells: int) -> sparse.csr_matrix:
    """Occurrence counts of each cell per example.

    Parameters
    ----------
    picks : np.ndarray, shape (batch, n)
        Sampled cell indices, one row per example.
    n_cells : int

    Returns
    -------
    scipy.sparse.csr_matrix, shape (n_cells, batch)
    """
    batch, n = picks.shape
    cols = np.repeat(np.arange(batch), n)
    data = np.ones(batch * n, dtype=float)
    # duplicate (cell, example) entries are summed on conversion
    return sparse.coo_matrix((data, (picks.ravel(), cols)), shape=(n_cells, batch)).tocsr()


def cpm_normalize(raw: np.ndarray, offset: int = 0) -> np.ndarray:
    """Scale each column of ``raw`` to sum to one million.

    ``offset`` is added to column numbers in the error message so that they
    refer to example indices of the full run.

    Raises
    ------
    DegenerateBulkError
        If any column sums to zero.
    """
    totals = raw.sum(axis=0)
    bad = np.flatnonzero(~(totals > 0))
    if bad.size:
        columns = (bad + offset).tolist()
        raise DegenerateBulkError(
            f"Synthetic bulk has zero total counts for example(s) {columns}", columns
        )
    return raw / totals * CPM_SCALE


def aggregate_bulk(count, picks: np.ndarray, offset: int = 0) -> np.ndarray:
    """Synthetic bulk profiles for one batch of examples.

    Parameters
    ----------
    count : np.ndarray or scipy.sparse matrix, shape (n_genes, n_cells)
        Reference count matrix.
    picks : np.ndarray, shape (batch, n)
        Sampled cell indices per example.
    offset : int
        Index of the first example of the batch within the run.

    Returns
    -------
    np.ndarray, shape (n_genes, batch)
        Counts-per-million profiles.
    """
    weights = cell_weight_matrix(picks, count.shape[1])
    raw = weights.T @ count.T  # (batch, genes)
    if sparse.issparse(raw):
        raw = raw.toarray()
    raw = np.asarray(raw, dtype=float).T
    return cpm_normalize(raw, offset=offset)


__all__ = ["DegenerateBulkError", "cell_weight_matrix", "cpm_normalize", "aggregate_bulk"]
