"""
Synthetic training-set construction.

build_training_set(count, latent, ...)
    Returns a :class:`TrainingSet` pairing synthetic bulk profiles with the
    per-cell probability vectors that generated them.

The pipeline
------------
1. Euclidean distances between cells on the first ``dims`` latent dimensions.
2. Minimum / maximum kernel bandwidths from the neighbour-distance structure.
3. For every example: a random Gaussian mixture (1..max_cent centres) and the
   probability it assigns to each reference cell.
4. In batches of ``step`` examples: ``n`` cells drawn per example, aggregated
   from the count matrix and normalised to counts per million.

Every example draws from its own child generator of the run seed, so results
do not depend on ``step``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import sparse
from tqdm import tqdm

from condecon.training.bulk import aggregate_bulk
from condecon.training.distance import latent_distance
from condecon.training.mixture import (
    DegenerateProbabilityError,
    MixtureSpec,
    cell_probability,
    parameter_table,
    sample_mixture,
    sigma_grid,
)
from condecon.training.sampling import iter_batches, pick_cells
from condecon.training.sigma import SigmaBounds, calibrate_sigma

logger = logging.getLogger(__name__)

MAX_STEP = 10000


@dataclass(frozen=True, eq=False)
class TrainingSet:
    latent_distance: np.ndarray
    dims: int
    mixtures: Tuple[MixtureSpec, ...]
    max_cent: int
    cell_prob: np.ndarray
    synthetic_bulk: np.ndarray
    sigma: SigmaBounds
    n: int
    seed: int
    genes: Optional[List[str]] = field(default=None)
    cells: Optional[List[str]] = field(default=None)

    @property
    def parameters(self) -> pd.DataFrame:
        """``max_iter x (1 + 3*max_cent)`` parameter table."""
        return parameter_table(self.mixtures, self.max_cent)

    @property
    def n_examples(self) -> int:
        return self.cell_prob.shape[1]

    @property
    def n_cells(self) -> int:
        return self.cell_prob.shape[0]

    @property
    def n_genes(self) -> int:
        return self.synthetic_bulk.shape[0]

    def bulk_frame(self) -> pd.DataFrame:
        """Synthetic bulk matrix labelled by gene (genes x examples)."""
        return pd.DataFrame(self.synthetic_bulk, index=self.genes)

    def prob_frame(self) -> pd.DataFrame:
        """Probability matrix labelled by cell (cells x examples)."""
        return pd.DataFrame(self.cell_prob, index=self.cells)


def _prepare_count(count) -> Tuple[object, Optional[List[str]], Optional[List[str]]]:
    genes = cells = None
    if isinstance(count, pd.DataFrame):
        genes = [str(g) for g in count.index]
        cells = [str(c) for c in count.columns]
        count = count.values
    if sparse.issparse(count):
        count = sparse.csr_matrix(count, dtype=float)
        values = count.data
    else:
        try:
            count = np.asarray(count, dtype=float)
        except (TypeError, ValueError) as exc:
            raise ValueError("Count matrix must be numeric (genes x cells)") from exc
        if count.ndim != 2:
            raise ValueError(f"Count matrix must be 2D (genes x cells), got {count.ndim}D")
        values = count
    if not np.all(np.isfinite(values)):
        raise ValueError("Count matrix contains NaN or infinite values")
    if np.any(values < 0):
        raise ValueError("Count matrix must be non-negative")
    return count, genes, cells


def _validate(
    n_cells: int,
    n_latent: int,
    max_iter: int,
    max_cent: int,
    min_cent: int,
    step: int,
    n: int,
    max_retries: int,
) -> None:
    if n_cells != n_latent:
        raise ValueError(
            f"Count matrix has {n_cells} cells but latent embedding has {n_latent} rows"
        )
    if n_cells < 1:
        raise ValueError("Reference data must contain at least one cell")
    if max_iter < 1:
        raise ValueError(f"max_iter must be positive, got {max_iter}")
    if step < 1:
        raise ValueError(f"step must be positive, got {step}")
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")
    if not 1 <= min_cent <= max_cent:
        raise ValueError(
            f"Need 1 <= min_cent <= max_cent, got min_cent={min_cent}, max_cent={max_cent}"
        )
    if max_cent > n_cells:
        raise ValueError(f"max_cent={max_cent} exceeds the number of cells ({n_cells})")
    if max_retries < 0:
        raise ValueError(f"max_retries must be non-negative, got {max_retries}")


def _draw_example(
    rng: np.random.Generator,
    distance: np.ndarray,
    sigmas: np.ndarray,
    min_cent: int,
    max_cent: int,
    max_retries: int,
    index: int,
) -> Tuple[MixtureSpec, np.ndarray]:
    attempt = 0
    while True:
        spec = sample_mixture(rng, distance.shape[0], sigmas, min_cent=min_cent, max_cent=max_cent)
        try:
            return spec, cell_probability(spec, distance)
        except DegenerateProbabilityError as exc:
            if attempt >= max_retries:
                raise DegenerateProbabilityError(
                    f"Example {index}: no valid mixture after {max_retries + 1} draws. {exc}"
                ) from exc
            attempt += 1
            logger.warning("Example %d: degenerate mixture, redrawing (%d/%d)",
                           index, attempt, max_retries)


def build_training_set(
    count,
    latent,
    max_iter: int = 5000,
    max_cent: int = 5,
    step: Optional[int] = None,
    dims: int = 10,
    min_cent: int = 1,
    n: Optional[int] = None,
    sigma_min_cells: Optional[float] = None,
    sigma_max_cells: Optional[float] = None,
    verbose: bool = False,
    seed: Optional[int] = None,
    max_retries: int = 10,
) -> TrainingSet:
    """
    Build the synthetic training set from reference single-cell data.

    Parameters
    ----------
    count : np.ndarray, scipy.sparse matrix or pd.DataFrame, shape (n_genes, n_cells)
        Non-negative single-cell count matrix.
    latent : np.ndarray or pd.DataFrame, shape (n_cells, >= dims)
        Latent embedding of the same cells, in the same order.
    max_iter : int
        Number of synthetic examples. Default: 5000.
    max_cent : int
        Maximum number of mixture centres. Default: 5.
    step : int, optional
        Examples aggregated per batch. Default: ``min(max_iter, 10000)``.
    dims : int
        Number of latent dimensions used for distances. Default: 10.
    min_cent : int
        Minimum number of mixture centres. Default: 1.
    n : int, optional
        Cells sampled per example. Default: half the number of cells.
    sigma_min_cells, sigma_max_cells : float, optional
        Neighbour counts captured by the smallest / largest bandwidth.
    verbose : bool
        Log progress at INFO and show a progress bar. Default: False.
    seed : int, optional
        Random seed; a fresh one is drawn (and recorded) when omitted.
    max_retries : int
        Redraws allowed per example when a mixture is degenerate. Default: 10.

    Returns
    -------
    TrainingSet

    Raises
    ------
    ValueError
        On malformed input.
    SigmaCalibrationError
        If neither bandwidth can be calibrated.
    NumericalFaultError
        If an example keeps producing a degenerate probability vector or
        a synthetic bulk column without counts.
    """
    level = logging.INFO if verbose else logging.DEBUG

    count, genes, cells = _prepare_count(count)
    if isinstance(latent, pd.DataFrame) and cells is None:
        cells = [str(c) for c in latent.index]
    n_latent = np.shape(latent)[0]
    n_cells = count.shape[1]

    if step is None:
        step = min(max_iter, MAX_STEP)
    if n is None:
        n = max(1, int(round(n_cells / 2)))
    _validate(n_cells, n_latent, max_iter, max_cent, min_cent, step, n, max_retries)

    distance = latent_distance(latent, dims)
    logger.log(level, "Computed latent distances for %d cells on %d dimensions", n_cells, dims)

    bounds = calibrate_sigma(distance, sigma_min_cells, sigma_max_cells)
    logger.log(level, "sigma_min=%.4g (k=%d), sigma_max=%.4g (k=%d)",
               bounds.sigma_min, bounds.n_min, bounds.sigma_max, bounds.n_max)
    sigmas = sigma_grid(bounds.sigma_min, bounds.sigma_max)

    if seed is None:
        seed = int(np.random.SeedSequence().entropy)
    example_rngs = [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(max_iter)]

    mixtures: List[MixtureSpec] = []
    cell_prob = np.empty((n_cells, max_iter), dtype=float)
    for i, rng in enumerate(example_rngs):
        spec, prob = _draw_example(rng, distance, sigmas, min_cent, max_cent, max_retries, i)
        mixtures.append(spec)
        cell_prob[:, i] = prob
    logger.log(level, "Sampled %d mixtures with %d-%d centres", max_iter, min_cent, max_cent)

    batches = list(iter_batches(max_iter, step))
    synthetic_bulk = np.empty((count.shape[0], max_iter), dtype=float)
    for batch in tqdm(batches, desc="Synthetic bulk", leave=False, disable=not verbose):
        picks = np.stack([pick_cells(cell_prob[:, i], n, example_rngs[i]) for i in batch])
        synthetic_bulk[:, batch.start:batch.stop] = aggregate_bulk(count, picks, offset=batch.start)
        del picks
    logger.log(level, "Aggregated %d synthetic bulk samples in %d batch(es) of up to %d",
               max_iter, len(batches), step)

    for arr in (distance, cell_prob, synthetic_bulk):
        arr.setflags(write=False)

    return TrainingSet(
        latent_distance=distance,
        dims=dims,
        mixtures=tuple(mixtures),
        max_cent=max_cent,
        cell_prob=cell_prob,
        synthetic_bulk=synthetic_bulk,
        sigma=bounds,
        n=n,
        seed=seed,
        genes=genes,
        cells=cells,
    )


__all__ = ["TrainingSet", "build_training_set"]
