"""
Kernel bandwidth calibration.

The two bandwidths bounding every Gaussian kernel of the mixture are chosen so
that a kernel centred on a cell covers, on average, a target number of its
nearest neighbours. For a neighbour count ``k`` the average sorted neighbour
distance curve ``k_dist`` is computed over all cells and ``sigma`` solves

    sum_i phi(x_i; sigma) * width - 0.5 = 0,   x_i = 0, width, ..., max(k_dist)

i.e. half of the kernel mass lies inside the neighbourhood envelope.

If only one of the two root finds succeeds, the other bound is derived from it
with a fixed ratio of 5. If both fail, :class:`SigmaCalibrationError` is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import brentq

logger = logging.getLogger(__name__)

GRID_WIDTH = 0.01
FALLBACK_RATIO = 5.0
_ROW_CHUNK = 1024


class SigmaCalibrationError(RuntimeError):
    """Neither bandwidth could be solved for."""


@dataclass(frozen=True)
class SigmaBounds:
    sigma_min: float
    sigma_max: float
    n_min: int
    n_max: int
    min_fallback: bool = False
    max_fallback: bool = False


def neighbor_counts(
    n_cells: int,
    sigma_min_cells: Optional[float] = None,
    sigma_max_cells: Optional[float] = None,
) -> Tuple[int, int]:
    """Target neighbour counts ``(N_min, N_max)`` for ``n_cells`` reference cells."""
    if sigma_min_cells is None:
        n_min = max(20, int(round(n_cells / 100)))
    else:
        n_min = int(round(sigma_min_cells))

    if sigma_max_cells is None:
        n_max = max(int(round(n_cells / 5)), n_min)
    else:
        n_max = int(round(sigma_max_cells))

    if n_min < 1 or n_max < 1:
        raise ValueError(
            f"Neighbour counts must be positive, got sigma_min_cells={n_min}, sigma_max_cells={n_max}"
        )
    return min(n_min, n_cells), min(n_max, n_cells)


def knn_distances(distance: np.ndarray, k: int) -> np.ndarray:
    """Sorted distances from every cell to its ``k`` nearest cells (itself included).

    Ties are broken by ascending cell index.
    """
    n_cells = distance.shape[0]
    k = min(k, n_cells)
    out = np.empty((n_cells, k), dtype=float)
    for start in range(0, n_cells, _ROW_CHUNK):
        rows = distance[start:start + _ROW_CHUNK]
        order = np.argsort(rows, axis=1, kind="stable")[:, :k]
        out[start:start + _ROW_CHUNK] = np.take_along_axis(rows, order, axis=1)
    return out


def integration_grid(upper: float, width: float = GRID_WIDTH) -> np.ndarray:
    n_points = int(np.floor(upper / width + 1e-10)) + 1
    return np.arange(n_points) * width


def sigma_objective(sigma: float, x_i: np.ndarray, width: float = GRID_WIDTH) -> float:
    """Riemann sum of the N(0, sigma^2) density over ``x_i`` minus one half."""
    density = np.exp(-(x_i ** 2) / (2 * sigma ** 2)) / (np.sqrt(2 * np.pi) * sigma)
    return float(np.sum(density) * width - 0.5)


def solve_sigma(knn_dist: np.ndarray, width: float = GRID_WIDTH) -> float:
    """Root of :func:`sigma_objective` for one neighbour-distance matrix.

    Raises
    ------
    ValueError
        If no sign change exists within the neighbour-distance bracket.
    """
    positive = knn_dist[knn_dist > 0]
    if positive.size == 0:
        raise ValueError("All neighbour distances are zero")
    lower = float(positive.min())
    upper = float(knn_dist.max())
    if not lower < upper:
        raise ValueError(f"Degenerate bracket for sigma: [{lower}, {upper}]")

    k_dist = knn_dist.mean(axis=0)
    x_i = integration_grid(float(k_dist.max()), width)
    return float(brentq(sigma_objective, lower, upper, args=(x_i, width)))


def _try_solve(distance: np.ndarray, k: int, label: str) -> Optional[float]:
    try:
        sigma = solve_sigma(knn_distances(distance, k))
    except (ValueError, RuntimeError) as exc:
        logger.debug("Root finding failed for %s (k=%d): %s", label, k, exc)
        return None
    logger.debug("%s=%.6g (k=%d)", label, sigma, k)
    return sigma


def calibrate_sigma(
    distance: np.ndarray,
    sigma_min_cells: Optional[float] = None,
    sigma_max_cells: Optional[float] = None,
) -> SigmaBounds:
    """Solve for the minimum and maximum kernel bandwidths.

    Parameters
    ----------
    distance : np.ndarray, shape (n_cells, n_cells)
        Latent distance matrix.
    sigma_min_cells, sigma_max_cells : float, optional
        Number of neighbours the smallest / largest kernel should capture.
        Defaults to ``max(20, cells/100)`` and ``max(cells/5, N_min)``.

    Returns
    -------
    SigmaBounds

    Raises
    ------
    SigmaCalibrationError
        If neither bandwidth can be solved for.
    """
    n_min, n_max = neighbor_counts(distance.shape[0], sigma_min_cells, sigma_max_cells)

    sigma_max = _try_solve(distance, n_max, "sigma_max")
    sigma_min = _try_solve(distance, n_min, "sigma_min")

    min_fallback = max_fallback = False
    if sigma_min is None and sigma_max is None:
        raise SigmaCalibrationError(
            "Could not solve for sigma. Try increasing sigma_max_cells and/or "
            "sigma_min_cells, or decreasing the number of latent dimensions "
            "to reduce sparsity."
        )
    if sigma_max is None:
        sigma_max = FALLBACK_RATIO * sigma_min
        max_fallback = True
        logger.warning("Could not solve for sigma_max; using %g x sigma_min = %.6g",
                       FALLBACK_RATIO, sigma_max)
    elif sigma_min is None:
        sigma_min = sigma_max / FALLBACK_RATIO
        min_fallback = True
        logger.warning("Could not solve for sigma_min; using sigma_max / %g = %.6g",
                       FALLBACK_RATIO, sigma_min)

    if sigma_min > sigma_max:
        logger.warning("sigma_min (%.6g) exceeds sigma_max (%.6g); swapping",
                       sigma_min, sigma_max)
        sigma_min, sigma_max = sigma_max, sigma_min

    return SigmaBounds(
        sigma_min=sigma_min,
        sigma_max=sigma_max,
        n_min=n_min,
        n_max=n_max,
        min_fallback=min_fallback,
        max_fallback=max_fallback,
    )


__all__ = [
    "SigmaBounds",
    "SigmaCalibrationError",
    "calibrate_sigma",
    "knn_distances",
    "neighbor_counts",
    "sigma_objective",
    "solve_sigma",
]
