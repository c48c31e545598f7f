"""Pairwise cell distances in a truncated latent space."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform


def _as_latent_array(latent: np.ndarray | pd.DataFrame) -> np.ndarray:
    if isinstance(latent, pd.DataFrame):
        latent = latent.values
    try:
        arr = np.asarray(latent, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ValueError("Latent embedding must be numeric (cells x dims)") from exc
    if arr.ndim != 2:
        raise ValueError(f"Latent embedding must be 2D (cells x dims), got {arr.ndim}D")
    return arr


def latent_distance(latent: np.ndarray | pd.DataFrame, dims: int) -> np.ndarray:
    """Euclidean distance between every pair of cells.

    Parameters
    ----------
    latent : array-like, shape (n_cells, n_dims)
        Latent embedding of the reference cells.
    dims : int
        Number of leading latent dimensions to use.

    Returns
    -------
    np.ndarray, shape (n_cells, n_cells)
        Symmetric distance matrix with a zero diagonal.

    Raises
    ------
    ValueError
        If the embedding is not numeric, contains non-finite values, or has
        fewer than ``dims`` columns.
    """
    arr = _as_latent_array(latent)
    if dims < 1 or dims > arr.shape[1]:
        raise ValueError(
            f"dims must be between 1 and the number of latent columns ({arr.shape[1]}), got {dims}"
        )
    arr = arr[:, :dims]
    if not np.all(np.isfinite(arr)):
        raise ValueError("Latent embedding contains NaN or infinite values")
    return squareform(pdist(arr, metric="euclidean"))


__all__ = ["latent_distance"]
