"""
Random Gaussian mixtures over the latent space.

Each synthetic example is defined by a :class:`MixtureSpec`: a handful of
reference cells acting as kernel centres, one bandwidth and one mixing weight
per centre. :func:`cell_probability` turns a spec into a probability
distribution over all reference cells.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SIGMA_GRID_STEP = 1e-4
MIX_WEIGHT_RANGE = (1, 100)


class NumericalFaultError(ArithmeticError):
    """A normalisation denominator vanished for one or more examples."""


class DegenerateProbabilityError(NumericalFaultError):
    """Every kernel density underflowed to zero for a mixture."""


@dataclass(frozen=True)
class MixtureSpec:
    centers: np.ndarray
    sigmas: np.ndarray
    weights: np.ndarray

    @property
    def n_centers(self) -> int:
        return int(self.centers.shape[0])

    def to_dict(self) -> dict:
        return {
            "centers": self.centers.tolist(),
            "sigmas": self.sigmas.tolist(),
            "weights": self.weights.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MixtureSpec":
        return cls(
            centers=np.asarray(data["centers"], dtype=int),
            sigmas=np.asarray(data["sigmas"], dtype=float),
            weights=np.asarray(data["weights"], dtype=float),
        )


def sigma_grid(sigma_min: float, sigma_max: float, step: float = SIGMA_GRID_STEP) -> np.ndarray:
    """Log-spaced bandwidth grid from ``sigma_min`` to ``sigma_max`` (inclusive)."""
    lo, hi = np.log10(sigma_min), np.log10(sigma_max)
    n_points = int(np.floor((hi - lo) / step + 1e-10)) + 1
    return np.power(10.0, lo + np.arange(n_points) * step)


def sample_mixture(
    rng: np.random.Generator,
    n_cells: int,
    sigmas: np.ndarray,
    min_cent: int = 1,
    max_cent: int = 5,
) -> MixtureSpec:
    """Draw one random mixture.

    Parameters
    ----------
    rng : np.random.Generator
    n_cells : int
        Number of reference cells centres are drawn from.
    sigmas : np.ndarray
        Bandwidth grid (see :func:`sigma_grid`), sampled with replacement.
    min_cent, max_cent : int
        Inclusive range for the number of centres.
    """
    k = int(rng.integers(min_cent, max_cent + 1))
    centers = rng.choice(n_cells, size=k, replace=False)
    chosen_sigmas = rng.choice(sigmas, size=k, replace=True)
    mixture = rng.integers(MIX_WEIGHT_RANGE[0], MIX_WEIGHT_RANGE[1] + 1, size=k)
    return MixtureSpec(
        centers=centers.astype(int),
        sigmas=chosen_sigmas.astype(float),
        weights=mixture / mixture.sum(),
    )


def cell_probability(spec: MixtureSpec, distance: np.ndarray) -> np.ndarray:
    """Probability of every reference cell under a Gaussian mixture.

    Parameters
    ----------
    spec : MixtureSpec
    distance : np.ndarray, shape (n_cells, n_cells)
        Latent distance matrix.

    Returns
    -------
    np.ndarray, shape (n_cells,)
        Non-negative, sums to one.

    Raises
    ------
    DegenerateProbabilityError
        If all densities underflow to zero.
    """
    d = distance[:, spec.centers]  # (cells, k)
    coef = spec.weights / (np.sqrt(2 * np.pi) * spec.sigmas)
    density = (coef * np.exp(-(d ** 2) / (2 * spec.sigmas ** 2))).sum(axis=1)
    total = density.sum()
    if not np.isfinite(total) or total <= 0:
        raise DegenerateProbabilityError(
            f"Mixture with centres {spec.centers.tolist()} and sigmas "
            f"{np.round(spec.sigmas, 6).tolist()} gives zero density on every cell"
        )
    return density / total


def parameter_columns(max_cent: int) -> List[str]:
    return (
        ["num.centers"]
        + [f"center.{i}" for i in range(1, max_cent + 1)]
        + [f"sigma.{i}" for i in range(1, max_cent + 1)]
        + [f"mix.{i}" for i in range(1, max_cent + 1)]
    )


def parameter_table(mixtures: Sequence[MixtureSpec], max_cent: int) -> pd.DataFrame:
    """Fixed-width view of ``mixtures``: one row per example, zero padded."""
    table = np.zeros((len(mixtures), 1 + 3 * max_cent), dtype=float)
    for i, spec in enumerate(mixtures):
        k = spec.n_centers
        if k > max_cent:
            raise ValueError(f"Mixture {i} has {k} centres, more than max_cent={max_cent}")
        table[i, 0] = k
        table[i, 1:1 + k] = spec.centers
        table[i, 1 + max_cent:1 + max_cent + k] = spec.sigmas
        table[i, 1 + 2 * max_cent:1 + 2 * max_cent + k] = spec.weights
    return pd.DataFrame(table, columns=parameter_columns(max_cent))


def mixtures_from_table(table: pd.DataFrame) -> List[MixtureSpec]:
    """Inverse of :func:`parameter_table`."""
    values = table.values
    max_cent = (values.shape[1] - 1) // 3
    mixtures = []
    for row in values:
        k = int(row[0])
        mixtures.append(MixtureSpec(
            centers=row[1:1 + k].astype(int),
            sigmas=row[1 + max_cent:1 + max_cent + k].astype(float),
            weights=row[1 + 2 * max_cent:1 + 2 * max_cent + k].astype(float),
        ))
    return mixtures


__all__ = [
    "MixtureSpec",
    "NumericalFaultError",
    "DegenerateProbabilityError",
    "sigma_grid",
    "sample_mixture",
    "cell_probability",
    "parameter_columns",
    "parameter_table",
    "mixtures_from_table",
]
