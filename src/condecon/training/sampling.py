"""Cell sampling and example batching."""

from __future__ import annotations

from typing import Iterator

import numpy as np


def pick_cells(prob: np.ndarray, n: int, rng: np.random.Generator) -> np.ndarray:
    """Draw ``n`` cell indices with replacement according to ``prob``."""
    return rng.choice(prob.shape[0], size=n, replace=True, p=prob)


def iter_batches(max_iter: int, step: int) -> Iterator[range]:
    """Contiguous example index ranges of size ``step``; the last may be shorter.

    >>> [len(b) for b in iter_batches(55, 20)]
    [20, 20, 15]
    """
    if step < 1:
        raise ValueError(f"step must be positive, got {step}")
    for start in range(0, max_iter, step):
        yield range(start, min(start + step, max_iter))


__all__ = ["pick_cells", "iter_batches"]
