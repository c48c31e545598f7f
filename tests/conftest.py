import numpy as np
import pandas as pd
import pytest

from condecon.training.build import build_training_set


N_CELLS = 50
N_GENES = 30
N_DIMS = 5


@pytest.fixture
def reference():
    """Toy reference data: counts (genes x cells) and latent (cells x dims)."""
    rng = np.random.default_rng(0)
    count = rng.poisson(5.0, size=(N_GENES, N_CELLS)).astype(float) + 1.0
    latent = rng.standard_normal((N_CELLS, N_DIMS))
    return count, latent


@pytest.fixture
def reference_frames(reference):
    count, latent = reference
    cells = [f"cell{j}" for j in range(N_CELLS)]
    count_df = pd.DataFrame(count, index=[f"gene{i}" for i in range(N_GENES)], columns=cells)
    latent_df = pd.DataFrame(latent, index=cells, columns=[f"PC{k + 1}" for k in range(N_DIMS)])
    return count_df, latent_df


@pytest.fixture
def small_training_set(reference_frames):
    count_df, latent_df = reference_frames
    return build_training_set(count_df, latent_df, max_iter=20, max_cent=3,
                              dims=N_DIMS, n=25, seed=7)
