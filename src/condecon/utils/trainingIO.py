"""
Training-set persistence.

save_training_set / load_training_set write and read a directory holding

    specs.json       scalars, sigma bounds, mixtures and labels
    arrays.npz       latent distances, cell probabilities, synthetic bulk
    parameters.tsv   fixed-width mixture parameter table
"""

import json
import os
from dataclasses import asdict

import numpy as np

from condecon.training.build import TrainingSet
from condecon.training.mixture import MixtureSpec
from condecon.training.sigma import SigmaBounds

META_FILENAME = "specs.json"
ARRAYS_FILENAME = "arrays.npz"
PARAMETERS_FILENAME = "parameters.tsv"


# ---------------------------------------------------------------------------
# Metadata helpers
# ---------------------------------------------------------------------------

def save_metadata(metadata: dict, directory: str, filename: str = META_FILENAME, **kwargs):
    """Persist metadata dict as a JSON file."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)
    with open(path, "w") as f:
        json.dump(metadata, f, indent=4, sort_keys=True, **kwargs)


def load_metadata(directory: str, filename: str = META_FILENAME) -> dict:
    """Load metadata JSON from directory."""
    path = os.path.join(directory, filename)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Expected {path} not found.")
    with open(path) as f:
        return json.load(f)


def numpy_serialize(obj):
    if type(obj).__module__ == np.__name__:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return obj.item()
    raise TypeError(f"Unknown type: {type(obj)}")


# ---------------------------------------------------------------------------
# TrainingSet save / load
# ---------------------------------------------------------------------------

def save_training_set(training_set: TrainingSet, directory: str):
    """
    Save a TrainingSet (specs.json + arrays.npz + parameters.tsv).

    Parameters
    ----------
    training_set : TrainingSet
    directory : str
    """
    metadata = dict(
        dims=training_set.dims,
        max_cent=training_set.max_cent,
        n=training_set.n,
        seed=training_set.seed,
        n_examples=training_set.n_examples,
        n_cells=training_set.n_cells,
        n_genes=training_set.n_genes,
        sigma=asdict(training_set.sigma),
        mixtures=[m.to_dict() for m in training_set.mixtures],
        genes=training_set.genes,
        cells=training_set.cells,
    )
    save_metadata(metadata, directory, default=numpy_serialize)
    np.savez_compressed(
        os.path.join(directory, ARRAYS_FILENAME),
        latent_distance=training_set.latent_distance,
        cell_prob=training_set.cell_prob,
        synthetic_bulk=training_set.synthetic_bulk,
    )
    training_set.parameters.to_csv(
        os.path.join(directory, PARAMETERS_FILENAME), sep="\t", index=False
    )


def load_training_set(directory: str) -> TrainingSet:
    """
    Load a TrainingSet saved with :func:`save_training_set`.

    Parameters
    ----------
    directory : str

    Returns
    -------
    TrainingSet
    """
    metadata = load_metadata(directory)
    path = os.path.join(directory, ARRAYS_FILENAME)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Expected {path} not found.")
    with np.load(path) as arrays:
        distance = arrays["latent_distance"]
        cell_prob = arrays["cell_prob"]
        synthetic_bulk = arrays["synthetic_bulk"]

    for arr in (distance, cell_prob, synthetic_bulk):
        arr.setflags(write=False)

    return TrainingSet(
        latent_distance=distance,
        dims=metadata["dims"],
        mixtures=tuple(MixtureSpec.from_dict(m) for m in metadata["mixtures"]),
        max_cent=metadata["max_cent"],
        cell_prob=cell_prob,
        synthetic_bulk=synthetic_bulk,
        sigma=SigmaBounds(**metadata["sigma"]),
        n=metadata["n"],
        seed=metadata["seed"],
        genes=metadata.get("genes"),
        cells=metadata.get("cells"),
    )


__all__ = [
    "save_metadata",
    "load_metadata",
    "save_training_set",
    "load_training_set",
]
