"""Synthetic training-set construction for cell-composition deconvolution."""
from .build import TrainingSet, build_training_set
from .bulk import DegenerateBulkError, aggregate_bulk, cell_weight_matrix, cpm_normalize
from .config import DEFAULT_CONFIG, load_config, write_starter_config
from .distance import latent_distance
from .mixture import (
    DegenerateProbabilityError,
    MixtureSpec,
    NumericalFaultError,
    cell_probability,
    parameter_table,
    sample_mixture,
    sigma_grid,
)
from .sampling import iter_batches, pick_cells
from .sigma import SigmaBounds, SigmaCalibrationError, calibrate_sigma

__all__ = [
    "TrainingSet",
    "build_training_set",
    "latent_distance",
    "SigmaBounds",
    "SigmaCalibrationError",
    "calibrate_sigma",
    "MixtureSpec",
    "sigma_grid",
    "sample_mixture",
    "cell_probability",
    "parameter_table",
    "pick_cells",
    "iter_batches",
    "cell_weight_matrix",
    "cpm_normalize",
    "aggregate_bulk",
    "NumericalFaultError",
    "DegenerateProbabilityError",
    "DegenerateBulkError",
    "DEFAULT_CONFIG",
    "load_config",
    "write_starter_config",
]
