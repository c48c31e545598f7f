import logging
import numpy as np
from sklearn.model_selection import KFold

import torch
from torch.utils.data import Dataset, DataLoader


def get_dataloaders(training_set, shuffle=True, pin_memory=True,
                    batch_size=128, drop_last=False, fold_id=None,
                    train=True, n_splits=10, random_state=13,
                    log_transform=False,
                    logger=logging.getLogger(__name__)):
    """
    Data loader over the examples of a training set.

    Parameters
    ----------
    training_set : TrainingSet
    fold_id : int, optional
        If given, only the train (``train=True``) or held-out part of this
        K-fold split is served.
    n_splits : int, default=10
        Number of K-fold splits.
    random_state : int, default=13
        Random seed for the split.
    log_transform : bool, default=False
        Serve ``log1p`` of the counts-per-million features.
    """
    pin_memory = pin_memory and torch.cuda.is_available()
    indices = None
    if fold_id is not None:
        indices = kfold_indices(training_set.n_examples, fold_id, train=train,
                                n_splits=n_splits, random_state=random_state)
        logger.info("Fold %d/%d: %d %s examples", fold_id, n_splits, len(indices),
                    "train" if train else "held-out")
    dataset = TrainingSetDataset(training_set, indices=indices, log_transform=log_transform)
    return DataLoader(dataset,
                      batch_size=batch_size,
                      shuffle=shuffle,
                      pin_memory=pin_memory,
                      drop_last=drop_last)


def kfold_indices(n_examples, fold_id, train=True, n_splits=10, random_state=13):
    """Example indices of one side of a reproducible K-fold split."""
    if not (0 <= fold_id < n_splits):
        raise ValueError(f"fold_id must be between 0 and {n_splits - 1}, got {fold_id}")
    kf = KFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    train_idx, test_idx = list(kf.split(np.arange(n_examples)))[fold_id]
    return train_idx if train else test_idx


class TrainingSetDataset(Dataset):
    """
    Synthetic examples as (bulk profile, cell probability) pairs.

    Parameters
    ----------
    training_set : TrainingSet
    indices : array-like, optional
        Subset of example indices; all examples by default.
    log_transform : bool, default=False
        Apply ``log1p`` to the counts-per-million features.
    """
    def __init__(self, training_set, indices=None, log_transform=False):
        if indices is None:
            indices = np.arange(training_set.n_examples)
        self.indices = np.asarray(indices, dtype=int)
        bulk = training_set.synthetic_bulk[:, self.indices].T
        if log_transform:
            bulk = np.log1p(bulk)
        self.features = torch.from_numpy(np.ascontiguousarray(bulk, dtype=np.float32))
        self.targets = torch.from_numpy(
            np.ascontiguousarray(training_set.cell_prob[:, self.indices].T, dtype=np.float32)
        )
        self.n_genes = training_set.n_genes
        self.n_cells = training_set.n_cells

    def __len__(self):
        return len(self.indices)

    def __getitem__(self, idx):
        """
        Return one synthetic example.

        Returns
        -------
        features : torch.Tensor
            Synthetic bulk profile (n_genes,).
        target : torch.Tensor
            Cell probability vector (n_cells,).
        """
        return self.features[idx], self.targets[idx]
