"""Minibatch sampling: distinct random positions and the tensors built from them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

import numpy as np
import torch

from .errors import InvalidConfiguration
from .seeds import make_rng


@dataclass
class Batch:
    indices: List[int]
    inputs: torch.Tensor  # (batch_size, 1) keys
    labels: torch.Tensor  # (batch_size, 1) positions


def sample_batch_indices(batch_size: int, dataset_size: int, rng: Optional[np.random.Generator] = None) -> Set[int]:
    """Draw ``batch_size`` distinct indices from ``[0, dataset_size)`` by rejection."""
    if batch_size <= 0:
        raise InvalidConfiguration(f"batch_size must be positive, got {batch_size}")
    if batch_size > dataset_size:
        raise InvalidConfiguration(f"batch_size {batch_size} exceeds dataset_size {dataset_size}")
    rng = rng if rng is not None else make_rng()
    values: Set[int] = set()
    while len(values) < batch_size:
        values.add(int(rng.integers(0, dataset_size)))
    return values


def assemble_batch(keys: np.ndarray, indices: Iterable[int]) -> Batch:
    idx = list(indices)
    inputs = torch.tensor([float(keys[i]) for i in idx], dtype=torch.float32).unsqueeze(1)
    labels = torch.tensor([float(i) for i in idx], dtype=torch.float32).unsqueeze(1)
    return Batch(indices=idx, inputs=inputs, labels=labels)


def draw_batch(keys: np.ndarray, batch_size: int, rng: Optional[np.random.Generator] = None) -> Batch:
    return assemble_batch(keys, sample_batch_indices(batch_size, len(keys), rng))


__all__ = ["Batch", "sample_batch_indices", "assemble_batch", "draw_batch"]
