"""Rank-prediction harness: a first step towards a learned index.

Modules:
- build_dataset: sorted synthetic lognormal keys
- sample: minibatch index sampling and batch assembly
- model_rank_net: layer specs, torch network wrapper, Huber loss
- train_rank_model: training / evaluation loop and CLI
- metrics_io: evaluation metrics and metrics.json helpers
"""

__all__ = [
    "build_dataset",
    "sample",
    "model_rank_net",
    "train_rank_model",
    "metrics_io",
]
