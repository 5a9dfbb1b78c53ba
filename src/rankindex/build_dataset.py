#!/usr/bin/env python3
"""
Synthetic sorted key sets for rank regression.

Keys are lognormal draws, sorted ascending and rescaled so that the largest
key equals ``max_value``. The label of ``keys[i]`` is ``i``.

CLI (writes an .npy for inspection):
  python -m src.rankindex.build_dataset --dataset_size 1000 --max_value 100 --seed 7 --out keys.npy
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

import numpy as np

from .errors import InvalidConfiguration
from .seeds import make_rng


def generate_lognormal_keys(
    dataset_size: int,
    max_value: float,
    mean_log: float = 0.0,
    std_log: float = 2.0,
    rng: Optional[np.random.Generator] = None,
    integer_keys: bool = False,
) -> np.ndarray:
    if dataset_size <= 0:
        raise InvalidConfiguration(f"dataset_size must be positive, got {dataset_size}")
    if not max_value > 0:
        raise InvalidConfiguration(f"max_value must be positive, got {max_value}")
    if std_log < 0:
        raise InvalidConfiguration(f"std_log must be non-negative, got {std_log}")
    rng = rng if rng is not None else make_rng()

    raw = np.sort(rng.lognormal(mean=mean_log, sigma=std_log, size=int(dataset_size)))
    keys = raw * (float(max_value) / raw[-1])
    # the scaled max can land one ulp off; pin it so max(keys) == max_value exactly
    keys[-1] = float(max_value)
    if integer_keys:
        keys = np.floor(keys)
    keys.setflags(write=False)
    return keys


def linear_keys(dataset_size: int) -> np.ndarray:
    """Noise-free dataset where every key equals its own position."""
    if dataset_size <= 0:
        raise InvalidConfiguration(f"dataset_size must be positive, got {dataset_size}")
    keys = np.arange(dataset_size, dtype=np.float64)
    keys.setflags(write=False)
    return keys


def main(argv=None):
    ap = argparse.ArgumentParser()
    ap.add_argument("--dataset_size", type=int, default=1000)
    ap.add_argument("--max_value", type=float, default=100.0)
    ap.add_argument("--mean_log", type=float, default=0.0)
    ap.add_argument("--std_log", type=float, default=2.0)
    ap.add_argument("--integer_keys", action="store_true")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--out", default="keys.npy")
    args = ap.parse_args(argv)

    keys = generate_lognormal_keys(
        args.dataset_size,
        args.max_value,
        mean_log=args.mean_log,
        std_log=args.std_log,
        rng=make_rng(args.seed),
        integer_keys=args.integer_keys,
    )
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    np.save(out, keys)
    print(f"[dataset] n={keys.shape[0]} min={keys[0]:.4f} median={np.median(keys):.4f} max={keys[-1]:.4f} -> {out}")


if __name__ == "__main__":
    main()
