#!/usr/bin/env python3
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Mapping, Sequence

import numpy as np
from scipy.stats import spearmanr


def read_metrics(path: str | Path) -> Dict:
    p = Path(path)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text())
    except json.JSONDecodeError:
        return {}
    if isinstance(data, dict):
        return data
    return {}


def write_merge_metrics(path: str | Path, updates: Mapping) -> Dict:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    base = read_metrics(p)
    merged = dict(base)
    merged.update(dict(updates))
    p.write_text(json.dumps(merged, indent=2) + "\n")
    return merged


def spearman(a: Sequence[float], b: Sequence[float]) -> float:
    """Spearman rank correlation; NaN when either side is constant."""
    x = np.asarray(a, dtype=np.float64).ravel()
    y = np.asarray(b, dtype=np.float64).ravel()
    if x.shape != y.shape:
        raise ValueError(f"length mismatch: {x.shape[0]} vs {y.shape[0]}")
    if x.size < 2:
        return float("nan")
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return float("nan")
    rho, _ = spearmanr(x, y)
    return float(rho)


def summarize_eval(rows) -> Dict[str, float]:
    """Reduce (key, true_label, predicted_label) rows to a few scalars."""
    if not rows:
        return {"n": 0}
    true = np.array([r[1] for r in rows], dtype=np.float64)
    pred = np.array([r[2] for r in rows], dtype=np.float64)
    err = np.abs(pred - true)
    return {
        "n": int(true.shape[0]),
        "spearman": spearman(true, pred),
        "mean_abs_error": float(err.mean()),
        "max_abs_error": float(err.max()),
    }


__all__ = ["read_metrics", "write_merge_metrics", "spearman", "summarize_eval"]
