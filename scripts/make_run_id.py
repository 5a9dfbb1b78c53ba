#!/usr/bin/env python3
"""
Generate a RUN_ID from a YAML config path and current date.

Format: YYYY-MM-DD_<model>_n<dataset_size>_b<batch_size>_e<epochs>
Example: 2026-01-04_linear_n1000_b64_e10000

Usage:
  python -m scripts.make_run_id path/to/config.yaml
"""
from __future__ import annotations

import argparse
import datetime as dt
from pathlib import Path
from typing import Optional
import yaml


def infer_model_tag(config_path: Optional[Path]) -> str:
    if config_path is None:
        return "run"
    stem = config_path.stem  # e.g., linear_net -> 'linear_net'
    # take the first segment before an underscore as the short model tag
    if "_" in stem:
        return stem.split("_", 1)[0]
    return stem


def make_run_id(config_path: Optional[Path], cfg: dict) -> str:
    today = dt.date.today().strftime("%Y-%m-%d")
    model = infer_model_tag(config_path)
    n = int(cfg.get("dataset_size", 0) or 0)
    batch = int(cfg.get("batch_size", 0) or 0)
    epochs = int(cfg.get("epochs", 0) or 0)
    return f"{today}_{model}_n{n}_b{batch}_e{epochs}"


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("config")
    args = ap.parse_args()
    path = Path(args.config)
    cfg = yaml.safe_load(path.read_text()) or {}
    print(make_run_id(path, cfg))


if __name__ == "__main__":
    main()
