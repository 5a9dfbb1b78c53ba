#!/usr/bin/env python3
"""
Train a small network to predict the position of a key in a sorted
synthetic dataset, then score it on one held-out batch.

Each epoch:
  sample distinct positions -> (key, position) batch -> forward ->
  output * dataset_size -> Huber loss -> loss gradient / dataset_size ->
  backward -> optimizer step

The network works in a normalised output range; multiplying by
``dataset_size`` maps it onto positions, and the loss gradient is divided by
the same constant before it reaches the network. Evaluation reports
``output * dataset_size`` as well.

Artifacts under <out_dir>/<run_id>/:
  loss.csv      one "epoch,loss" row per epoch (truncated at run start)
  eval.csv      key,true_label,predicted_label for the held-out batch
  metrics.json  config, timing, final loss, eval summary
  log.txt       copy of the console log

Usage:
  python -m src.rankindex.train_rank_model --config configs/linear_net.yaml [--seed 7] [--run_id ID]
"""
from __future__ import annotations

import argparse
import csv
import math
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np
import torch

from .build_dataset import generate_lognormal_keys
from .config import RunConfig, load_config
from .errors import InvalidConfiguration, NumericInstability
from .logutil import close_logger, get_logger
from .metrics_io import summarize_eval, write_merge_metrics
from .model_rank_net import HuberLoss, LossFunction, RankModel, RankNet
from .sample import Batch, draw_batch
from .seeds import make_rng, set_global_seed
from scripts.make_run_id import make_run_id

RUN_ID_ENV = "RUN_ID"


class EvalRow(NamedTuple):
    key: float
    true_label: float
    predicted_label: float


def _normalize_run_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    run_id = str(value).strip()
    return run_id or None


def _prepare_run_dir(out_dir: str | Path, run_id: str) -> Path:
    run_dir = Path(out_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


class RankTrainer:
    """Runs the sample/forward/scale/loss/backward/step loop for one model."""

    def __init__(
        self,
        model: RankModel,
        loss_fn: LossFunction,
        keys: np.ndarray,
        batch_size: int,
        rng: Optional[np.random.Generator] = None,
        logger=None,
        log_every: int = 1000,
    ):
        if len(keys) == 0:
            raise InvalidConfiguration("cannot train on an empty dataset")
        if batch_size > len(keys):
            raise InvalidConfiguration(f"batch_size {batch_size} exceeds dataset_size {len(keys)}")
        self.model = model
        self.loss_fn = loss_fn
        self.keys = keys
        self.batch_size = int(batch_size)
        self.dataset_size = len(keys)
        self.rng = rng if rng is not None else make_rng()
        self.logger = logger
        self.log_every = max(1, int(log_every))

    def _forward_scaled(self, batch: Batch) -> torch.Tensor:
        raw = self.model.forward(batch.inputs)
        expected = (self.batch_size, 1)
        if tuple(raw.shape) != expected:
            raise InvalidConfiguration(f"model output shape {tuple(raw.shape)} != expected {expected}")
        return raw * self.dataset_size

    def train_step(self, epoch: int) -> float:
        batch = draw_batch(self.keys, self.batch_size, self.rng)
        scaled = self._forward_scaled(batch)
        loss = self.loss_fn.loss(scaled, batch.labels)
        if not math.isfinite(loss):
            raise NumericInstability(f"loss became {loss} at epoch {epoch}")
        grad = self.loss_fn.backward(scaled, batch.labels) / self.dataset_size
        self.model.backward(grad)
        self.model.step()
        return loss

    def train(self, num_epochs: int, loss_log: str | Path) -> List[float]:
        losses: List[float] = []
        loss_log = Path(loss_log)
        loss_log.parent.mkdir(parents=True, exist_ok=True)
        with loss_log.open("w", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            for epoch in range(num_epochs):
                loss = self.train_step(epoch)
                writer.writerow([epoch, f"{loss:.6f}"])
                losses.append(loss)
                if self.logger and (epoch % self.log_every == 0 or epoch == num_epochs - 1):
                    self.logger.info(f"[epoch {epoch}] loss {loss:.4f}")
        return losses

    def evaluate(self) -> List[EvalRow]:
        batch = draw_batch(self.keys, self.batch_size, self.rng)
        with torch.no_grad():
            scaled = self._forward_scaled(batch)
        return [
            EvalRow(float(k), float(lbl), float(p))
            for k, lbl, p in zip(batch.inputs[:, 0].tolist(), batch.labels[:, 0].tolist(), scaled[:, 0].tolist())
        ]


def write_eval_csv(path: str | Path, rows: Sequence[EvalRow]) -> None:
    with Path(path).open("w", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(EvalRow._fields)
        for row in rows:
            writer.writerow([f"{row.key:.6f}", int(row.true_label), f"{row.predicted_label:.3f}"])


@dataclass
class RunResult:
    run_id: str
    run_dir: Path
    losses: List[float]
    eval_rows: List[EvalRow]
    metrics: Dict = field(default_factory=dict)


def run(cfg: RunConfig, run_id: Optional[str] = None, config_path: Optional[str | Path] = None) -> RunResult:
    cfg.validate()
    run_id = _normalize_run_id(run_id or cfg.run_id or os.environ.get(RUN_ID_ENV))
    if not run_id:
        run_id = make_run_id(Path(config_path) if config_path else None, cfg.to_dict())
    cfg.run_id = run_id
    run_dir = _prepare_run_dir(cfg.out_dir, run_id)
    log = get_logger("rankindex.train", log_file=run_dir / "log.txt")

    try:
        if cfg.seed is not None:
            set_global_seed(cfg.seed)
        rng = make_rng(cfg.seed)
        keys = generate_lognormal_keys(
            cfg.dataset_size,
            cfg.max_value,
            mean_log=cfg.mean_log,
            std_log=cfg.std_log,
            rng=rng,
            integer_keys=cfg.integer_keys,
        )
        model = RankNet(cfg.layers, learning_rate=cfg.learning_rate, optimizer=cfg.optimizer)
        loss_fn = HuberLoss(delta=cfg.huber_delta)
        trainer = RankTrainer(model, loss_fn, keys, cfg.batch_size, rng=rng, logger=log, log_every=cfg.log_every)

        log.info(f"[run] id={run_id} dir={run_dir} seed={cfg.seed}")
        log.info(f"[data] n={cfg.dataset_size} max_value={cfg.max_value} lognormal(mean={cfg.mean_log}, std={cfg.std_log}) integer_keys={cfg.integer_keys}")
        log.info(f"[model] layers={[spec.kind for spec in cfg.layers]} params={model.num_parameters()} optimizer={cfg.optimizer} lr={cfg.learning_rate}")
        log.info(f"[train] starting: epochs={cfg.epochs} batch_size={cfg.batch_size} huber_delta={cfg.huber_delta}")

        wall0 = time.perf_counter()
        losses = trainer.train(cfg.epochs, run_dir / "loss.csv")
        train_wall = time.perf_counter() - wall0
        log.info(f"[timing] total training of {cfg.epochs} epochs took {train_wall:.2f}s")

        rows = trainer.evaluate()
        write_eval_csv(run_dir / "eval.csv", rows)
        log.info("[eval] key, true, predicted")
        for row in rows:
            log.info(f"{row.key:.0f}, {row.true_label:.0f}, {row.predicted_label:.0f}")
        summary = summarize_eval(rows)
        log.info(f"[eval] spearman={summary['spearman']:.4f} mae={summary['mean_abs_error']:.2f} max_err={summary['max_abs_error']:.2f}")

        metrics = write_merge_metrics(run_dir / "metrics.json", {
            "run_id": run_id,
            "config": cfg.to_dict(),
            "epochs_run": len(losses),
            "final_loss": losses[-1] if losses else None,
            "train_wall_sec": round(train_wall, 3),
            "eval": summary,
        })
    finally:
        close_logger(log)
    return RunResult(run_id=run_id, run_dir=run_dir, losses=losses, eval_rows=rows, metrics=metrics)


def main(argv: Optional[Sequence[str]] = None) -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", required=True)
    ap.add_argument("--run_id", default=None, help=f"Unique run id; falls back to ${RUN_ID_ENV} or config.run_id")
    ap.add_argument("--seed", type=int, default=None, help="overrides config.seed")
    ap.add_argument("--epochs", type=int, default=None, help="overrides config.epochs")
    ap.add_argument("--out_dir", default=None, help="overrides config.out_dir")
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    if args.seed is not None:
        cfg.seed = args.seed
    if args.epochs is not None:
        cfg.epochs = args.epochs
    if args.out_dir is not None:
        cfg.out_dir = args.out_dir
    run(cfg, run_id=args.run_id, config_path=args.config)


if __name__ == "__main__":
    main()
