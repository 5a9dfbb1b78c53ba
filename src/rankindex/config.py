"""Run configuration: YAML file -> validated ``RunConfig``.

Example (configs/linear_net.yaml)::

    batch_size: 64
    learning_rate: 0.01
    epochs: 10000
    dataset_size: 1000
    max_value: 100
    layers:
      - {kind: dense, in_features: 1, out_features: 1, bias: true, init: glorot_normal}
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from .errors import InvalidConfiguration
from .model_rank_net import LayerSpec


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeError(f"expected true or false, got {value!r}")


def _default_layers() -> List[LayerSpec]:
    return [LayerSpec(kind="dense", in_features=1, out_features=1)]


@dataclass
class RunConfig:
    batch_size: int = 64
    learning_rate: float = 0.01
    epochs: int = 10000
    dataset_size: int = 1000
    max_value: float = 100.0
    mean_log: float = 0.0
    std_log: float = 2.0
    integer_keys: bool = False
    seed: Optional[int] = None
    optimizer: str = "adam"
    huber_delta: float = 1.0
    layers: List[LayerSpec] = field(default_factory=_default_layers)
    log_every: int = 1000
    out_dir: str = "runs"
    run_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RunConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfiguration(f"unknown config keys: {unknown}")
        kwargs: Dict[str, object] = {}
        casts = {
            "batch_size": int,
            "learning_rate": float,
            "epochs": int,
            "dataset_size": int,
            "max_value": float,
            "mean_log": float,
            "std_log": float,
            "integer_keys": _as_bool,
            "optimizer": str,
            "huber_delta": float,
            "log_every": int,
            "out_dir": str,
            "seed": int,
        }
        for key, cast in casts.items():
            if data.get(key) is not None:
                try:
                    kwargs[key] = cast(data[key])
                except (TypeError, ValueError) as exc:
                    raise InvalidConfiguration(f"bad value for {key}: {data[key]!r}") from exc
        if data.get("run_id") is not None:
            kwargs["run_id"] = str(data["run_id"]).strip() or None
        if data.get("layers") is not None:
            layers = data["layers"]
            if not isinstance(layers, (list, tuple)) or not layers:
                raise InvalidConfiguration("layers must be a non-empty list")
            kwargs["layers"] = [spec if isinstance(spec, LayerSpec) else LayerSpec.from_dict(spec) for spec in layers]
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.dataset_size <= 0:
            raise InvalidConfiguration(f"dataset_size must be positive, got {self.dataset_size}")
        if self.batch_size <= 0:
            raise InvalidConfiguration(f"batch_size must be positive, got {self.batch_size}")
        if self.batch_size > self.dataset_size:
            raise InvalidConfiguration(f"batch_size {self.batch_size} exceeds dataset_size {self.dataset_size}")
        if self.epochs < 0:
            raise InvalidConfiguration(f"epochs must be >= 0, got {self.epochs}")
        if self.log_every <= 0:
            raise InvalidConfiguration(f"log_every must be positive, got {self.log_every}")

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "layers":
                value = [spec.to_dict() for spec in value]
            out[f.name] = value
        return out


def load_config(path: str | Path) -> RunConfig:
    data = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"config {path} must be a mapping")
    return RunConfig.from_dict(data)


__all__ = ["RunConfig", "load_config"]
