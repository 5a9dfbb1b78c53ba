"""Small regression networks mapping a key to a normalised position.

The trainer only talks to models and losses through two capability sets:

- model: ``forward(inputs)``, ``backward(grad)``, ``step()``
- loss: ``loss(prediction, label)``, ``backward(prediction, label)``

``RankNet`` and ``HuberLoss`` implement them on top of torch. Tests swap in
stubs with hand-written gradients.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import torch
import torch.nn as nn
import torch.nn.functional as F

from .errors import InvalidConfiguration

ACTIVATIONS = {
    "relu": nn.ReLU,
    "sigmoid": nn.Sigmoid,
    "tanh": nn.Tanh,
}
INIT_SCHEMES = ("glorot_normal", "glorot_uniform", "he_normal", "zeros")


class RankModel(Protocol):
    def forward(self, inputs: torch.Tensor) -> torch.Tensor: ...
    def backward(self, grad: torch.Tensor) -> None: ...
    def step(self) -> None: ...


class LossFunction(Protocol):
    def loss(self, prediction: torch.Tensor, label: torch.Tensor) -> float: ...
    def backward(self, prediction: torch.Tensor, label: torch.Tensor) -> torch.Tensor: ...


@dataclass
class LayerSpec:
    """One entry of the ``layers`` list in a run config."""

    kind: str
    in_features: int = 0
    out_features: int = 0
    bias: bool = True
    init: str = "glorot_normal"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "LayerSpec":
        kind = str(data.get("kind", data.get("type", ""))).lower()
        if kind == "dense":
            missing = [k for k in ("in_features", "out_features") if k not in data]
            if missing:
                raise InvalidConfiguration(f"dense layer missing keys: {missing}")
            init = str(data.get("init", "glorot_normal")).lower()
            if init not in INIT_SCHEMES:
                raise InvalidConfiguration(f"unknown init scheme '{init}' (expected one of {INIT_SCHEMES})")
            return cls(
                kind="dense",
                in_features=int(data["in_features"]),
                out_features=int(data["out_features"]),
                bias=bool(data.get("bias", True)),
                init=init,
            )
        if kind in ACTIVATIONS:
            return cls(kind=kind)
        raise InvalidConfiguration(f"unknown layer kind '{kind}'")

    def to_dict(self) -> Dict[str, object]:
        if self.kind != "dense":
            return {"kind": self.kind}
        return {
            "kind": self.kind,
            "in_features": self.in_features,
            "out_features": self.out_features,
            "bias": self.bias,
            "init": self.init,
        }


def _init_dense(layer: nn.Linear, scheme: str) -> None:
    if scheme == "glorot_normal":
        nn.init.xavier_normal_(layer.weight)
    elif scheme == "glorot_uniform":
        nn.init.xavier_uniform_(layer.weight)
    elif scheme == "he_normal":
        nn.init.kaiming_normal_(layer.weight, nonlinearity="relu")
    else:
        nn.init.zeros_(layer.weight)
    if layer.bias is not None:
        nn.init.zeros_(layer.bias)


def build_network(layers: Sequence[LayerSpec]) -> nn.Sequential:
    dense = [spec for spec in layers if spec.kind == "dense"]
    if not dense:
        raise InvalidConfiguration("network needs at least one dense layer")
    if dense[0].in_features != 1:
        raise InvalidConfiguration(f"first dense layer must take 1 input, got {dense[0].in_features}")
    if dense[-1].out_features != 1:
        raise InvalidConfiguration(f"last dense layer must emit 1 output, got {dense[-1].out_features}")

    modules: List[nn.Module] = []
    width = 1
    for spec in layers:
        if spec.kind == "dense":
            if spec.in_features != width:
                raise InvalidConfiguration(f"dense layer expects {spec.in_features} inputs but receives {width}")
            lin = nn.Linear(spec.in_features, spec.out_features, bias=spec.bias)
            _init_dense(lin, spec.init)
            modules.append(lin)
            width = spec.out_features
        else:
            modules.append(ACTIVATIONS[spec.kind]())
    return nn.Sequential(*modules)


def build_optimizer(name: str, params, lr: float) -> torch.optim.Optimizer:
    name = str(name).lower()
    if name == "adam":
        return torch.optim.Adam(params, lr=lr)
    if name == "adamw":
        return torch.optim.AdamW(params, lr=lr)
    if name == "sgd":
        return torch.optim.SGD(params, lr=lr)
    raise InvalidConfiguration(f"unknown optimizer '{name}' (expected adam, adamw or sgd)")


class RankNet:
    """Owns a torch network and its optimizer; exposes forward/backward/step."""

    def __init__(self, layers: Sequence[LayerSpec], learning_rate: float, optimizer: str = "adam"):
        if not learning_rate > 0:
            raise InvalidConfiguration(f"learning_rate must be positive, got {learning_rate}")
        self.net = build_network(layers)
        self.optimizer = build_optimizer(optimizer, self.net.parameters(), learning_rate)
        self.optimizer.zero_grad(set_to_none=True)
        self._last_output: Optional[torch.Tensor] = None

    def forward(self, inputs: torch.Tensor) -> torch.Tensor:
        out = self.net(inputs)
        # kept attached to the graph so backward() can push an external gradient through it
        self._last_output = out if out.requires_grad else None
        return out.detach()

    def backward(self, grad: torch.Tensor) -> None:
        if self._last_output is None:
            raise RuntimeError("backward() called without a preceding training forward()")
        if tuple(grad.shape) != tuple(self._last_output.shape):
            raise InvalidConfiguration(
                f"gradient shape {tuple(grad.shape)} does not match model output {tuple(self._last_output.shape)}"
            )
        self._last_output.backward(grad)
        self._last_output = None

    def step(self) -> None:
        self.optimizer.step()
        self.optimizer.zero_grad(set_to_none=True)

    def num_parameters(self) -> int:
        return sum(p.numel() for p in self.net.parameters())


class HuberLoss:
    def __init__(self, delta: float = 1.0):
        if not delta > 0:
            raise InvalidConfiguration(f"huber_delta must be positive, got {delta}")
        self.delta = float(delta)

    def loss(self, prediction: torch.Tensor, label: torch.Tensor) -> float:
        with torch.no_grad():
            return float(F.huber_loss(prediction, label, delta=self.delta))

    def backward(self, prediction: torch.Tensor, label: torch.Tensor) -> torch.Tensor:
        pred = prediction.detach().requires_grad_(True)
        with torch.enable_grad():
            value = F.huber_loss(pred, label, delta=self.delta)
            (grad,) = torch.autograd.grad(value, pred)
        return grad


__all__ = [
    "RankModel",
    "LossFunction",
    "LayerSpec",
    "build_network",
    "build_optimizer",
    "RankNet",
    "HuberLoss",
]
