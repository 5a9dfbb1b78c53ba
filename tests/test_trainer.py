import csv
import math

import numpy as np
import pytest
import torch

from src.rankindex.build_dataset import generate_lognormal_keys, linear_keys
from src.rankindex.errors import InvalidConfiguration, NumericInstability
from src.rankindex.model_rank_net import HuberLoss, LayerSpec, RankNet
from src.rankindex.train_rank_model import RankTrainer, write_eval_csv


class ConstantModel:
    def __init__(self, width=1, value=0.5):
        self.width = width
        self.value = value
        self.backward_calls = 0
        self.step_calls = 0

    def forward(self, inputs):
        return torch.full((inputs.shape[0], self.width), self.value)

    def backward(self, grad):
        self.backward_calls += 1

    def step(self):
        self.step_calls += 1


class NanAfter:
    """Huber loss that turns NaN from a given epoch on."""

    def __init__(self, epoch):
        self.epoch = epoch
        self.calls = 0
        self.inner = HuberLoss()

    def loss(self, prediction, label):
        self.calls += 1
        if self.calls > self.epoch:
            return float("nan")
        return self.inner.loss(prediction, label)

    def backward(self, prediction, label):
        return self.inner.backward(prediction, label)


def _linear_net(seed=0, lr=0.01):
    torch.manual_seed(seed)
    return RankNet([LayerSpec(kind="dense", in_features=1, out_features=1)], learning_rate=lr)


def test_train_writes_one_row_per_epoch(tmp_path):
    model = ConstantModel()
    trainer = RankTrainer(model, HuberLoss(), linear_keys(50), 10, rng=np.random.default_rng(0))
    log = tmp_path / "loss.csv"
    losses = trainer.train(7, log)
    with log.open() as f:
        rows = list(csv.reader(f))
    assert [int(r[0]) for r in rows] == list(range(7))
    assert [float(r[1]) for r in rows] == pytest.approx(losses, abs=1e-6)
    assert model.backward_calls == 7 and model.step_calls == 7


def test_loss_log_truncated_each_run(tmp_path):
    log = tmp_path / "loss.csv"
    log.write_text("stale\n" * 100)
    trainer = RankTrainer(ConstantModel(), HuberLoss(), linear_keys(20), 5, rng=np.random.default_rng(0))
    trainer.train(3, log)
    assert len(log.read_text().splitlines()) == 3


def test_zero_epochs_leaves_empty_log(tmp_path):
    log = tmp_path / "loss.csv"
    trainer = RankTrainer(ConstantModel(), HuberLoss(), linear_keys(20), 5)
    assert trainer.train(0, log) == []
    assert log.read_text() == ""


def test_non_finite_loss_aborts_and_keeps_log(tmp_path):
    model = ConstantModel()
    trainer = RankTrainer(model, NanAfter(3), linear_keys(40), 8, rng=np.random.default_rng(1))
    log = tmp_path / "loss.csv"
    with pytest.raises(NumericInstability):
        trainer.train(10, log)
    # sink closed and flushed for the epochs that finished
    assert len(log.read_text().splitlines()) == 3
    assert model.step_calls == 3


def test_output_shape_mismatch_is_configuration_error(tmp_path):
    trainer = RankTrainer(ConstantModel(width=2), HuberLoss(), linear_keys(40), 8)
    with pytest.raises(InvalidConfiguration):
        trainer.train_step(0)
    with pytest.raises(InvalidConfiguration):
        trainer.evaluate()


def test_trainer_rejects_oversized_batch():
    with pytest.raises(InvalidConfiguration):
        RankTrainer(ConstantModel(), HuberLoss(), linear_keys(5), 6)


def test_evaluate_scales_output_and_skips_updates():
    model = ConstantModel(value=0.25)
    keys = linear_keys(100)
    trainer = RankTrainer(model, HuberLoss(), keys, 10, rng=np.random.default_rng(2))
    rows = trainer.evaluate()
    assert len(rows) == 10
    assert len({r.true_label for r in rows}) == 10
    for row in rows:
        assert row.key == row.true_label
        assert row.predicted_label == pytest.approx(25.0)
    assert model.backward_calls == 0 and model.step_calls == 0


def test_evaluate_does_not_touch_network_gradients():
    model = _linear_net()
    trainer = RankTrainer(model, HuberLoss(), linear_keys(100), 10, rng=np.random.default_rng(0))
    trainer.evaluate()
    assert all(p.grad is None for p in model.net.parameters())


def test_loss_decreases_on_linear_positions():
    keys = linear_keys(100)
    trainer = RankTrainer(_linear_net(seed=0), HuberLoss(), keys, 16, rng=np.random.default_rng(0))
    losses = []
    for epoch in range(400):
        losses.append(trainer.train_step(epoch))
    window = 50
    moving = np.convolve(losses, np.ones(window) / window, mode="valid")
    assert all(math.isfinite(v) for v in losses)
    assert moving[-1] < 0.5 * moving[0]
    assert moving[len(moving) // 2:].max() <= moving[0]


def test_trained_linear_net_orders_positions():
    rng = np.random.default_rng(7)
    keys = generate_lognormal_keys(500, 50.0, rng=rng)
    trainer = RankTrainer(_linear_net(seed=7), HuberLoss(), keys, 32, rng=rng)
    for epoch in range(1500):
        trainer.train_step(epoch)
    rows = trainer.evaluate()
    true = np.array([r.true_label for r in rows])
    pred = np.array([r.predicted_label for r in rows])
    assert np.corrcoef(true, pred)[0, 1] > 0


def test_write_eval_csv(tmp_path):
    from src.rankindex.train_rank_model import EvalRow

    out = tmp_path / "eval.csv"
    write_eval_csv(out, [EvalRow(1.5, 3.0, 2.75), EvalRow(9.0, 7.0, 7.5)])
    lines = out.read_text().splitlines()
    assert lines[0] == "key,true_label,predicted_label"
    assert lines[1] == "1.500000,3,2.750"
    assert len(lines) == 3
