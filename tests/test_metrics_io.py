from pathlib import Path

import math

import numpy as np
import pytest

from src.rankindex.metrics_io import read_metrics, spearman, summarize_eval, write_merge_metrics


def test_write_merge_metrics_roundtrip(tmp_path: Path):
    p = tmp_path / "metrics.json"
    out = write_merge_metrics(p, {"a": 1, "b": 2})
    assert out["a"] == 1 and out["b"] == 2
    out2 = write_merge_metrics(p, {"b": 3, "c": 4})
    # existing preserved except keys explicitly updated
    assert out2 == {"a": 1, "b": 3, "c": 4}
    data = read_metrics(p)
    assert data == out2


def test_read_metrics_tolerates_garbage(tmp_path: Path):
    p = tmp_path / "metrics.json"
    p.write_text("{not json")
    assert read_metrics(p) == {}
    assert read_metrics(tmp_path / "missing.json") == {}


def test_spearman_monotone_and_reversed():
    x = [1.0, 2.0, 5.0, 40.0, 41.0]
    assert spearman(x, [0, 1, 2, 3, 4]) == pytest.approx(1.0)
    assert spearman(x, [9, 7, 3, 1, 0]) == pytest.approx(-1.0)


def test_spearman_ties_use_average_ranks():
    # ranks a: 1.5,1.5,3,4 ; b: 1,2,3,4 -> pearson of ranks
    assert spearman([0, 0, 1, 2], [1, 2, 3, 4]) == pytest.approx(0.9486832980505138)


def test_spearman_constant_is_nan():
    assert math.isnan(spearman([1, 1, 1], [1, 2, 3]))


def test_summarize_eval():
    rows = [(0.1, 0.0, 2.0), (0.5, 10.0, 9.0), (3.0, 20.0, 26.0)]
    s = summarize_eval(rows)
    assert s["n"] == 3
    assert s["spearman"] == pytest.approx(1.0)
    assert s["mean_abs_error"] == pytest.approx(3.0)
    assert s["max_abs_error"] == pytest.approx(6.0)


def test_spearman_rejects_length_mismatch():
    with pytest.raises(ValueError):
        spearman([1, 2, 3], [1, 2])


def test_spearman_floored_keys_against_noise_is_weak():
    rng = np.random.default_rng(0)
    keys = np.floor(rng.lognormal(0.0, 2.0, size=200))
    rho = spearman(keys, rng.normal(size=200))
    assert -0.3 < rho < 0.3
