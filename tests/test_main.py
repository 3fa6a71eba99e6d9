"""Tests for the command line runner: fail-fast on bad input, smoke run, save and reload."""

import os
import subprocess
import sys
import tempfile

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _run(*args):
    return subprocess.run(
        [sys.executable, "main.py", *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )


def test_missing_config_fails():
    result = _run("--config", "does_not_exist")
    assert result.returncode != 0
    assert "not found" in result.stderr.lower()


def test_missing_model_fails():
    result = _run("--model", "/nonexistent/model.bin")
    assert result.returncode != 0
    assert "Error" in result.stderr


def test_smoke_with_gradient_check():
    result = _run("--config", "pool_rnn", "--check", "3")
    assert result.returncode == 0, result.stderr
    assert "loss:" in result.stdout
    assert "gradient check" in result.stdout


def test_save_then_load():
    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "model.bin")
        saved = _run("--config", "overlap_pool", "--output", path)
        assert saved.returncode == 0, saved.stderr
        assert os.path.isfile(path)
        loaded = _run("--model", path, "--seed", "7", "--batch", "4", "--max-len", "3")
        assert loaded.returncode == 0, loaded.stderr
    loss_saved = [l for l in saved.stdout.splitlines() if l.startswith("loss:")]
    loss_loaded = [l for l in loaded.stdout.splitlines() if l.startswith("loss:")]
    assert loss_saved == loss_loaded


def test_model_holding_a_layer_fails():
    """A saved record that is a bare layer, not a block, is rejected with an error message."""
    sys.path.insert(0, ROOT)
    import serializer
    from layers import MaxPool

    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "pool.bin")
        serializer.save(path, MaxPool(2, 2, 4, 4, 1))
        result = _run("--model", path)
    assert result.returncode != 0
    assert "not a block" in result.stderr
    assert "Traceback" not in result.stderr


def test_explicit_zero_batch_is_kept():
    result = _run("--config", "pool_rnn", "--batch", "0")
    assert result.returncode == 0, result.stderr
    assert "batch: 0 sequences" in result.stdout
