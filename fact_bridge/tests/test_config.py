"""Tests for BridgeConfig."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from fact_bridge.config import BridgeConfig, ExecutionMode


class TestBridgeConfig:

    def test_defaults(self):
        config = BridgeConfig()
        assert config.souffle_bin == "souffle"
        assert config.datalog_dir == Path(".")
        assert config.artifact_dir is None
        assert config.num_threads == 1
        assert config.run_timeout is None
        assert not config.keep_work_dir

    def test_program_path(self):
        config = BridgeConfig(datalog_dir="/rules")
        assert config.program_path("path") == Path("/rules/path.dl")

    @pytest.mark.parametrize("kwargs", [
        {"num_threads": 0},
        {"run_timeout": 0},
        {"run_timeout": -5},
        {"souffle_bin": "  "},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            BridgeConfig(**kwargs)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SOUFFLE_BIN", "/opt/souffle/bin/souffle")
        monkeypatch.setenv("FACT_BRIDGE_DATALOG_DIR", "/rules")
        monkeypatch.setenv("FACT_BRIDGE_NUM_THREADS", "4")
        monkeypatch.setenv("FACT_BRIDGE_RUN_TIMEOUT", "2.5")
        monkeypatch.delenv("FACT_BRIDGE_ARTIFACT_DIR", raising=False)
        monkeypatch.delenv("FACT_BRIDGE_WORK_DIR", raising=False)

        config = BridgeConfig.from_env()
        assert config.souffle_bin == "/opt/souffle/bin/souffle"
        assert config.datalog_dir == Path("/rules")
        assert config.num_threads == 4
        assert config.run_timeout == 2.5
        assert config.artifact_dir is None

    def test_from_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("FACT_BRIDGE_NUM_THREADS", "4")
        config = BridgeConfig.from_env(num_threads=2)
        assert config.num_threads == 2

    def test_from_env_invalid(self, monkeypatch):
        monkeypatch.setenv("FACT_BRIDGE_NUM_THREADS", "zero")
        with pytest.raises(ValidationError):
            BridgeConfig.from_env()


class TestExecutionMode:

    def test_values(self):
        assert ExecutionMode("interpreted") is ExecutionMode.INTERPRETED
        assert ExecutionMode("compiled") is ExecutionMode.COMPILED
