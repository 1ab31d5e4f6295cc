"""Tests for turnwise.config."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import turnwise.config as config_module
from turnwise.config import AgentConfig, TurnwiseConfig

_ENV = (
    "TURNWISE_MODEL",
    "TURNWISE_CODE_MODEL",
    "TURNWISE_MAX_ITERATIONS",
    "TURNWISE_MAX_TOOL_RETRIES",
    "TURNWISE_MAX_REFINEMENTS",
    "TURNWISE_ORACLE_TIMEOUT",
    "TURNWISE_SANDBOX_TIMEOUT",
    "TURNWISE_DATA_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "load_dotenv", lambda **kwargs: False)
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_agent_limits(self) -> None:
        agent = AgentConfig()
        assert agent.max_iterations == 10
        assert agent.max_tool_retries == 1
        assert agent.max_code_refinement_attempts == 2
        assert agent.route_unknown_tools is True

    def test_load_without_file(self) -> None:
        config = TurnwiseConfig.load(None)
        assert config.data_dir == "data"
        assert config.llm.code_model is None

    def test_rejects_zero_iterations(self) -> None:
        with pytest.raises(ValueError):
            AgentConfig(max_iterations=0)


class TestLoad:
    def test_file(self, tmp_path: Path) -> None:
        path = tmp_path / "turnwise.json"
        path.write_text(json.dumps({"agent": {"max_iterations": 4}, "data_dir": "/srv/csv"}))
        config = TurnwiseConfig.load(str(path))
        assert config.agent.max_iterations == 4
        assert config.agent.max_tool_retries == 1
        assert config.data_dir == "/srv/csv"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "turnwise.json"
        path.write_text(json.dumps({"llm": {"model": "openai/gpt-4o"}, "agent": {"max_iterations": 4}}))
        monkeypatch.setenv("TURNWISE_MODEL", "gemini/gemini-2.5-flash")
        monkeypatch.setenv("TURNWISE_MAX_ITERATIONS", "6")
        monkeypatch.setenv("TURNWISE_SANDBOX_TIMEOUT", "2.5")

        config = TurnwiseConfig.load(str(path))
        assert config.llm.model == "gemini/gemini-2.5-flash"
        assert config.agent.max_iterations == 6
        assert config.agent.sandbox_timeout == 2.5

    def test_missing_file_falls_back(self, tmp_path: Path) -> None:
        config = TurnwiseConfig.load(str(tmp_path / "absent.json"))
        assert config == TurnwiseConfig()
