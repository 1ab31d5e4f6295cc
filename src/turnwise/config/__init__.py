"""Configuration: Pydantic models for turnwise settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration.

    Model names use litellm's provider-prefix format:
        "anthropic/claude-sonnet-4-5-20250929"
        "openai/gpt-4o"
        "gemini/gemini-2.5-flash"

    API keys are read from env vars automatically by litellm
    (ANTHROPIC_API_KEY, GEMINI_API_KEY, OPENAI_API_KEY).
    """

    model: str = Field(default="anthropic/claude-sonnet-4-5-20250929")
    code_model: str | None = Field(
        default=None,
        description="Model used to write analysis/report code. Defaults to `model`.",
    )
    temperature: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)
    reasoning_effort: str | None = Field(
        default=None,
        description="Reasoning effort for the oracle model: 'low', 'medium' or 'high'.",
    )
    request_timeout: float | None = Field(
        default=None, description="Seconds litellm waits for the backend per request"
    )
    max_attempts: int = Field(
        default=3, ge=1, description="Tries for opening a stream on transient errors"
    )


class AgentConfig(BaseModel):
    """Turn execution limits."""

    max_iterations: int = Field(
        default=10, ge=1, description="Oracle round-trips allowed per turn"
    )
    max_tool_retries: int = Field(
        default=1, ge=0, description="Extra attempts for a failing tool call"
    )
    max_code_refinement_attempts: int = Field(
        default=2, ge=1, description="Code executions allowed per analysis step"
    )
    oracle_timeout: float | None = Field(
        default=120.0, description="Seconds to wait for one oracle response"
    )
    retry_backoff: float = Field(
        default=0.0, ge=0, description="Seconds to wait between tool retries"
    )
    sandbox_timeout: float = Field(
        default=30.0, gt=0, description="Seconds a code execution may run"
    )
    route_unknown_tools: bool = Field(
        default=True,
        description=(
            "Dispatch calls to unregistered tools so the oracle sees "
            "UNKNOWN_TOOL, instead of treating the reply as a final answer."
        ),
    )
    history_token_limit: int = Field(
        default=3000, ge=0, description="Estimated history tokens kept before summarizing"
    )
    history_keep_recent: int = Field(
        default=6, ge=1, description="Recent messages never summarized"
    )


class TurnwiseConfig(BaseModel):
    """Top-level turnwise configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    data_dir: str = Field(default="data", description="Directory of CSV datasets")
    store_path: str = Field(
        default="~/.turnwise/turns.jsonl", description="Turn record log"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> TurnwiseConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TURNWISE_MODEL             - Oracle model (litellm format with provider prefix)
            TURNWISE_CODE_MODEL        - Model for code generation
            TURNWISE_MAX_ITERATIONS    - Oracle round-trips per turn
            TURNWISE_MAX_TOOL_RETRIES  - Extra attempts for a failing tool
            TURNWISE_MAX_REFINEMENTS   - Code executions per analysis step
            TURNWISE_ORACLE_TIMEOUT    - Seconds per oracle call
            TURNWISE_SANDBOX_TIMEOUT   - Seconds per code execution
            TURNWISE_DATA_DIR          - Directory of CSV datasets
        """
        # .env values win over stale shell exports.
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        llm = config_data.get("llm", {})
        agent = config_data.get("agent", {})

        env_model = os.environ.get("TURNWISE_MODEL")
        if env_model:
            llm["model"] = env_model

        env_code_model = os.environ.get("TURNWISE_CODE_MODEL")
        if env_code_model:
            llm["code_model"] = env_code_model

        for env_name, key in (
            ("TURNWISE_MAX_ITERATIONS", "max_iterations"),
            ("TURNWISE_MAX_TOOL_RETRIES", "max_tool_retries"),
            ("TURNWISE_MAX_REFINEMENTS", "max_code_refinement_attempts"),
        ):
            value = os.environ.get(env_name)
            if value:
                agent[key] = int(value)

        for env_name, key in (
            ("TURNWISE_ORACLE_TIMEOUT", "oracle_timeout"),
            ("TURNWISE_SANDBOX_TIMEOUT", "sandbox_timeout"),
        ):
            value = os.environ.get(env_name)
            if value:
                agent[key] = float(value)

        env_data_dir = os.environ.get("TURNWISE_DATA_DIR")
        if env_data_dir:
            config_data["data_dir"] = env_data_dir

        if llm:
            config_data["llm"] = llm
        if agent:
            config_data["agent"] = agent

        return cls.model_validate(config_data)
