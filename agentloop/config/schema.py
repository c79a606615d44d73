# ==============================
# Config Schemas (Pydantic)
# ==============================
"""
Pydantic settings models for agentloop.

Notes:
- Keep these schemas stable: the engine, gateway and tests depend on them.
- No env reads here. No file IO here. Pure types + defaults.
- loader.py builds a single Settings object with precedence merging.

Precedence (implemented in loader.py):
env > .env > configs/*.yaml > defaults
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.tools.catalog import DEFAULT_DEFERRED_TOOLS


# ==============================
# App Settings
# ==============================


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    env: str = Field(default="local", description="Environment name (local/stage/prod)")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    repo_root: str = Field(default=".", description="Repo root (relative or absolute)")


# ==============================
# Agent Defaults
# ==============================


class AgentDefaults(BaseModel):
    model_config = ConfigDict(extra="forbid")

    system: str = Field(default="", description="Default system prompt.")
    max_steps: int = Field(default=10, ge=1, description="Step budget used when no stop conditions are given.")
    temperature: Optional[float] = Field(default=None, ge=0.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    streaming: bool = Field(default=False, description="Consume streaming backends chunk by chunk.")
    extensions: List[str] = Field(
        default_factory=list, description="Module paths whose register(agent) adds skills and subagents."
    )


class TimeoutsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_seconds: Optional[float] = Field(default=None, gt=0)
    per_step_seconds: Optional[float] = Field(default=None, gt=0)
    per_chunk_seconds: Optional[float] = Field(default=None, gt=0)


# ==============================
# Models Settings
# ==============================


class ModelsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_provider: str = Field(default="echo")
    default_model: str = Field(default="echo-1")


# ==============================
# Policies / Governance Settings
# ==============================


class PoliciesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enforce: bool = Field(default=False, description="Honour allowed_tools / blocked_tools.")
    tool_approval_required: bool = Field(default=False, description="Every tool call needs an approver's consent.")

    allowed_tools: List[str] = Field(default_factory=list)
    blocked_tools: List[str] = Field(default_factory=list)


class ToolsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deferred_tools: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DEFERRED_TOOLS),
        description="Tool names executed by the generation backend itself.",
    )


# ==============================
# Logging Settings
# ==============================


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO")
    redact: bool = Field(default=True)
    redact_patterns: List[str] = Field(default_factory=list)
    console: bool = Field(default=True)


# ==============================
# Top-Level Settings
# ==============================


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    app: AppConfig = Field(default_factory=AppConfig)
    agent: AgentDefaults = Field(default_factory=AgentDefaults)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    policies: PoliciesConfig = Field(default_factory=PoliciesConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def repo_root_path(self) -> Path:
        return Path(self.app.repo_root).expanduser().resolve()
