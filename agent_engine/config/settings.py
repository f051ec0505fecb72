"""Agent engine settings

Values come from AGENT_ENGINE_* environment variables or a .env file.
"""
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_engine.domain.models.agent_state import ExecutionConfig


class AgentSettings(BaseSettings):
    """Runtime configuration for the agent engine"""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "console"] = Field(default="console", description="Log renderer")
    service_name: str = Field(default="agent-engine", description="Service name bound to every log entry")

    # Execution limits
    max_retries_per_step: int = Field(default=5, ge=0, description="Retries allowed for one step")
    total_max_retries: int = Field(default=5, ge=0, description="Retries allowed across a run")
    max_iterations: int = Field(default=5, ge=1, description="Tool iterations before giving up")
    tool_timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Per-call capability timeout")

    # Model
    model: str = Field(default="openai:gpt-4o-mini", description="provider:model identifier for the chat model")
    model_temperature: float = Field(default=0.0, ge=0.0, le=2.0)

    def execution_config(self) -> ExecutionConfig:
        """Build the ExecutionConfig for a run"""
        return ExecutionConfig(
            max_retries_per_step=self.max_retries_per_step,
            total_max_retries=self.total_max_retries,
            max_iterations=self.max_iterations,
        )


_settings_instance: Optional[AgentSettings] = None


def get_settings() -> AgentSettings:
    """Get the settings singleton"""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = AgentSettings()
    return _settings_instance
