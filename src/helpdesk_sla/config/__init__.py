"""
Configuration Module
====================

Application settings and helpdesk constants.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Escalation Rules ==========
    escalation_rules_path: Path = Field(
        default=Path("escalation_rules.yaml"),
        description="Path to the escalation rule file (YAML or JSON)"
    )
    escalation_rules_url: Optional[str] = Field(
        default=None,
        description="HTTP endpoint returning {'rules': [...]}; overrides the rule file when set"
    )
    watch_escalation_rules: bool = Field(
        default=True,
        description="Reload the rule file when it changes on disk"
    )
    escalation_interval_seconds: int = Field(
        default=60,
        description="Seconds between automatic escalation ticks (0 disables the ticker)",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for escalation notifications"
    )
    slack_channel: str = Field(
        default="#helpdesk-escalations",
        description="Slack channel for escalation notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Ticket priority codes."""
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"

    @property
    def label(self) -> str:
        return PRIORITY_LABELS[self]

    @classmethod
    def parse(cls, value) -> "Priority":
        """
        Accept either the short code ("P2") or the dashboard label ("P2 - High").

        Raises:
            ValueError: If the value does not name a known priority
        """
        if isinstance(value, cls):
            return value
        code = str(value).strip().split(" ", 1)[0].split("-", 1)[0].strip().upper()
        return cls(code)


PRIORITY_LABELS = {
    Priority.P1: "P1 - Critical",
    Priority.P2: "P2 - High",
    Priority.P3: "P3 - Medium",
    Priority.P4: "P4 - Low",
}


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "Open"
    WIP = "WIP"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    LAPSED = "Lapsed"


class EscalationLevel(str, Enum):
    """Escalation levels, L0 (front line) to L5 (executive)."""
    L0 = "L0"
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    L4 = "L4"
    L5 = "L5"

    @property
    def index(self) -> int:
        return int(self.value[1:])


class RuleStatus(str, Enum):
    """Escalation rule activation state."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SLAHealth(str, Enum):
    """Tri-state SLA health label shown on dashboards."""
    ON_TRACK = "On Track"
    WARNING = "Warning"
    CRITICAL = "Critical"


# ========== Ordered levels and terminal states ==========

ESCALATION_LEVELS = [
    EscalationLevel.L0, EscalationLevel.L1, EscalationLevel.L2,
    EscalationLevel.L3, EscalationLevel.L4, EscalationLevel.L5
]
TERMINAL_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
