"""Configuration helpers for YellCop."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from ..services.inactivity import DEFAULT_AUDIT_PROBABILITY, RemediationMode
from ..utils.slack import USER_PLACEHOLDER

# Slack system notices posted as ordinary messages
SKIP_PHRASES: List[str] = [
    "departure cancelled",
    "departure removal report",
    "has joined the channel",
    "has joined the group",
    "has left the channel",
    "renamed the channel from",
    "set the channel purpose",
    "set the channel topic",
    "set the channel's purpose",
    "set the channel's topic",
    "set up a reminder",
    "started a call",
    "this content can't be displayed",
    "this message was deleted",
]

WARNING_MESSAGES: List[str] = [
    "warning for <@{user}>",
    "careful <@{user}>!",
    "use your shift key <@{user}>, its not that hard",
    "only caps <@{user}>!",
    "i can't hear you <@{user}>!!",
    "this is sig-yelling <@{user}>, that ain't yelling!",
]

KICK_MESSAGES: List[str] = [
    "kicking <@{user}>",
    "<@{user}> has crossed the line, pull the lever!",
    "by the power vested in me, i hereby kick <@{user}>",
    "<@{user}> is experiencing caps difficulties",
    "<@{user}> do no pass go, do not collect $200",
    "oops, I just kicked <@{user}>",
]

INACTIVE_MESSAGES: List[str] = [
    "<@{user}> has fallen asleep, kicking",
    "lurker detected, kicking <@{user}>",
    "are you still around <@{user}>? No? Bye, bye",
]

LURKER_MESSAGES: List[str] = [
    "non-yelling lurker detected, warning <@{user}>",
]

WELCOME_MESSAGE = (
    "Welcome <@{user}>. If this is your first time here, please use all capitals for all "
    "messages. If you are returning, you know the rules"
)

_TEMPLATE_FIELDS = ("warnings", "failures", "inactive", "lurker")

_SECONDS_RE = re.compile(r"^\d+(?:\.\d+)?$")
_DURATION_PART = r"(\d+(?:\.\d+)?)\s*(ms|[smhdw])"
_DURATION_RE = re.compile(rf"^(?:{_DURATION_PART}\s*)+$")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def _parse_duration(value: Any) -> Any:
    """Accept plain seconds and unit forms such as ``720h``, ``30d`` or ``1h30m``."""

    if isinstance(value, str):
        stripped = value.strip().lower()
        if not stripped:
            return None
        if _SECONDS_RE.match(stripped):
            return timedelta(seconds=float(stripped))
        if _DURATION_RE.match(stripped):
            seconds = sum(
                float(amount) * _DURATION_UNITS[unit]
                for amount, unit in re.findall(_DURATION_PART, stripped)
            )
            return timedelta(seconds=seconds)
    return value


def _split_pipes(value: Any) -> Any:
    if isinstance(value, str):
        return [part for part in (piece.strip() for piece in value.split("|")) if part]
    return value


class BotSettings(BaseModel):
    """Runtime configuration parsed from environment variables."""

    slack_bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    slack_user_token: Optional[str] = Field(default=None, alias="SLACK_USER_TOKEN")
    verification_token: Optional[str] = Field(
        default=None,
        alias="SLACK_VERIFICATION_TOKEN",
        validation_alias=AliasChoices("SLACK_VERIFICATION_TOKEN", "VERIFICATION_TOKEN"),
    )
    slack_api_url: str = Field(default="https://slack.com/api/", alias="SLACK_API_URL")

    threshold: int = Field(default=1, ge=0, alias="YELLCOP_THRESHOLD")
    inactivity: timedelta = Field(
        default=timedelta(days=30),
        alias="YELLCOP_INACTIVITY",
        validation_alias=AliasChoices("YELLCOP_INACTIVITY", "INACTIVITY"),
    )
    inactivity_action: RemediationMode = Field(
        default=RemediationMode.WARN, alias="YELLCOP_INACTIVITY_ACTION"
    )
    audit_probability: float = Field(
        default=DEFAULT_AUDIT_PROBABILITY, ge=0.0, le=1.0, alias="YELLCOP_AUDIT_PROBABILITY"
    )
    roster_ttl: Optional[timedelta] = Field(default=None, alias="YELLCOP_ROSTER_TTL")

    # Extra entries are appended to the built-in lists
    skip_phrases: List[str] = Field(default_factory=list, alias="YELLCOP_SKIP_PHRASES")
    warnings: List[str] = Field(default_factory=list, alias="YELLCOP_WARNINGS")
    failures: List[str] = Field(default_factory=list, alias="YELLCOP_FAILURES")
    inactive: List[str] = Field(default_factory=list, alias="YELLCOP_INACTIVE")
    lurker: List[str] = Field(default_factory=list, alias="YELLCOP_LURKER")
    welcome: str = Field(default=WELCOME_MESSAGE, alias="YELLCOP_WELCOME")

    dry_run: bool = Field(default=False, alias="DRY_RUN")
    verbose: bool = Field(default=False, alias="VERBOSE")
    webhook_host: str = Field(default="0.0.0.0", alias="WEBHOOK_HOST")
    webhook_port: int = Field(default=8080, alias="WEBHOOK_PORT")

    class Config:
        populate_by_name = True

    @field_validator("skip_phrases", *_TEMPLATE_FIELDS, mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        return _split_pipes(value)

    @field_validator("inactivity", "roster_ttl", mode="before")
    @classmethod
    def _durations(cls, value: Any) -> Any:
        return _parse_duration(value)

    @field_validator("verbose", mode="before")
    @classmethod
    def _any_value_is_verbose(cls, value: Any) -> Any:
        # VERBOSE=anything turns on debug logging
        if isinstance(value, str):
            return value.strip().lower() not in {"", "0", "false", "no", "off"}
        return value

    @model_validator(mode="after")
    def _merge_defaults(self) -> "BotSettings":
        self.skip_phrases = SKIP_PHRASES + self.skip_phrases
        self.warnings = WARNING_MESSAGES + self.warnings
        self.failures = KICK_MESSAGES + self.failures
        self.inactive = INACTIVE_MESSAGES + self.inactive
        self.lurker = LURKER_MESSAGES + self.lurker
        for name in _TEMPLATE_FIELDS:
            for template in getattr(self, name):
                if USER_PLACEHOLDER not in template:
                    raise ValueError(f"{name} template {template!r} has no {USER_PLACEHOLDER} placeholder")
        return self

    @property
    def inactivity_templates(self) -> List[str]:
        """Templates used for the configured inactivity remediation."""

        if self.inactivity_action is RemediationMode.KICK:
            return self.inactive
        return self.lurker


def load_settings(env_file: str | None = ".env") -> BotSettings:
    """Load and validate configuration, raising a helpful error if missing."""

    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    try:
        settings = BotSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [err["loc"][0] for err in exc.errors() if err["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        raise RuntimeError(
            (
                "Missing required configuration values: "
                f"{', '.join(str(name) for name in missing)}. "
                "Ensure SLACK_BOT_TOKEN is set before running the bot."
            )
        ) from exc

    return settings
