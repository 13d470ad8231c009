"""Pydantic models for the domain allow/deny policy."""

from __future__ import annotations

from typing import Literal

import pydantic

from analytics_xray.utils import serialization

# Bounds applied to the configured per-tab event limit.
MIN_MAX_EVENTS = 1
MAX_MAX_EVENTS = 10000
DEFAULT_MAX_EVENTS = 500


def clamp_max_events(value: int) -> int:
    """Clamp a requested event limit into the supported range."""
    return max(MIN_MAX_EVENTS, min(MAX_MAX_EVENTS, int(value)))


class AllowlistEntry(pydantic.BaseModel):
    """A domain the user has allowed capture on."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    domain: str
    allow_subdomains: bool = False


class TabDomainState(pydantic.BaseModel):
    """Current origin and authorisation of one tab."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    domain: str
    is_allowed: bool


class PolicyConfig(pydantic.BaseModel):
    """Live capture configuration as persisted in ``config.json``."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    allowed_domains: list[AllowlistEntry] = pydantic.Field(default_factory=list)
    denied_domains: list[str] = pydantic.Field(default_factory=list)
    max_events: int = DEFAULT_MAX_EVENTS

    @pydantic.field_validator("max_events")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return clamp_max_events(value)


AutoAllowAction = Literal["added", "updated", "already_allowed", "no_action"]


class AutoAllowResult(pydantic.BaseModel):
    """Outcome of an automatic allowlist decision."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    action: AutoAllowAction
    domain: str
    allow_subdomains: bool
    was_allowed: bool
    is_allowed: bool
