"""Pydantic models for consumer requests and push notifications.

Requests are a discriminated union on ``type``.  Tab ids must be
real integers; a string such as ``"5"`` is rejected rather than
coerced.
"""

from __future__ import annotations

from typing import Annotated, Literal

import pydantic

from analytics_xray.models.segment import NormalizedEvent
from analytics_xray.utils import serialization


class _Message(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    tab_id: pydantic.StrictInt


# ── Requests ────────────────────────────────────────────────────


class GetEventsMessage(_Message):
    type: Literal["GET_EVENTS"]


class ClearEventsMessage(_Message):
    type: Literal["CLEAR_EVENTS"]


class GetEventCountMessage(_Message):
    type: Literal["GET_EVENT_COUNT"]


class GetTabDomainMessage(_Message):
    type: Literal["GET_TAB_DOMAIN"]


class ReEvaluateTabDomainMessage(_Message):
    type: Literal["RE_EVALUATE_TAB_DOMAIN"]


RequestMessage = Annotated[
    GetEventsMessage
    | ClearEventsMessage
    | GetEventCountMessage
    | GetTabDomainMessage
    | ReEvaluateTabDomainMessage,
    pydantic.Field(discriminator="type"),
]

request_adapter: pydantic.TypeAdapter[RequestMessage] = pydantic.TypeAdapter(RequestMessage)


# ── Notifications ───────────────────────────────────────────────


class EventsCapturedMessage(_Message):
    """Published once per successful store append."""

    type: Literal["EVENTS_CAPTURED"] = "EVENTS_CAPTURED"
    events: list[NormalizedEvent]


class DomainChangedMessage(_Message):
    """Published when a tab's effective origin changes."""

    type: Literal["DOMAIN_CHANGED"] = "DOMAIN_CHANGED"
    domain: str | None


class ReloadDetectedMessage(_Message):
    """Published when a tab reloads the same page."""

    type: Literal["RELOAD_DETECTED"] = "RELOAD_DETECTED"
    timestamp: int


Notification = EventsCapturedMessage | DomainChangedMessage | ReloadDetectedMessage
