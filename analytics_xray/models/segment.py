"""Pydantic models for analytics events captured at the network level.

Wire events are a tagged union keyed by ``type``: one model per
Segment call type, each carrying only the optional fields that call
type defines.  ``properties``, ``traits``, ``integrations`` and extra
``context`` keys are user-defined and kept as open bags.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

import pydantic

from analytics_xray.utils import serialization

EventType = Literal["track", "page", "screen", "identify", "group", "alias"]

EVENT_TYPES: frozenset[str] = frozenset(["track", "page", "screen", "identify", "group", "alias"])

Provider = Literal["segment", "rudderstack", "dreamdata", "unknown"]

# Wire keys holding scalar identifiers or labels.
_STRING_FIELDS = (
    "messageId", "timestamp", "anonymousId", "userId",
    "groupId", "previousId", "event", "name", "category",
)
# Wire keys holding open JSON objects.
_BAG_FIELDS = ("properties", "traits", "integrations", "context")


def is_event_type(value: object) -> bool:
    """Return True when *value* is one of the six recognised call types."""
    return isinstance(value, str) and value in EVENT_TYPES


def _sanitize_wire_fields(data: Any) -> Any:
    """Drop optional wire fields whose JSON shape cannot be used.

    Numeric identifiers are stringified, other scalars in string slots
    and non-object bags are discarded so that a single odd field never
    rejects an otherwise valid event.
    """
    if not isinstance(data, dict):
        return data
    clean = dict(data)
    for key in _STRING_FIELDS:
        if key not in clean:
            continue
        value = clean[key]
        if isinstance(value, bool) or value is None:
            clean.pop(key)
        elif isinstance(value, (int, float)):
            clean[key] = str(value)
        elif not isinstance(value, str):
            clean.pop(key)
    for key in _BAG_FIELDS:
        if key in clean and not isinstance(clean[key], dict):
            clean.pop(key)
    return clean


class _WireModel(pydantic.BaseModel):
    # Wire keys are matched by alias only; a snake_case key on the wire
    # is an unknown extra, not the field of the same name.
    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel,
        populate_by_name=False,
        extra="allow",
    )


# ── Context ─────────────────────────────────────────────────────


class LibraryInfo(_WireModel):
    """SDK identification sent in ``context.library``."""

    name: str = "unknown"
    version: str = "unknown"

    @pydantic.field_validator("name", "version", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return "unknown"


class SegmentContext(_WireModel):
    """Context enriched by the SDK; unknown keys are preserved."""

    library: LibraryInfo = pydantic.Field(default_factory=LibraryInfo)
    page: dict[str, Any] | None = None
    user_agent: str | None = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def _lenient(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        clean = dict(data)
        if not isinstance(clean.get("library"), dict):
            clean.pop("library", None)
        if "page" in clean and not isinstance(clean["page"], dict):
            clean.pop("page")
        if "userAgent" in clean and not isinstance(clean["userAgent"], str):
            clean.pop("userAgent")
        return clean


# ── Wire events (tagged union) ──────────────────────────────────


class _BatchEventBase(_WireModel):
    message_id: str | None = None
    timestamp: str | None = None
    anonymous_id: str | None = None
    user_id: str | None = None
    group_id: str | None = None
    properties: dict[str, Any] | None = None
    traits: dict[str, Any] | None = None
    context: SegmentContext | None = None
    integrations: dict[str, Any] | None = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def _sanitize(cls, data: Any) -> Any:
        return _sanitize_wire_fields(data)


class TrackEvent(_BatchEventBase):
    """``analytics.track()`` call."""

    type: Literal["track"]
    event: str | None = None


class PageEvent(_BatchEventBase):
    """``analytics.page()`` call."""

    type: Literal["page"]
    name: str | None = None
    category: str | None = None


class ScreenEvent(_BatchEventBase):
    """``analytics.screen()`` call from mobile SDKs."""

    type: Literal["screen"]
    name: str | None = None
    category: str | None = None


class IdentifyEvent(_BatchEventBase):
    type: Literal["identify"]


class GroupEvent(_BatchEventBase):
    type: Literal["group"]


class AliasEvent(_BatchEventBase):
    type: Literal["alias"]
    previous_id: str | None = None


RawBatchEvent = Annotated[
    TrackEvent | PageEvent | ScreenEvent | IdentifyEvent | GroupEvent | AliasEvent,
    pydantic.Field(discriminator="type"),
]

raw_event_adapter: pydantic.TypeAdapter[RawBatchEvent] = pydantic.TypeAdapter(RawBatchEvent)


class BatchPayload(pydantic.BaseModel):
    """A batch as sent over the wire.

    ``batch`` keeps the members exactly as decoded; each one is
    validated on its own during normalisation.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel,
        populate_by_name=True,
    )

    batch: list[Any] = pydantic.Field(min_length=1)
    sent_at: str
    write_key: str | None = None


# ── Normalised record ───────────────────────────────────────────


class NormalizedEvent(pydantic.BaseModel):
    """Canonical, immutable record stored per tab."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str = pydantic.Field(min_length=1)
    message_id: str = pydantic.Field(min_length=1)
    type: EventType
    name: str
    properties: dict[str, Any] = pydantic.Field(default_factory=dict)
    traits: dict[str, Any] | None = None
    user_id: str | None = None
    anonymous_id: str | None = None
    group_id: str | None = None
    timestamp: str
    sent_at: str
    context: SegmentContext = pydantic.Field(default_factory=SegmentContext)
    integrations: dict[str, Any] | None = None

    tab_id: int
    url: str
    provider: Provider
    captured_at: int
    raw_payload: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        """Serialise with camelCase keys for storage and transport."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
