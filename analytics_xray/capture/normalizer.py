"""
Event normalisation.

Turns validated wire events into :class:`NormalizedEvent` records with
every default applied.  Apart from reading the clock and the random
source for fallback ids, these functions are pure.
"""

from __future__ import annotations

import random
import string
from typing import Any

import pydantic

from analytics_xray.models.segment import (
    AliasEvent,
    BatchPayload,
    GroupEvent,
    IdentifyEvent,
    NormalizedEvent,
    PageEvent,
    Provider,
    RawBatchEvent,
    ScreenEvent,
    SegmentContext,
    TrackEvent,
    is_event_type,
    raw_event_adapter,
)
from analytics_xray.utils import logger, serialization

log = logger.create_logger("Normalizer")

_BASE36 = string.digits + string.ascii_lowercase
_RANDOM_SUFFIX_LENGTH = 9


def is_valid_batch_event(event: object) -> bool:
    """Return True when *event* is an object with a recognised ``type``.

    ``messageId`` is optional; :func:`normalize_event` generates one
    when it is missing.
    """
    return isinstance(event, dict) and is_event_type(event.get("type"))


def generate_message_id(rng: random.Random | None = None) -> str:
    """Build a fallback id: ``generated_<epoch-ms>_<9 base36 chars>``."""
    source = rng or random
    suffix = "".join(source.choice(_BASE36) for _ in range(_RANDOM_SUFFIX_LENGTH))
    return f"generated_{serialization.epoch_ms()}_{suffix}"


def get_event_name(event: RawBatchEvent) -> str:
    """Derive the display label for an event from its type and fields.

    >>> get_event_name(TrackEvent(type="track", event="Button Clicked"))
    'Button Clicked'
    >>> get_event_name(PageEvent(type="page", name="Home"))
    'Page: Home'
    """
    if isinstance(event, TrackEvent):
        return event.event or "Unnamed Track"
    if isinstance(event, PageEvent):
        return f"Page: {event.name}" if event.name else "Page View"
    if isinstance(event, ScreenEvent):
        return f"Screen: {event.name}" if event.name else "Screen View"
    if isinstance(event, IdentifyEvent):
        return f"Identify: {event.user_id}" if event.user_id else "Identify"
    if isinstance(event, GroupEvent):
        return f"Group: {event.group_id}" if event.group_id else "Group"
    if isinstance(event, AliasEvent):
        return "Alias"
    return "Unknown"


def _resolve_timestamp(value: str | None) -> str:
    if value and serialization.parse_timestamp(value) is not None:
        return value
    return serialization.utc_now_iso()


def normalize_event(
    raw: Any,
    *,
    tab_id: int,
    url: str,
    sent_at: str,
    provider: Provider,
) -> NormalizedEvent | None:
    """Normalise one batch member.

    Args:
        raw: The member exactly as decoded from the wire.
        tab_id: Tab the request was captured on.
        url: Request URL the batch was sent to.
        sent_at: ``sentAt`` of the enclosing batch.
        provider: Classified analytics provider.

    Returns:
        The normalised record, or ``None`` when the member has no
        recognised ``type`` and is dropped.
    """
    if not is_valid_batch_event(raw):
        log.debug(
            "Dropping batch member with invalid type",
            {"type": raw.get("type") if isinstance(raw, dict) else type(raw).__name__},
        )
        return None

    try:
        event = raw_event_adapter.validate_python(raw)
    except pydantic.ValidationError as exc:
        log.warn("Dropping batch member that failed validation", {"type": raw["type"], "error": str(exc)})
        return None

    message_id = event.message_id or generate_message_id()

    return NormalizedEvent(
        id=message_id,
        message_id=message_id,
        type=event.type,
        name=get_event_name(event),
        properties=event.properties or {},
        traits=event.traits,
        user_id=event.user_id,
        anonymous_id=event.anonymous_id,
        group_id=event.group_id,
        timestamp=_resolve_timestamp(event.timestamp),
        sent_at=sent_at,
        context=event.context or SegmentContext(),
        integrations=event.integrations,
        tab_id=tab_id,
        url=url,
        provider=provider,
        captured_at=serialization.epoch_ms(),
        raw_payload=dict(raw),
    )


def process_batch_payload(
    payload: BatchPayload,
    *,
    tab_id: int,
    url: str,
    provider: Provider,
) -> list[NormalizedEvent]:
    """Normalise every valid member of a batch, keeping batch order.

    An all-invalid batch yields an empty list.
    """
    events: list[NormalizedEvent] = []
    for raw in payload.batch:
        event = normalize_event(raw, tab_id=tab_id, url=url, sent_at=payload.sent_at, provider=provider)
        if event is not None:
            events.append(event)
    dropped = len(payload.batch) - len(events)
    if dropped:
        log.debug("Dropped invalid batch members", {"dropped": dropped, "kept": len(events)})
    return events
