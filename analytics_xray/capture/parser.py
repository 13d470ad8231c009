"""
Segment payload parsing and shape validation.

SDKs either send a batch envelope (``{"batch": [...], "sentAt": ...}``)
or a single bare event.  Only the first batch member is checked here;
every member is validated again during normalisation so one bad event
does not reject its siblings.
"""

from __future__ import annotations

import json
from typing import Any

from analytics_xray.models.results import Err, Ok, Result
from analytics_xray.models.segment import BatchPayload, is_event_type
from analytics_xray.utils import logger, serialization

log = logger.create_logger("Parser")

# Characters of the body echoed into rejection logs.
_PREVIEW_CHARS = 200


def _is_batch_payload(payload: dict[str, Any]) -> bool:
    """Check the batch envelope shape, validating the first member only."""
    batch = payload.get("batch")
    if not isinstance(batch, list):
        log.debug("Payload has no batch array", {"keys": list(payload.keys())})
        return False
    if not batch:
        log.warn("Batch array is empty")
        return False

    first = batch[0]
    if not isinstance(first, dict) or not isinstance(first.get("type"), str):
        log.error("First event missing type field")
        return False
    if not is_event_type(first["type"]):
        log.error("First event has invalid type", {"type": first["type"]})
        return False
    if not first.get("messageId"):
        log.debug("First event has no messageId, continuing anyway")
    return True


def _is_single_event(payload: dict[str, Any]) -> bool:
    return is_event_type(payload.get("type"))


def _describe(payload: object, text: str) -> dict[str, object]:
    """Summarise a rejected payload for the log line."""
    info: dict[str, object] = {
        "kind": type(payload).__name__,
        "preview": text[:_PREVIEW_CHARS],
    }
    if isinstance(payload, dict):
        batch = payload.get("batch")
        info["keys"] = list(payload.keys())
        info["batchIsArray"] = isinstance(batch, list)
        info["batchLength"] = len(batch) if isinstance(batch, list) else 0
    return info


def parse_segment_payload(text: str) -> Result[BatchPayload]:
    """Parse a decoded body into a batch payload.

    Args:
        text: Decoded request body.

    Returns:
        ``Ok(BatchPayload)`` for a valid batch or a bare event
        (wrapped into a one-element batch with a fresh ``sentAt``),
        ``Err("parse_error")`` for invalid JSON and
        ``Err("validation_error")`` for JSON of any other shape.
    """
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError) as exc:
        log.error("Failed to parse payload JSON", {"error": str(exc), "preview": text[:_PREVIEW_CHARS]})
        return Err("parse_error", str(exc))

    if isinstance(payload, dict):
        if _is_batch_payload(payload):
            sent_at = payload.get("sentAt")
            write_key = payload.get("writeKey")
            return Ok(
                BatchPayload(
                    batch=payload["batch"],
                    sent_at=sent_at if isinstance(sent_at, str) else serialization.utc_now_iso(),
                    write_key=write_key if isinstance(write_key, str) else None,
                )
            )

        if _is_single_event(payload):
            log.debug("Converting single event to batch format")
            return Ok(BatchPayload(batch=[payload], sent_at=serialization.utc_now_iso()))

    log.error("Payload validation failed", _describe(payload, text))
    return Err("validation_error", f"unrecognised payload shape ({type(payload).__name__})")
