"""
Message router for consumer requests.

Consumers that talk in plain dicts (extension-style messaging, the
``/api/messages`` endpoint) send ``{"type": ..., "tabId": ...}``.
Malformed messages get ``None`` back.
"""

from __future__ import annotations

from typing import Any

import pydantic

from analytics_xray.models import messages
from analytics_xray.service import CaptureService
from analytics_xray.utils import logger

log = logger.create_logger("Messages")


def handle_message(service: CaptureService, message: object) -> Any:
    """Validate *message* and dispatch it to *service*.

    Returns:
        ``GET_EVENTS``: list of events in wire form.
        ``CLEAR_EVENTS``: ``True``.
        ``GET_EVENT_COUNT``: int.
        ``GET_TAB_DOMAIN``: domain string or ``None``.
        ``RE_EVALUATE_TAB_DOMAIN``: bool.
        Invalid message: ``None``.
    """
    try:
        request = messages.request_adapter.validate_python(message)
    except pydantic.ValidationError as exc:
        log.debug("Ignoring invalid message", {"errors": exc.error_count()})
        return None

    if isinstance(request, messages.GetEventsMessage):
        return [e.to_wire() for e in service.get_events(request.tab_id)]
    if isinstance(request, messages.ClearEventsMessage):
        service.clear_events(request.tab_id)
        return True
    if isinstance(request, messages.GetEventCountMessage):
        return service.get_event_count(request.tab_id)
    if isinstance(request, messages.GetTabDomainMessage):
        return service.get_tab_domain(request.tab_id)
    return service.re_evaluate_tab_domain(request.tab_id)
