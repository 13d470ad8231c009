"""Capture package — decode, parse, classify and normalise.

Each stage is a pure function returning a value or a result; the
orchestration and policy gate live in :mod:`analytics_xray.service`.
"""

from __future__ import annotations

from analytics_xray.capture.decoder import decode_request_body
from analytics_xray.capture.normalizer import (
    get_event_name,
    normalize_event,
    process_batch_payload,
)
from analytics_xray.capture.parser import parse_segment_payload
from analytics_xray.capture.providers import SEGMENT_ENDPOINTS, detect_provider, matches_endpoint

__all__ = [
    "SEGMENT_ENDPOINTS",
    "decode_request_body",
    "detect_provider",
    "get_event_name",
    "matches_endpoint",
    "normalize_event",
    "parse_segment_payload",
    "process_batch_payload",
]
