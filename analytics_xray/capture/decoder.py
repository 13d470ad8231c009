"""
Request body decoding.

The host hook hands over the body as an ordered list of upload
chunks.  Byte chunks are joined in order and decoded as UTF-8; other
entries (file references and the like) are skipped.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from analytics_xray.models.results import Err, Ok, Result
from analytics_xray.utils import logger

log = logger.create_logger("Decoder")

_BYTE_TYPES = (bytes, bytearray, memoryview)


def _chunk_bytes(chunk: object) -> bytes | None:
    """Return the raw bytes carried by *chunk*, or ``None``.

    Accepts bare byte buffers and mappings shaped like the browser's
    ``UploadData`` (``{"bytes": ...}``).
    """
    if isinstance(chunk, _BYTE_TYPES):
        return bytes(chunk)
    if isinstance(chunk, Mapping):
        data = chunk.get("bytes")
        if isinstance(data, _BYTE_TYPES):
            return bytes(data)
    return None


def decode_request_body(raw: Sequence[object] | None) -> Result[str]:
    """Decode captured body chunks into one string.

    Args:
        raw: Ordered upload chunks from the host hook.

    Returns:
        ``Ok(text)`` with the chunks concatenated in input order, or
        ``Err("no_body")`` when there is nothing to decode.
        Malformed UTF-8 is replaced rather than rejected.
    """
    if not raw:
        return Err("no_body", "empty request body")

    parts = [data for data in (_chunk_bytes(chunk) for chunk in raw) if data is not None]
    if not parts:
        return Err("no_body", "no byte chunks in request body")

    body = b"".join(parts)
    if not body:
        return Err("no_body", "request body is empty")
    try:
        return Ok(body.decode("utf-8"))
    except UnicodeDecodeError as exc:
        log.warn(
            "Malformed UTF-8 in request body, decoding with replacement",
            {"bytes": len(body), "position": exc.start},
        )
        return Ok(body.decode("utf-8", errors="replace"))
