"""Size accounting for the durable mirror."""

from __future__ import annotations

import json

import pydantic

from analytics_xray.store.persistence import StorageBackend
from analytics_xray.utils import logger, serialization
from analytics_xray.utils.errors import PersistenceError

log = logger.create_logger("Storage")

STORAGE_LIMIT_BYTES = 10 * 1024 * 1024
NEAR_LIMIT_PERCENT = 80.0


class _SizeModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )


class KeySize(_SizeModel):
    key: str
    size_bytes: int


class StorageSizeInfo(_SizeModel):
    """Snapshot of how much of the storage limit is in use."""

    total_bytes: int
    limit_bytes: int = STORAGE_LIMIT_BYTES
    usage_percent: float
    near_limit: bool
    over_limit: bool
    keys: list[KeySize]


def storage_size_info(storage: StorageBackend, limit_bytes: int | None = None) -> StorageSizeInfo:
    """Measure every key's serialised JSON size.

    Keys that cannot be read are counted as zero bytes.
    """
    if limit_bytes is None:
        limit_bytes = STORAGE_LIMIT_BYTES
    sizes: list[KeySize] = []
    for key in storage.keys():
        try:
            value = storage.get(key)
        except PersistenceError as exc:
            log.warn("Could not measure key", {"key": key, "error": exc.reason})
            value = None
        size = 0 if value is None else len(json.dumps(value).encode("utf-8"))
        sizes.append(KeySize(key=key, size_bytes=size))

    sizes.sort(key=lambda k: k.size_bytes, reverse=True)
    total = sum(k.size_bytes for k in sizes)
    percent = (total / limit_bytes) * 100 if limit_bytes > 0 else 100.0
    return StorageSizeInfo(
        total_bytes=total,
        limit_bytes=limit_bytes,
        usage_percent=round(percent, 2),
        near_limit=percent >= NEAR_LIMIT_PERCENT,
        over_limit=percent >= 100.0,
        keys=sizes,
    )


def log_storage_size(storage: StorageBackend) -> StorageSizeInfo:
    """Log the current storage usage, warning when near the limit."""
    info = storage_size_info(storage)
    data = {
        "totalKB": round(info.total_bytes / 1024, 1),
        "usagePercent": info.usage_percent,
        "largest": [k.key for k in info.keys[:3]],
    }
    if info.over_limit:
        log.error("Storage over limit", data)
    elif info.near_limit:
        log.warn("Storage near limit", data)
    else:
        log.debug("Storage usage", data)
    return info
