"""
Runtime settings for the capture service.

Uses ``pydantic_settings.BaseSettings`` for environment variable
binding, type coercion and validation.  A ``.env`` file in the working
directory is loaded by the entry points before settings are read.
"""

from __future__ import annotations

import functools
import pathlib

import pydantic
import pydantic_settings

from analytics_xray.models.policy import DEFAULT_MAX_EVENTS, clamp_max_events


class XraySettings(pydantic_settings.BaseSettings):
    """Process-level configuration.

    Attributes:
        storage_dir: Directory holding the durable mirror and
            ``config.json``.
        max_events: Initial per-tab event limit when no
            ``config.json`` exists yet.
        cleanup_interval_seconds: Period of the stale-tab sweep.
        stale_tab_age_seconds: Inactivity after which a tab's
            durable data is purged.
        reload_history_limit: Reload timestamps kept per tab.
        host: Bind address of the HTTP adapter.
        port: Port of the HTTP adapter.
    """

    storage_dir: pathlib.Path = pydantic.Field(
        default=pathlib.Path(".xray-storage"), validation_alias="XRAY_STORAGE_DIR"
    )
    max_events: int = pydantic.Field(
        default=DEFAULT_MAX_EVENTS, validation_alias="XRAY_MAX_EVENTS"
    )
    cleanup_interval_seconds: float = pydantic.Field(
        default=60 * 60, gt=0, validation_alias="XRAY_CLEANUP_INTERVAL_SECONDS"
    )
    stale_tab_age_seconds: float = pydantic.Field(
        default=24 * 60 * 60, gt=0, validation_alias="XRAY_STALE_TAB_AGE_SECONDS"
    )
    reload_history_limit: int = pydantic.Field(
        default=100, ge=1, validation_alias="XRAY_RELOAD_HISTORY_LIMIT"
    )
    host: str = pydantic.Field(default="127.0.0.1", validation_alias="XRAY_HOST")
    port: int = pydantic.Field(default=3002, validation_alias="XRAY_PORT")

    @pydantic.field_validator("max_events")
    @classmethod
    def _clamp_max_events(cls, value: int) -> int:
        return clamp_max_events(value)

    @property
    def config_path(self) -> pathlib.Path:
        """Location of the persisted policy configuration."""
        return self.storage_dir / "config.json"

    @property
    def events_dir(self) -> pathlib.Path:
        """Location of the durable event mirror."""
        return self.storage_dir / "mirror"


@functools.lru_cache(maxsize=1)
def get_settings() -> XraySettings:
    """Return the process-wide settings, read once."""
    return XraySettings()
