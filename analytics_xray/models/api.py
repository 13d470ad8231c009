"""Request bodies accepted by the HTTP adapter."""

from __future__ import annotations

import pydantic

from analytics_xray.utils import serialization


class _ApiModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )


class CaptureRequestBody(_ApiModel):
    """An intercepted request forwarded by an external hook.

    ``body`` carries the UTF-8 text of the upload, if any.
    """

    tab_id: int
    method: str = "POST"
    url: str
    body: str | None = None


class TabUpdateBody(_ApiModel):
    url: str
    status: str | None = None
    url_changed: bool = False


class AllowDomainBody(_ApiModel):
    domain: str = pydantic.Field(min_length=1)
    allow_subdomains: bool = False


class DenyDomainBody(_ApiModel):
    domain: str = pydantic.Field(min_length=1)


class MaxEventsBody(_ApiModel):
    max_events: int
