"""Result values returned by each pipeline stage.

Stages never raise for expected failures.  They return ``Ok(value)``
or ``Err(kind)`` and the orchestrator decides whether to continue or
log and drop the request.
"""

from __future__ import annotations

import dataclasses
from typing import Generic, Literal, TypeVar, Union

T = TypeVar("T")

FailureKind = Literal[
    "no_body",
    "decode_error",
    "parse_error",
    "validation_error",
    "per_event_validation_error",
    "policy_denied",
    "ignored",
    "persistence_error",
    "internal_error",
]


@dataclasses.dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful stage output."""

    value: T


@dataclasses.dataclass(frozen=True, slots=True)
class Err:
    """Failed stage output with a machine-readable kind."""

    kind: FailureKind
    detail: str = ""


Result = Union[Ok[T], Err]
