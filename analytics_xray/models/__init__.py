# Models package — re-export the public models.
# Prefer importing from the specific submodule (e.g. analytics_xray.models.segment).

from analytics_xray.models.messages import (
    ClearEventsMessage as ClearEventsMessage,
    DomainChangedMessage as DomainChangedMessage,
    EventsCapturedMessage as EventsCapturedMessage,
    GetEventCountMessage as GetEventCountMessage,
    GetEventsMessage as GetEventsMessage,
    GetTabDomainMessage as GetTabDomainMessage,
    Notification as Notification,
    ReEvaluateTabDomainMessage as ReEvaluateTabDomainMessage,
    ReloadDetectedMessage as ReloadDetectedMessage,
    RequestMessage as RequestMessage,
)
from analytics_xray.models.policy import (
    AllowlistEntry as AllowlistEntry,
    AutoAllowResult as AutoAllowResult,
    PolicyConfig as PolicyConfig,
    TabDomainState as TabDomainState,
)
from analytics_xray.models.results import (
    Err as Err,
    FailureKind as FailureKind,
    Ok as Ok,
    Result as Result,
)
from analytics_xray.models.segment import (
    EVENT_TYPES as EVENT_TYPES,
    BatchPayload as BatchPayload,
    EventType as EventType,
    NormalizedEvent as NormalizedEvent,
    Provider as Provider,
    RawBatchEvent as RawBatchEvent,
    SegmentContext as SegmentContext,
)
