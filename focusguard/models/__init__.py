"""Data models for the FocusGuard agent."""

from focusguard.models.events import (
    WINDOW_ID_NONE,
    MetadataPush,
    TabActivatedEvent,
    TabChange,
    TabInfo,
    TabRemovedEvent,
    TabUpdatedEvent,
    WindowFocusChangedEvent,
)
from focusguard.models.sessions import (
    ActiveSession,
    Classification,
    ContentSession,
    ContentStatus,
    PageMetadata,
    PendingSession,
    SessionSnapshot,
    TabSession,
    TabState,
)

__all__ = [
    "WINDOW_ID_NONE",
    "ActiveSession",
    "Classification",
    "ContentSession",
    "ContentStatus",
    "MetadataPush",
    "PageMetadata",
    "PendingSession",
    "SessionSnapshot",
    "TabActivatedEvent",
    "TabChange",
    "TabInfo",
    "TabRemovedEvent",
    "TabSession",
    "TabState",
    "TabUpdatedEvent",
    "WindowFocusChangedEvent",
]
