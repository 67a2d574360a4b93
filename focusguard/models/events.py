"""Pydantic models for browser lifecycle events."""

from pydantic import BaseModel, Field

WINDOW_ID_NONE = -1


class TabInfo(BaseModel):
    """Snapshot of a browser tab as reported by the extension."""

    id: int = Field(..., ge=0)
    window_id: int = Field(default=0)
    url: str | None = None
    active: bool = False
    status: str | None = Field(default=None, description="loading or complete")


class TabChange(BaseModel):
    """The parts of a tab that changed in an update notification."""

    url: str | None = None
    status: str | None = None


class TabActivatedEvent(BaseModel):
    """Request body for a tab activation."""

    tab: TabInfo


class TabUpdatedEvent(BaseModel):
    """Request body for a tab update."""

    tab_id: int = Field(..., ge=0)
    change: TabChange
    tab: TabInfo


class TabRemovedEvent(BaseModel):
    """Request body for a tab removal."""

    tab_id: int = Field(..., ge=0)


class WindowFocusChangedEvent(BaseModel):
    """Request body for a window focus change.

    ``window_id`` is None (or -1) when the browser lost focus entirely.
    """

    window_id: int | None = None
    active_tab: TabInfo | None = None


class MetadataPush(BaseModel):
    """Page metadata scraped by the content script."""

    url: str = Field(..., min_length=1)
    title: str = ""
    description: str = ""
