"""Pydantic models for per-tab session state."""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class ContentStatus(str, Enum):
    """Progress of the content sub-session nested in a website visit."""

    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"
    WAITING_METADATA = "waiting-metadata"
    ERROR = "error"
    ERROR_CLOSING = "error-closing"


class PageMetadata(BaseModel):
    """Title and description scraped from a page."""

    title: str = ""
    description: str = ""

    @property
    def has_title(self) -> bool:
        """Whether the metadata carries a usable title."""
        return bool(self.title.strip())


class ContentSession(BaseModel):
    """One open remote content visit nested under a website visit."""

    url: str
    content_id: int
    content_user_id: int
    content_visit_id: int
    metadata: PageMetadata = Field(default_factory=PageMetadata)


class PendingSession(BaseModel):
    """A website visit whose remote creation is still in flight."""

    status: Literal["pending"] = "pending"
    domain: str = Field(..., min_length=1)


class ActiveSession(BaseModel):
    """A tab with an open remote website visit."""

    status: Literal["active"] = "active"
    domain: str = Field(..., min_length=1)
    website_user_id: int
    website_category_id: int
    visit_id: int
    url: str | None = Field(
        default=None, description="Most specific URL seen under this domain"
    )
    content_session: ContentSession | None = None
    content_status: ContentStatus = ContentStatus.IDLE
    pending_content_url: str | None = None


TabSession = Annotated[PendingSession | ActiveSession, Field(discriminator="status")]


class SessionSnapshot(BaseModel):
    """Read-only view of a tab session for presentation layers."""

    tab_id: int
    session: TabSession


class TabState(BaseModel):
    """Result of an event: the tab's session after it was processed."""

    tab_id: int
    active_tab_id: int | None = None
    session: TabSession | None = None


class Classification(BaseModel):
    """Category suggested for the domain of a URL."""

    domain: str
    category_id: int
    category: str
