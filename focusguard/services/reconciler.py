"""Per-tab visit reconciliation.

The reconciler keeps the session store consistent with the backend while tab
events interleave on one event loop. Every ``await`` is a point where another
event may run, so intent is always recorded before the first network call:

* a :class:`PendingSession` marks a website visit being opened, and a second
  open for the same tab and domain returns immediately while it is set;
* ``content_status == PENDING`` with ``pending_content_url`` does the same for
  the nested content visit.

Local state is dropped only after the backend confirmed a close. A failed
close leaves the session untouched so the next event retries the same id.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Protocol

from focusguard.models.sessions import (
    ActiveSession,
    ContentSession,
    ContentStatus,
    PageMetadata,
    PendingSession,
)
from focusguard.services.categories import classify_domain
from focusguard.services.identity_cache import IdentityCache
from focusguard.services.registrar import CloseError, Registrar, RegistrationError
from focusguard.services.session_store import SessionStore
from focusguard.utils import MalformedUrlError, domain_from_url, is_trackable

logger = logging.getLogger(__name__)


class MetadataProvider(Protocol):
    """Source of page metadata for a tab; must not raise."""

    async def get_page_metadata(self, tab_id: int) -> PageMetadata: ...


class SessionReconciler:
    """Open, keep, replace or close the visits of each tab."""

    def __init__(
        self,
        registrar: Registrar,
        metadata: MetadataProvider,
        *,
        store: SessionStore | None = None,
        cache: IdentityCache | None = None,
        user_id: int = 1,
        default_category_id: int = 1,
        double_edged_category_ids: Collection[int] = frozenset({4}),
    ) -> None:
        """Initialize the reconciler.

        Args:
            registrar: Backend client.
            metadata: Page metadata collaborator used for content visits.
            store: Session store shared with presentation layers.
            cache: Identity cache shared across tabs.
            user_id: Id of the tracked user on the backend.
            default_category_id: Category suggested for unknown domains.
            double_edged_category_ids: Categories tracked at content level.
        """
        self.registrar = registrar
        self.metadata = metadata
        self.store = store if store is not None else SessionStore()
        self.cache = cache if cache is not None else IdentityCache()
        self.user_id = user_id
        self.default_category_id = default_category_id
        self.double_edged_category_ids = frozenset(double_edged_category_ids)

    # Website visits

    async def register_visit(self, tab_id: int, url: str) -> None:
        """Make sure the tab has an open visit for the domain of ``url``."""
        if not is_trackable(url):
            await self.end_visit_for_tab(tab_id)
            return
        try:
            domain = domain_from_url(url)
        except MalformedUrlError as err:
            logger.warning("Untrackable URL in tab %s: %s", tab_id, err)
            await self.end_visit_for_tab(tab_id)
            return

        session = self.store.get(tab_id)

        if isinstance(session, ActiveSession) and session.domain == domain:
            if url != session.url:
                await self.update_content(tab_id, url)
            return

        if isinstance(session, PendingSession) and session.domain == domain:
            logger.debug("Visit for %s in tab %s already being opened", domain, tab_id)
            return

        if isinstance(session, ActiveSession):
            await self.end_visit_for_tab(tab_id)
            current = self.store.get(tab_id)
            if current is session:
                logger.warning(
                    "Visit %s in tab %s is still open; not opening %s yet",
                    session.visit_id,
                    tab_id,
                    domain,
                )
                return
            if current is not None and current.domain == domain:
                # Another event opened this domain while the old visit closed.
                return

        pending = PendingSession(domain=domain)
        self.store.set(tab_id, pending)

        try:
            website_user_id, category_id = await self._ensure_identity(domain)
            visit_id = await self.registrar.start_visit(self.user_id, website_user_id)
        except RegistrationError as err:
            logger.error("Could not open a visit for tab %s (%s): %s", tab_id, domain, err)
            self.store.delete_if(tab_id, pending)
            return

        if not self.store.holds(tab_id, pending):
            # The tab moved on while the visit was being created.
            logger.info("Visit %s for tab %s superseded, closing it", visit_id, tab_id)
            await self._close_orphan_visit(visit_id)
            return

        self.store.set(
            tab_id,
            ActiveSession(
                domain=domain,
                website_user_id=website_user_id,
                website_category_id=category_id,
                visit_id=visit_id,
            ),
        )
        logger.debug("Opened visit %s for %s in tab %s", visit_id, domain, tab_id)
        await self.update_content(tab_id, url)

    async def _ensure_identity(self, domain: str) -> tuple[int, int]:
        """Return (website-user id, category id), registering what is missing."""
        cached = self.cache.get_website_user(self.user_id, domain)
        if cached is not None:
            return cached

        website_id = self.cache.get_website(domain)
        if website_id is None:
            website_id = await self.registrar.ensure_website(domain)
            self.cache.set_website(domain, website_id)

        suggested = classify_domain(domain, self.default_category_id)
        website_user_id, category_id = await self.registrar.ensure_website_user(
            self.user_id, website_id, suggested
        )
        self.cache.set_website_user(self.user_id, domain, website_user_id, category_id)
        return website_user_id, category_id

    async def _close_orphan_visit(self, visit_id: int) -> None:
        try:
            await self.registrar.end_visit(visit_id)
        except CloseError as err:
            logger.error("Could not close superseded visit %s: %s", visit_id, err)

    async def end_visit_for_tab(self, tab_id: int) -> bool:
        """Close whatever is open in the tab.

        Returns:
            True if nothing remains open for the tab, False if a close failed
            and the session was kept for a retry.
        """
        session = self.store.get(tab_id)
        if session is None:
            return True
        if isinstance(session, PendingSession):
            # Nothing exists remotely yet.
            self.store.delete(tab_id)
            return True

        if session.content_session is not None:
            if not await self._close_content(tab_id, session):
                self._set_content_status(session, ContentStatus.ERROR_CLOSING)
                logger.error(
                    "Visit %s in tab %s left open: its content visit could not be closed",
                    session.visit_id,
                    tab_id,
                )
                return False
            self._set_content_status(session, ContentStatus.IDLE)
        elif session.content_status is ContentStatus.PENDING:
            # An in-flight content open loses its lock and closes its own visit.
            self._set_content_status(session, ContentStatus.IDLE)

        try:
            await self.registrar.end_visit(session.visit_id)
        except CloseError as err:
            logger.error(
                "Could not close visit %s for tab %s, will retry later: %s",
                session.visit_id,
                tab_id,
                err,
            )
            return False

        self.store.delete_if(tab_id, session)
        logger.debug("Closed visit %s for tab %s", session.visit_id, tab_id)
        return True

    async def close_all(self) -> list[int]:
        """Close every tab's visit.

        Returns:
            Tab ids whose sessions could not be closed.
        """
        failed = []
        for tab_id in self.store.tab_ids():
            if not await self.end_visit_for_tab(tab_id):
                failed.append(tab_id)
        return failed

    # Content visits

    def is_double_edged(self, session: ActiveSession) -> bool:
        return session.website_category_id in self.double_edged_category_ids

    async def update_content(self, tab_id: int, url: str) -> None:
        """Follow in-domain navigation with the nested content visit."""
        session = self.store.get(tab_id)
        if not isinstance(session, ActiveSession):
            return
        session.url = url
        if not self.is_double_edged(session):
            return

        if session.content_session is not None and session.content_session.url == url:
            return
        if session.content_status is ContentStatus.PENDING and session.pending_content_url == url:
            return

        session.content_status = ContentStatus.PENDING
        session.pending_content_url = url

        if session.content_session is not None:
            closed = await self._close_content(tab_id, session)
            if not self._owns_content_lock(tab_id, session, url):
                return
            if not closed:
                self._set_content_status(session, ContentStatus.ERROR_CLOSING)
                return

        metadata = await self.metadata.get_page_metadata(tab_id)
        if not self._owns_content_lock(tab_id, session, url):
            return
        if not metadata.has_title:
            logger.info("No title for %s in tab %s, waiting for metadata", url, tab_id)
            self._set_content_status(session, ContentStatus.WAITING_METADATA)
            return

        try:
            content = await self._open_content(session, url, metadata)
        except RegistrationError as err:
            logger.error("Could not open a content visit for tab %s (%s): %s", tab_id, url, err)
            if self._owns_content_lock(tab_id, session, url):
                self._set_content_status(session, ContentStatus.ERROR)
            return

        if not self._owns_content_lock(tab_id, session, url):
            logger.info(
                "Content visit %s for tab %s superseded, closing it",
                content.content_visit_id,
                tab_id,
            )
            try:
                await self.registrar.end_content_visit(content.content_visit_id)
            except CloseError as err:
                logger.error(
                    "Could not close superseded content visit %s: %s",
                    content.content_visit_id,
                    err,
                )
            return

        session.content_session = content
        self._set_content_status(session, ContentStatus.ACTIVE)
        logger.debug("Opened content visit %s in tab %s", content.content_visit_id, tab_id)

    async def retry_content(self, tab_id: int) -> None:
        """Retry a content visit that was waiting for metadata or failed."""
        session = self.store.get(tab_id)
        if not isinstance(session, ActiveSession) or session.url is None:
            return
        if session.content_status in (ContentStatus.WAITING_METADATA, ContentStatus.ERROR):
            await self.update_content(tab_id, session.url)

    async def _open_content(
        self, session: ActiveSession, url: str, metadata: PageMetadata
    ) -> ContentSession:
        content_id = self.cache.get_content(metadata.title, metadata.description)
        if content_id is None:
            content_id = await self.registrar.ensure_content(metadata.title, metadata.description)
            self.cache.set_content(metadata.title, metadata.description, content_id)
        content_user_id = await self.registrar.create_content_link(
            session.website_user_id, content_id
        )
        content_visit_id = await self.registrar.start_content_visit(content_user_id)
        return ContentSession(
            url=url,
            content_id=content_id,
            content_user_id=content_user_id,
            content_visit_id=content_visit_id,
            metadata=metadata,
        )

    async def _close_content(self, tab_id: int, session: ActiveSession) -> bool:
        """Close the open content visit; returns False if the backend refused."""
        content = session.content_session
        if content is None:
            return True
        try:
            await self.registrar.end_content_visit(content.content_visit_id)
        except CloseError as err:
            logger.error(
                "Could not close content visit %s for tab %s: %s",
                content.content_visit_id,
                tab_id,
                err,
            )
            return False
        if session.content_session is content:
            session.content_session = None
        return True

    def _owns_content_lock(self, tab_id: int, session: ActiveSession, url: str) -> bool:
        """Whether a content flow for ``url`` is still the current one."""
        return (
            self.store.holds(tab_id, session)
            and session.content_status is ContentStatus.PENDING
            and session.pending_content_url == url
        )

    @staticmethod
    def _set_content_status(session: ActiveSession, status: ContentStatus) -> None:
        session.content_status = status
        session.pending_content_url = None
