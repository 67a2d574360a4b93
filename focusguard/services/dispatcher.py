"""Map browser lifecycle notifications onto the reconciler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any, Protocol, TypeVar

from focusguard.models.events import WINDOW_ID_NONE, TabChange, TabInfo
from focusguard.models.sessions import ActiveSession
from focusguard.services.reconciler import SessionReconciler
from focusguard.utils import MalformedUrlError, domain_from_url, is_trackable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BrowserTabs(Protocol):
    """Tab queries the dispatcher needs from the browser."""

    async def get_tab(self, tab_id: int) -> TabInfo | None: ...

    async def query_active_tab(self, window_id: int | None = None) -> TabInfo | None: ...


class EventDispatcher:
    """Route tab events to the reconciler and track the focused tab."""

    def __init__(self, reconciler: SessionReconciler, tabs: BrowserTabs) -> None:
        self.reconciler = reconciler
        self.tabs = tabs
        self.active_tab_id: int | None = None

    async def initialise(self) -> None:
        """Start tracking whatever tab is active when the agent starts."""
        tab = await self.tabs.query_active_tab()
        if tab is None:
            return
        self.active_tab_id = tab.id
        if tab.url:
            await self.reconciler.register_visit(tab.id, tab.url)

    async def on_tab_activated(self, tab_id: int) -> None:
        if tab_id == self.active_tab_id:
            return

        previous = self.active_tab_id
        # Set before awaiting so a second activation sees the new tab.
        self.active_tab_id = tab_id

        if previous is not None:
            await self.reconciler.end_visit_for_tab(previous)

        tab = await self.tabs.get_tab(tab_id)
        if tab is not None and tab.url:
            await self.reconciler.register_visit(tab_id, tab.url)
        else:
            await self.reconciler.end_visit_for_tab(tab_id)

    async def on_tab_updated(self, tab_id: int, change: TabChange, tab: TabInfo) -> None:
        """Handle a URL change or a finished page load."""
        if change.url:
            await self._on_url_changed(tab_id, change.url, tab)
            return

        if change.status == "complete":
            # Backfill a visit a missed event may have left unopened.
            if tab_id == self.active_tab_id and tab.active and tab.url:
                await self.reconciler.register_visit(tab_id, tab.url)

    async def _on_url_changed(self, tab_id: int, url: str, tab: TabInfo) -> None:
        if not is_trackable(url):
            await self.reconciler.end_visit_for_tab(tab_id)
            return
        try:
            domain = domain_from_url(url)
        except MalformedUrlError as err:
            logger.warning("Untrackable URL in tab %s: %s", tab_id, err)
            await self.reconciler.end_visit_for_tab(tab_id)
            return

        session = self.reconciler.store.get(tab_id)
        current_domain = session.domain if session is not None else None

        if tab.active and current_domain != domain:
            await self.reconciler.end_visit_for_tab(tab_id)
            await self.reconciler.register_visit(tab_id, url)
        elif isinstance(session, ActiveSession) and current_domain == domain:
            await self.reconciler.update_content(tab_id, url)

    async def on_tab_removed(self, tab_id: int) -> None:
        if tab_id == self.active_tab_id:
            self.active_tab_id = None
        await self.reconciler.end_visit_for_tab(tab_id)

    async def on_window_focus_changed(self, window_id: int | None) -> None:
        if window_id is None or window_id == WINDOW_ID_NONE:
            # Focus left the browser; wait for the next focused window.
            return
        tab = await self.tabs.query_active_tab(window_id)
        if tab is not None and tab.id != self.active_tab_id:
            await self.on_tab_activated(tab.id)

    async def close_all(self) -> list[int]:
        """Close every open visit; returns the tabs that could not be closed."""
        self.active_tab_id = None
        failed = await self.reconciler.close_all()
        if failed:
            logger.warning("Visits still open for tabs %s", failed)
        return failed


class EventQueue:
    """Run submitted handlers one at a time, in submission order.

    Handlers from different event sources then never interleave, so each
    event sees the store exactly as the previous one left it.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="focusguard-event-queue")

    async def stop(self) -> None:
        """Stop the worker after the handlers already queued have run."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def submit(self, handler: Callable[[], Awaitable[T]]) -> T:
        """Queue a handler and wait for its result."""
        if not self.running:
            raise RuntimeError("Event queue is not running")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((handler, future))
        return await future

    async def _run(self) -> None:
        while True:
            handler, future = await self._queue.get()
            try:
                result = await handler()
            except Exception as err:
                logger.exception("Event handler failed")
                if not future.done():
                    future.set_exception(err)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()
