"""FastAPI routes for the tracking agent API."""

import os
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from focusguard.models.events import (
    MetadataPush,
    TabActivatedEvent,
    TabRemovedEvent,
    TabUpdatedEvent,
    WindowFocusChangedEvent,
)
from focusguard.models.sessions import Classification, SessionSnapshot, TabState
from focusguard.services.categories import category_name, classify_domain
from focusguard.services.dispatcher import EventDispatcher, EventQueue
from focusguard.services.reconciler import SessionReconciler
from focusguard.services.tab_registry import TabRegistry
from focusguard.utils import MalformedUrlError, domain_from_url, is_trackable

router = APIRouter()

# Content scripts push metadata on every in-page navigation of SPA sites.
_metadata_rate_limit = os.environ.get("FOCUSGUARD_METADATA_RATE_LIMIT", "120/minute")
limiter = Limiter(key_func=get_remote_address)


def get_dispatcher(request: Request) -> EventDispatcher:
    """Dependency for the event dispatcher created in the app lifespan."""
    return request.app.state.dispatcher


def get_event_queue(request: Request) -> EventQueue:
    """Dependency for the serial event queue."""
    return request.app.state.event_queue


def get_tab_registry(request: Request) -> TabRegistry:
    """Dependency for the event-fed tab registry."""
    return request.app.state.tab_registry


def get_reconciler(request: Request) -> SessionReconciler:
    """Dependency for the session reconciler."""
    return request.app.state.reconciler


def _tab_state(dispatcher: EventDispatcher, tab_id: int) -> TabState:
    session = dispatcher.reconciler.store.get(tab_id)
    return TabState(
        tab_id=tab_id,
        active_tab_id=dispatcher.active_tab_id,
        session=session.model_copy(deep=True) if session is not None else None,
    )


# Health check endpoint
@router.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint for API availability."""
    return {"status": "healthy", "api": "ready"}


# Browser lifecycle events
@router.post("/events/tab-activated", response_model=TabState)
async def tab_activated(
    event: TabActivatedEvent,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
    queue: Annotated[EventQueue, Depends(get_event_queue)],
    registry: Annotated[TabRegistry, Depends(get_tab_registry)],
) -> TabState:
    """A tab became the active tab of its window."""
    registry.update(event.tab.model_copy(update={"active": True}))
    await queue.submit(lambda: dispatcher.on_tab_activated(event.tab.id))
    return _tab_state(dispatcher, event.tab.id)


@router.post("/events/tab-updated", response_model=TabState)
async def tab_updated(
    event: TabUpdatedEvent,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
    queue: Annotated[EventQueue, Depends(get_event_queue)],
    registry: Annotated[TabRegistry, Depends(get_tab_registry)],
) -> TabState:
    """A tab navigated or finished loading."""
    if event.tab.id != event.tab_id:
        raise HTTPException(status_code=400, detail="tab_id does not match tab.id")
    registry.update(event.tab)
    await queue.submit(lambda: dispatcher.on_tab_updated(event.tab_id, event.change, event.tab))
    return _tab_state(dispatcher, event.tab_id)


@router.post("/events/tab-removed", response_model=TabState)
async def tab_removed(
    event: TabRemovedEvent,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
    queue: Annotated[EventQueue, Depends(get_event_queue)],
    registry: Annotated[TabRegistry, Depends(get_tab_registry)],
) -> TabState:
    """A tab was closed.

    The returned session is non-null when the close failed remotely and the
    visit is kept for a retry.
    """
    registry.remove(event.tab_id)
    await queue.submit(lambda: dispatcher.on_tab_removed(event.tab_id))
    return _tab_state(dispatcher, event.tab_id)


@router.post("/events/window-focus-changed", response_model=TabState | None)
async def window_focus_changed(
    event: WindowFocusChangedEvent,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
    queue: Annotated[EventQueue, Depends(get_event_queue)],
    registry: Annotated[TabRegistry, Depends(get_tab_registry)],
) -> TabState | None:
    """Focus moved to another window, or left the browser."""
    registry.set_focused_window(event.window_id)
    if event.active_tab is not None:
        registry.update(event.active_tab.model_copy(update={"active": True}))
    await queue.submit(lambda: dispatcher.on_window_focus_changed(event.window_id))
    if dispatcher.active_tab_id is None:
        return None
    return _tab_state(dispatcher, dispatcher.active_tab_id)


@router.post("/tabs/{tab_id}/metadata", response_model=TabState)
@limiter.limit(_metadata_rate_limit)
async def push_metadata(
    request: Request,
    tab_id: int,
    push: MetadataPush,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
    queue: Annotated[EventQueue, Depends(get_event_queue)],
    registry: Annotated[TabRegistry, Depends(get_tab_registry)],
) -> TabState:
    """Store page metadata scraped in the tab and retry a waiting content visit.

    Rate limited to protect against chatty content scripts (default: 120/minute).
    """
    registry.push_metadata(tab_id, push)
    await queue.submit(lambda: dispatcher.reconciler.retry_content(tab_id))
    return _tab_state(dispatcher, tab_id)


# Session views
@router.get("/sessions", response_model=list[SessionSnapshot])
def list_sessions(
    reconciler: Annotated[SessionReconciler, Depends(get_reconciler)],
) -> list[SessionSnapshot]:
    """List the open session of every tab, ordered by tab id."""
    return reconciler.store.snapshot()


@router.get("/sessions/{tab_id}", response_model=SessionSnapshot)
def get_session(
    tab_id: int,
    reconciler: Annotated[SessionReconciler, Depends(get_reconciler)],
) -> SessionSnapshot:
    """Get the open session of one tab."""
    session = reconciler.store.get(tab_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No session for this tab")
    return SessionSnapshot(tab_id=tab_id, session=session.model_copy(deep=True))


@router.get("/classify", response_model=Classification)
def classify(
    url: Annotated[str, Query(min_length=1, description="URL of the page to classify")],
    reconciler: Annotated[SessionReconciler, Depends(get_reconciler)],
) -> Classification:
    """Suggest a category for the website of a URL."""
    if not is_trackable(url):
        raise HTTPException(status_code=400, detail="URL is not an http(s) page")
    try:
        domain = domain_from_url(url)
    except MalformedUrlError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    category_id = classify_domain(domain, reconciler.default_category_id)
    return Classification(
        domain=domain, category_id=category_id, category=category_name(category_id)
    )
