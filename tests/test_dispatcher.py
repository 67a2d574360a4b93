"""Tests for EventDispatcher and EventQueue."""

import asyncio

import pytest

from focusguard.models.events import WINDOW_ID_NONE, TabChange, TabInfo
from focusguard.services.dispatcher import EventDispatcher, EventQueue
from focusguard.services.reconciler import SessionReconciler
from tests.fakes import FakeRegistrar, FakeTabs


@pytest.fixture
def dispatcher(reconciler: SessionReconciler, tabs: FakeTabs) -> EventDispatcher:
    """Create a dispatcher over the fake browser."""
    return EventDispatcher(reconciler, tabs)


class TestTabActivated:
    """Tests for on_tab_activated."""

    def test_opens_visit_for_new_active_tab(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test that activating a tab with a URL opens its visit."""
        tabs.add(1, "https://example.com", active=True)
        asyncio.run(dispatcher.on_tab_activated(1))

        assert dispatcher.active_tab_id == 1
        assert dispatcher.reconciler.store.get(1).domain == "example.com"

    def test_switching_tabs_closes_previous_visit(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test that only the active tab keeps an open visit."""
        tabs.add(1, "https://a.com")
        tabs.add(2, "https://b.com")

        async def scenario() -> int:
            await dispatcher.on_tab_activated(1)
            first = dispatcher.reconciler.store.get(1).visit_id
            await dispatcher.on_tab_activated(2)
            return first

        first_visit = asyncio.run(scenario())

        assert registrar.called("end_visit") == [(first_visit,)]
        assert dispatcher.reconciler.store.tab_ids() == [2]

    def test_reactivating_same_tab_is_ignored(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test that repeated activations of the tracked tab do nothing."""
        tabs.add(1, "https://example.com")

        async def scenario() -> None:
            await dispatcher.on_tab_activated(1)
            await dispatcher.on_tab_activated(1)

        asyncio.run(scenario())

        assert len(registrar.calls) == 3

    def test_racing_activations_handled_once(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test that the tracked tab is updated before the close is awaited."""
        tabs.add(1, "https://a.com")
        tabs.add(2, "https://b.com")

        async def scenario() -> None:
            await dispatcher.on_tab_activated(1)
            await asyncio.gather(
                dispatcher.on_tab_activated(2),
                dispatcher.on_tab_activated(2),
            )

        asyncio.run(scenario())

        assert len(registrar.called("end_visit")) == 1
        assert len(registrar.called("start_visit")) == 2

    def test_tab_without_url_is_closed(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test activating a blank tab."""
        tabs.add(3, None)
        asyncio.run(dispatcher.on_tab_activated(3))

        assert dispatcher.active_tab_id == 3
        assert 3 not in dispatcher.reconciler.store
        assert registrar.calls == []


class TestTabUpdated:
    """Tests for on_tab_updated."""

    def test_domain_change_on_active_tab(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test close-then-open when the active tab changes domain."""
        tab = TabInfo(id=1, url="https://b.com", active=True)

        async def scenario() -> None:
            await dispatcher.reconciler.register_visit(1, "https://a.com")
            await dispatcher.on_tab_updated(1, TabChange(url="https://b.com"), tab)

        asyncio.run(scenario())

        names = registrar.names()
        assert names.index("end_visit") < names.index("start_visit", names.index("end_visit"))
        assert dispatcher.reconciler.store.get(1).domain == "b.com"

    def test_same_domain_updates_content_only(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test that in-domain navigation does not touch the website visit."""
        tab = TabInfo(id=1, url="https://a.com/two", active=True)

        async def scenario() -> None:
            await dispatcher.reconciler.register_visit(1, "https://a.com/one")
            await dispatcher.on_tab_updated(1, TabChange(url="https://a.com/two"), tab)

        asyncio.run(scenario())

        assert len(registrar.called("start_visit")) == 1
        assert registrar.called("end_visit") == []
        assert dispatcher.reconciler.store.get(1).url == "https://a.com/two"

    def test_untrackable_url_closes(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test navigating to a browser page."""
        tab = TabInfo(id=1, url="chrome://settings", active=True)

        async def scenario() -> None:
            await dispatcher.reconciler.register_visit(1, "https://a.com")
            await dispatcher.on_tab_updated(1, TabChange(url="chrome://settings"), tab)

        asyncio.run(scenario())

        assert 1 not in dispatcher.reconciler.store
        assert len(registrar.called("end_visit")) == 1

    def test_background_tab_navigation_opens_nothing(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test that inactive tabs do not open visits on navigation."""
        tab = TabInfo(id=4, url="https://b.com", active=False)
        asyncio.run(dispatcher.on_tab_updated(4, TabChange(url="https://b.com"), tab))

        assert registrar.calls == []
        assert 4 not in dispatcher.reconciler.store

    def test_load_complete_backfills_active_tab(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test that a finished load opens a missed visit, idempotently."""
        dispatcher.active_tab_id = 1
        tab = TabInfo(id=1, url="https://a.com", active=True, status="complete")

        async def scenario() -> None:
            await dispatcher.on_tab_updated(1, TabChange(status="complete"), tab)
            await dispatcher.on_tab_updated(1, TabChange(status="complete"), tab)

        asyncio.run(scenario())

        assert len(registrar.called("start_visit")) == 1

    def test_load_complete_on_untracked_tab_is_ignored(
        self, dispatcher: EventDispatcher, registrar: FakeRegistrar
    ) -> None:
        """Test that only the tracked active tab is backfilled."""
        dispatcher.active_tab_id = 2
        tab = TabInfo(id=1, url="https://a.com", active=True, status="complete")
        asyncio.run(dispatcher.on_tab_updated(1, TabChange(status="complete"), tab))

        assert registrar.calls == []


class TestRemovalAndFocus:
    """Tests for tab removal, window focus and start-up."""

    def test_tab_removed_closes_and_clears_active(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test closing the active tab."""
        tabs.add(1, "https://a.com")

        async def scenario() -> None:
            await dispatcher.on_tab_activated(1)
            await dispatcher.on_tab_removed(1)

        asyncio.run(scenario())

        assert dispatcher.active_tab_id is None
        assert len(dispatcher.reconciler.store) == 0
        assert registrar.open_visits == set()

    def test_removed_tab_retries_failed_close(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test that a failed close is retried with the same visit id on removal."""
        tabs.add(1, "https://a.com")
        tabs.add(2, "https://b.com")

        async def scenario() -> int:
            await dispatcher.on_tab_activated(1)
            visit_id = dispatcher.reconciler.store.get(1).visit_id
            registrar.fail.add("end_visit")
            await dispatcher.on_tab_activated(2)
            registrar.fail.clear()
            await dispatcher.on_tab_removed(1)
            return visit_id

        visit_id = asyncio.run(scenario())

        assert registrar.called("end_visit") == [(visit_id,), (visit_id,)]
        assert dispatcher.reconciler.store.tab_ids() == [2]

    @pytest.mark.parametrize("window_id", [None, WINDOW_ID_NONE])
    def test_focus_leaving_browser_is_ignored(
        self,
        dispatcher: EventDispatcher,
        tabs: FakeTabs,
        registrar: FakeRegistrar,
        window_id: int | None,
    ) -> None:
        """Test that losing window focus keeps the current visit."""
        tabs.add(1, "https://a.com", active=True)

        async def scenario() -> None:
            await dispatcher.on_tab_activated(1)
            await dispatcher.on_window_focus_changed(window_id)

        asyncio.run(scenario())

        assert dispatcher.active_tab_id == 1
        assert registrar.called("end_visit") == []

    def test_focus_change_activates_window_tab(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test moving focus to a window whose active tab differs."""
        tabs.add(1, "https://a.com", window_id=1, active=True)
        tabs.add(5, "https://b.com", window_id=2, active=True)

        async def scenario() -> None:
            await dispatcher.on_tab_activated(1)
            await dispatcher.on_window_focus_changed(2)

        asyncio.run(scenario())

        assert dispatcher.active_tab_id == 5
        assert dispatcher.reconciler.store.tab_ids() == [5]

    def test_initialise_tracks_active_tab(
        self, dispatcher: EventDispatcher, tabs: FakeTabs
    ) -> None:
        """Test start-up tracking of the already active tab."""
        tabs.add(7, "https://a.com", active=True)
        asyncio.run(dispatcher.initialise())

        assert dispatcher.active_tab_id == 7
        assert 7 in dispatcher.reconciler.store

    def test_close_all(
        self, dispatcher: EventDispatcher, tabs: FakeTabs, registrar: FakeRegistrar
    ) -> None:
        """Test shutdown closes the open visit."""
        tabs.add(1, "https://a.com")

        async def scenario() -> list[int]:
            await dispatcher.on_tab_activated(1)
            return await dispatcher.close_all()

        assert asyncio.run(scenario()) == []
        assert dispatcher.active_tab_id is None
        assert registrar.open_visits == set()


class TestEventQueue:
    """Tests for the serial event queue."""

    def test_handlers_run_one_at_a_time(self) -> None:
        """Test that queued handlers never interleave."""
        order: list[str] = []

        async def handler(name: str) -> str:
            order.append(f"{name}-start")
            await asyncio.sleep(0)
            order.append(f"{name}-end")
            return name

        async def scenario() -> list[str]:
            queue = EventQueue()
            queue.start()
            results = await asyncio.gather(
                queue.submit(lambda: handler("a")),
                queue.submit(lambda: handler("b")),
            )
            await queue.stop()
            return results

        assert asyncio.run(scenario()) == ["a", "b"]
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    def test_handler_error_reaches_submitter(self) -> None:
        """Test that a failing handler does not stop the worker."""

        async def broken() -> None:
            raise RuntimeError("boom")

        async def fine() -> str:
            return "ok"

        async def scenario() -> str:
            queue = EventQueue()
            queue.start()
            with pytest.raises(RuntimeError, match="boom"):
                await queue.submit(broken)
            result = await queue.submit(fine)
            await queue.stop()
            return result

        assert asyncio.run(scenario()) == "ok"

    def test_submit_requires_running_worker(self) -> None:
        """Test submitting to a stopped queue."""

        async def noop() -> None:
            return None

        async def scenario() -> None:
            await EventQueue().submit(noop)

        with pytest.raises(RuntimeError, match="not running"):
            asyncio.run(scenario())
