"""Last known state of the browser's tabs.

The extension reports tab snapshots with every lifecycle event. The registry
keeps them so the dispatcher can look tabs up the way it would query the
browser directly.
"""

from focusguard.models.events import WINDOW_ID_NONE, MetadataPush, TabInfo
from focusguard.models.sessions import PageMetadata


class TabRegistry:
    """Event-fed view of open tabs, their windows and pushed page metadata."""

    def __init__(self) -> None:
        self._tabs: dict[int, TabInfo] = {}
        self._metadata: dict[int, MetadataPush] = {}
        self.focused_window_id: int | None = None

    def update(self, tab: TabInfo) -> None:
        """Record a tab snapshot; an active tab deactivates its window siblings."""
        previous = self._tabs.get(tab.id)
        if tab.url is None and previous is not None:
            tab = tab.model_copy(update={"url": previous.url})
        if tab.active:
            for other_id, other in self._tabs.items():
                if other_id != tab.id and other.window_id == tab.window_id and other.active:
                    self._tabs[other_id] = other.model_copy(update={"active": False})
        self._tabs[tab.id] = tab

    def remove(self, tab_id: int) -> None:
        self._tabs.pop(tab_id, None)
        self._metadata.pop(tab_id, None)

    def set_focused_window(self, window_id: int | None) -> None:
        if window_id is None or window_id == WINDOW_ID_NONE:
            self.focused_window_id = None
        else:
            self.focused_window_id = window_id

    async def get_tab(self, tab_id: int) -> TabInfo | None:
        return self._tabs.get(tab_id)

    async def query_active_tab(self, window_id: int | None = None) -> TabInfo | None:
        """Return the active tab of a window (default: the focused window)."""
        target = window_id if window_id is not None else self.focused_window_id
        for tab in self._tabs.values():
            if tab.active and (target is None or tab.window_id == target):
                return tab
        return None

    def push_metadata(self, tab_id: int, push: MetadataPush) -> None:
        self._metadata[tab_id] = push

    def pushed_metadata(self, tab_id: int, url: str | None) -> PageMetadata | None:
        """Metadata pushed for the tab, only if it belongs to ``url``."""
        push = self._metadata.get(tab_id)
        if push is None or url is None or push.url != url:
            return None
        return PageMetadata(title=push.title, description=push.description)
