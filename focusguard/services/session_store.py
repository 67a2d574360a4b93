"""In-memory store of open tab sessions."""

from collections.abc import Iterator

from focusguard.models.sessions import ActiveSession, PendingSession, SessionSnapshot

Session = PendingSession | ActiveSession


class SessionStore:
    """Single source of truth for what is open in each tab.

    Only touched from the event loop thread, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}

    def get(self, tab_id: int) -> Session | None:
        return self._sessions.get(tab_id)

    def set(self, tab_id: int, session: Session) -> None:
        self._sessions[tab_id] = session

    def delete(self, tab_id: int) -> None:
        self._sessions.pop(tab_id, None)

    def delete_if(self, tab_id: int, session: Session) -> bool:
        """Delete the tab's session only if it is still ``session``.

        Returns:
            True if the entry was removed.
        """
        if self._sessions.get(tab_id) is session:
            del self._sessions[tab_id]
            return True
        return False

    def holds(self, tab_id: int, session: Session) -> bool:
        """Whether ``session`` is still the stored session of the tab."""
        return self._sessions.get(tab_id) is session

    def tab_ids(self) -> list[int]:
        return sorted(self._sessions)

    def snapshot(self) -> list[SessionSnapshot]:
        """Copy of every session, ordered by tab id."""
        return [
            SessionSnapshot(tab_id=tab_id, session=self._sessions[tab_id].model_copy(deep=True))
            for tab_id in self.tab_ids()
        ]

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[int]:
        return iter(self.tab_ids())
