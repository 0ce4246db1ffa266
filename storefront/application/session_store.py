"""In-memory session store.

Sessions live for the lifetime of the process. There is no eviction: a
long-running deployment accumulates one Session per distinct session id.
"""

import threading
from uuid import uuid4

import structlog

from storefront.domain.session import Session

logger = structlog.get_logger()


def new_session_id() -> str:
    """Mint a fresh opaque session id."""
    return str(uuid4())


class SessionStore:
    """Maps session ids to Session objects.

    Lookup and insertion happen under one lock with no await in between,
    so two first requests for the same new id always share one Session.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session | None:
        """Return the session for an id, or None if unknown."""
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> tuple[Session, bool]:
        """Return the session for an id, creating it if needed.

        Args:
            session_id: Session id carried by the request.

        Returns:
            Tuple of the session and whether it was created by this call.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                return session, False
            session = Session(session_id=session_id)
            self._sessions[session_id] = session

        logger.info("Session created", session_id=session_id, total=len(self))
        return session, True

    def clear(self) -> None:
        """Drop every session."""
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
