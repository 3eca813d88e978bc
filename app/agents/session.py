"""
Conversation sessions.

Each chat conversation gets its own ChatSession holding the user/assistant
message history. Sessions are kept in memory and expire after a period of
inactivity. Duplicate-call caches are per turn and are not kept here.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


@dataclass
class ChatSession:
    session_id: str
    messages: List[Dict[str, str]] = field(default_factory=list)
    last_active: float = field(default_factory=time.monotonic)


class SessionStore:
    """
    In-memory session registry.

    Args:
        ttl_seconds: Idle time after which a session is dropped
        max_sessions: Upper bound; the least recently active session is
            dropped to make room
        clock: Monotonic time source (swapped in tests)
    """

    def __init__(
        self,
        ttl_seconds: float = 1800,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: Dict[str, ChatSession] = {}

    def get_or_create(self, session_id: Optional[str] = None) -> ChatSession:
        self.prune_expired()

        session = self._sessions.get(session_id) if session_id else None
        if session is None:
            if len(self._sessions) >= self.max_sessions:
                self._drop_least_recent()
            session = ChatSession(
                session_id=session_id or str(uuid4()),
                last_active=self._clock(),
            )
            self._sessions[session.session_id] = session
            logger.info("Created session %s", session.session_id)

        session.last_active = self._clock()
        return session

    def get(self, session_id: str) -> Optional[ChatSession]:
        self.prune_expired()
        return self._sessions.get(session_id)

    def prune_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if now - s.last_active > self.ttl_seconds]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Expired %d idle sessions", len(expired))
        return len(expired)

    def _drop_least_recent(self) -> None:
        oldest = min(self._sessions.values(), key=lambda s: s.last_active)
        del self._sessions[oldest.session_id]
        logger.info("Session limit reached, dropped %s", oldest.session_id)

    def __len__(self) -> int:
        return len(self._sessions)
