"""
devcrew Session Store

Per-agent session lifecycle: lazy creation, state blobs, TTL expiry and
"awaiting confirmation" pinning.

A pinned session is exempt from expiry and cannot be completed through
``complete()``; only ``force_complete()`` or an explicit unpin releases it.
"""

import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from .types import AgentSession, Message, SessionState, SessionStats, SessionStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_SESSION_TTL = timedelta(minutes=10)


class SessionStore:
    """
    Session container owned by exactly one agent.

    Features:
    - Session id derived from message metadata or minted and stamped back
    - Per-session free-form state
    - TTL sweeping that never removes pinned sessions
    - Opportunistic sweeping before every count/list query
    """

    def __init__(
        self,
        agent_name: str,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.agent_name = agent_name
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, AgentSession] = {}
        self._states: Dict[str, SessionState] = {}
        self._awaiting_confirmation: Set[str] = set()
        self._lock = threading.RLock()
        self._logger = logger.bind(agent=agent_name)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    # ============================================
    # Lookup / creation
    # ============================================

    @staticmethod
    def session_id_for(message: Message) -> Optional[str]:
        """Session id carried by a message, if any."""
        return message.session_id

    def mint_session_id(self, sender: str) -> str:
        return f"{sender}_{self._clock():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:4]}"

    def get_or_create(self, message: Message) -> AgentSession:
        """
        Resolve the message's session, creating it on first sight.

        A message without ``SessionId`` metadata gets a freshly minted id
        written back into its own metadata so downstream hops share it.
        """
        with self._lock:
            session_id = message.session_id
            if session_id is None:
                session_id = self.mint_session_id(message.sender)
                message.metadata["SessionId"] = session_id

            now = self._clock()
            session = self._sessions.get(session_id)
            if session is None:
                session = AgentSession(
                    session_id=session_id,
                    user_id=message.sender,
                    created_time=now,
                    last_activity_time=now,
                    metadata={
                        "OriginalSender": message.sender,
                        "StartTime": now,
                        "AgentName": self.agent_name,
                    },
                )
                self._sessions[session_id] = session
                self._states[session_id] = SessionState()
                self._logger.info("Session started", session_id=session_id)
            else:
                session.last_activity_time = now
                if session_id in self._awaiting_confirmation:
                    self._logger.debug("Session awaiting user confirmation", session_id=session_id)
            return session

    def get(self, session_id: str) -> Optional[AgentSession]:
        return self._sessions.get(session_id)

    # ============================================
    # State
    # ============================================

    def state(self, session_id: str) -> SessionState:
        """Get the state blob of a session, creating an empty one if needed."""
        with self._lock:
            state = self._states.get(session_id)
            if state is None:
                state = SessionState()
                self._states[session_id] = state
            return state

    def update_state(self, session_id: str, updates: Dict[str, Any]) -> None:
        with self._lock:
            self.state(session_id).update(updates)

    # ============================================
    # Confirmation pinning
    # ============================================

    def mark_awaiting_confirmation(self, session_id: str) -> bool:
        """Pin a known session. Returns False for unknown ids."""
        with self._lock:
            if session_id not in self._sessions:
                return False
            self._awaiting_confirmation.add(session_id)
            self._logger.info("Session awaiting confirmation", session_id=session_id)
            return True

    def clear_awaiting_confirmation(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._awaiting_confirmation:
                self._awaiting_confirmation.discard(session_id)
                self._logger.debug("Session confirmation cleared", session_id=session_id)

    def is_awaiting_confirmation(self, session_id: str) -> bool:
        return session_id in self._awaiting_confirmation

    # ============================================
    # Completion
    # ============================================

    def complete(self, session_id: str, final_data: Optional[Dict[str, Any]] = None) -> bool:
        """
        Mark a session Completed.

        Refuses while the session is pinned.

        Returns:
            True if the session was completed
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if session_id in self._awaiting_confirmation:
                self._logger.info("Session awaiting confirmation, not completing", session_id=session_id)
                return False

            session.status = SessionStatus.COMPLETED
            session.completed_time = self._clock()
            if final_data:
                session.metadata.update(final_data)
            self._logger.info("Session completed", session_id=session_id)
            return True

    def force_complete(self, session_id: str) -> bool:
        """Complete a session regardless of its pin (error paths)."""
        with self._lock:
            self._awaiting_confirmation.discard(session_id)
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.status = SessionStatus.COMPLETED
            session.completed_time = self._clock()
            self._logger.warning("Session force-completed", session_id=session_id)
            return True

    # ============================================
    # Expiry
    # ============================================

    def sweep_expired(self, now: Optional[datetime] = None) -> List[str]:
        """
        Remove expired or completed sessions, except pinned ones.

        Returns:
            Ids of removed sessions
        """
        with self._lock:
            now = now or self._clock()
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if session_id not in self._awaiting_confirmation
                and (
                    now - session.last_activity_time > self.ttl
                    or session.status == SessionStatus.COMPLETED
                )
            ]
            for session_id in expired:
                del self._sessions[session_id]
                self._states.pop(session_id, None)
                self._logger.debug("Removed expired or completed session", session_id=session_id)
            return expired

    def has_active_sessions(self) -> bool:
        self.sweep_expired()
        return any(s.status == SessionStatus.ACTIVE for s in self._sessions.values())

    def active_session_ids(self, user_id: Optional[str] = None) -> List[str]:
        self.sweep_expired()
        return [
            session_id
            for session_id, session in self._sessions.items()
            if session.status == SessionStatus.ACTIVE
            and (user_id is None or session.user_id == user_id)
        ]

    def stats(self) -> SessionStats:
        self.sweep_expired()
        with self._lock:
            sessions = list(self._sessions.values())
            return SessionStats(
                total_sessions=len(sessions),
                active_sessions=sum(1 for s in sessions if s.status == SessionStatus.ACTIVE),
                completed_sessions=sum(1 for s in sessions if s.status == SessionStatus.COMPLETED),
                sessions_awaiting_confirmation=len(self._awaiting_confirmation),
                oldest_session_time=min((s.created_time for s in sessions), default=None),
                newest_session_time=max((s.last_activity_time for s in sessions), default=None),
            )

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._states.clear()
            self._awaiting_confirmation.clear()
