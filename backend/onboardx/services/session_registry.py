"""
Session Registry — In-memory home of the live onboarding chats.

Nothing is persisted: closing a chat destroys its state. Chats idle for
longer than SESSION_EXPIRY_MINUTES are closed the next time the registry
is used, so abandoned browser tabs do not pin their images in memory.
"""
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from onboardx.config import get_settings
from onboardx.exceptions import SessionNotFound
from onboardx.services.ai_gateway import CompletionClient, get_completion_client
from onboardx.services.onboarding_service import OnboardingSession
from onboardx.utils.logger import log_event


class SessionRegistry:
    def __init__(
        self,
        session_factory: Optional[Callable[[str], OnboardingSession]] = None,
        idle_timeout: Optional[timedelta] = None,
    ):
        self._sessions: Dict[str, OnboardingSession] = {}
        self._factory = session_factory or self._default_factory
        self.idle_timeout = idle_timeout or timedelta(minutes=get_settings().SESSION_EXPIRY_MINUTES)

    @staticmethod
    def _default_factory(session_id: str) -> OnboardingSession:
        client: CompletionClient = get_completion_client()
        return OnboardingSession(session_id, client)

    def __len__(self) -> int:
        return len(self._sessions)

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """Close and drop chats idle past the timeout. Busy chats are kept."""
        cutoff = (now or datetime.utcnow()) - self.idle_timeout
        expired = [
            session_id for session_id, session in self._sessions.items()
            if not session.busy and session.last_activity < cutoff
        ]
        for session_id in expired:
            self._sessions.pop(session_id).close()
        if expired:
            log_event("sessions", f"Evicted {len(expired)} idle session(s) ({len(self._sessions)} live)")
        return len(expired)

    def create(self) -> OnboardingSession:
        self.evict_idle()
        session_id = str(uuid.uuid4())
        session = self._factory(session_id)
        self._sessions[session_id] = session
        log_event("sessions", f"Session {session_id} opened ({len(self._sessions)} live)")
        return session

    def get(self, session_id: Optional[str]) -> OnboardingSession:
        self.evict_idle()
        session = self._sessions.get(session_id or "")
        if session is None or not session.active:
            raise SessionNotFound(session_id)
        session.last_activity = datetime.utcnow()
        return session

    def close(self, session_id: Optional[str]) -> None:
        session = self._sessions.pop(session_id or "", None)
        if session is None:
            raise SessionNotFound(session_id)
        session.close()
