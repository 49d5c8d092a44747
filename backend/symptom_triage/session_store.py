"""In-memory session store for active chat conversations"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from symptom_triage.conversation import Conversation

logger = logging.getLogger(__name__)


class SessionStore:
    """Async-safe in-memory store for conversations; nothing outlives the process"""

    def __init__(self, ttl_hours: float = 24, max_context_turns: Optional[int] = None):
        self._sessions: dict[str, Conversation] = {}
        self._ttl = timedelta(hours=ttl_hours)
        self._max_context_turns = max_context_turns
        self._lock = asyncio.Lock()

    async def create_session(self) -> Conversation:
        """Start a new conversation"""
        conversation = Conversation(max_context_turns=self._max_context_turns)

        async with self._lock:
            self._sessions[conversation.session_id] = conversation
            logger.info("Created session %s", conversation.session_id)

        return conversation

    async def get_session(self, session_id: str) -> Optional[Conversation]:
        """Retrieve an active conversation by ID"""
        async with self._lock:
            conversation = self._sessions.get(session_id)
            if conversation and self._is_expired(conversation):
                del self._sessions[session_id]
                logger.info("Session %s expired and removed", session_id)
                return None
            return conversation

    async def delete_session(self, session_id: str) -> bool:
        """Discard a conversation (the user started over)"""
        async with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                logger.info("Session %s deleted", session_id)
                return True
            return False

    async def cleanup_expired_sessions(self) -> int:
        """Remove expired sessions and return count"""
        async with self._lock:
            expired_ids = [
                sid for sid, conversation in self._sessions.items()
                if self._is_expired(conversation)
            ]
            for sid in expired_ids:
                del self._sessions[sid]

            if expired_ids:
                logger.info("Cleaned up %d expired sessions", len(expired_ids))
            return len(expired_ids)

    def _is_expired(self, conversation: Conversation) -> bool:
        return datetime.now(timezone.utc) - conversation.last_activity > self._ttl

    async def get_active_session_count(self) -> int:
        async with self._lock:
            return len(
                [c for c in self._sessions.values() if not self._is_expired(c)]
            )

    async def run_periodic_cleanup(self, interval_seconds: float) -> None:
        """Drop expired sessions every ``interval_seconds`` until cancelled"""
        while True:
            await asyncio.sleep(interval_seconds)
            await self.cleanup_expired_sessions()
