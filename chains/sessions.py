from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Set

from chains.conversation import ConversationState
from common.exceptions import ConcurrentTurnError
from common.logger import get_logger

log = get_logger(__name__)


class SessionStore:
    """
    In-process conversation memory keyed by session id.

    Each session owns its state exclusively and runs one turn at a time; a
    turn commits its new state only when it completed. Locks live only while
    a turn is in flight or the session holds state, so ids that never commit
    leave nothing behind.
    """

    def __init__(self) -> None:
        self._states: Dict[str, ConversationState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # sessions ended while a turn was still running
        self._ended_in_turn: Set[str] = set()

    def new_session_id(self) -> str:
        return uuid.uuid4().hex

    def get(self, session_id: str) -> ConversationState:
        return self._states.get(session_id, ConversationState())

    def commit(self, session_id: str, state: ConversationState) -> None:
        if session_id in self._ended_in_turn:
            log.info("Session %s ended during its turn, dropping the result", session_id)
            return
        self._states[session_id] = state

    def end(self, session_id: str) -> None:
        self._states.pop(session_id, None)
        lock = self._locks.pop(session_id, None)
        if lock is not None and lock.locked():
            self._ended_in_turn.add(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._states

    def busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def turn(self, session_id: Optional[str] = None) -> AsyncIterator[str]:
        """
        Serialize turns within one session. A second turn started while one is
        in flight is rejected instead of queued.
        """
        session_id = session_id or self.new_session_id()
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        if lock.locked():
            raise ConcurrentTurnError(
                "Session already has a turn in progress", context={"session_id": session_id}
            )
        try:
            async with lock:
                yield session_id
        finally:
            self._ended_in_turn.discard(session_id)
            if session_id not in self._states and self._locks.get(session_id) is lock:
                del self._locks[session_id]
