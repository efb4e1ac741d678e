"""
Per-actor conversation sessions, owned by the engine.

Each actor gets its own asyncio.Lock so that two updates from the same actor
are handled one after the other; different actors never wait on each other
here (they only meet on the store lock).
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from vpnpass.conversation.steps import Step
from vpnpass.utils.metrics import active_sessions

MAX_TRACKED_CHATS = 10_000


@dataclass
class Session:
    actor_id: int
    chat_id: int
    step: Step = Step.IDLE
    data: dict[str, Any] = field(default_factory=dict)


class SessionTable:
    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        # coroutines holding or waiting on each actor lock
        self._lock_users: dict[int, int] = {}
        # последнее сообщение с меню в каждом чате (его удаляют перед новым)
        self._last_message: OrderedDict[int, int] = OrderedDict()

    @asynccontextmanager
    async def locked(self, actor_id: int) -> AsyncIterator[None]:
        """Serialize updates of one actor. The lock is dropped once idle and unused."""
        lock = self._locks.get(actor_id)
        if lock is None:
            lock = self._locks[actor_id] = asyncio.Lock()
        self._lock_users[actor_id] = self._lock_users.get(actor_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[actor_id] -= 1
            if not self._lock_users[actor_id]:
                del self._lock_users[actor_id]
                if actor_id not in self._sessions:
                    self._locks.pop(actor_id, None)

    def tracked_locks(self) -> int:
        return len(self._locks)

    def get(self, actor_id: int) -> Session | None:
        return self._sessions.get(actor_id)

    def step_of(self, actor_id: int) -> Step:
        session = self._sessions.get(actor_id)
        return session.step if session else Step.IDLE

    def begin(self, actor_id: int, chat_id: int, step: Step, **data: Any) -> Session:
        """Start a flow, replacing whatever the actor had in progress."""
        session = Session(actor_id=actor_id, chat_id=chat_id, step=step, data=dict(data))
        self._sessions[actor_id] = session
        active_sessions.set(len(self._sessions))
        return session

    def advance(self, actor_id: int, step: Step, **data: Any) -> Session:
        session = self._sessions[actor_id]
        session.step = step
        session.data.update(data)
        return session

    def reset(self, actor_id: int) -> Session | None:
        session = self._sessions.pop(actor_id, None)
        active_sessions.set(len(self._sessions))
        return session

    def reset_if(self, actor_id: int, step: Step, **expected: Any) -> bool:
        """Reset only when the actor is still at `step` with matching data."""
        session = self._sessions.get(actor_id)
        if session is None or session.step != step:
            return False
        if any(session.data.get(k) != v for k, v in expected.items()):
            return False
        self.reset(actor_id)
        return True

    def remember_message(self, chat_id: int, message_id: int) -> int | None:
        """Store the chat's latest UI message id, returning the previous one."""
        previous = self._last_message.pop(chat_id, None)
        self._last_message[chat_id] = message_id
        while len(self._last_message) > MAX_TRACKED_CHATS:
            self._last_message.popitem(last=False)
        return previous
