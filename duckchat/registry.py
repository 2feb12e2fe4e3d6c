"""
Process-wide map from caller session ids to live chat sessions.

The registry lock only guards dictionary operations. Creating a session
needs a token from upstream, so it runs outside the lock; when two callers
race on the same new id, the first insert wins and the other session is
closed again.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable

from .exceptions import SessionNotFound
from .logging_config import logger
from .models import Model
from .session import ChatSession

SessionFactory = Callable[[Model], Awaitable[ChatSession]]


def generate_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


class SessionRegistry:
    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        default_model: Model = Model.GPT4_MINI,
    ) -> None:
        self._sessions: dict[str, ChatSession] = {}
        self._lock = asyncio.Lock()
        self._session_factory = session_factory or ChatSession.create
        self._default_model = default_model

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, session_id: str) -> ChatSession | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_or_create(
        self, session_id: str | None, model: Model | None = None
    ) -> tuple[str, ChatSession]:
        """
        Return the session registered under `session_id`, creating it when
        missing. An explicit `model` switches an existing session over.
        Without an id a fresh one is generated.
        """
        session_id = session_id or generate_session_id()
        async with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                if model is not None and existing.model != model:
                    logger.info(
                        "session %s switches model %s -> %s",
                        session_id,
                        existing.model.value,
                        model.value,
                    )
                    existing.model = model
                return session_id, existing

        created = await self._session_factory(model or self._default_model)

        async with self._lock:
            winner = self._sessions.setdefault(session_id, created)
        if winner is not created:
            await created.aclose()
        else:
            logger.info("registered session %s (%d live)", session_id, len(self._sessions))
        return session_id, winner

    async def find_id(self, session: ChatSession) -> str | None:
        async with self._lock:
            for session_id, candidate in self._sessions.items():
                if candidate is session:
                    return session_id
        return None

    async def clear(self, session_id: str) -> ChatSession:
        session = await self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        await session.clear()
        return session

    async def aclose(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.aclose()


__all__ = ["SessionFactory", "SessionRegistry", "generate_session_id"]
