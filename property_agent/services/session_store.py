"""Session persistence.

Every store exposes the same get/set/delete/update contract. ``get`` on an
unknown id returns a fresh default session without writing it; ``update``
is an atomic read-modify-write for a single key.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import redis

from property_agent.models.session import ConversationTurn, Role, Session, utcnow

logger = logging.getLogger(__name__)

CHAT_HISTORY_LIMIT = 10
CALL_HISTORY_LIMIT = 50
DEFAULT_TTL_SECONDS = 24 * 60 * 60

SessionMutator = Callable[[Session], Session]


def history_limit(session: Session) -> int:
    return CALL_HISTORY_LIMIT if session.call_info else CHAT_HISTORY_LIMIT


def append_turn(session: Session, role: Role, content: str, limit: Optional[int] = None) -> Session:
    """Return a copy of ``session`` with one more turn, oldest turns dropped past the limit."""
    bound = limit or history_limit(session)
    history = [*session.conversation_history, ConversationTurn(role=role, content=content)]
    return session.model_copy(update={"conversation_history": history[-bound:]})


class SessionStore(ABC):
    @abstractmethod
    def get(self, session_id: str) -> Session: ...

    @abstractmethod
    def set(self, session_id: str, session: Session) -> None: ...

    @abstractmethod
    def delete(self, session_id: str) -> None: ...

    @abstractmethod
    def update(self, session_id: str, mutate: SessionMutator) -> Session: ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else Session()

    def set(self, session_id: str, session: Session) -> None:
        stamped = session.model_copy(update={"updated_at": utcnow()})
        with self._lock:
            self._sessions[session_id] = stamped

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def update(self, session_id: str, mutate: SessionMutator) -> Session:
        with self._lock:
            current = self._sessions.get(session_id) or Session()
            updated = mutate(current.model_copy(deep=True)).model_copy(update={"updated_at": utcnow()})
            self._sessions[session_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """Sessions serialized as JSON under ``<prefix>:<id>`` with a sliding TTL."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "session",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisSessionStore":
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5)
        return cls(client, **kwargs)

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    @staticmethod
    def _decode(raw: Optional[str]) -> Session:
        if not raw:
            return Session()
        return Session.model_validate_json(raw)

    def get(self, session_id: str) -> Session:
        return self._decode(self.client.get(self._key(session_id)))

    def set(self, session_id: str, session: Session) -> None:
        stamped = session.model_copy(update={"updated_at": utcnow()})
        self.client.setex(self._key(session_id), self.ttl_seconds, stamped.model_dump_json(by_alias=True))

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))

    def update(self, session_id: str, mutate: SessionMutator) -> Session:
        key = self._key(session_id)

        def _apply(pipe) -> Session:
            current = self._decode(pipe.get(key))
            updated = mutate(current).model_copy(update={"updated_at": utcnow()})
            pipe.multi()
            pipe.setex(key, self.ttl_seconds, updated.model_dump_json(by_alias=True))
            return updated

        return self.client.transaction(_apply, key, value_from_callable=True)


def build_session_store() -> SessionStore:
    url = os.getenv("REDIS_URL")
    if not url:
        logger.info("session_store.backend memory")
        return InMemorySessionStore()
    ttl = int(os.getenv("SESSION_TTL_SECONDS", str(DEFAULT_TTL_SECONDS)))
    logger.info("session_store.backend redis ttl=%s", ttl)
    return RedisSessionStore.from_url(url, ttl_seconds=ttl)
