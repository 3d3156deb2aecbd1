from typing import Dict

from property_agent.models.session import CallInfo, Requirements, Session
from property_agent.services.session_store import (
    CALL_HISTORY_LIMIT,
    CHAT_HISTORY_LIMIT,
    InMemorySessionStore,
    RedisSessionStore,
    append_turn,
)


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self.redis = redis
        self.queued = []

    def get(self, key):
        return self.redis.data.get(key)

    def multi(self):
        self.queued = []

    def setex(self, key, ttl, value):
        self.queued.append((key, ttl, value))


class FakeRedis:
    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.watched = []

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)

    def transaction(self, func, *watches, value_from_callable=False):
        self.watched.extend(watches)
        pipe = FakePipeline(self)
        result = func(pipe)
        for key, ttl, value in pipe.queued:
            self.setex(key, ttl, value)
        return result if value_from_callable else []


def test_unknown_session_gets_defaults_without_write():
    store = InMemorySessionStore()
    session = store.get("new")
    assert session.current_state == "introduction"
    assert session.requirements == Requirements()
    assert len(store) == 0


def test_history_is_fifo_bounded():
    session = Session()
    for index in range(CHAT_HISTORY_LIMIT + 5):
        session = append_turn(session, "user", f"message {index}")
    assert len(session.conversation_history) == CHAT_HISTORY_LIMIT
    assert session.conversation_history[0].content == "message 5"


def test_voice_call_sessions_keep_longer_history():
    session = Session(call_info=CallInfo(call_sid="CA1"))
    for index in range(CALL_HISTORY_LIMIT + 1):
        session = append_turn(session, "assistant", f"line {index}")
    assert len(session.conversation_history) == CALL_HISTORY_LIMIT


def test_in_memory_get_returns_a_copy():
    store = InMemorySessionStore()
    store.set("abc", append_turn(Session(), "user", "hello"))
    copy = store.get("abc")
    copy.conversation_history.clear()
    assert len(store.get("abc").conversation_history) == 1
    assert store.get("abc").updated_at is not None


def test_redis_round_trip_uses_prefix_and_ttl():
    redis = FakeRedis()
    store = RedisSessionStore(redis, ttl_seconds=120)
    requirements = Requirements(property_type="buy", city="Pune", bhk="2BHK", waiting_for_confirmation=True)
    store.set("abc", Session(requirements=requirements))

    assert redis.ttls["session:abc"] == 120
    assert '"waitingForConfirmation":true' in redis.data["session:abc"]
    assert store.get("abc").requirements == requirements

    store.delete("abc")
    assert store.get("abc").requirements == Requirements()


def test_redis_update_watches_key():
    redis = FakeRedis()
    store = RedisSessionStore(redis)
    updated = store.update("abc", lambda session: session.model_copy(update={"current_state": "call_ended"}))
    assert updated.current_state == "call_ended"
    assert redis.watched == ["session:abc"]
    assert store.get("abc").current_state == "call_ended"
