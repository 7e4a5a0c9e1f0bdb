import json

from redis import RedisError

from livechat.model.session.session import ChatSession, SessionStatus
from livechat.service.context.session_store import FileStorage, RedisStorage, SessionStore


def _session(status="active", last_message_id=4):
    return ChatSession(session_id="abc", status=status, last_message_id=last_message_id)


def test_save_then_load_returns_record(session_store, memory_storage, clock):
    session_store.save(_session())

    stored = json.loads(memory_storage.value)
    assert stored["session_id"] == "abc"
    assert stored["timestamp"] == clock.now[0]

    record = session_store.load()
    assert record.session_id == "abc"
    assert record.status is SessionStatus.ACTIVE
    assert record.last_message_id == 4


def test_save_overwrites_previous_record(session_store):
    session_store.save(_session(status="pending", last_message_id=0))
    session_store.save(_session(status="active", last_message_id=9))

    record = session_store.load()
    assert record.status is SessionStatus.ACTIVE
    assert record.last_message_id == 9


def test_load_discards_record_older_than_24_hours(session_store, memory_storage, clock):
    session_store.save(_session())
    clock.now[0] += 24 * 60 * 60

    assert session_store.load() is None
    assert memory_storage.value is None


def test_load_keeps_record_just_under_24_hours(session_store, clock):
    session_store.save(_session())
    clock.now[0] += 24 * 60 * 60 - 1

    assert session_store.load() is not None


def test_load_clears_malformed_record(session_store, memory_storage):
    memory_storage.value = "{not json"

    assert session_store.load() is None
    assert memory_storage.value is None


def test_load_clears_record_with_unknown_status(session_store, memory_storage, clock):
    memory_storage.value = json.dumps({"session_id": "abc", "status": "weird", "timestamp": clock.now[0]})

    assert session_store.load() is None
    assert memory_storage.value is None


def test_storage_failures_are_swallowed(session_store, memory_storage):
    memory_storage.fail = True

    session_store.save(_session())
    assert session_store.load() is None
    session_store.clear()


def test_file_storage_round_trip(tmp_path, clock):
    path = tmp_path / "session.json"
    store = SessionStore(FileStorage(path), clock=clock)

    assert store.load() is None
    store.save(_session(last_message_id=12))
    assert path.exists()
    assert store.load().last_message_id == 12

    store.clear()
    assert not path.exists()
    store.clear()


def test_file_storage_unreadable_path_is_no_session(tmp_path, clock):
    # a directory cannot be read as a file
    store = SessionStore(FileStorage(tmp_path), clock=clock)

    assert store.load() is None
    store.save(_session())


class _StubRedis:
    def __init__(self, fail=False):
        self.data = {}
        self.ttl = {}
        self.fail = fail

    def get(self, key):
        if self.fail:
            raise RedisError("down")
        return self.data.get(key)

    def setex(self, key, ttl, value):
        if self.fail:
            raise RedisError("down")
        self.data[key] = value
        self.ttl[key] = ttl

    def delete(self, key):
        if self.fail:
            raise RedisError("down")
        self.data.pop(key, None)


def test_redis_storage_sets_ttl(clock):
    redis_client = _StubRedis()
    store = SessionStore(RedisStorage(redis_client, key="visitor-1", ttl_seconds=86400), clock=clock)

    store.save(_session())

    assert redis_client.ttl["chat:session:visitor-1"] == 86400
    assert store.load().session_id == "abc"


def test_redis_errors_are_swallowed(clock):
    store = SessionStore(RedisStorage(_StubRedis(fail=True)), clock=clock)

    store.save(_session())
    assert store.load() is None
    store.clear()
