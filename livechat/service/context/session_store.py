import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from pydantic import ValidationError
from redis import Redis, RedisError

import livechat.config.config as configs
from livechat.model.session.session import ChatSession, StoredSession

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    def get(self) -> Optional[str]: ...

    def set(self, value: str) -> None: ...

    def delete(self) -> None: ...


class FileStorage:
    def __init__(self, path: str | Path = configs.STORAGE_PATH):
        self.path = Path(path)

    def get(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, value: str) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


class RedisStorage:
    def __init__(self, client: Redis, key: str = configs.STORAGE_KEY, ttl_seconds: int = configs.SESSION_TTL):
        self.client = client
        self.key = f"chat:session:{key}"
        self.ttl_seconds = ttl_seconds

    def get(self) -> Optional[str]:
        return self.client.get(self.key)

    def set(self, value: str) -> None:
        self.client.setex(self.key, self.ttl_seconds, value)

    def delete(self) -> None:
        self.client.delete(self.key)


# Treated as "no session"
STORAGE_ERRORS = (OSError, UnicodeDecodeError, RedisError)


class SessionStore:
    """
    Persists the current chat session so a reload can resume it.

    Storage failures are logged and treated as "no session", never raised.
    """

    def __init__(
        self,
        backend: StorageBackend,
        ttl_seconds: int = configs.SESSION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def save(self, session: ChatSession) -> None:
        record = StoredSession(
            session_id=session.session_id,
            status=session.status,
            last_message_id=session.last_message_id,
            timestamp=self._clock(),
        )
        try:
            self.backend.set(record.model_dump_json())
        except STORAGE_ERRORS:
            logger.exception("failed to save chat session session_id=%s", session.session_id)

    def load(self) -> Optional[StoredSession]:
        try:
            data = self.backend.get()
        except STORAGE_ERRORS:
            logger.exception("failed to read stored chat session")
            return None
        if data is None:
            return None
        try:
            record = StoredSession.model_validate(json.loads(data))
        except (json.JSONDecodeError, ValidationError):
            logger.warning("discarding malformed stored chat session")
            self.clear()
            return None
        if self._clock() - record.timestamp >= self.ttl_seconds:
            logger.info("stored chat session expired session_id=%s", record.session_id)
            self.clear()
            return None
        return record

    def clear(self) -> None:
        try:
            self.backend.delete()
        except STORAGE_ERRORS:
            logger.exception("failed to clear stored chat session")


def build_session_store() -> SessionStore:
    if configs.STORAGE == "redis":
        redis_client = Redis(host=configs.REDIS_HOST, port=configs.REDIS_PORT, decode_responses=True)
        return SessionStore(RedisStorage(redis_client))
    return SessionStore(FileStorage())
