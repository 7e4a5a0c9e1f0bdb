import asyncio
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from livechat.client.http.liveagent import PollResult
from livechat.exceptions import LiveChatError
from livechat.main import app
from livechat.model.message.message import ChatMessage
from livechat.model.poll.poll_response import PollResponse
from livechat.model.session.session import CreateSessionResponse, SessionInfo
from livechat.service.chat.controller import ChatController
from livechat.service.chat.listener import ChatListener, Transcript
from livechat.service.context.session_store import SessionStore


class StubLiveAgentClient:
    """Stands in for LiveAgentClient; every call is recorded in `calls`."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.create_result = CreateSessionResponse(success=True, session_id="abc", status="pending")
        self.create_error: Optional[Exception] = None
        self.my_session_result: Optional[SessionInfo] = None
        self.my_session_error: Optional[Exception] = None
        self.poll_results: list = []
        self.poll_gate: Optional[asyncio.Event] = None
        self.history: List[ChatMessage] = []
        self.send_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.online = True
        self.next_message_id = 100

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def create_session(self, initial_message):
        self.calls.append(("create", initial_message))
        if self.create_error:
            raise self.create_error
        return self.create_result

    async def my_session(self):
        self.calls.append(("my_session",))
        if self.my_session_error:
            raise self.my_session_error
        return self.my_session_result

    async def poll(self, session_id, last_message_id, etag=None):
        self.calls.append(("poll", session_id, last_message_id, etag))
        if self.poll_gate is not None:
            await self.poll_gate.wait()
        if self.poll_results:
            result = self.poll_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return PollResult(PollResponse(success=True), None)

    async def list_messages(self, session_id):
        self.calls.append(("list_messages", session_id))
        return self.history

    async def send_message(self, session_id, text):
        self.calls.append(("send", session_id, text))
        if self.send_error:
            raise self.send_error
        self.next_message_id += 1
        return ChatMessage(id=self.next_message_id, sender="user", message=text)

    async def upload_file(self, session_id, filename, content, content_type):
        self.calls.append(("upload", session_id, filename, content_type))
        if self.upload_error:
            raise self.upload_error
        self.next_message_id += 1
        return ChatMessage(
            id=self.next_message_id,
            sender="user",
            message=filename,
            attachment={"id": 9, "url": f"https://example.test/{filename}", "filename": filename},
        )

    async def close_session(self, session_id):
        self.calls.append(("close", session_id))
        if self.close_error:
            raise self.close_error
        return True

    async def agent_online(self):
        self.calls.append(("agent_online",))
        if isinstance(self.online, Exception):
            raise self.online
        return self.online

    async def set_typing(self, session_id, is_typing):
        self.calls.append(("typing", session_id, is_typing))

    async def mark_read(self, session_id):
        self.calls.append(("mark_read", session_id))

    async def aclose(self):
        self.calls.append(("aclose",))


class MemoryStorage:
    def __init__(self):
        self.value: Optional[str] = None
        self.fail = False

    def get(self):
        if self.fail:
            raise OSError("storage disabled")
        return self.value

    def set(self, value):
        if self.fail:
            raise OSError("quota exceeded")
        self.value = value

    def delete(self):
        if self.fail:
            raise OSError("storage disabled")
        self.value = None


class RecordingListener(ChatListener):
    def __init__(self):
        self.events: list[tuple] = []

    def names(self) -> list[str]:
        return [event[0] for event in self.events]

    def errors(self) -> list[LiveChatError]:
        return [event[1] for event in self.events if event[0] == "error"]

    def notices(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "notice"]

    def on_state_change(self, old, new):
        self.events.append(("state", old, new))

    def on_history(self, messages):
        self.events.append(("history", messages))

    def on_message(self, message):
        self.events.append(("message", message))

    def on_provisional_message(self, local_id, text):
        self.events.append(("provisional", local_id, text))

    def on_message_confirmed(self, local_id, message):
        self.events.append(("confirmed", local_id, message))

    def on_message_failed(self, local_id, error):
        self.events.append(("failed", local_id, error))

    def on_typing(self, is_typing):
        self.events.append(("typing", is_typing))

    def on_error(self, error):
        self.events.append(("error", error))

    def on_notice(self, text):
        self.events.append(("notice", text))


@pytest.fixture
def stub_client():
    return StubLiveAgentClient()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    now = [1_700_000_000.0]

    def _clock():
        return now[0]

    _clock.now = now
    return _clock


@pytest.fixture
def session_store(memory_storage, clock):
    return SessionStore(memory_storage, ttl_seconds=86400, clock=clock)


@pytest.fixture
def transcript():
    return Transcript()


@pytest.fixture
def recorder():
    return RecordingListener()


@pytest.fixture
def controller(stub_client, session_store, transcript, recorder):
    chat = ChatController(
        stub_client,
        session_store,
        welcome_message="Hello, I need help.",
        poll_interval=0.01,
        max_poll_failures=3,
        pending_timeout=0,
        typing_timeout=0.02,
        max_upload_mb=10,
    )
    chat.add_listener(transcript)
    chat.add_listener(recorder)
    return chat


#scope : function < class < module < package < session
@pytest.fixture(scope="function")
def client(controller, transcript):
    app.state.controller = controller
    app.state.transcript = transcript
    with TestClient(app) as test_client:
        yield test_client
    app.state.controller = None
    app.state.transcript = None
