import asyncio
import logging
import uuid
from typing import Awaitable, List, Optional, Set

import livechat.config.config as configs
from livechat.client.http.liveagent import LiveAgentClient
from livechat.exceptions import (
    InactiveSessionError,
    InvalidSessionStateError,
    LiveChatError,
    UploadRejectedError,
)
from livechat.model.message.message import ChatMessage, Sender
from livechat.model.session.session import ChatSession, SessionStatus
from livechat.service.chat.listener import ChatListener, ChatState
from livechat.service.context.session_store import SessionStore
from livechat.service.poller.poller import StatusPoller

logger = logging.getLogger(__name__)

AGENT_JOINED = "An agent has joined the chat."
REQUEST_DECLINED = "Your chat request was declined. Please try again later."
SESSION_ENDED = "The chat session has ended."
NO_RESPONSE = "No agent is available right now. Please try again later."

OPEN_STATES = (ChatState.PENDING, ChatState.ACTIVE)


class ChatController:
    """
    Owns the visitor's single live chat session.

    idle -> pending -> active -> closed | declined. Status changes come from the
    server through the poller; closed and declined are terminal until the next
    start(). Construct one per process and share it.
    """

    def __init__(
        self,
        client: LiveAgentClient,
        store: SessionStore,
        welcome_message: str = configs.WELCOME_MESSAGE,
        poll_interval: float = configs.POLL_INTERVAL,
        max_poll_failures: int = configs.MAX_POLL_FAILURES,
        pending_timeout: float = configs.PENDING_TIMEOUT,
        typing_timeout: float = configs.TYPING_TIMEOUT,
        max_upload_mb: int = configs.MAX_UPLOAD_MB,
    ):
        self.client = client
        self.store = store
        self.welcome_message = welcome_message
        self.pending_timeout = pending_timeout
        self.typing_timeout = typing_timeout
        self.max_upload_bytes = max_upload_mb * 1024 * 1024
        self.poller = StatusPoller(client, self, interval=poll_interval, max_failures=max_poll_failures)

        self.state = ChatState.IDLE
        self.session: Optional[ChatSession] = None
        self.visible = True
        self._listeners: List[ChatListener] = []
        self._starting = False
        self._closing = False
        self._send_lock = asyncio.Lock()
        self._pending_timer: Optional[asyncio.TimerHandle] = None
        self._typing_timer: Optional[asyncio.TimerHandle] = None
        self._is_typing = False
        self._background: Set[asyncio.Task] = set()

    def add_listener(self, listener: ChatListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChatListener) -> None:
        self._listeners.remove(listener)

    def _emit(self, event: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception:
                logger.exception("listener %s failed in %s", type(listener).__name__, event)

    def _set_state(self, new: ChatState) -> None:
        old = self.state
        if old is new:
            return
        logger.info("chat state %s -> %s session_id=%s", old.value, new.value, self.session.session_id if self.session else None)
        self.state = new
        if new is not ChatState.PENDING:
            self._cancel_pending_timer()
        self._emit("on_state_change", old, new)

    def _spawn(self, coro: Awaitable, what: str) -> None:
        async def runner():
            try:
                await coro
            except LiveChatError:
                logger.warning("background %s failed", what, exc_info=True)

        task = asyncio.create_task(runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def start(self) -> ChatState:
        if self.state in OPEN_STATES or self._starting:
            logger.info("start ignored, chat already %s", self.state.value)
            return self.state

        self._starting = True
        try:
            if self.state.is_terminal:
                self.session = None
                self._set_state(ChatState.IDLE)

            record = self.store.load()
            if record is not None and not record.status.is_terminal:
                logger.info("resuming stored session session_id=%s", record.session_id)
                session = ChatSession(
                    session_id=record.session_id,
                    status=record.status,
                    last_message_id=record.last_message_id,
                )
                self._adopt(session)
                await self._load_history(session)
                return self.state

            existing = await self._find_server_session()
            if existing is not None:
                logger.info("resuming server session session_id=%s", existing.session_id)
                self._adopt(existing)
                await self._load_history(existing)
                return self.state

            try:
                created = await self.client.create_session(self.welcome_message)
            except LiveChatError as exc:
                logger.warning("create session failed: %s", exc)
                self._emit("on_error", exc)
                return self.state

            logger.info("session created session_id=%s status=%s", created.session_id, created.status.value)
            self._adopt(ChatSession(session_id=created.session_id, status=created.status))
            return self.state
        finally:
            self._starting = False

    async def _find_server_session(self) -> Optional[ChatSession]:
        try:
            info = await self.client.my_session()
        except LiveChatError as exc:
            logger.warning("existing session lookup failed: %s", exc)
            return None
        if info is None or info.status.is_terminal:
            return None
        return ChatSession(session_id=info.id, status=info.status)

    async def _load_history(self, session: ChatSession) -> None:
        try:
            messages = await self.client.list_messages(session.session_id)
        except LiveChatError as exc:
            logger.warning("history load failed session_id=%s: %s", session.session_id, exc)
            return
        if self.session is not session or self.state not in OPEN_STATES:
            return
        messages = sorted(messages, key=lambda m: m.id)
        if messages:
            session.advance(messages[-1].id)
            self.store.save(session)
        self._emit("on_history", messages)

    def _adopt(self, session: ChatSession) -> None:
        self.session = session
        if session.status.is_terminal:
            self._terminate(ChatState(session.status.value))
            return
        self.store.save(session)
        self._set_state(ChatState(session.status.value))
        if self.state is ChatState.PENDING:
            self._start_pending_timer()
        self.poller.start(session)
        if not self.visible:
            self.poller.pause()

    def _terminate(self, state: ChatState) -> None:
        self.poller.stop()
        self._cancel_typing_timer()
        self._is_typing = False
        self.store.clear()
        if self.session is not None:
            self.session.status = SessionStatus(state.value)
        self._set_state(state)

    async def send(self, text: str) -> Optional[ChatMessage]:
        if self.state is not ChatState.ACTIVE:
            raise InactiveSessionError(self.state.value)
        text = (text or "").strip()
        if not text:
            return None

        local_id = uuid.uuid4().hex
        self._emit("on_provisional_message", local_id, text)

        async with self._send_lock:
            session = self.session
            if self.state is not ChatState.ACTIVE or session is None:
                error = InactiveSessionError(self.state.value)
                self._emit("on_message_failed", local_id, error)
                return None
            try:
                message = await self.client.send_message(session.session_id, text)
            except LiveChatError as exc:
                logger.warning("send failed session_id=%s: %s", session.session_id, exc)
                self._emit("on_message_failed", local_id, exc)
                self._emit("on_error", exc)
                return None

        if session.advance(message.id) and self.session is session and self.state is ChatState.ACTIVE:
            self.store.save(session)
        self._emit("on_message_confirmed", local_id, message)
        return message

    async def upload_file(self, filename: str, content: bytes, content_type: str = "application/octet-stream") -> Optional[ChatMessage]:
        if self.state is not ChatState.ACTIVE:
            raise InvalidSessionStateError("upload", self.state.value)
        if len(content) > self.max_upload_bytes:
            raise UploadRejectedError(len(content), self.max_upload_bytes)

        session = self.session
        try:
            message = await self.client.upload_file(session.session_id, filename, content, content_type)
        except LiveChatError as exc:
            logger.warning("upload failed session_id=%s file=%s: %s", session.session_id, filename, exc)
            self._emit("on_error", exc)
            return None

        if session.advance(message.id):
            if self.session is session and self.state is ChatState.ACTIVE:
                self.store.save(session)
            self._emit("on_message", message)
        return message

    async def cancel(self) -> ChatState:
        if self.state is not ChatState.PENDING:
            raise InvalidSessionStateError("cancel", self.state.value)
        if self._closing:
            return self.state

        session = self.session
        self._closing = True
        self.poller.stop()
        try:
            await self.client.close_session(session.session_id)
        except LiveChatError as exc:
            logger.warning("close on cancel failed session_id=%s: %s", session.session_id, exc)
        finally:
            self._closing = False

        if self.session is session:
            self.store.clear()
            self.session = None
            self._set_state(ChatState.IDLE)
        return self.state

    async def end(self) -> ChatState:
        if self.state is not ChatState.ACTIVE:
            raise InvalidSessionStateError("end", self.state.value)
        if self._closing:
            return self.state

        session = self.session
        self._closing = True
        self.poller.stop()
        try:
            closed = await self.client.close_session(session.session_id)
            if not closed:
                logger.warning("server refused close session_id=%s", session.session_id)
        except LiveChatError as exc:
            logger.warning("close failed session_id=%s: %s", session.session_id, exc)
        finally:
            self._closing = False

        if self.session is session and not self.state.is_terminal:
            self._terminate(ChatState.CLOSED)
            self._emit("on_notice", SESSION_ENDED)
        return self.state

    def on_poll_status(self, status: SessionStatus) -> None:
        session = self.session
        if session is None:
            return
        new_state = ChatState(status.value)
        if status.is_terminal:
            self._terminate(new_state)
            self._emit("on_notice", REQUEST_DECLINED if status is SessionStatus.DECLINED else SESSION_ENDED)
            return
        session.status = status
        self.store.save(session)
        previous = self.state
        self._set_state(new_state)
        if previous is ChatState.PENDING and new_state is ChatState.ACTIVE:
            self._emit("on_notice", AGENT_JOINED)

    def on_poll_messages(self, messages: List[ChatMessage]) -> None:
        for message in messages:
            self._emit("on_message", message)
        session = self.session
        if session is None or self.state.is_terminal:
            return
        self.store.save(session)
        if any(m.sender is Sender.AGENT for m in messages):
            self._spawn(self.client.mark_read(session.session_id), "mark-read")

    def on_poll_typing(self, is_typing: bool) -> None:
        self._emit("on_typing", is_typing)

    def on_poll_error(self, error: LiveChatError, fatal: bool) -> None:
        if fatal:
            logger.error("live chat polling stopped: %s", error)
        self._emit("on_error", error)

    def _start_pending_timer(self) -> None:
        self._cancel_pending_timer()
        if self.pending_timeout <= 0:
            return
        loop = asyncio.get_running_loop()
        self._pending_timer = loop.call_later(self.pending_timeout, self._on_pending_timeout)

    def _cancel_pending_timer(self) -> None:
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None

    def _on_pending_timeout(self) -> None:
        self._pending_timer = None
        if self.state is not ChatState.PENDING:
            return
        logger.info("no agent accepted within %ss, cancelling", self.pending_timeout)
        self._emit("on_notice", NO_RESPONSE)
        self._spawn(self.cancel(), "pending-timeout cancel")

    def notify_typing(self) -> None:
        if self.state not in OPEN_STATES or self.session is None:
            return
        if not self._is_typing:
            self._is_typing = True
            self._spawn(self.client.set_typing(self.session.session_id, True), "typing")
        self._cancel_typing_timer()
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(self.typing_timeout, self._typing_stopped)

    def _typing_stopped(self) -> None:
        self._typing_timer = None
        self._is_typing = False
        if self.session is not None and self.state in OPEN_STATES:
            self._spawn(self.client.set_typing(self.session.session_id, False), "typing")

    def _cancel_typing_timer(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None

    async def check_agent_online(self) -> bool:
        try:
            return await self.client.agent_online()
        except LiveChatError as exc:
            logger.warning("agent status check failed: %s", exc)
            return False

    def set_visible(self, visible: bool) -> None:
        self.visible = visible
        if not visible:
            self.poller.pause()
        elif self.state is ChatState.ACTIVE:
            self.poller.resume()

    async def aclose(self) -> None:
        self.poller.stop()
        self._cancel_pending_timer()
        self._cancel_typing_timer()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.client.aclose()
