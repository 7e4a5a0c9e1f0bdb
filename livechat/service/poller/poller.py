import asyncio
import logging
from typing import List, Optional, Protocol

import livechat.config.config as configs
from livechat.client.http.liveagent import LiveAgentClient
from livechat.exceptions import ConnectivityError, LiveChatError, ProtocolError, TransportError
from livechat.model.message.message import ChatMessage
from livechat.model.poll.poll_response import PollResponse
from livechat.model.session.session import ChatSession, SessionStatus

logger = logging.getLogger(__name__)


class PollListener(Protocol):
    def on_poll_status(self, status: SessionStatus) -> None: ...

    def on_poll_messages(self, messages: List[ChatMessage]) -> None: ...

    def on_poll_typing(self, is_typing: bool) -> None: ...

    def on_poll_error(self, error: LiveChatError, fatal: bool) -> None: ...


class StatusPoller:
    """
    Timer-driven poll loop for one chat session.

    Each tick fetches status, new messages and the typing flag using the session's
    last_message_id as cursor, then schedules the next tick with loop.call_later.
    stop() only clears the timer; a request already in flight completes and its
    result is dropped.
    """

    def __init__(
        self,
        client: LiveAgentClient,
        listener: PollListener,
        interval: float = configs.POLL_INTERVAL,
        max_failures: int = configs.MAX_POLL_FAILURES,
    ):
        self.client = client
        self.listener = listener
        self.interval = interval
        self.max_failures = max_failures

        self.session: Optional[ChatSession] = None
        self.failures = 0
        self._running = False
        self._paused = False
        self._in_flight = False
        self._etag: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self, session: ChatSession) -> None:
        if self._running and self.session is session:
            logger.debug("poller already running session_id=%s", session.session_id)
            return
        self.stop()
        logger.info("starting poll loop session_id=%s", session.session_id)
        self.session = session
        self.failures = 0
        self._etag = None
        self._running = True
        self._paused = False
        self._schedule(0)

    def stop(self) -> None:
        if self._running:
            logger.info("stopping poll loop session_id=%s", self.session.session_id if self.session else None)
        self._running = False
        self._paused = False
        self.session = None
        self._cancel_timer()

    def pause(self) -> None:
        if not self._running:
            return
        self._paused = True
        self._cancel_timer()

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        # a tick still in flight reschedules itself when it lands
        if not self._in_flight:
            self._schedule(0)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, delay: float) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if not self._running or self._paused or self._in_flight:
            return
        self._task = asyncio.create_task(self._tick())

    async def _tick(self) -> None:
        try:
            await self.poll_once()
        except Exception:
            logger.exception("poll tick failed session_id=%s", self.session.session_id if self.session else None)
        finally:
            self._task = None
            if self._running and not self._paused and self._timer is None:
                self._schedule(self.interval)

    def _is_current(self, session: ChatSession) -> bool:
        return self._running and self.session is session

    async def poll_once(self) -> bool:
        """Run one poll. Returns True when a response was applied (a 304 counts)."""
        session = self.session
        if not self._running or session is None or self._in_flight:
            return False

        self._in_flight = True
        try:
            result = await self.client.poll(session.session_id, session.last_message_id, self._etag)
        except TransportError as exc:
            if self._is_current(session):
                self._record_failure(exc)
            return False
        except ProtocolError as exc:
            if self._is_current(session):
                logger.warning("poll rejected session_id=%s: %s", session.session_id, exc)
                self.listener.on_poll_error(exc, fatal=False)
            return False
        finally:
            self._in_flight = False

        if not self._is_current(session):
            logger.debug("discarding poll response for inactive session_id=%s", session.session_id)
            return False

        self.failures = 0
        self._etag = result.etag
        if result.data is not None:
            self._apply(session, result.data)
        return True

    def _record_failure(self, exc: TransportError) -> None:
        self.failures += 1
        if self.failures < self.max_failures:
            logger.warning("poll error (attempt %s/%s): %s", self.failures, self.max_failures, exc)
            return
        logger.error("max poll failures reached session_id=%s", self.session.session_id)
        attempts = self.failures
        self.stop()
        self.listener.on_poll_error(ConnectivityError(attempts), fatal=True)

    def _apply(self, session: ChatSession, data: PollResponse) -> None:
        if data.session_status is not None and data.session_status != session.status:
            logger.info("status changed %s -> %s session_id=%s", session.status.value, data.session_status.value, session.session_id)
            self.listener.on_poll_status(data.session_status)

        # skipped ids still move the cursor
        entries = [(m.id, m) for m in data.new_messages] + [(i, None) for i in data.skipped_message_ids]
        fresh: List[ChatMessage] = []
        for message_id, message in sorted(entries, key=lambda e: e[0]):
            if session.advance(message_id) and message is not None:
                fresh.append(message)
        if data.last_message_id is not None:
            session.advance(data.last_message_id)
        if fresh:
            self.listener.on_poll_messages(fresh)

        # a terminal status stops the poller; typing no longer applies
        if data.agent_typing is not None and self._is_current(session):
            self.listener.on_poll_typing(data.agent_typing)
