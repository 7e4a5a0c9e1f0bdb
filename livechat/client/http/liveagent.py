import logging
from typing import NamedTuple, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

import livechat.config.config as configs
from livechat.exceptions import ProtocolError, TransportError
from livechat.model.message.message import ChatMessage, MessageListResponse, SendMessageResponse
from livechat.model.poll.poll_response import AgentOnlineResponse, PollResponse
from livechat.model.session.session import CreateSessionResponse, MySessionResponse, SessionInfo

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_TYPE = "user"


def _raw_message_id(raw) -> Optional[int]:
    if not isinstance(raw, dict):
        return None
    try:
        return int(raw.get("id"))
    except (TypeError, ValueError):
        return None


class PollResult(NamedTuple):
    # None when the server answered 304 Not Modified
    data: Optional[PollResponse]
    etag: Optional[str]


class LiveAgentClient:
    """
    Thin async wrapper over the live agent REST endpoints.

    Transport problems (connection errors, timeouts, non-2xx) raise TransportError.
    A body with `success: false` or one that does not parse raises ProtocolError.
    """

    def __init__(
        self,
        base_url: str = configs.REST_URL,
        nonce: str = configs.NONCE,
        timeout: float = configs.REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.nonce = nonce
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, extra: dict | None = None) -> dict:
        headers = {"X-WP-Nonce": self.nonce, "Cache-Control": "no-store"}
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, method: str, path: str, headers: dict | None = None, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(method, url, headers=self._headers(headers), **kwargs)
        except httpx.RequestError as exc:
            raise TransportError(f"{method} {path} failed: {exc.__class__.__name__}") from exc
        if response.status_code >= 400:
            logger.warning("liveagent %s %s status=%s body=%s", method, path, response.status_code, response.text)
            raise TransportError(f"HTTP {response.status_code}", status_code=response.status_code)
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: Type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProtocolError(f"unexpected response body: {exc}") from exc

    @staticmethod
    def _parse_poll(response: httpx.Response) -> PollResponse:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProtocolError(f"unexpected response body: {exc}") from exc
        if not isinstance(body, dict):
            raise ProtocolError("unexpected response body: not an object")

        raw_messages = body.pop("new_messages", None) or []
        if not isinstance(raw_messages, list):
            raise ProtocolError("unexpected response body: new_messages is not a list")
        try:
            data = PollResponse.model_validate(body)
        except ValidationError as exc:
            raise ProtocolError(f"unexpected response body: {exc}") from exc

        # messages are validated one by one; unreadable rows are skipped
        for raw in raw_messages:
            try:
                data.new_messages.append(ChatMessage.model_validate(raw))
            except ValidationError as exc:
                message_id = _raw_message_id(raw)
                logger.warning("skipping unreadable message id=%s: %s", message_id, exc)
                if message_id is not None:
                    data.skipped_message_ids.append(message_id)
        return data

    async def create_session(self, initial_message: str) -> CreateSessionResponse:
        response = await self._request("POST", "/liveagent/session/create", json={"initial_message": initial_message})
        data = self._parse(response, CreateSessionResponse)
        if not data.success or not data.session_id:
            raise ProtocolError(data.message or "Failed to create session")
        return data

    async def my_session(self) -> SessionInfo | None:
        response = await self._request("GET", "/liveagent/session/my-session")
        data = self._parse(response, MySessionResponse)
        if not data.success:
            raise ProtocolError("Failed to look up existing session")
        return data.session

    async def poll(self, session_id: str, last_message_id: int, etag: str | None = None) -> PollResult:
        headers = {"If-None-Match": etag} if etag else None
        response = await self._request(
            "GET",
            "/liveagent/status/poll",
            headers=headers,
            params={"session_id": session_id, "last_message_id": last_message_id},
        )
        new_etag = response.headers.get("ETag") or etag
        if response.status_code == 304:
            return PollResult(None, new_etag)
        data = self._parse_poll(response)
        if not data.success:
            raise ProtocolError(data.message or "Poll failed")
        return PollResult(data, new_etag)

    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        response = await self._request("GET", f"/liveagent/messages/{session_id}")
        data = self._parse(response, MessageListResponse)
        if not data.success:
            raise ProtocolError("Failed to load messages")
        return data.messages

    async def send_message(self, session_id: str, text: str) -> ChatMessage:
        response = await self._request(
            "POST", "/liveagent/message/send", json={"session_id": session_id, "message": text}
        )
        return self._message_result(self._parse(response, SendMessageResponse), "Failed to send message")

    async def upload_file(self, session_id: str, filename: str, content: bytes, content_type: str) -> ChatMessage:
        response = await self._request(
            "POST",
            "/liveagent/file/upload",
            data={"session_id": session_id},
            files={"file": (filename, content, content_type)},
        )
        return self._message_result(self._parse(response, SendMessageResponse), "Upload failed")

    @staticmethod
    def _message_result(data: SendMessageResponse, fallback: str) -> ChatMessage:
        if data.success and isinstance(data.message, ChatMessage):
            return data.message
        detail = data.message if isinstance(data.message, str) and data.message else fallback
        raise ProtocolError(detail)

    async def close_session(self, session_id: str) -> bool:
        response = await self._request("POST", "/liveagent/session/close", json={"session_id": session_id})
        try:
            return bool(response.json().get("success"))
        except (ValueError, AttributeError):
            return False

    async def agent_online(self) -> bool:
        response = await self._request("GET", "/liveagent/status/agent-online")
        return self._parse(response, AgentOnlineResponse).online

    async def set_typing(self, session_id: str, is_typing: bool) -> None:
        await self._request(
            "POST",
            "/liveagent/status/typing",
            json={"session_id": session_id, "is_typing": is_typing, "user_type": USER_TYPE},
        )

    async def mark_read(self, session_id: str) -> None:
        await self._request(
            "POST", "/liveagent/message/mark-read", json={"session_id": session_id, "user_type": USER_TYPE}
        )

    async def aclose(self) -> None:
        await self._http.aclose()
