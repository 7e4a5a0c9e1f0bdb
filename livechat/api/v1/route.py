from fastapi import APIRouter, File, Request, UploadFile

from livechat.api.exceptions import InvalidChatStateException, UploadTooLargeException
from livechat.exceptions import InvalidSessionStateError, UploadRejectedError
from livechat.model.chat.chat_request import SendRequest, VisibilityRequest
from livechat.model.chat.chat_response import AgentOnlineResult, ChatStateResponse
from livechat.service.chat.controller import ChatController
from livechat.service.chat.listener import Transcript

api_router = APIRouter(prefix="/chat")


def _controller(request: Request) -> ChatController:
    return request.app.state.controller


def _state(request: Request) -> ChatStateResponse:
    controller = _controller(request)
    transcript: Transcript = request.app.state.transcript
    session = controller.session
    return ChatStateResponse(
        session_id=session.session_id if session else None,
        state=controller.state.value,
        last_message_id=session.last_message_id if session else 0,
        polling=controller.poller.running,
        agent_typing=transcript.agent_typing,
        messages=transcript.items,
        errors=transcript.errors,
        notices=transcript.notices,
    )


@api_router.get("/state", response_model=ChatStateResponse)
async def chat_state(request: Request):
    return _state(request)


@api_router.post("/start", response_model=ChatStateResponse)
async def start_chat(request: Request):
    await _controller(request).start()
    return _state(request)


@api_router.post("/send", response_model=ChatStateResponse)
async def send_message(req: SendRequest, request: Request):
    try:
        await _controller(request).send(req.message)
    except InvalidSessionStateError as exc:
        raise InvalidChatStateException(str(exc))
    return _state(request)


@api_router.post("/cancel", response_model=ChatStateResponse)
async def cancel_chat(request: Request):
    try:
        await _controller(request).cancel()
    except InvalidSessionStateError as exc:
        raise InvalidChatStateException(str(exc))
    return _state(request)


@api_router.post("/end", response_model=ChatStateResponse)
async def end_chat(request: Request):
    try:
        await _controller(request).end()
    except InvalidSessionStateError as exc:
        raise InvalidChatStateException(str(exc))
    return _state(request)


@api_router.post("/upload", response_model=ChatStateResponse)
async def upload_file(request: Request, file: UploadFile = File(...)):
    controller = _controller(request)
    limit = controller.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise UploadTooLargeException(str(UploadRejectedError(file.size, limit)))
    # at most one byte past the limit
    content = await file.read(limit + 1)
    try:
        await controller.upload_file(
            file.filename or "upload",
            content,
            file.content_type or "application/octet-stream",
        )
    except InvalidSessionStateError as exc:
        raise InvalidChatStateException(str(exc))
    except UploadRejectedError as exc:
        raise UploadTooLargeException(str(exc))
    return _state(request)


@api_router.post("/typing")
async def typing(request: Request):
    _controller(request).notify_typing()
    return {"ok": True}


@api_router.post("/visibility", response_model=ChatStateResponse)
async def visibility(req: VisibilityRequest, request: Request):
    _controller(request).set_visible(req.visible)
    return _state(request)


@api_router.get("/agent-online", response_model=AgentOnlineResult)
async def agent_online(request: Request):
    return AgentOnlineResult(online=await _controller(request).check_agent_online())
