import logging
import os

from fastapi import FastAPI

from livechat.api.v1.route import api_router as MainRouter
from livechat.client.http.liveagent import LiveAgentClient
from livechat.service.chat.controller import ChatController
from livechat.service.chat.listener import Transcript
from livechat.service.context.session_store import build_session_store

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="livechat_widget", version="0.0.1")
app.include_router(router=MainRouter, prefix="/api/v1")


@app.on_event("startup")
async def startup_event() -> None:
    # keep a controller installed before startup
    if getattr(app.state, "controller", None) is None:
        app.state.controller = ChatController(LiveAgentClient(), build_session_store())
    if getattr(app.state, "transcript", None) is None:
        app.state.transcript = Transcript()
        app.state.controller.add_listener(app.state.transcript)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await app.state.controller.aclose()
