from pydantic import BaseModel, Field
from typing import List, Optional


class TranscriptItem(BaseModel):
    # server id, or None while the message is provisional
    id: Optional[int] = None
    local_id: Optional[str] = None
    sender: str
    message: str
    attachment_url: Optional[str] = None
    provisional: bool = False
    failed: bool = False


class ChatStateResponse(BaseModel):
    session_id: Optional[str] = Field(None, description="Current session id, if any")
    state: str = Field(..., description="idle | pending | active | closed | declined")
    last_message_id: int = 0
    polling: bool = False
    agent_typing: bool = False
    messages: List[TranscriptItem] = []
    errors: List[str] = []
    notices: List[str] = []


class AgentOnlineResult(BaseModel):
    online: bool
