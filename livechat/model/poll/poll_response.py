from typing import List, Optional

from pydantic import BaseModel

from livechat.model.message.message import ChatMessage
from livechat.model.session.session import SessionStatus


class PollResponse(BaseModel):
    success: bool
    session_status: Optional[SessionStatus] = None
    new_messages: List[ChatMessage] = []
    # ids of entries in new_messages that failed validation
    skipped_message_ids: List[int] = []
    agent_typing: Optional[bool] = None
    last_message_id: Optional[int] = None
    message: Optional[str] = None


class AgentOnlineResponse(BaseModel):
    online: bool = False
    agents_online: int = 0
