from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DECLINED = "declined"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.CLOSED, SessionStatus.DECLINED)


class ChatSession(BaseModel):
    # WordPress sends numeric ids
    model_config = ConfigDict(coerce_numbers_to_str=True)

    session_id: str = Field(..., description="Server-assigned session identifier")
    status: SessionStatus = Field(..., description="Last status observed from the server")
    # Poll cursor; only ever moves forward
    last_message_id: int = Field(default=0, ge=0)

    def advance(self, message_id: int) -> bool:
        if message_id <= self.last_message_id:
            return False
        self.last_message_id = message_id
        return True


class StoredSession(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    session_id: str
    status: SessionStatus
    last_message_id: int = 0
    # unix seconds when the record was written
    timestamp: float


class SessionInfo(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    status: SessionStatus


class CreateSessionResponse(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    success: bool
    session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    message: Optional[str] = None


class MySessionResponse(BaseModel):
    success: bool
    session: Optional[SessionInfo] = None
