from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class Attachment(BaseModel):
    id: int = 0
    url: Optional[str] = ""
    filename: Optional[str] = ""

    # wp_get_attachment_url() returns false once the file is deleted
    @field_validator("url", "filename", mode="before")
    @classmethod
    def _falsy_is_empty(cls, value):
        return value or ""


class ChatMessage(BaseModel):
    id: int = Field(..., description="Server-assigned, monotonically increasing message id")
    sender: Sender = Sender.SYSTEM
    message: str = ""
    timestamp: Optional[str] = None
    read: bool = False
    attachment: Optional[Attachment] = None

    @field_validator("sender", mode="before")
    @classmethod
    def _unknown_sender_is_system(cls, value):
        try:
            return Sender(value)
        except ValueError:
            return Sender.SYSTEM


class SendMessageResponse(BaseModel):
    success: bool
    # On failure WordPress puts the error text here instead of a message object
    message: Optional[ChatMessage | str] = None


class MessageListResponse(BaseModel):
    success: bool
    messages: List[ChatMessage] = []
