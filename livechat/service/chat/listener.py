from enum import Enum
from typing import List, Optional

from livechat.exceptions import LiveChatError
from livechat.model.chat.chat_response import TranscriptItem
from livechat.model.message.message import ChatMessage


class ChatState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return self in (ChatState.CLOSED, ChatState.DECLINED)


class ChatListener:
    """Observer for ChatController events. Override only what you need."""

    def on_state_change(self, old: ChatState, new: ChatState) -> None:
        pass

    def on_history(self, messages: List[ChatMessage]) -> None:
        pass

    def on_message(self, message: ChatMessage) -> None:
        pass

    def on_provisional_message(self, local_id: str, text: str) -> None:
        pass

    def on_message_confirmed(self, local_id: str, message: ChatMessage) -> None:
        pass

    def on_message_failed(self, local_id: str, error: LiveChatError) -> None:
        pass

    def on_typing(self, is_typing: bool) -> None:
        pass

    def on_error(self, error: LiveChatError) -> None:
        pass

    def on_notice(self, text: str) -> None:
        pass


def _item(message: ChatMessage) -> TranscriptItem:
    return TranscriptItem(
        id=message.id,
        sender=message.sender.value,
        message=message.message,
        attachment_url=(message.attachment.url or None) if message.attachment else None,
    )


class Transcript(ChatListener):
    """In-memory rendering of the conversation, consumed by the widget bridge."""

    def __init__(self, max_errors: int = 20):
        self.items: List[TranscriptItem] = []
        self.errors: List[str] = []
        self.notices: List[str] = []
        self.agent_typing = False
        self.max_errors = max_errors

    def _find(self, message_id: int) -> Optional[TranscriptItem]:
        return next((item for item in self.items if item.id == message_id), None)

    def _find_local(self, local_id: str) -> Optional[TranscriptItem]:
        return next((item for item in self.items if item.local_id == local_id), None)

    def on_state_change(self, old: ChatState, new: ChatState) -> None:
        if new is ChatState.IDLE:
            self.items.clear()
        if new is ChatState.IDLE or new.is_terminal:
            self.agent_typing = False

    def on_history(self, messages: List[ChatMessage]) -> None:
        self.items = [_item(m) for m in messages]

    def on_message(self, message: ChatMessage) -> None:
        if self._find(message.id) is None:
            self.items.append(_item(message))

    def on_provisional_message(self, local_id: str, text: str) -> None:
        self.items.append(TranscriptItem(local_id=local_id, sender="user", message=text, provisional=True))

    def on_message_confirmed(self, local_id: str, message: ChatMessage) -> None:
        provisional = self._find_local(local_id)
        if self._find(message.id) is not None:
            # the poll already delivered it
            if provisional is not None:
                self.items.remove(provisional)
            return
        if provisional is None:
            self.items.append(_item(message))
            return
        self.items[self.items.index(provisional)] = _item(message)

    def on_message_failed(self, local_id: str, error: LiveChatError) -> None:
        provisional = self._find_local(local_id)
        if provisional is not None:
            provisional.failed = True

    def on_typing(self, is_typing: bool) -> None:
        self.agent_typing = is_typing

    def on_error(self, error: LiveChatError) -> None:
        self.errors.append(str(error))
        del self.errors[: -self.max_errors]

    def on_notice(self, text: str) -> None:
        self.notices.append(text)
        del self.notices[: -self.max_errors]
