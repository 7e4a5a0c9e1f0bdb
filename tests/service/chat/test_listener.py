from livechat.exceptions import TransportError
from livechat.model.message.message import ChatMessage
from livechat.service.chat.listener import ChatState, Transcript


def _msg(message_id, sender="agent", text="hi"):
    return ChatMessage(id=message_id, sender=sender, message=text)


def test_poll_delivery_before_confirmation_renders_once():
    transcript = Transcript()

    transcript.on_provisional_message("l1", "hello")
    transcript.on_message(_msg(101, sender="user", text="hello"))
    transcript.on_message_confirmed("l1", _msg(101, sender="user", text="hello"))

    assert [(item.id, item.provisional) for item in transcript.items] == [(101, False)]


def test_confirmation_replaces_provisional_in_place():
    transcript = Transcript()

    transcript.on_provisional_message("l1", "first")
    transcript.on_message(_msg(50))
    transcript.on_message_confirmed("l1", _msg(51, sender="user", text="first"))

    assert [item.id for item in transcript.items] == [51, 50]


def test_failed_send_stays_visible_and_flagged():
    transcript = Transcript()

    transcript.on_provisional_message("l1", "hello")
    transcript.on_message_failed("l1", TransportError("timeout"))

    assert transcript.items[0].failed is True
    assert transcript.items[0].message == "hello"


def test_duplicate_message_is_not_appended():
    transcript = Transcript()

    transcript.on_message(_msg(5))
    transcript.on_message(_msg(5))

    assert len(transcript.items) == 1


def test_returning_to_idle_clears_view_but_terminal_keeps_it():
    transcript = Transcript()
    transcript.on_message(_msg(5))
    transcript.on_typing(True)

    transcript.on_state_change(ChatState.ACTIVE, ChatState.CLOSED)
    assert len(transcript.items) == 1
    assert transcript.agent_typing is False

    transcript.on_state_change(ChatState.CLOSED, ChatState.IDLE)
    assert transcript.items == []


def test_error_log_is_bounded():
    transcript = Transcript(max_errors=2)

    for n in range(5):
        transcript.on_error(TransportError(f"e{n}"))

    assert transcript.errors == ["e3", "e4"]
