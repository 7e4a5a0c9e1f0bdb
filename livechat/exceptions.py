class LiveChatError(Exception):
    """Base class for every error raised by the live chat client."""


class TransportError(LiveChatError):
    """The request never produced a usable response (network failure, timeout, non-2xx)."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.status_code = status_code


class ProtocolError(LiveChatError):
    """The server answered but reported failure (`success: false`) or sent a malformed body."""


class ConnectivityError(LiveChatError):
    def __init__(self, attempts: int):
        super().__init__(f"Connection lost after {attempts} failed polls. Please reload to reconnect.")
        self.attempts = attempts


class InvalidSessionStateError(LiveChatError):
    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while chat is {state}")
        self.operation = operation
        self.state = state


class InactiveSessionError(InvalidSessionStateError):
    def __init__(self, state: str):
        super().__init__("send", state)


class UploadRejectedError(LiveChatError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File size {size} exceeds maximum of {limit // (1024 * 1024)} MB")
        self.size = size
        self.limit = limit
