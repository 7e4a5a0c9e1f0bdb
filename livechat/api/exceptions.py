from fastapi import HTTPException


class InvalidChatStateException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)


class UploadTooLargeException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=413, detail=detail)
