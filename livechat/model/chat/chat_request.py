from pydantic import BaseModel, Field


class SendRequest(BaseModel):
    message: str = Field(..., description="Text typed by the visitor")


class VisibilityRequest(BaseModel):
    visible: bool = Field(..., description="Whether the page hosting the widget is in the foreground")
