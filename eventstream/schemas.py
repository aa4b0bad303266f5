from pydantic import BaseModel, Field
from typing import Any, Literal, Optional

EventType = Literal["connecting", "message", "complete", "error"]


class MessageData(BaseModel):
    id: int = Field(ge=1)
    content: str
    timestamp: str


class Event(BaseModel):
    type: EventType
    message: str
    data: Optional[MessageData] = None
    timestamp: str


class EventRecord(BaseModel):
    id: int
    session_id: Optional[str] = None
    type: str
    message: str
    data: Optional[str] = None  # JSON string of Event.data
    timestamp: str


class ClientEvent(BaseModel):
    id: str
    type: EventType
    message: str = ""
    data: Any = None
    timestamp: str
