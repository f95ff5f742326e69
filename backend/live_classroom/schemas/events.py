"""Pydantic schemas for the classroom WebSocket protocol.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ─── Inbound (connection → core) ──────────────────────────────────────────────

class RoomMessage(WireModel):
    room_id: str = Field(..., min_length=1, max_length=64)


class JoinRequest(RoomMessage):
    pass


class LeaveRequest(RoomMessage):
    pass


class ChatRequest(RoomMessage):
    text: str


class RaiseHandRequest(RoomMessage):
    pass


class PopupResponseRequest(RoomMessage):
    cycle_id: str


class TriggerQuestionRequest(RoomMessage):
    question_id: str


class SubmitAnswerRequest(RoomMessage):
    question_id: str
    option_id: str
    time_taken_ms: int = Field(0, ge=0)


class FocusEventRequest(RoomMessage):
    event_type: Literal["focus", "blur"]
    duration_ms: int = Field(0, ge=0)


class SignalRequest(RoomMessage):
    to_user_id: str
    kind: Literal["offer", "answer", "candidate"]
    payload: Any = None


# ─── Outbound (core → connections) ────────────────────────────────────────────

class OutboundEvent(WireModel):
    type: str


class ParticipantInfo(WireModel):
    user_id: str
    name: str
    role: str


class ParticipantJoined(OutboundEvent):
    type: Literal["participantJoined"] = "participantJoined"
    user_id: str
    name: str
    role: str


class ParticipantLeft(OutboundEvent):
    type: Literal["participantLeft"] = "participantLeft"
    user_id: str
    name: str


class ParticipantsList(OutboundEvent):
    type: Literal["participantsList"] = "participantsList"
    room_id: str
    participants: List[ParticipantInfo]


class ChatMessage(OutboundEvent):
    type: Literal["chatMessage"] = "chatMessage"
    user_id: str
    name: str
    message: str
    timestamp: datetime


class HandRaised(OutboundEvent):
    type: Literal["handRaised"] = "handRaised"
    user_id: str
    name: str


class EngagementPopup(OutboundEvent):
    type: Literal["engagementPopup"] = "engagementPopup"
    popup_id: str
    room_id: str
    response_window_sec: int
    timestamp: datetime


class QuestionOptionItem(WireModel):
    id: str
    text: str


class QuestionBroadcast(OutboundEvent):
    type: Literal["questionBroadcast"] = "questionBroadcast"
    question_id: str
    text: str
    options: List[QuestionOptionItem]
    window_sec: int
    timestamp: datetime


class OptionBreakdown(WireModel):
    option_id: str
    text: str
    is_correct: bool
    count: int


class QuestionResults(OutboundEvent):
    type: Literal["questionResults"] = "questionResults"
    question_id: str
    total_responses: int
    correct_responses: int
    correct_percentage: int
    option_breakdown: List[OptionBreakdown]


class SignalRelayed(OutboundEvent):
    type: Literal["signalRelayed"] = "signalRelayed"
    from_user_id: str
    kind: str
    payload: Any = None


class Connected(OutboundEvent):
    type: Literal["connected"] = "connected"
    user_id: str
    name: str
    role: str


class ErrorEvent(OutboundEvent):
    type: Literal["error"] = "error"
    code: str
    detail: Optional[str] = None
