"""In-memory room state: membership, popup cycles and question rounds."""

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from live_classroom.services.store import OptionRecord
from live_classroom.services.timers import RoomTimer

if TYPE_CHECKING:
    from live_classroom.services.registry import Connection


class PopupState(str, enum.Enum):
    IDLE = "IDLE"
    SCHEDULED = "SCHEDULED"
    DISPATCHED = "DISPATCHED"
    STOPPED = "STOPPED"


@dataclass
class PopupCycle:
    cycle_id: str
    room_id: str
    created_at: datetime
    deadline: datetime
    responded: Dict[str, bool] = field(default_factory=dict)

    def is_outstanding_for(self, student_id: str) -> bool:
        return self.responded.get(student_id) is False


@dataclass(frozen=True)
class Response:
    student_id: str
    option_id: str
    time_taken_ms: int
    is_correct: bool


@dataclass
class QuestionRound:
    question_id: str
    room_id: str
    score_room_id: str
    text: str
    options: List[OptionRecord]
    started_at: datetime
    deadline: datetime
    timer: RoomTimer
    responses: Dict[str, Response] = field(default_factory=dict)

    def option(self, option_id: str) -> Optional[OptionRecord]:
        return next((option for option in self.options if option.id == option_id), None)


class Room:
    """
    A live class session. The room owns its popup timer and question timers;
    ``close`` cancels all of them and marks the room dead so late callbacks
    do nothing.
    """

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.lock = asyncio.Lock()
        self.closed = False
        # connection_id -> Connection, in join order
        self.members: Dict[str, "Connection"] = {}
        # user_id -> connection_id, last join wins
        self.identities: Dict[str, str] = {}

        self.popup_timer = RoomTimer(f"popups:{room_id}")
        self.popup_state = PopupState.IDLE
        self.popup_cycles: List[PopupCycle] = []

        self.questions: Dict[str, QuestionRound] = {}
        self.answered: Dict[str, Set[str]] = {}

    @property
    def member_count(self) -> int:
        return len(self.members)

    def close(self) -> None:
        self.closed = True
        self.popup_timer.cancel()
        self.popup_state = PopupState.STOPPED
        for question_round in self.questions.values():
            question_round.timer.cancel()
        self.questions.clear()

    def __repr__(self):
        return f"<Room(id={self.room_id}, members={len(self.members)}, closed={self.closed})>"
