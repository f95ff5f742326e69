import asyncio
import random
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from live_classroom.config import Settings
from live_classroom.exceptions import DuplicateSubmission, StorageFailure
from live_classroom.models.user import UserRole
from live_classroom.services.auth_service import Identity
from live_classroom.services.coordinator import ClassroomCoordinator
from live_classroom.services.registry import Connection
from live_classroom.services.store import ClassroomStore, OptionRecord, QuestionRecord


class FakeStore(ClassroomStore):
    """In-memory store with the same contract as SqlClassroomStore."""

    def __init__(self) -> None:
        self.enrollments: Dict[str, List[str]] = defaultdict(list)
        self.questions: Dict[str, QuestionRecord] = {}
        self.options: Dict[str, List[OptionRecord]] = {}
        self.responses: Dict[Tuple[str, str], str] = {}
        self.points: Dict[Tuple[str, str], int] = {}
        self.focus_events: List[dict] = []
        self.popup_logs: Dict[Tuple[str, str], bool] = {}
        self.fail_writes = False

    def add_question(self, question_id: str, class_id: str, text: str, options: Sequence[Tuple[str, str, bool]]):
        self.questions[question_id] = QuestionRecord(id=question_id, class_id=class_id, text=text)
        self.options[question_id] = [OptionRecord(id=i, text=t, is_correct=c) for i, t, c in options]

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise StorageFailure("store unavailable")

    async def list_students(self, room_id: str) -> List[str]:
        return list(self.enrollments[room_id])

    async def get_question(self, question_id: str) -> Optional[QuestionRecord]:
        return self.questions.get(question_id)

    async def get_options(self, question_id: str) -> List[OptionRecord]:
        return list(self.options.get(question_id, []))

    async def record_response(self, *, student_id, question_id, option_id, time_taken_ms) -> None:
        self._check_writable()
        await asyncio.sleep(0)
        if (student_id, question_id) in self.responses:
            raise DuplicateSubmission("duplicate")
        self.responses[(student_id, question_id)] = option_id

    async def award_points(self, student_id: str, room_id: str, amount: int) -> None:
        self._check_writable()
        await asyncio.sleep(0)
        key = (student_id, room_id)
        self.points[key] = self.points.get(key, 0) + amount

    async def get_points(self, student_id: str, room_id: str) -> int:
        return self.points.get((student_id, room_id), 0)

    async def record_focus_event(self, *, student_id, room_id, event_type, duration_ms) -> None:
        self._check_writable()
        self.focus_events.append(
            {"student_id": student_id, "room_id": room_id, "event_type": event_type, "duration_ms": duration_ms}
        )

    async def record_popup_dispatch(self, cycle_id: str, room_id: str, student_ids: Sequence[str]) -> None:
        self._check_writable()
        for student_id in student_ids:
            self.popup_logs[(cycle_id, student_id)] = False

    async def mark_popup_responded(self, cycle_id: str, room_id: str, student_id: str) -> None:
        self._check_writable()
        self.popup_logs[(cycle_id, student_id)] = True


class Inbox:
    """Records everything delivered to one fake connection."""

    def __init__(self) -> None:
        self.events: List[dict] = []
        self.closed = False

    async def __call__(self, payload: dict) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.events.append(payload)

    def of_type(self, event_type: str) -> List[dict]:
        return [event for event in self.events if event.get("type") == event_type]

    def clear(self) -> None:
        self.events.clear()


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        POPUP_INITIAL_DELAY_SECONDS=0.05,
        POPUP_MIN_INTERVAL_SECONDS=0.1,
        POPUP_MAX_INTERVAL_SECONDS=0.1,
        POPUP_RESPONSE_WINDOW_SECONDS=0.1,
        QUESTION_WINDOW_SECONDS=0.2,
        QUESTION_POINTS=10,
        WS_SEND_TIMEOUT_SECONDS=0.2,
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
async def coordinator(store, fast_settings):
    coordinator = ClassroomCoordinator.build(store, fast_settings, rng=random.Random(7))
    yield coordinator
    await coordinator.shutdown()


@pytest.fixture
def connect(coordinator):
    """Factory returning (connection, inbox) for a new authenticated user."""

    def _connect(user_id: str, role: UserRole = UserRole.STUDENT, name: Optional[str] = None):
        inbox = Inbox()
        identity = Identity(user_id=user_id, name=name or user_id, role=role)
        connection: Connection = coordinator.connect(identity, inbox)
        return connection, inbox

    return _connect
