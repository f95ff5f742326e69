"""Persistent store used by the live core.

The core only talks to ``ClassroomStore``; ``SqlClassroomStore`` is the
SQLAlchemy implementation backed by the tables in ``live_classroom.models``.
"""

import abc
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from live_classroom.exceptions import DuplicateSubmission, StorageFailure
from live_classroom.models.classroom import Enrollment
from live_classroom.models.engagement import FocusLog, PopupLog
from live_classroom.models.question import Points, Question, QuestionOption, QuestionResponse

logger = logging.getLogger("live-classroom.store")


@dataclass(frozen=True)
class QuestionRecord:
    id: str
    class_id: str
    text: str


@dataclass(frozen=True)
class OptionRecord:
    id: str
    text: str
    is_correct: bool


class ClassroomStore(abc.ABC):
    """Narrow query interface the coordinator depends on."""

    @abc.abstractmethod
    async def list_students(self, room_id: str) -> List[str]:
        """Enrolled student ids. Popup dispatch targets the students present, not this list."""

    @abc.abstractmethod
    async def get_question(self, question_id: str) -> Optional[QuestionRecord]: ...

    @abc.abstractmethod
    async def get_options(self, question_id: str) -> List[OptionRecord]: ...

    @abc.abstractmethod
    async def record_response(
        self,
        *,
        student_id: str,
        question_id: str,
        option_id: str,
        time_taken_ms: int,
    ) -> None:
        """Persist an answer. Raises DuplicateSubmission if one already exists."""

    @abc.abstractmethod
    async def award_points(self, student_id: str, room_id: str, amount: int) -> None:
        """Atomically add ``amount`` to the (student, room) score, creating it at zero."""

    @abc.abstractmethod
    async def get_points(self, student_id: str, room_id: str) -> int: ...

    @abc.abstractmethod
    async def record_focus_event(
        self,
        *,
        student_id: str,
        room_id: str,
        event_type: str,
        duration_ms: int,
    ) -> None: ...

    @abc.abstractmethod
    async def record_popup_dispatch(self, cycle_id: str, room_id: str, student_ids: Sequence[str]) -> None: ...

    @abc.abstractmethod
    async def mark_popup_responded(self, cycle_id: str, room_id: str, student_id: str) -> None: ...


class SqlClassroomStore(ClassroomStore):
    """SQLAlchemy-backed store. Every call runs in its own session and transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_students(self, room_id: str) -> List[str]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Enrollment.student_id).where(Enrollment.class_id == room_id)
            )
            return [str(row) for row in result.scalars().all()]

    async def get_question(self, question_id: str) -> Optional[QuestionRecord]:
        async with self._session_factory() as db:
            question = await db.get(Question, question_id)
            if not question:
                return None
            return QuestionRecord(id=question.id, class_id=question.class_id, text=question.text)

    async def get_options(self, question_id: str) -> List[OptionRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(QuestionOption)
                .where(QuestionOption.question_id == question_id)
                .order_by(QuestionOption.position, QuestionOption.id)
            )
            return [
                OptionRecord(id=option.id, text=option.text, is_correct=bool(option.is_correct))
                for option in result.scalars().all()
            ]

    async def record_response(
        self,
        *,
        student_id: str,
        question_id: str,
        option_id: str,
        time_taken_ms: int,
    ) -> None:
        async with self._session_factory() as db:
            db.add(
                QuestionResponse(
                    student_id=student_id,
                    question_id=question_id,
                    option_id=option_id,
                    time_taken_ms=max(int(time_taken_ms or 0), 0),
                )
            )
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise DuplicateSubmission(
                    f"Student {student_id} already answered question {question_id}"
                ) from exc
            except SQLAlchemyError as exc:
                await db.rollback()
                raise StorageFailure(str(exc)) from exc

    async def award_points(self, student_id: str, room_id: str, amount: int) -> None:
        # score = score + amount is evaluated by the database, so concurrent
        # awards never overwrite each other.
        increment = (
            update(Points)
            .where(Points.student_id == student_id, Points.class_id == room_id)
            .values(score=Points.score + amount)
        )
        async with self._session_factory() as db:
            try:
                result = await db.execute(increment)
                if result.rowcount:
                    await db.commit()
                    return
                db.add(Points(student_id=student_id, class_id=room_id, score=amount))
                try:
                    await db.commit()
                except IntegrityError:
                    # Another award created the row first.
                    await db.rollback()
                    await db.execute(increment)
                    await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                raise StorageFailure(str(exc)) from exc

    async def get_points(self, student_id: str, room_id: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Points.score).where(Points.student_id == student_id, Points.class_id == room_id)
            )
            return int(result.scalar_one_or_none() or 0)

    async def record_focus_event(
        self,
        *,
        student_id: str,
        room_id: str,
        event_type: str,
        duration_ms: int,
    ) -> None:
        async with self._session_factory() as db:
            db.add(
                FocusLog(
                    student_id=student_id,
                    class_id=room_id,
                    event_type=event_type,
                    duration_ms=max(int(duration_ms or 0), 0),
                )
            )
            await self._commit(db)

    async def record_popup_dispatch(self, cycle_id: str, room_id: str, student_ids: Sequence[str]) -> None:
        if not student_ids:
            return
        async with self._session_factory() as db:
            db.add_all(
                [
                    PopupLog(cycle_id=cycle_id, class_id=room_id, student_id=student_id, responded=False)
                    for student_id in student_ids
                ]
            )
            await self._commit(db)

    async def mark_popup_responded(self, cycle_id: str, room_id: str, student_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(PopupLog)
                .where(
                    PopupLog.cycle_id == cycle_id,
                    PopupLog.class_id == room_id,
                    PopupLog.student_id == student_id,
                )
                .values(responded=True, responded_at=datetime.now(timezone.utc))
            )
            await self._commit(db)

    @staticmethod
    async def _commit(db: AsyncSession) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise StorageFailure(str(exc)) from exc


class StoreWriter:
    """
    Runs store writes as background tasks so connection handling and timer
    callbacks never wait on persistence. A failed write is logged and its side
    effect is lost; in-memory room state is never rolled back because of it.
    """

    def __init__(self) -> None:
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, description: str, write: Callable[[], Awaitable[None]]) -> asyncio.Task:
        task = asyncio.create_task(self._run(description, write), name=f"store:{description}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every write submitted so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _run(description: str, write: Callable[[], Awaitable[None]]) -> None:
        try:
            await write()
        except DuplicateSubmission as exc:
            logger.info("Store rejected duplicate (%s): %s", description, exc.detail)
        except Exception:
            logger.exception("Storage failure during %s", description)
