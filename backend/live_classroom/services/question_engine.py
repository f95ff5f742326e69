"""Timed multiple-choice questions: broadcast, collect answers, compile results."""

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from live_classroom.config import Settings
from live_classroom.exceptions import InvalidMessage
from live_classroom.schemas.events import (
    OptionBreakdown,
    QuestionBroadcast,
    QuestionOptionItem,
    QuestionResults,
)
from live_classroom.services.registry import SessionRegistry, deliver_all
from live_classroom.services.rooms import QuestionRound, Response
from live_classroom.services.store import ClassroomStore, StoreWriter
from live_classroom.services.timers import RoomTimer

logger = logging.getLogger("live-classroom.questions")


def correct_percentage(correct: int, total: int) -> int:
    # Half-up rounding, so 12.5% reports as 13.
    if total <= 0:
        return 0
    return int(math.floor(100.0 * correct / total + 0.5))


def compile_results(question_round: QuestionRound) -> QuestionResults:
    responses = list(question_round.responses.values())
    correct_ids = {option.id for option in question_round.options if option.is_correct}
    correct = sum(1 for response in responses if response.option_id in correct_ids)
    return QuestionResults(
        question_id=question_round.question_id,
        total_responses=len(responses),
        correct_responses=correct,
        correct_percentage=correct_percentage(correct, len(responses)),
        option_breakdown=[
            OptionBreakdown(
                option_id=option.id,
                text=option.text,
                is_correct=option.is_correct,
                count=sum(1 for response in responses if response.option_id == option.id),
            )
            for option in question_round.options
        ],
    )


class TimedQuestionEngine:
    def __init__(
        self,
        registry: SessionRegistry,
        store: ClassroomStore,
        writer: StoreWriter,
        config: Settings,
    ):
        self._registry = registry
        self._store = store
        self._writer = writer
        self._config = config

    def is_open(self, room_id: str, question_id: str) -> bool:
        room = self._registry.get_room(room_id)
        return bool(room and question_id in room.questions)

    async def broadcast_question(self, room_id: str, question_id: str) -> bool:
        """
        Publish a question to the room and open its response window.
        Unknown questions are logged and ignored; triggering a question whose
        window is still open does not start a second timer.
        """
        try:
            question = await self._store.get_question(question_id)
            options = await self._store.get_options(question_id) if question else []
        except Exception:
            logger.exception("Could not load question %s", question_id)
            return False
        if question is None:
            logger.warning("Question %s not found; nothing broadcast to room %s", question_id, room_id)
            return False

        window = self._config.QUESTION_WINDOW_SECONDS
        async with self._registry.locked(room_id) as room:
            if room is None:
                return False
            if question_id in room.questions:
                logger.info("Question %s already open in room %s", question_id, room_id)
                return False

            now = datetime.now(timezone.utc)
            timer = RoomTimer(f"question:{room_id}:{question_id}")
            question_round = QuestionRound(
                question_id=question_id,
                room_id=room_id,
                score_room_id=question.class_id or room_id,
                text=question.text,
                options=list(options),
                started_at=now,
                deadline=now + timedelta(seconds=window),
                timer=timer,
            )
            room.questions[question_id] = question_round
            timer.start(lambda generation: self._expire(room_id, question_round, generation))
            targets = list(room.members.values())

        await deliver_all(
            targets,
            QuestionBroadcast(
                question_id=question_id,
                text=question.text,
                options=[QuestionOptionItem(id=o.id, text=o.text) for o in options],
                window_sec=int(math.ceil(window)),
                timestamp=now,
            ),
        )
        logger.info('Question broadcast to room %s: "%s"', room_id, question.text)
        return True

    async def handle_answer(
        self,
        room_id: str,
        student_id: str,
        question_id: str,
        option_id: str,
        time_taken_ms: Optional[int] = 0,
    ) -> bool:
        """
        Record a student's answer. First write wins: a second answer, or one
        arriving after the window closed, is rejected without side effects.
        """
        async with self._registry.locked(room_id) as room:
            if room is None:
                return False
            question_round = room.questions.get(question_id)
            if question_round is None:
                logger.debug("Answer from %s for closed question %s ignored", student_id, question_id)
                return False
            answered = room.answered.setdefault(question_id, set())
            if student_id in answered:
                logger.debug("Duplicate answer from %s for question %s ignored", student_id, question_id)
                return False
            option = question_round.option(option_id)
            if option is None:
                raise InvalidMessage(f"Option {option_id} does not belong to question {question_id}")

            answered.add(student_id)
            response = Response(
                student_id=student_id,
                option_id=option_id,
                time_taken_ms=max(int(time_taken_ms or 0), 0),
                is_correct=option.is_correct,
            )
            question_round.responses[student_id] = response
            score_room_id = question_round.score_room_id

        self._writer.submit(
            f"answer {student_id}/{question_id}",
            lambda: self._persist_answer(question_id, score_room_id, response),
        )
        return True

    async def _persist_answer(self, question_id: str, score_room_id: str, response: Response) -> None:
        # DuplicateSubmission from the store skips the award.
        await self._store.record_response(
            student_id=response.student_id,
            question_id=question_id,
            option_id=response.option_id,
            time_taken_ms=response.time_taken_ms,
        )
        if response.is_correct:
            await self._store.award_points(response.student_id, score_room_id, self._config.QUESTION_POINTS)

    async def _expire(self, room_id: str, question_round: QuestionRound, generation: int) -> None:
        await asyncio.sleep(self._config.QUESTION_WINDOW_SECONDS)
        async with self._registry.locked(room_id) as room:
            if room is None or room.questions.get(question_round.question_id) is not question_round:
                return
            if not question_round.timer.is_current(generation):
                return
            del room.questions[question_round.question_id]
            results = compile_results(question_round)
            targets = list(room.members.values())
        await deliver_all(targets, results)
        logger.info(
            "Question results for %s in room %s: %d/%d correct",
            question_round.question_id,
            room_id,
            results.correct_responses,
            results.total_responses,
        )
