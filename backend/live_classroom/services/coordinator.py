"""Connection lifecycle glue: routes inbound events to the room components."""

import logging
import random
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from pydantic import ValidationError

from live_classroom.config import Settings, settings as default_settings
from live_classroom.exceptions import ClassroomError, InvalidMessage, NotFound
from live_classroom.middleware.rbac import require_student, require_teacher
from live_classroom.schemas.events import (
    ChatMessage,
    ChatRequest,
    ErrorEvent,
    FocusEventRequest,
    HandRaised,
    JoinRequest,
    LeaveRequest,
    PopupResponseRequest,
    RaiseHandRequest,
    SignalRequest,
    SubmitAnswerRequest,
    TriggerQuestionRequest,
    WireModel,
)
from live_classroom.services.auth_service import Identity
from live_classroom.services.popup_scheduler import AttendancePopupScheduler
from live_classroom.services.question_engine import TimedQuestionEngine
from live_classroom.services.registry import Connection, SendCallable, SessionRegistry
from live_classroom.services.signaling import SignalingRelay
from live_classroom.services.store import ClassroomStore, StoreWriter

logger = logging.getLogger("live-classroom.coordinator")


class ClassroomCoordinator:
    def __init__(
        self,
        registry: SessionRegistry,
        popups: AttendancePopupScheduler,
        questions: TimedQuestionEngine,
        relay: SignalingRelay,
        store: ClassroomStore,
        writer: StoreWriter,
        config: Settings,
    ):
        self.registry = registry
        self.popups = popups
        self.questions = questions
        self.relay = relay
        self.store = store
        self.writer = writer
        self.config = config
        self._handlers: Dict[str, Tuple[Type[WireModel], Callable[[Connection, Any], Awaitable[Any]]]] = {
            "join": (JoinRequest, lambda c, m: self.join(c, m.room_id)),
            "leave": (LeaveRequest, lambda c, m: self.leave(c, m.room_id)),
            "chat": (ChatRequest, lambda c, m: self.chat(c, m.room_id, m.text)),
            "raiseHand": (RaiseHandRequest, lambda c, m: self.raise_hand(c, m.room_id)),
            "popupResponse": (PopupResponseRequest, lambda c, m: self.popup_response(c, m.room_id, m.cycle_id)),
            "triggerQuestion": (
                TriggerQuestionRequest,
                lambda c, m: self.trigger_question(c, m.room_id, m.question_id),
            ),
            "submitAnswer": (
                SubmitAnswerRequest,
                lambda c, m: self.submit_answer(c, m.room_id, m.question_id, m.option_id, m.time_taken_ms),
            ),
            "focusEvent": (
                FocusEventRequest,
                lambda c, m: self.focus_event(c, m.room_id, m.event_type, m.duration_ms),
            ),
            "signal": (
                SignalRequest,
                lambda c, m: self.signal(c, m.room_id, m.to_user_id, m.kind, m.payload),
            ),
        }

    @classmethod
    def build(
        cls,
        store: ClassroomStore,
        config: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> "ClassroomCoordinator":
        """Wire one registry and its components for a server instance."""
        config = config or default_settings
        registry = SessionRegistry()
        writer = StoreWriter()
        return cls(
            registry=registry,
            popups=AttendancePopupScheduler(registry, store, writer, config, rng=rng),
            questions=TimedQuestionEngine(registry, store, writer, config),
            relay=SignalingRelay(registry),
            store=store,
            writer=writer,
            config=config,
        )

    # ─── Connection lifecycle ─────────────────────────────────────────────────

    def connect(self, identity: Identity, send: SendCallable) -> Connection:
        connection = Connection(
            identity=identity,
            send=send,
            send_timeout=self.config.WS_SEND_TIMEOUT_SECONDS,
        )
        logger.info("Connected: %s (%s)", identity.name, identity.role.value)
        return connection

    async def join(self, connection: Connection, room_id: str) -> None:
        await self.registry.join(connection, room_id)
        if connection.identity.is_teacher:
            await self.popups.start(room_id)

    async def leave(self, connection: Connection, room_id: str) -> bool:
        return await self.registry.leave(connection, room_id)

    async def disconnect(self, connection: Connection) -> None:
        await self.registry.disconnect(connection)
        logger.info("Disconnected: %s", connection.identity.name)

    async def shutdown(self) -> None:
        await self.registry.close_all()
        await self.writer.drain()

    # ─── Room events ──────────────────────────────────────────────────────────

    def _require_member(self, connection: Connection, room_id: str) -> None:
        if connection.room_id != room_id:
            raise NotFound(f"Not a member of room {room_id}")

    async def chat(self, connection: Connection, room_id: str, text: str) -> int:
        self._require_member(connection, room_id)
        message = (text or "").strip()
        if not message:
            return 0
        if len(message) > self.config.CHAT_MAX_LENGTH:
            raise InvalidMessage(f"Chat messages are limited to {self.config.CHAT_MAX_LENGTH} characters")
        return await self.registry.broadcast(
            room_id,
            ChatMessage(
                user_id=connection.user_id,
                name=connection.identity.name,
                message=message,
                timestamp=datetime.now(timezone.utc),
            ),
        )

    async def raise_hand(self, connection: Connection, room_id: str) -> int:
        self._require_member(connection, room_id)
        return await self.registry.broadcast(
            room_id,
            HandRaised(user_id=connection.user_id, name=connection.identity.name),
        )

    async def popup_response(self, connection: Connection, room_id: str, cycle_id: str) -> bool:
        require_student(connection.identity)
        self._require_member(connection, room_id)
        return await self.popups.handle_response(room_id, connection.user_id, cycle_id)

    async def trigger_question(self, connection: Connection, room_id: str, question_id: str) -> bool:
        require_teacher(connection.identity)
        self._require_member(connection, room_id)
        return await self.questions.broadcast_question(room_id, question_id)

    async def submit_answer(
        self,
        connection: Connection,
        room_id: str,
        question_id: str,
        option_id: str,
        time_taken_ms: int = 0,
    ) -> bool:
        require_student(connection.identity)
        self._require_member(connection, room_id)
        return await self.questions.handle_answer(
            room_id, connection.user_id, question_id, option_id, time_taken_ms
        )

    async def focus_event(self, connection: Connection, room_id: str, event_type: str, duration_ms: int = 0) -> None:
        require_student(connection.identity)
        self._require_member(connection, room_id)
        if event_type not in ("focus", "blur"):
            raise InvalidMessage(f"Unsupported focus event type: {event_type}")
        student_id = connection.user_id
        self.writer.submit(
            f"focus {student_id}/{room_id}",
            lambda: self.store.record_focus_event(
                student_id=student_id,
                room_id=room_id,
                event_type=event_type,
                duration_ms=max(int(duration_ms or 0), 0),
            ),
        )

    async def signal(self, connection: Connection, room_id: str, to_user_id: str, kind: str, payload: Any) -> bool:
        self._require_member(connection, room_id)
        return await self.relay.relay(room_id, connection.user_id, to_user_id, kind, payload)

    # ─── Wire dispatch ────────────────────────────────────────────────────────

    async def handle_message(self, connection: Connection, payload: Dict[str, Any]) -> None:
        """
        Validate and dispatch one inbound frame. Failures stay scoped to this
        message: reportable errors go back to the sender only, the rest are
        logged.
        """
        message_type = ""
        try:
            if not isinstance(payload, dict):
                raise InvalidMessage("Messages must be JSON objects")
            message_type = str(payload.get("type") or "").strip()
            if message_type not in self._handlers:
                raise InvalidMessage(f"Unsupported message type: {message_type or '<missing>'}")
            schema, handler = self._handlers[message_type]
            try:
                message = schema.model_validate(payload)
            except ValidationError as exc:
                raise InvalidMessage(f"Invalid {message_type} payload: {exc.errors()[0].get('msg')}") from exc
            await handler(connection, message)
        except ClassroomError as exc:
            if exc.notify_sender:
                await connection.deliver(ErrorEvent(code=exc.code, detail=exc.detail))
            else:
                logger.debug("Ignored %s from %s: %s", exc.code, connection.user_id, exc.detail)
        except Exception:
            logger.exception("Unhandled error processing %r from %s", message_type, connection.user_id)
            await connection.deliver(ErrorEvent(code="internal_error", detail="Unable to process message"))
