"""Attendance popups: randomized per-room check-ins for students.

Per room: IDLE -> SCHEDULED -> DISPATCHED -> (SCHEDULED | STOPPED). The first
popup fires after a fixed initial delay, later ones after a uniformly random
delay from the configured range. The response deadline sent to clients is
advisory; unresponded cycles are simply left unresolved for the analytics
consumer.
"""

import asyncio
import logging
import math
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from live_classroom.config import Settings
from live_classroom.models.user import UserRole
from live_classroom.schemas.events import EngagementPopup
from live_classroom.services.registry import Connection, SessionRegistry, deliver_all
from live_classroom.services.rooms import PopupCycle, PopupState, Room
from live_classroom.services.store import ClassroomStore, StoreWriter
from live_classroom.services.timers import RoomTimer

logger = logging.getLogger("live-classroom.popups")


class AttendancePopupScheduler:
    def __init__(
        self,
        registry: SessionRegistry,
        store: ClassroomStore,
        writer: StoreWriter,
        config: Settings,
        rng: Optional[random.Random] = None,
    ):
        self._registry = registry
        self._store = store
        self._writer = writer
        self._config = config
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        low = self._config.POPUP_MIN_INTERVAL_SECONDS
        high = max(self._config.POPUP_MAX_INTERVAL_SECONDS, low)
        return self._rng.uniform(low, high)

    def is_running(self, room_id: str) -> bool:
        room = self._registry.get_room(room_id)
        return bool(room and room.popup_timer.active)

    def state(self, room_id: str) -> PopupState:
        room = self._registry.get_room(room_id)
        return room.popup_state if room else PopupState.STOPPED

    async def start(self, room_id: str) -> bool:
        """Start popups for a room. Starting an already running scheduler is a no-op."""
        async with self._registry.locked(room_id) as room:
            if room is None or room.popup_timer.active:
                return False
            timer = room.popup_timer
            timer.start(lambda generation: self._run(room_id, timer, generation))
            room.popup_state = PopupState.SCHEDULED
            logger.info("Attendance popups started for room %s", room_id)
            return True

    async def stop(self, room_id: str) -> bool:
        async with self._registry.locked(room_id) as room:
            if room is None or not room.popup_timer.active:
                return False
            room.popup_timer.cancel()
            room.popup_state = PopupState.STOPPED
            logger.info("Attendance popups stopped for room %s", room_id)
            return True

    async def _run(self, room_id: str, timer: RoomTimer, generation: int) -> None:
        delay = self._config.POPUP_INITIAL_DELAY_SECONDS
        while True:
            await asyncio.sleep(delay)
            async with self._registry.locked(room_id) as room:
                if room is None or room.popup_timer is not timer or not timer.is_current(generation):
                    return
                room.popup_state = PopupState.DISPATCHED
                cycle, targets, popup = self._dispatch(room)
                room.popup_state = PopupState.SCHEDULED
            await deliver_all(targets, popup)
            logger.info("Popup %s sent to room %s (%d students)", cycle.cycle_id, room_id, len(cycle.responded))
            if not timer.is_current(generation):
                return
            delay = self.next_delay()

    def _dispatch(self, room: Room) -> Tuple[PopupCycle, List[Connection], EngagementPopup]:
        """Open a cycle for the students present; returns it with the members to notify."""
        now = datetime.now(timezone.utc)
        window = self._config.POPUP_RESPONSE_WINDOW_SECONDS
        student_ids = list(
            dict.fromkeys(c.user_id for c in room.members.values() if c.role == UserRole.STUDENT)
        )
        cycle = PopupCycle(
            cycle_id=str(uuid.uuid4()),
            room_id=room.room_id,
            created_at=now,
            deadline=now + timedelta(seconds=window),
            responded={student_id: False for student_id in student_ids},
        )
        room.popup_cycles.append(cycle)

        self._writer.submit(
            f"popup dispatch {cycle.cycle_id}",
            lambda: self._store.record_popup_dispatch(cycle.cycle_id, room.room_id, student_ids),
        )
        popup = EngagementPopup(
            popup_id=cycle.cycle_id,
            room_id=room.room_id,
            response_window_sec=int(math.ceil(window)),
            timestamp=now,
        )
        return cycle, list(room.members.values()), popup

    async def handle_response(self, room_id: str, student_id: str, cycle_id: str) -> bool:
        """
        Resolve a student's popup. With exact matching only the named, still
        outstanding cycle is resolved; otherwise the most recent outstanding
        cycle for the student is, whatever id the client reported.
        """
        async with self._registry.locked(room_id) as room:
            if room is None:
                return False
            cycle = self._find_cycle(room, student_id, cycle_id)
            if cycle is None:
                logger.debug("Ignoring popup response from %s in room %s (cycle %s)", student_id, room_id, cycle_id)
                return False
            cycle.responded[student_id] = True

        self._writer.submit(
            f"popup response {cycle.cycle_id}",
            lambda: self._store.mark_popup_responded(cycle.cycle_id, room_id, student_id),
        )
        logger.info("Popup response from student %s in room %s", student_id, room_id)
        return True

    def _find_cycle(self, room: Room, student_id: str, cycle_id: str) -> Optional[PopupCycle]:
        if self._config.POPUP_EXACT_MATCH:
            cycle = next((c for c in room.popup_cycles if c.cycle_id == cycle_id), None)
            return cycle if cycle and cycle.is_outstanding_for(student_id) else None
        return next((c for c in reversed(room.popup_cycles) if c.is_outstanding_for(student_id)), None)
