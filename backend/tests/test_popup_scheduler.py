import asyncio
import random

import pytest
from pydantic import ValidationError

from live_classroom.config import Settings
from live_classroom.models.user import UserRole
from live_classroom.services.coordinator import ClassroomCoordinator
from live_classroom.services.auth_service import Identity
from live_classroom.services.rooms import PopupState

from tests.conftest import Inbox, wait_until


async def test_teacher_join_starts_popups(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    student, _ = connect("s1")

    await coordinator.join(student, "C1")
    assert not coordinator.popups.is_running("C1")

    await coordinator.join(teacher, "C1")
    assert coordinator.popups.is_running("C1")
    assert coordinator.popups.state("C1") == PopupState.SCHEDULED


async def test_dispatch_records_a_cycle_per_student(coordinator, connect, store):
    teacher, teacher_inbox = connect("t", UserRole.TEACHER)
    s1, s1_inbox = connect("s1")
    s2, _ = connect("s2")
    for connection in (teacher, s1, s2):
        await coordinator.join(connection, "C1")

    await wait_until(lambda: s1_inbox.of_type("engagementPopup"))

    popup = s1_inbox.of_type("engagementPopup")[0]
    assert popup["roomId"] == "C1"
    assert popup["responseWindowSec"] == 1
    assert "timestamp" in popup
    assert teacher_inbox.of_type("engagementPopup")[0]["popupId"] == popup["popupId"]

    cycle = coordinator.registry.get_room("C1").popup_cycles[0]
    assert cycle.cycle_id == popup["popupId"]
    assert cycle.responded == {"s1": False, "s2": False}

    await coordinator.writer.drain()
    logged = {key: value for key, value in store.popup_logs.items() if key[0] == popup["popupId"]}
    assert logged == {(popup["popupId"], "s1"): False, (popup["popupId"], "s2"): False}


async def test_starting_twice_keeps_a_single_timer(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    second_teacher, _ = connect("t2", UserRole.TEACHER)
    student, inbox = connect("s1")
    await coordinator.join(teacher, "C1")
    await coordinator.join(student, "C1")

    assert await coordinator.popups.start("C1") is False
    await coordinator.join(second_teacher, "C1")

    # initial delay 0.05s then one popup every 0.1s
    await asyncio.sleep(0.32)
    assert 2 <= len(inbox.of_type("engagementPopup")) <= 4
    cycles = coordinator.registry.get_room("C1").popup_cycles
    times = [cycle.created_at for cycle in cycles]
    gaps = [(b - a).total_seconds() for a, b in zip(times, times[1:])]
    assert all(gap >= 0.08 for gap in gaps)


async def test_response_resolves_exact_cycle_only(coordinator, connect, store):
    teacher, _ = connect("t", UserRole.TEACHER)
    student, inbox = connect("s1")
    await coordinator.join(teacher, "C1")
    await coordinator.join(student, "C1")
    await wait_until(lambda: len(inbox.of_type("engagementPopup")) >= 2)
    await coordinator.popups.stop("C1")

    first, second = [event["popupId"] for event in inbox.of_type("engagementPopup")[:2]]

    assert await coordinator.popup_response(student, "C1", "unknown-cycle") is False
    assert await coordinator.popup_response(student, "C1", first) is True
    assert await coordinator.popup_response(student, "C1", first) is False

    cycles = {c.cycle_id: c for c in coordinator.registry.get_room("C1").popup_cycles}
    assert cycles[first].responded["s1"] is True
    assert cycles[second].responded["s1"] is False

    await coordinator.writer.drain()
    assert store.popup_logs[(first, "s1")] is True
    assert store.popup_logs[(second, "s1")] is False


async def test_recency_matching_resolves_latest_outstanding(store):
    config = Settings(
        POPUP_INITIAL_DELAY_SECONDS=0.05,
        POPUP_MIN_INTERVAL_SECONDS=0.05,
        POPUP_MAX_INTERVAL_SECONDS=0.05,
        POPUP_RESPONSE_WINDOW_SECONDS=0.05,
        POPUP_EXACT_MATCH=False,
    )
    coordinator = ClassroomCoordinator.build(store, config, rng=random.Random(1))
    try:
        inbox = Inbox()
        teacher = coordinator.connect(Identity("t", "T", UserRole.TEACHER), Inbox())
        student = coordinator.connect(Identity("s1", "S1", UserRole.STUDENT), inbox)
        await coordinator.join(teacher, "C1")
        await coordinator.join(student, "C1")
        await wait_until(lambda: len(inbox.of_type("engagementPopup")) >= 2)
        await coordinator.popups.stop("C1")

        cycles = coordinator.registry.get_room("C1").popup_cycles
        assert await coordinator.popup_response(student, "C1", "whatever") is True
        assert cycles[-1].responded["s1"] is True
        assert cycles[0].responded["s1"] is False
    finally:
        await coordinator.shutdown()


async def test_teacher_cannot_answer_popups(coordinator, connect):
    teacher, inbox = connect("t", UserRole.TEACHER)
    await coordinator.join(teacher, "C1")

    await coordinator.handle_message(teacher, {"type": "popupResponse", "roomId": "C1", "cycleId": "x"})

    assert inbox.of_type("error")[-1]["code"] == "not_authorized"


async def test_stop_cancels_pending_dispatch(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    student, inbox = connect("s1")
    await coordinator.join(teacher, "C1")
    await coordinator.join(student, "C1")

    assert await coordinator.popups.stop("C1") is True
    assert coordinator.popups.state("C1") == PopupState.STOPPED
    assert await coordinator.popups.stop("C1") is False

    await asyncio.sleep(0.2)
    assert inbox.of_type("engagementPopup") == []


async def test_empty_room_stops_popups(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    await coordinator.join(teacher, "C1")
    room = coordinator.registry.get_room("C1")
    timer = room.popup_timer

    await coordinator.disconnect(teacher)

    assert room.closed
    assert not timer.active
    assert not coordinator.popups.is_running("C1")
    await asyncio.sleep(0.15)
    assert room.popup_cycles == []


async def test_next_delay_is_drawn_from_configured_range(store):
    config = Settings(POPUP_MIN_INTERVAL_SECONDS=180, POPUP_MAX_INTERVAL_SECONDS=420)
    coordinator = ClassroomCoordinator.build(store, config, rng=random.Random(3))
    delays = [coordinator.popups.next_delay() for _ in range(500)]
    assert all(180 <= delay <= 420 for delay in delays)
    assert max(delays) - min(delays) > 120


@pytest.mark.parametrize(
    "overrides",
    [
        {"POPUP_MIN_INTERVAL_SECONDS": 10, "POPUP_RESPONSE_WINDOW_SECONDS": 15},
        {"POPUP_MIN_INTERVAL_SECONDS": 300, "POPUP_MAX_INTERVAL_SECONDS": 200},
    ],
)
def test_popup_cadence_must_outlast_response_window(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
