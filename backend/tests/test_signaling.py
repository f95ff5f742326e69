from live_classroom.models.user import UserRole


async def test_signal_reaches_only_the_target(coordinator, connect):
    teacher, teacher_inbox = connect("t", UserRole.TEACHER)
    s1, s1_inbox = connect("s1")
    s2, s2_inbox = connect("s2")
    for connection in (teacher, s1, s2):
        await coordinator.join(connection, "C1")

    offer = {"sdp": "v=0...", "type": "offer"}
    assert await coordinator.signal(teacher, "C1", "s1", "offer", offer) is True

    assert s1_inbox.of_type("signalRelayed") == [
        {"type": "signalRelayed", "fromUserId": "t", "kind": "offer", "payload": offer}
    ]
    assert s2_inbox.of_type("signalRelayed") == []
    assert teacher_inbox.of_type("signalRelayed") == []


async def test_signal_to_absent_peer_is_dropped(coordinator, connect):
    teacher, teacher_inbox = connect("t", UserRole.TEACHER)
    await coordinator.join(teacher, "C1")

    assert await coordinator.signal(teacher, "C1", "ghost", "candidate", {"candidate": "x"}) is False
    assert teacher_inbox.of_type("error") == []


async def test_signal_follows_latest_connection(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    old, old_inbox = connect("s1")
    new, new_inbox = connect("s1")
    for connection in (teacher, old, new):
        await coordinator.join(connection, "C1")

    await coordinator.signal(teacher, "C1", "s1", "answer", {"sdp": "..."})

    assert len(new_inbox.of_type("signalRelayed")) == 1
    assert old_inbox.of_type("signalRelayed") == []


async def test_signal_does_not_cross_rooms(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    student, inbox = connect("s1")
    await coordinator.join(teacher, "C1")
    await coordinator.join(student, "C2")

    assert await coordinator.signal(teacher, "C1", "s1", "offer", {}) is False
    assert inbox.of_type("signalRelayed") == []


async def test_unknown_signal_kind_is_rejected_at_the_wire(coordinator, connect):
    teacher, _ = connect("t", UserRole.TEACHER)
    student, inbox = connect("s1")
    await coordinator.join(teacher, "C1")
    await coordinator.join(student, "C1")

    assert await coordinator.relay.relay("C1", "t", "s1", "renegotiate", {}) is False
    await coordinator.handle_message(
        teacher, {"type": "signal", "roomId": "C1", "toUserId": "s1", "kind": "renegotiate"}
    )
    assert inbox.of_type("signalRelayed") == []
