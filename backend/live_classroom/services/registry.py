"""Session registry: room membership and connection ↔ identity routing.

One registry is constructed per server instance and injected into every
component that needs membership lookups. All mutations of a room happen while
holding that room's lock, which is the room's serialization domain: member
changes, popup cycles, question rounds and the timer callbacks that touch them.
Events are delivered only after the lock is released.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from live_classroom.exceptions import AlreadyInOtherRoom
from live_classroom.models.user import UserRole
from live_classroom.schemas.events import (
    OutboundEvent,
    ParticipantInfo,
    ParticipantJoined,
    ParticipantLeft,
    ParticipantsList,
)
from live_classroom.services.auth_service import Identity
from live_classroom.services.rooms import Room

logger = logging.getLogger("live-classroom.registry")

SendCallable = Callable[[Dict[str, Any]], Awaitable[None]]
Event = Union[OutboundEvent, Dict[str, Any]]


def _wire(event: Event) -> Dict[str, Any]:
    return event.to_wire() if isinstance(event, OutboundEvent) else event


@dataclass(eq=False)
class Connection:
    """One live transport session with its verified identity."""

    identity: Identity
    send: SendCallable
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Back-reference only; the registry owns membership.
    room_id: Optional[str] = None
    # Seconds a single send may take before the event is dropped for this connection.
    send_timeout: Optional[float] = None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def role(self) -> UserRole:
        return self.identity.role

    async def deliver(self, event: Event) -> bool:
        """Best-effort send. A connection that went away simply misses the event."""
        try:
            await asyncio.wait_for(self.send(_wire(event)), self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Send to connection %s timed out after %ss; event dropped",
                self.connection_id,
                self.send_timeout,
            )
            return False
        except Exception as exc:
            logger.debug("Dropped event for connection %s: %s", self.connection_id, exc)
            return False

    def __repr__(self):
        return f"<Connection(id={self.connection_id}, user={self.user_id}, room={self.room_id})>"


async def deliver_all(connections: Iterable[Connection], event: Event) -> int:
    """Fan an event out to connections concurrently; returns how many received it."""
    targets = list(connections)
    if not targets:
        return 0
    payload = _wire(event)
    results = await asyncio.gather(*(connection.deliver(payload) for connection in targets))
    return sum(1 for delivered in results if delivered)


def _participant(connection: Connection) -> ParticipantInfo:
    return ParticipantInfo(
        user_id=connection.user_id,
        name=connection.identity.name,
        role=connection.role.value,
    )


class SessionRegistry:
    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    # ─── Room access ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def locked(self, room_id: str, *, create: bool = False) -> AsyncIterator[Optional[Room]]:
        """
        Enter a room's serialization domain.

        Yields the live Room (or None when it does not exist and ``create`` is
        false). A room left without members when the block exits is closed and
        discarded, cancelling every timer it owns.
        """
        while True:
            room = self._rooms.get(room_id)
            if room is None:
                if not create:
                    yield None
                    return
                room = Room(room_id)
                self._rooms[room_id] = room
            async with room.lock:
                if room.closed:
                    # Discarded while we waited for the lock; retry on the current room.
                    continue
                try:
                    yield room
                finally:
                    if not room.members:
                        self._discard(room)
                return

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    def member_count(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return room.member_count if room else 0

    def members(self, room_id: str) -> List[Connection]:
        room = self._rooms.get(room_id)
        return list(room.members.values()) if room else []

    def participants(self, room_id: str) -> List[ParticipantInfo]:
        return [_participant(connection) for connection in self.members(room_id)]

    def lookup_by_identity(self, room_id: str, user_id: str) -> Optional[Connection]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        connection_id = room.identities.get(str(user_id))
        return room.members.get(connection_id) if connection_id else None

    # ─── Membership ───────────────────────────────────────────────────────────
    #
    # Room state changes under the lock; events go out after it is released so
    # a slow socket never holds up the rest of the room.

    async def join(self, connection: Connection, room_id: str) -> Room:
        if connection.room_id is not None and connection.room_id != room_id:
            raise AlreadyInOtherRoom(f"Already in room {connection.room_id}; leave it first")

        async with self.locked(room_id, create=True) as room:
            rejoin = connection.connection_id in room.members
            room.members[connection.connection_id] = connection
            room.identities[connection.user_id] = connection.connection_id
            connection.room_id = room_id

            others = [] if rejoin else [c for c in room.members.values() if c is not connection]
            roster = ParticipantsList(
                room_id=room_id,
                participants=[_participant(c) for c in room.members.values()],
            )
            if not rejoin:
                logger.info(
                    "%s (%s) joined room %s [%d members]",
                    connection.identity.name,
                    connection.role.value,
                    room_id,
                    room.member_count,
                )

        if not rejoin:
            await deliver_all(
                others,
                ParticipantJoined(
                    user_id=connection.user_id,
                    name=connection.identity.name,
                    role=connection.role.value,
                ),
            )
        await connection.deliver(roster)
        return room

    async def leave(self, connection: Connection, room_id: str) -> bool:
        async with self.locked(room_id) as room:
            if room is None or connection.connection_id not in room.members:
                return False

            del room.members[connection.connection_id]
            if connection.room_id == room_id:
                connection.room_id = None
            if room.identities.get(connection.user_id) == connection.connection_id:
                # Fall back to the user's most recent remaining connection, if any.
                remaining = [c for c in room.members.values() if c.user_id == connection.user_id]
                if remaining:
                    room.identities[connection.user_id] = remaining[-1].connection_id
                else:
                    del room.identities[connection.user_id]

            targets = list(room.members.values())
            logger.info(
                "%s left room %s [%d members]",
                connection.identity.name,
                room_id,
                room.member_count,
            )

        await deliver_all(
            targets,
            ParticipantLeft(user_id=connection.user_id, name=connection.identity.name),
        )
        return True

    async def disconnect(self, connection: Connection) -> bool:
        if connection.room_id is None:
            return False
        return await self.leave(connection, connection.room_id)

    # ─── Fan-out ──────────────────────────────────────────────────────────────

    async def snapshot(self, room_id: str, exclude: Optional[Connection] = None) -> List[Connection]:
        """Current members of a room, copied under its lock."""
        async with self.locked(room_id) as room:
            if room is None:
                return []
            return [c for c in room.members.values() if c is not exclude]

    async def broadcast(self, room_id: str, event: Event) -> int:
        return await deliver_all(await self.snapshot(room_id), event)

    async def broadcast_except(self, room_id: str, sender: Connection, event: Event) -> int:
        return await deliver_all(await self.snapshot(room_id, exclude=sender), event)

    # ─── Teardown ─────────────────────────────────────────────────────────────

    async def close_all(self) -> None:
        for room_id in list(self._rooms):
            room = self._rooms.get(room_id)
            if room is None:
                continue
            async with room.lock:
                for connection in room.members.values():
                    if connection.room_id == room_id:
                        connection.room_id = None
                room.members.clear()
                room.identities.clear()
                self._discard(room)

    def _discard(self, room: Room) -> None:
        if room.closed:
            return
        room.close()
        if self._rooms.get(room.room_id) is room:
            del self._rooms[room.room_id]
        logger.info("Room %s closed; timers cancelled", room.room_id)
