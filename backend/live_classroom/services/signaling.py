"""Directed relay of peer-connection negotiation messages."""

import logging
from typing import Any

from live_classroom.schemas.events import SignalRelayed
from live_classroom.services.registry import SessionRegistry

logger = logging.getLogger("live-classroom.signaling")

SIGNAL_KINDS = frozenset({"offer", "answer", "candidate"})


class SignalingRelay:
    """
    Stateless pass-through keyed by logical user id. Messages for a peer that
    is not in the room are dropped: no error, no retry, no queueing.
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    async def relay(self, room_id: str, from_user_id: str, to_user_id: str, kind: str, payload: Any) -> bool:
        if kind not in SIGNAL_KINDS:
            logger.debug("Dropping signal of unknown kind %r from %s", kind, from_user_id)
            return False
        target = self._registry.lookup_by_identity(room_id, to_user_id)
        if target is None:
            logger.debug("Dropping %s from %s: %s not in room %s", kind, from_user_id, to_user_id, room_id)
            return False
        return await target.deliver(SignalRelayed(from_user_id=from_user_id, kind=kind, payload=payload))
