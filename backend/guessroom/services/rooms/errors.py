"""Rejected-operation errors for room lifecycle calls.

Every ``RoomError`` is recoverable: it is reported back to the calling client
with its ``kind`` attached and leaves the room untouched.
"""

from typing import Any, Dict, Optional


class RoomError(Exception):
    kind = 'RoomError'
    status_code = 409

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.context = context
        super().__init__(message or self.kind)

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.kind, 'message': str(self)}
        if self.context:
            payload['context'] = self.context
        return payload


class RoomNotFound(RoomError):
    kind = 'RoomNotFound'
    status_code = 404


class RoomFull(RoomError):
    kind = 'RoomFull'


class RoomFinished(RoomError):
    kind = 'RoomFinished'


class NotEnoughPlayers(RoomError):
    kind = 'NotEnoughPlayers'


class StaleRound(RoomError):
    kind = 'StaleRound'


class RoundNotActive(RoomError):
    kind = 'RoundNotActive'


class PlayerNotInRoom(RoomError):
    kind = 'PlayerNotInRoom'
    status_code = 404


class NotHost(RoomError):
    kind = 'NotHost'
    status_code = 403


class InvalidSettings(RoomError):
    kind = 'InvalidSettings'
    status_code = 400


class ChatDisabled(RoomError):
    kind = 'ChatDisabled'
    status_code = 403


class InvariantViolation(Exception):
    """Internal corruption of a room's state; never sent as a rejection."""

    def __init__(self, room_id: str, detail: str):
        self.room_id = room_id
        self.detail = detail
        super().__init__(f"room {room_id}: {detail}")
