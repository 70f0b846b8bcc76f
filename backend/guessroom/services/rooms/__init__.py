"""Room domain services: evaluation, timers, lifecycle, ledger and presence.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics.
"""

from flask import current_app

from .errors import RoomError
from .manager import RoomManager


def get_room_manager() -> RoomManager:
    return current_app.extensions['room_manager']


__all__ = ['RoomError', 'RoomManager', 'get_room_manager']
