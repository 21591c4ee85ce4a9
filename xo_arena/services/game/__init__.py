"""Game service module.

Provides:
- Board engine (engine/)
- Room state and operations (room.py)
- Room lifecycle (registry.py)
"""

from .registry import RoomRegistry, get_room_registry, set_room_registry
from .results import ErrorCode, RoomResult
from .room import Room

__all__ = [
    # Rooms
    "Room",
    "RoomRegistry",
    "get_room_registry",
    "set_room_registry",
    # Results
    "ErrorCode",
    "RoomResult",
]
