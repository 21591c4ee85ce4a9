"""Process-wide registry of live rooms."""

import asyncio
import logging
import time
from collections.abc import Callable

from xo_arena.config import get_settings

from .room import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps room ids to Room instances.

    Rooms are created lazily on first join and evicted once nobody has been
    connected for the configured grace window. Each room carries its own lock,
    so the registry never serializes work across rooms.
    """

    def __init__(
        self,
        grace_seconds: float | None = None,
        cheats_allowed: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self._grace_seconds = (
            grace_seconds if grace_seconds is not None else settings.ROOM_IDLE_GRACE_SECONDS
        )
        self._cheats_allowed = (
            cheats_allowed if cheats_allowed is not None else settings.CHEATS_ALLOWED
        )
        self._eviction_interval = settings.ROOM_EVICTION_INTERVAL
        self._clock = clock

        self._rooms: dict[str, Room] = {}
        self._eviction_task: asyncio.Task | None = None

        logger.info("RoomRegistry initialized with grace window %ss", self._grace_seconds)

    def get_or_create(self, room_id: str) -> Room:
        """Return the room for ``room_id``, creating it on first use.

        Synchronous on purpose: with no await between lookup and insert, two
        first joins racing on the event loop always see the same Room.
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id, cheats_allowed=self._cheats_allowed, clock=self._clock)
            self._rooms[room_id] = room
            logger.info("Room %s created (%d live rooms)", room_id, len(self._rooms))
        else:
            room.touch()
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def evict_if_idle(self, room_id: str, now: float | None = None) -> bool:
        """Remove the room if it has been empty for the whole grace window.

        Returns:
            True if the room was evicted. Calling this for an unknown or busy
            room is a no-op.
        """
        room = self._rooms.get(room_id)
        if room is None:
            return False

        if room.connected_count > 0 or room.is_busy or room.idle_since is None:
            return False

        now = self._clock() if now is None else now
        if now - room.idle_since < self._grace_seconds:
            return False

        del self._rooms[room_id]
        logger.info(
            "Room %s evicted after %.1fs idle (%d live rooms)",
            room_id,
            now - room.idle_since,
            len(self._rooms),
        )
        return True

    def evict_idle_rooms(self, now: float | None = None) -> int:
        """Sweep all rooms and evict the idle ones."""
        # Snapshot the ids to avoid RuntimeError if dict is modified during iteration
        evicted = sum(1 for room_id in list(self._rooms) if self.evict_if_idle(room_id, now))
        if evicted:
            logger.info("Evicted %d idle rooms", evicted)
        return evicted

    async def start_eviction_task(self) -> None:
        """Start the periodic eviction task for idle rooms."""
        if self._eviction_task is not None:
            logger.warning("Eviction task already running")
            return

        async def eviction_loop():
            logger.info("Starting eviction task with interval %ss", self._eviction_interval)
            while True:
                try:
                    await asyncio.sleep(self._eviction_interval)
                    self.evict_idle_rooms()
                except asyncio.CancelledError:
                    logger.info("Eviction task cancelled")
                    break
                except Exception as e:
                    logger.error("Error in eviction task: %s", e)

        self._eviction_task = asyncio.create_task(eviction_loop())

    async def stop_eviction_task(self) -> None:
        """Stop the periodic eviction task."""
        if self._eviction_task is not None:
            self._eviction_task.cancel()
            try:
                await self._eviction_task
            except asyncio.CancelledError:
                pass
            self._eviction_task = None
            logger.info("Eviction task stopped")

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms


# Global registry instance (initialized in lifespan)
_room_registry: RoomRegistry | None = None


def get_room_registry() -> RoomRegistry:
    """Get the global RoomRegistry instance."""
    global _room_registry
    if _room_registry is None:
        _room_registry = RoomRegistry()
    return _room_registry


def set_room_registry(registry: RoomRegistry | None) -> None:
    """Set the global RoomRegistry instance."""
    global _room_registry
    _room_registry = registry
