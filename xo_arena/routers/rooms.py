"""Read-only REST endpoints for rooms."""

import logging

from fastapi import APIRouter, HTTPException, status

from xo_arena.schemas.game import GameSnapshot
from xo_arena.services.game import get_room_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("/{room_id}", response_model=GameSnapshot, response_model_by_alias=True)
async def get_room(room_id: str):
    """Return the current snapshot of a live room.

    Raises:
        HTTPException 404: If the room does not exist or has been evicted.
    """
    room = get_room_registry().get(room_id)
    if room is None:
        logger.debug("GET /rooms/%s - not found", room_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error_code": "UNKNOWN_ROOM", "message": f"Room {room_id} does not exist"},
        )

    return await room.snapshot()
