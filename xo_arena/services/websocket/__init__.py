from xo_arena.services.websocket.handlers import HandlerContext, HandlerResult, dispatch, handler
from xo_arena.services.websocket.manager import ConnectionManager

__all__ = [
    "ConnectionManager",
    "HandlerContext",
    "HandlerResult",
    "dispatch",
    "handler",
]
