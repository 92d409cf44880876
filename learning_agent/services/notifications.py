import asyncio
import logging
from collections import deque
from typing import Any, Literal

from fastapi import WebSocket

from learning_agent.models import AccessibilityMode, utcnow

LOGGER = logging.getLogger(__name__)

Level = Literal["info", "success", "warning", "error"]

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.WARNING,
}


class NotificationHub:
    """Non-blocking user-facing notifications.

    ``notify`` never awaits: the message is logged, kept in ``recent`` and
    pushed to every subscribed WebSocket from a background task.  A client
    whose send fails is dropped.
    """

    def __init__(self, history: int = 50) -> None:
        self.recent: deque[dict] = deque(maxlen=history)
        self.accessibility_mode: AccessibilityMode = "standard"
        self._websockets: list[WebSocket] = []
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, websocket: WebSocket) -> None:
        self._websockets.append(websocket)

    def unsubscribe(self, websocket: WebSocket) -> None:
        if websocket in self._websockets:
            self._websockets.remove(websocket)

    @property
    def subscriber_count(self) -> int:
        return len(self._websockets)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def pick(self, standard: str, spoken: str) -> str:
        """Return *spoken* for visually impaired users, *standard* otherwise."""
        return spoken if self.accessibility_mode == "visual-impaired" else standard

    def notify(self, level: Level, message: str, **payload: Any) -> dict:
        event = {
            "type": "notification",
            "level": level,
            "message": message,
            "at": utcnow().isoformat(),
            **payload,
        }
        self.recent.append(event)
        LOGGER.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)
        self.publish(event)
        return event

    def publish(self, message: dict) -> None:
        """Fire-and-forget broadcast of *message* to all WebSocket clients."""
        if not self._websockets:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop (sync caller); the event is still in ``recent``
        task = loop.create_task(self._send_to_all(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_to_all(self, message: dict) -> None:
        for ws in list(self._websockets):
            try:
                await ws.send_json(message)
            except Exception:
                LOGGER.debug("Dropping WebSocket client after failed send", exc_info=True)
                self.unsubscribe(ws)
