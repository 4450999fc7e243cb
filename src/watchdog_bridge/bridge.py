import asyncio
import logging
from typing import Any, Optional, Set

from .channel import DeviceChannel
from .dispatcher import RequestDispatcher
from .protocol import InvalidEventError, RelayResult, extract_payload

logger = logging.getLogger("Bridge")


class EventBridge:
    """Turns each device event into one server request and one reply."""

    def __init__(self, dispatcher: RequestDispatcher, channel: DeviceChannel):
        self.dispatcher = dispatcher
        self.channel = channel
        self._tasks: Set[asyncio.Task] = set()

    def handle_event(self, event: Any) -> Optional[asyncio.Task]:
        """Start relaying an event and return without waiting for the reply."""
        try:
            payload = extract_payload(event)
        except InvalidEventError as e:
            logger.warning(f"Dropping event: {e}")
            return None

        task = asyncio.create_task(self.relay(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def relay(self, payload: str) -> RelayResult:
        result = await self.dispatcher.fetch(payload)
        reply = result.reply()

        try:
            await self.channel.send(reply)
        except Exception as e:
            logger.error(f"Reply to device failed: {e}")
        return result

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
