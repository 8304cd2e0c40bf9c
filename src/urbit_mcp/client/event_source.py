"""Server-sent events reader for a channel."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from ..models import NetworkError
from .api_client_core import _ClientLogger

if TYPE_CHECKING:
    from .api_client_core import UrbitClientCore


@dataclass(frozen=True)
class SSEEvent:
    id: int
    data: str


class SSEParser:
    """Incremental parser for ``text/event-stream`` lines."""

    def __init__(self) -> None:
        self._id: str | None = None
        self._data: list[str] = []

    def feed(self, line: str) -> SSEEvent | None:
        """Consume one line; returns an event when a blank line closes one."""
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "id":
            self._id = value
        elif name == "data":
            self._data.append(value)
        return None

    def _dispatch(self) -> SSEEvent | None:
        event_id, data = self._id, self._data
        self._id, self._data = None, []
        if not data or event_id is None:
            return None
        try:
            return SSEEvent(id=int(event_id), data="\n".join(data))
        except ValueError:
            return None


class SSEEventSource:
    """Background reader that buffers a channel's events for non-blocking pulls.

    ``try_next`` never waits: it returns ``None`` when nothing has arrived.
    A failure of the underlying stream is reported once, as a raised
    ``NetworkError``, after any events received before it.
    """

    def __init__(self, interface: "UrbitClientCore", url: str):
        self.interface = interface
        self.url = url
        self._queue: asyncio.Queue[SSEEvent | Exception] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._logger = _ClientLogger("SSE")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        parser = SSEParser()
        headers = self.interface._headers(content_type=None)
        headers["Accept"] = "text/event-stream"
        try:
            async with self.interface.client.stream(
                "GET", self.url, headers=headers, timeout=httpx.Timeout(None)
            ) as response:
                if response.status_code != 200:
                    raise NetworkError(f"Event stream for {self.url} returned {response.status_code}")
                async for line in response.aiter_lines():
                    event = parser.feed(line.rstrip("\r"))
                    if event is not None:
                        self._queue.put_nowait(event)
                raise NetworkError(f"Event stream for {self.url} ended")
        except NetworkError as err:
            self._queue.put_nowait(err)
        except httpx.HTTPError as err:
            self._logger.warning(f"Event stream {self.url} failed: {err}")
            self._queue.put_nowait(NetworkError(f"Event stream failed: {err}"))

    def try_next(self) -> SSEEvent | None:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
