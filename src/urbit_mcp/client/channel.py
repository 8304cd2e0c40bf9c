"""Channel protocol engine.

A channel is one long-lived session with a ship: actions go out as PUTs of
one-element JSON arrays, facts come back over a single SSE stream shared by
every subscription on the channel. Each outbound action consumes exactly one
message id; ids start at 1 (the open poke) and never repeat.
"""

from __future__ import annotations

import json
import secrets
import time
from typing import TYPE_CHECKING, Any, Callable

from ..models import (
    AckError,
    ActionFailedError,
    ChannelClosedError,
    ChannelOpenError,
    NetworkError,
    SubscribeError,
)
from .api_client_core import _ClientLogger
from .event_source import SSEEventSource
from .subscription import CreationID, Subscription, SubscriptionRegistry

if TYPE_CHECKING:
    from .api_client_core import UrbitClientCore
    from .graph_store import GraphStore

# Message id 1 is always the open-channel poke.
OPEN_MESSAGE_ID = 1
SUCCESS_STATUS = 204

EventSourceFactory = Callable[["UrbitClientCore", str], Any]


def new_channel_uid() -> str:
    """Unix seconds plus a random suffix, so channels opened together differ."""
    return f"{int(time.time())}-{secrets.token_hex(3)}"


def channel_url(ship_url: str, uid: str) -> str:
    return f"{ship_url}/~/channel/{uid}"


class Channel:
    """An open channel to a ship.

    Only ``Channel.open`` produces instances. After ``delete`` the channel is
    terminal: any further action raises ``ChannelClosedError``.
    """

    OPEN = "open"
    DELETED = "deleted"

    def __init__(
        self,
        interface: "UrbitClientCore",
        uid: str,
        event_source: Any,
        event_source_factory: EventSourceFactory | None = None,
    ):
        self.interface = interface
        self.uid = uid
        self.url = channel_url(interface.url, uid)
        self.event_source = event_source
        self.event_source_factory = event_source_factory
        self.subscriptions = SubscriptionRegistry()
        self.message_id_count = OPEN_MESSAGE_ID + 1
        self.ack_errors: list[AckError] = []
        self.stream_error: NetworkError | None = None
        self.state = self.OPEN
        self._logger = _ClientLogger("CHANNEL")

    @classmethod
    async def open(
        cls,
        interface: "UrbitClientCore",
        event_source_factory: EventSourceFactory | None = None,
    ) -> "Channel":
        """Open a channel with the mandatory ``hood``/``helm-hi`` poke (id 1)."""
        uid = new_channel_uid()
        url = channel_url(interface.url, uid)
        body = [
            {
                "id": OPEN_MESSAGE_ID,
                "action": "poke",
                "ship": interface.ship,
                "app": "hood",
                "mark": "helm-hi",
                "json": "Opening channel",
            }
        ]
        response = await interface.send_put_request(url, body)
        if response.status_code != SUCCESS_STATUS:
            raise ChannelOpenError(response.status_code)

        factory = event_source_factory or SSEEventSource
        event_source = factory(interface, url)
        event_source.start()

        channel = cls(interface, uid, event_source, event_source_factory)
        channel._logger.info(f"Opened channel {uid} on ~{interface.ship}")
        return channel

    @property
    def is_open(self) -> bool:
        return self.state == self.OPEN

    def next_id(self) -> int:
        """Return the current message id and advance the counter."""
        if not self.is_open:
            raise ChannelClosedError(self.uid)
        current = self.message_id_count
        self.message_id_count += 1
        return current

    def _envelope(self, action: str, fields: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        message = {"id": self.next_id(), "action": action, "ship": self.interface.ship}
        if fields:
            message.update(fields)
        return [message]

    async def poke(self, app: str, mark: str, payload: Any) -> None:
        """Send a one-shot poke."""
        body = self._envelope("poke", {"app": app, "mark": mark, "json": payload})
        response = await self.interface.send_put_request(self.url, body)
        if response.status_code != SUCCESS_STATUS:
            raise ActionFailedError("poke", response.status_code, f"{app} {mark}")

    async def subscribe(self, app: str, path: str) -> CreationID:
        """Subscribe to ``app`` + ``path``; returns the creation id used as handle."""
        body = self._envelope("subscribe", {"app": app, "path": path})
        creation_id = body[0]["id"]
        response = await self.interface.send_put_request(self.url, body)
        if response.status_code != SUCCESS_STATUS:
            raise SubscribeError(app, path, response.status_code)

        self.subscriptions.add(
            Subscription(channel_uid=self.uid, creation_id=creation_id, app=app, path=path)
        )
        self._logger.info(f"Subscribed to {app}{path} (id {creation_id}) on channel {self.uid}")
        return creation_id

    def find_subscription(self, app: str, path: str) -> Subscription | None:
        return self.subscriptions.find(app, path)

    async def unsubscribe(self, handle: CreationID) -> bool:
        """Drop a subscription locally and tell the ship.

        Returns False, without consuming a message id, for an unknown handle.
        """
        sub = self.subscriptions.remove(handle)
        if sub is None:
            return False

        body = self._envelope("unsubscribe", {"subscription": handle})
        response = await self.interface.send_put_request(self.url, body)
        if response.status_code != SUCCESS_STATUS:
            raise ActionFailedError("unsubscribe", response.status_code, f"{sub.app}{sub.path}")
        self._logger.info(f"Unsubscribed from {sub.app}{sub.path} (id {handle})")
        return True

    async def drain_events(self) -> int:
        """Route every buffered event to its subscription and ack it.

        Never waits for new events. Malformed payloads and stream errors are
        logged and skipped; the last stream error is kept on
        ``stream_error``. Ack failures are collected on ``ack_errors``.
        Returns the number of events consumed.
        """
        if not self.is_open:
            raise ChannelClosedError(self.uid)

        processed = 0
        while True:
            try:
                event = self.event_source.try_next()
            except NetworkError as err:
                self._logger.warning(f"Event stream error on channel {self.uid}: {err}")
                self.stream_error = err
                continue
            if event is None:
                break
            processed += 1

            try:
                payload = json.loads(event.data)
            except json.JSONDecodeError:
                self._logger.debug(f"Dropping malformed event {event.id} on channel {self.uid}")
                payload = None

            if payload is not None:
                self.subscriptions.route(payload)
            await self._ack(event.id)
        return processed

    async def _ack(self, event_id: int) -> None:
        body = self._envelope("ack", {"event-id": event_id})
        try:
            response = await self.interface.send_put_request(self.url, body)
        except NetworkError as err:
            self._record_ack_failure(AckError(event_id, detail=str(err)))
            return
        if response.status_code != SUCCESS_STATUS:
            self._record_ack_failure(AckError(event_id, response.status_code))

    def _record_ack_failure(self, error: AckError) -> None:
        self._logger.warning(f"Ack failed on channel {self.uid}: {error}")
        self.ack_errors.append(error)

    async def delete(self) -> None:
        """Delete the channel. The channel is terminal even if the ship refuses."""
        body = self._envelope("delete")
        self.state = self.DELETED
        try:
            response = await self.interface.send_put_request(self.url, body)
        finally:
            await self.event_source.aclose()
        if response.status_code != SUCCESS_STATUS:
            raise ActionFailedError("delete", response.status_code)
        self._logger.info(f"Deleted channel {self.uid}")

    def graph_store(self) -> "GraphStore":
        from .graph_store import GraphStore

        return GraphStore(self)
