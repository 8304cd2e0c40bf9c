"""Chat-like messaging over Graph Store.

Chats and DMs behave identically: a message is a single top-level node, the
log is the graph sorted by send time, and new messages arrive as
``add-nodes`` facts on ``graph-store /updates``. ``Messaging`` implements that
once; ``Chat`` and ``DM`` only add naming conveniences.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..models import EmptyGraphError, FeedClosedError, MalformedNodeError, UrbitAPIError
from .api_client_core import _ClientLogger
from .contents import ContentList
from .graph import Node, build_node_from_update, update_resource

if TYPE_CHECKING:
    from .channel import Channel

# A message is just post contents.
Message = ContentList

UPDATES_APP = "graph-store"
UPDATES_PATH = "/updates"
DEFAULT_POLL_INTERVAL = 0.5


@dataclass
class AuthoredMessage:
    """A message together with its author, send time and index."""

    author: str
    contents: Message
    time_sent: str
    index: str

    @classmethod
    def from_node(cls, node: Node) -> "AuthoredMessage":
        return cls(
            author=node.author,
            contents=node.contents,
            time_sent=node.time_sent_formatted(),
            index=node.index_str,
        )

    def to_formatted_string(self) -> str:
        return f"{self.time_sent} - ~{self.author.lstrip('~')}:{self.contents.to_display_string()}"


def _same_resource(update: Any, resource_ship: str, resource_name: str) -> bool:
    return update_resource(update) == (resource_ship.lstrip("~"), resource_name)


class MessageFeed:
    """Live feed of new messages for one resource.

    A background task owns a dedicated channel, drains it every
    ``poll_interval`` seconds and pushes matching messages onto an unbounded
    queue. ``try_recv`` distinguishes "nothing yet" (``None``) from "the
    watcher has stopped and everything was consumed" (``FeedClosedError``).
    """

    def __init__(
        self,
        channel: "Channel",
        resource_ship: str,
        resource_name: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.channel = channel
        self.resource_ship = resource_ship
        self.resource_name = resource_name
        self.poll_interval = poll_interval
        self._queue: asyncio.Queue[AuthoredMessage] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._stopped = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._logger = _ClientLogger("FEED")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._watch())

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _pending_facts(self) -> list[Any]:
        sub = self.channel.find_subscription(UPDATES_APP, UPDATES_PATH)
        facts: list[Any] = []
        if sub is None:
            return facts
        while True:
            fact = sub.pop_message()
            if fact is None:
                return facts
            facts.append(fact)

    def _deliver(self, fact: Any) -> None:
        if not _same_resource(fact, self.resource_ship, self.resource_name):
            return
        try:
            node = build_node_from_update(fact)
            message = AuthoredMessage.from_node(node)
        except (MalformedNodeError, EmptyGraphError) as err:
            self._logger.debug(f"Skipping malformed update for {self.resource_name}: {err}")
            return
        self._queue.put_nowait(message)

    async def _watch(self) -> None:
        self._logger.info(f"Watching {self.resource_ship}/{self.resource_name} on channel {self.channel.uid}")
        try:
            while True:
                await self.channel.drain_events()
                for fact in self._pending_facts():
                    self._deliver(fact)
                if self.channel.stream_error is not None:
                    self._logger.error(
                        f"Feed for {self.resource_name} lost its event stream: {self.channel.stream_error}"
                    )
                    break
                # A stop request still gets one final drain.
                if self._stop.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        except UrbitAPIError as err:
            self._logger.error(f"Feed for {self.resource_name} stopped: {err}")
        finally:
            self._stopped.set()
            if self.channel.is_open:
                try:
                    await self.channel.delete()
                except UrbitAPIError as err:
                    self._logger.warning(f"Could not delete feed channel {self.channel.uid}: {err}")
            self._logger.info(f"Stopped watching {self.resource_ship}/{self.resource_name}")

    def try_recv(self) -> AuthoredMessage | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            if self.stopped:
                raise FeedClosedError() from None
            return None

    async def recv(self) -> AuthoredMessage:
        """Wait for the next message; raises ``FeedClosedError`` once stopped and empty."""
        while True:
            message = self.try_recv()
            if message is not None:
                return message
            get_task = asyncio.ensure_future(self._queue.get())
            stop_task = asyncio.ensure_future(self._stopped.wait())
            done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            stop_task.cancel()
            if get_task in done:
                return get_task.result()
            get_task.cancel()

    def cancel(self) -> None:
        """Ask the watcher to stop after one more drain."""
        self._stop.set()

    async def aclose(self) -> None:
        """Stop the watcher and wait until its channel is deleted."""
        self.cancel()
        if self._task is not None:
            await self._task


class Messaging:
    """Send, export and watch messages in a Graph Store resource."""

    def __init__(self, channel: "Channel"):
        self.channel = channel

    async def send_message(self, resource_ship: str, resource_name: str, message: Message) -> str:
        """Post a message; returns the index string of the new node."""
        graph_store = self.channel.graph_store()
        node = graph_store.new_node(message)
        await graph_store.add_node(resource_ship, resource_name, node)
        return node.index_str

    async def export_message_nodes(self, resource_ship: str, resource_name: str) -> list[Node]:
        graph = await self.channel.graph_store().get_graph(resource_ship, resource_name)
        return sorted(graph.nodes, key=lambda n: n.time_sent)

    async def export_authored_messages(
        self, resource_ship: str, resource_name: str
    ) -> list[AuthoredMessage]:
        nodes = await self.export_message_nodes(resource_ship, resource_name)
        return [AuthoredMessage.from_node(n) for n in nodes if not n.contents.is_empty()]

    async def export_message_log(self, resource_ship: str, resource_name: str) -> list[str]:
        messages = await self.export_authored_messages(resource_ship, resource_name)
        return [m.to_formatted_string() for m in messages]

    async def subscribe_to_messages(
        self,
        resource_ship: str,
        resource_name: str,
        poll_interval: float | None = None,
    ) -> MessageFeed:
        """Start a watcher on a fresh channel and return its feed.

        The watcher runs until ``MessageFeed.cancel``/``aclose`` is called
        or the channel loses its event stream.
        """
        if poll_interval is None:
            poll_interval = self.channel.interface.config.poll_interval
        watcher_channel = await self.channel.interface.create_channel(
            event_source_factory=self.channel.event_source_factory
        )
        try:
            await watcher_channel.subscribe(UPDATES_APP, UPDATES_PATH)
        except UrbitAPIError:
            await watcher_channel.delete()
            raise
        feed = MessageFeed(watcher_channel, resource_ship, resource_name, poll_interval)
        feed.start()
        return feed


class Chat(Messaging):
    """Messaging for chats."""

    async def send_chat_message(self, chat_ship: str, chat_name: str, message: Message) -> str:
        return await self.send_message(chat_ship, chat_name, message)

    async def export_chat_log(self, chat_ship: str, chat_name: str) -> list[str]:
        return await self.export_message_log(chat_ship, chat_name)

    async def subscribe_to_chat(self, chat_ship: str, chat_name: str) -> MessageFeed:
        return await self.subscribe_to_messages(chat_ship, chat_name)


class DM(Messaging):
    """Messaging for direct messages."""

    @staticmethod
    def ship_to_dm_name(ship: str) -> str:
        return f"dm--{ship.lstrip('~')}"

    async def send_dm_message(self, dm_ship: str, dm_name: str, message: Message) -> str:
        return await self.send_message(dm_ship, dm_name, message)

    async def export_dm_log(self, dm_ship: str, dm_name: str) -> list[str]:
        return await self.export_message_log(dm_ship, dm_name)

    async def subscribe_to_dm(self, dm_ship: str, dm_name: str) -> MessageFeed:
        return await self.subscribe_to_messages(dm_ship, dm_name)
