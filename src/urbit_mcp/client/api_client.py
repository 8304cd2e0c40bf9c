"""Urbit API client - one logged-in interface plus a lazily opened channel."""

from typing import Any

import httpx

from ..models import APIConfiguration
from .api_client_core import UrbitClientCore, _ClientLogger
from .channel import Channel, EventSourceFactory
from .collection import Collection
from .graph_store import GraphStore
from .messaging import DM, Chat
from .notebook import Notebook


class UrbitClient(UrbitClientCore):
    """Entry point for everything built on top of a ship connection.

    ``connect`` logs in and opens the primary channel; the app accessors
    (``graph_store``, ``chat``, ``dm``, ``notebook``, ``collection``) all share
    that channel. Message feeds open their own channels.
    """

    def __init__(
        self,
        config: APIConfiguration,
        transport: httpx.AsyncBaseTransport | None = None,
        event_source_factory: EventSourceFactory | None = None,
    ):
        super().__init__(config, transport=transport)
        self._event_source_factory = event_source_factory
        self._channel: Channel | None = None

    async def connect(self) -> "UrbitClient":
        """Log in (if needed) and open the primary channel (if needed)."""
        if self.session_auth is None:
            await self.login()
        if self._channel is None or not self._channel.is_open:
            self._channel = await self.create_channel(self._event_source_factory)
        return self

    @property
    def channel(self) -> Channel:
        if self._channel is None:
            raise RuntimeError("Urbit client not connected. Call connect() first.")
        return self._channel

    def graph_store(self) -> GraphStore:
        return GraphStore(self.channel)

    def chat(self) -> Chat:
        return Chat(self.channel)

    def dm(self) -> DM:
        return DM(self.channel)

    def notebook(self) -> Notebook:
        return Notebook(self.channel)

    def collection(self) -> Collection:
        return Collection(self.channel)

    async def close(self) -> None:
        """Delete the primary channel (best-effort) and close the HTTP client."""
        logger = _ClientLogger()
        if self._channel is not None and self._channel.is_open:
            try:
                await self._channel.delete()
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Failed to delete channel {self._channel.uid}: {e}")
        self._channel = None
        await super().close()

    async def __aenter__(self) -> "UrbitClient":
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
