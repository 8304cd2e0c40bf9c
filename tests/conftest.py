"""Shared fixtures: a fake ship behind httpx.MockTransport and an in-memory event source."""

import json
from collections import deque
from typing import Any

import httpx
import pytest
import pytest_asyncio

from urbit_mcp.client import UrbitClient
from urbit_mcp.client.event_source import SSEEvent
from urbit_mcp.client.index_codec import DA_UNIX_EPOCH
from urbit_mcp.models import APIConfiguration

SHIP_URL = "http://ship.test"
SHIP_CODE = "lidlut-tabwed-pillex-ridrup"

# A realistic top-level @da index and the ms timestamp that goes with it.
NOTE_DA = 170141184505555555555555555555555555555
TIME_SENT = 1_650_000_000_000


def post(
    index: str,
    contents: list[Any] | None = None,
    author: str = "~zod",
    time_sent: int = TIME_SENT,
    children: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Node JSON as graph-store sends it."""
    return {
        "post": {
            "author": author,
            "index": index,
            "time-sent": time_sent,
            "contents": contents if contents is not None else [],
            "hash": None,
            "signatures": [],
        },
        "children": children,
    }


def add_nodes_fact(ship: str, name: str, nodes: dict[str, Any]) -> dict[str, Any]:
    return {"graph-update": {"add-nodes": {"resource": {"ship": ship, "name": name}, "nodes": nodes}}}


def add_graph_fact(ship: str, name: str, graph: dict[str, Any]) -> dict[str, Any]:
    return {"graph-update": {"add-graph": {"resource": {"ship": ship, "name": name}, "graph": graph}}}


class FakeShip:
    """Request handler that answers like a ship's HTTP API and records what it saw."""

    def __init__(self, ship: str = "zod", code: str = SHIP_CODE):
        self.ship = ship
        self.code = code
        self.requests: list[httpx.Request] = []
        self.puts: list[tuple[str, list[dict[str, Any]]]] = []
        self.put_status = 204
        self.put_statuses: deque[int] = deque()
        self.scries: dict[str, tuple[int, Any]] = {}
        self.threads: dict[str, tuple[int, Any]] = {}
        self.spider_calls: list[tuple[str, Any]] = []

    def actions(self) -> list[dict[str, Any]]:
        """Every channel action sent so far, in order."""
        return [message for _, body in self.puts for message in body]

    def actions_for(self, uid: str) -> list[dict[str, Any]]:
        return [message for path, body in self.puts if path.endswith(uid) for message in body]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/~/login":
            if request.content.decode() != f"password={self.code}":
                return httpx.Response(400)
            return httpx.Response(
                204,
                headers={"set-cookie": f"urbauth-~{self.ship}=0v3.abc; Path=/; Max-Age=604800"},
            )

        if request.method == "PUT" and path.startswith("/~/channel/"):
            self.puts.append((path, json.loads(request.content)))
            status = self.put_statuses.popleft() if self.put_statuses else self.put_status
            return httpx.Response(status)

        if request.method == "GET" and path.startswith("/~/scry/"):
            if path not in self.scries:
                return httpx.Response(404)
            status, payload = self.scries[path]
            if isinstance(payload, str):
                return httpx.Response(status, text=payload)
            return httpx.Response(status, json=payload)

        if request.method == "POST" and path.startswith("/spider/"):
            self.spider_calls.append((path, json.loads(request.content)))
            status, payload = self.threads.get(path, (200, None))
            if payload is None:
                return httpx.Response(status)
            return httpx.Response(status, json=payload)

        return httpx.Response(404)


class FakeEventSource:
    """Stands in for SSEEventSource; tests push events into it directly."""

    def __init__(self, interface: Any, url: str):
        self.interface = interface
        self.url = url
        self.started = False
        self.closed = False
        self.items: deque[Any] = deque()

    def start(self) -> None:
        self.started = True

    def push(self, event_id: int, payload: Any) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self.items.append(SSEEvent(id=event_id, data=data))

    def fail(self, error: Exception) -> None:
        self.items.append(error)

    def try_next(self) -> SSEEvent | None:
        if not self.items:
            return None
        item = self.items.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def ship() -> FakeShip:
    return FakeShip()


@pytest.fixture
def event_sources() -> list[FakeEventSource]:
    return []


@pytest.fixture
def source_factory(event_sources):
    def factory(interface: Any, url: str) -> FakeEventSource:
        source = FakeEventSource(interface, url)
        event_sources.append(source)
        return source

    return factory


@pytest.fixture
def api_config() -> APIConfiguration:
    return APIConfiguration(ship_url=SHIP_URL, ship_code=SHIP_CODE, poll_interval=0.01)


@pytest.fixture
def make_client(ship, source_factory, api_config):
    def factory() -> UrbitClient:
        return UrbitClient(
            api_config,
            transport=httpx.MockTransport(ship.handler),
            event_source_factory=source_factory,
        )

    return factory


@pytest_asyncio.fixture
async def client(make_client):
    client = make_client()
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def channel(client):
    return client.channel
