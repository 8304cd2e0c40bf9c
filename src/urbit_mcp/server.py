"""Urbit MCP server implementation using FastMCP."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastmcp import FastMCP

from .client import DM, MessageFeed, UrbitClient
from .client.contents import ContentList
from .client.index_codec import parse_index
from .config import ServerConfig, setup_logging
from .models import FeedClosedError

logger = logging.getLogger(__name__)

# Global client instance
_client: UrbitClient | None = None

# In-memory registry of live message watchers
_watches: dict[str, dict[str, Any]] = {}
_watch_counter: int = 0
_watch_lock: asyncio.Lock = asyncio.Lock()


def get_client() -> UrbitClient:
    """Get the global Urbit client instance."""
    global _client
    if _client is None:
        raise RuntimeError("Urbit client not initialized. Server not started properly.")
    return _client


def _resource_name(name: str, dm: bool) -> str:
    return DM.ship_to_dm_name(name) if dm else name


def _register_watch(watch_id: str, ship: str, name: str, feed: MessageFeed) -> dict:
    entry = {
        "watch_id": watch_id,
        "ship": ship,
        "name": name,
        "started_at": datetime.now(timezone.utc).isoformat(),
        "_feed": feed,  # internal field, not exposed
    }
    _watches[watch_id] = entry
    return entry


async def _stop_all_watches() -> None:
    for watch in list(_watches.values()):
        feed: MessageFeed = watch["_feed"]
        try:
            await feed.aclose()
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to stop watch {watch['watch_id']}: {e}")
    _watches.clear()


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client

    logger.info("Starting Urbit MCP server")

    config = ServerConfig()  # type: ignore[call-arg]
    setup_logging(config.log_level)
    api_config = config.get_api_config()

    _client = UrbitClient(api_config)
    await _client.connect()

    logger.info(f"Urbit client connected to ~{_client.ship} at {api_config.ship_url}")

    yield

    logger.info("Shutting down Urbit MCP server")

    await _stop_all_watches()
    if _client:
        await _client.close()
        _client = None


# Initialize FastMCP server
mcp = FastMCP(
    "Urbit MCP Server",
    version="0.1.0",
    instructions="MCP server for reading and writing Urbit Graph Store resources",
    lifespan=lifespan,
)


# Tool: Get Graph
@mcp.tool(name="urbit_get_graph", description="Fetch a whole Graph Store resource as a node tree")
async def get_graph(ship: str, name: str) -> dict:
    """Fetch a graph.

    Args:
        ship: Host ship of the resource (with or without ~)
        name: Resource name

    Returns:
        {"success": True, "count": <top-level nodes>, "graph": <graph JSON>}
    """
    client = get_client()
    graph = await client.graph_store().get_graph(ship, name)
    return {"success": True, "count": len(graph), "graph": graph.to_wire()}


# Tool: Get Node
@mcp.tool(name="urbit_get_node", description="Fetch one node (and its children) by index, e.g. /170141.../1")
async def get_node(ship: str, name: str, index: str) -> dict:
    client = get_client()
    node = await client.graph_store().get_node(ship, name, parse_index(index))
    return {"success": True, "node": node.to_wire()}


# Tool: Send Message
@mcp.tool(name="urbit_send_message", description="Send a text message to a chat (or DM with dm=True)")
async def send_message(ship: str, name: str, text: str, dm: bool = False) -> dict:
    """Post a text message.

    Args:
        ship: Host ship of the chat
        name: Chat name, or the counterpart ship when dm is True
        text: Message text
        dm: Treat name as a DM counterpart

    Returns:
        The index of the new message
    """
    client = get_client()
    index = await client.chat().send_message(ship, _resource_name(name, dm), ContentList().add_text(text))
    return {"success": True, "index": index}


# Tool: Export Log
@mcp.tool(name="urbit_export_log", description="Export a chat or DM as formatted, time-ordered lines")
async def export_log(ship: str, name: str, dm: bool = False) -> str:
    client = get_client()
    lines = await client.chat().export_message_log(ship, _resource_name(name, dm))
    return "\n".join(lines)


# Tool: Watch Messages
@mcp.tool(
    name="urbit_watch_messages",
    description="Start watching a chat or DM for new messages; poll with urbit_poll_messages.",
)
async def watch_messages(ship: str, name: str, dm: bool = False) -> dict:
    """Start a background watcher and return its handle."""
    global _watch_counter

    client = get_client()
    resource_name = _resource_name(name, dm)
    feed = await client.chat().subscribe_to_messages(ship, resource_name)

    async with _watch_lock:
        _watch_counter += 1
        watch_id = f"watch-{_watch_counter}"

    _register_watch(watch_id, ship, resource_name, feed)
    logger.info(f"Started {watch_id} on {ship}/{resource_name}")
    return {"success": True, "watch_id": watch_id, "status": "watching"}


# Tool: Poll Messages
@mcp.tool(name="urbit_poll_messages", description="Collect messages received by a watcher since the last poll")
async def poll_messages(watch_id: str, max_messages: int = 100) -> dict:
    watch = _watches.get(watch_id)
    if not watch:
        return {"success": False, "error": f"Unknown watch_id: {watch_id}"}

    feed: MessageFeed = watch["_feed"]
    messages: list[str] = []
    stopped = False
    while len(messages) < max_messages:
        try:
            message = feed.try_recv()
        except FeedClosedError:
            stopped = True
            break
        if message is None:
            break
        messages.append(message.to_formatted_string())

    return {
        "success": True,
        "watch_id": watch_id,
        "status": "stopped" if stopped else "watching",
        "messages": messages,
    }


# Tool: Stop Watch
@mcp.tool(name="urbit_stop_watch", description="Stop a message watcher and delete its channel")
async def stop_watch(watch_id: str) -> dict:
    watch = _watches.pop(watch_id, None)
    if not watch:
        return {"success": False, "error": f"Unknown watch_id: {watch_id}"}

    feed: MessageFeed = watch["_feed"]
    await feed.aclose()
    logger.info(f"Stopped {watch_id}")
    return {"success": True, "watch_id": watch_id, "status": "stopped"}


# Tool: Export Notebook
@mcp.tool(name="urbit_export_notebook", description="Export every note (latest revision) of a notebook")
async def export_notebook(ship: str, name: str) -> dict:
    client = get_client()
    notes = await client.notebook().export_notebook(ship, name)
    return {
        "success": True,
        "notes": [
            {
                "index": note.index,
                "title": note.title,
                "author": note.author,
                "time_sent": note.time_sent,
                "contents": note.contents,
                "comments": [c.to_formatted_string() for c in note.comments],
            }
            for note in notes
        ],
    }


# Tool: Add Note
@mcp.tool(name="urbit_add_note", description="Add a note to a notebook")
async def add_note(ship: str, name: str, title: str, body: str) -> dict:
    """Create a note.

    Returns:
        The index of the note's first revision (/N/1/1)
    """
    client = get_client()
    index = await client.notebook().add_note(ship, name, title, body)
    return {"success": True, "index": index}


# Tool: Export Collection
@mcp.tool(name="urbit_export_collection", description="Export every link of a collection")
async def export_collection(ship: str, name: str) -> dict:
    client = get_client()
    links = await client.collection().export_collection(ship, name)
    return {
        "success": True,
        "links": [
            {
                "index": link.index,
                "title": link.title,
                "url": link.url,
                "author": link.author,
                "time_sent": link.time_sent,
                "comments": [c.to_formatted_string() for c in link.comments],
            }
            for link in links
        ],
    }


# Tool: Add Link
@mcp.tool(name="urbit_add_link", description="Add a link to a collection")
async def add_link(ship: str, name: str, title: str, url: str) -> dict:
    client = get_client()
    index = await client.collection().add_link(ship, name, title, url)
    return {"success": True, "index": index}


def main() -> None:
    """Run the server over stdio."""
    setup_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
