"""Graph Store operations: scries for reading, pokes and threads for writing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from ..models import ActionFailedError, NetworkError
from .api_client_core import _ClientLogger
from .contents import ContentList
from .graph import Graph, Node, build_graph, build_node_from_update
from .index_codec import (
    IndexPath,
    current_time_ms,
    format_index,
    mint_leaf_index,
    parse_index,
    to_url_path,
    ud_encode,
)

if TYPE_CHECKING:
    from .channel import Channel

GRAPH_STORE = "graph-store"
GRAPH_PUSH_HOOK = "graph-push-hook"
GRAPH_UPDATE_MARK = "graph-update"


def _sig(ship: str) -> str:
    return f"~{ship.lstrip('~')}"


def _resource(ship: str, name: str) -> dict[str, str]:
    return {"ship": _sig(ship), "name": name}


def _as_path(index: IndexPath | str) -> IndexPath:
    return parse_index(index) if isinstance(index, str) else tuple(index)


class GraphStore:
    """Graph Store access through one channel."""

    def __init__(self, channel: "Channel"):
        self.channel = channel
        self.interface = channel.interface
        self._logger = _ClientLogger("GRAPH_STORE")

    def new_node(
        self,
        contents: ContentList,
        index: IndexPath | str | None = None,
        time_sent: int | None = None,
    ) -> Node:
        """A node authored by the connected ship, stamped with local time.

        Without an explicit index a single-segment ``@da`` index is minted
        from the same timestamp.
        """
        if time_sent is None:
            time_sent = current_time_ms()
        path = mint_leaf_index(time_sent) if index is None else _as_path(index)
        return Node(
            index=path,
            author=_sig(self.interface.ship),
            time_sent=time_sent,
            contents=contents,
        )

    async def _poke_update(self, action: str, update: dict[str, Any], resource_name: str) -> None:
        try:
            await self.channel.poke(GRAPH_PUSH_HOOK, GRAPH_UPDATE_MARK, update)
        except ActionFailedError as err:
            raise ActionFailedError(action, err.status_code, resource_name) from err

    async def add_node(self, resource_ship: str, resource_name: str, node: Node) -> None:
        update = {
            "add-nodes": {
                "resource": _resource(resource_ship, resource_name),
                "nodes": node.to_fragment(),
            }
        }
        await self._poke_update("add-nodes", update, resource_name)

    async def remove_nodes(
        self,
        resource_ship: str,
        resource_name: str,
        indices: Iterable[IndexPath | str],
    ) -> None:
        update = {
            "remove-nodes": {
                "resource": _resource(resource_ship, resource_name),
                "indices": [format_index(_as_path(i)) for i in indices],
            }
        }
        await self._poke_update("remove-nodes", update, resource_name)

    async def remove_graph(self, resource_ship: str, resource_name: str) -> None:
        update = {"remove-graph": {"resource": _resource(resource_ship, resource_name)}}
        await self._poke_update("remove-graph", update, resource_name)

    async def add_tag(self, term: str, resource_ship: str, resource_name: str) -> None:
        update = {"add-tag": {"term": term, "resource": _resource(resource_ship, resource_name)}}
        try:
            await self.channel.poke(GRAPH_STORE, GRAPH_UPDATE_MARK, update)
        except ActionFailedError as err:
            raise ActionFailedError("add-tag", err.status_code, resource_name) from err

    async def remove_tag(self, term: str, resource_ship: str, resource_name: str) -> None:
        update = {"remove-tag": {"term": term, "resource": _resource(resource_ship, resource_name)}}
        try:
            await self.channel.poke(GRAPH_STORE, GRAPH_UPDATE_MARK, update)
        except ActionFailedError as err:
            raise ActionFailedError("remove-tag", err.status_code, resource_name) from err

    async def get_graph(self, resource_ship: str, resource_name: str) -> Graph:
        """Fetch and rebuild a whole graph."""
        path = f"/graph/{_sig(resource_ship)}/{resource_name}"
        data = await self.interface.scry_json(GRAPH_STORE, path)
        return build_graph(data)

    async def get_node(
        self,
        resource_ship: str,
        resource_name: str,
        index: IndexPath | str,
    ) -> Node:
        """Fetch one node together with its subtree."""
        url_index = to_url_path(_as_path(index))
        path = f"/graph/{_sig(resource_ship)}/{resource_name}/node/index{url_index}"
        data = await self.interface.scry_json(GRAPH_STORE, path)
        return build_node_from_update(data)

    async def get_node_subset(
        self,
        resource_ship: str,
        resource_name: str,
        start: int,
        end: int,
    ) -> Graph:
        """Fetch the top-level nodes whose index lies in ``[start, end)``."""
        path = (
            f"/graph/{_sig(resource_ship)}/{resource_name}"
            f"/node/siblings/subset/{ud_encode(start)}/{ud_encode(end)}"
        )
        data = await self.interface.scry_json(GRAPH_STORE, path)
        return build_graph(data)

    async def get_keys(self) -> list[dict[str, str]]:
        """Resources (``{"ship", "name"}``) held by Graph Store."""
        data = await self.interface.scry_json(GRAPH_STORE, "/keys")
        try:
            return list(data["graph-update"]["keys"])
        except (KeyError, TypeError) as err:
            raise NetworkError("Unexpected /keys response from Graph Store") from err

    async def get_tags(self) -> list[str]:
        data = await self.interface.scry_json(GRAPH_STORE, "/tags")
        try:
            return list(data["graph-update"]["tags"])
        except (KeyError, TypeError) as err:
            raise NetworkError("Unexpected /tags response from Graph Store") from err

    async def get_update_log(self, resource_ship: str, resource_name: str) -> Any:
        path = f"/update-log/{_sig(resource_ship)}/{resource_name}"
        return await self.interface.scry_json(GRAPH_STORE, path)

    async def archive_graph(self, resource_ship: str, resource_name: str) -> str:
        path = f"/archive/{_sig(resource_ship)}/{resource_name}"
        response = await self.interface.scry(GRAPH_STORE, path, "json")
        if response.status_code != 200:
            raise ActionFailedError("archive-graph", response.status_code, resource_name)
        return response.text

    async def _run_thread(self, thread_name: str, body: dict[str, Any], resource_name: str) -> Any:
        response = await self.interface.spider("graph-view-action", "json", thread_name, body)
        if response.status_code != 200:
            raise ActionFailedError(thread_name, response.status_code, resource_name)
        self._logger.info(f"Thread {thread_name} finished for {resource_name}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def create_graph(
        self,
        name: str,
        title: str,
        description: str = "",
        module: str = "chat",
        mark: str = "graph-validator-chat",
    ) -> Any:
        """Create an unmanaged graph owned by the connected ship."""
        body = {
            "create": {
                "resource": _resource(self.interface.ship, name),
                "title": title,
                "description": description,
                "associated": {"policy": {"invite": {"pending": []}}},
                "module": module,
                "mark": mark,
            }
        }
        return await self._run_thread("graph-create", body, name)

    async def delete_graph(self, name: str) -> Any:
        body = {"delete": {"resource": _resource(self.interface.ship, name)}}
        return await self._run_thread("graph-delete", body, name)

    async def leave_graph(self, resource_ship: str, resource_name: str) -> Any:
        body = {"leave": {"resource": _resource(resource_ship, resource_name)}}
        return await self._run_thread("graph-leave", body, resource_name)
