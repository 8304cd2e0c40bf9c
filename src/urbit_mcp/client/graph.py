"""Graph-store nodes, graphs, and the tree builder.

Graph-store hands back flat, partially nested JSON keyed by index strings.
``build_graph`` folds those fragments into an ordered forest of ``Node``
objects where each node owns its children outright. Placement is decided
purely by index paths: a node is attached under the node whose path is its
own path minus the last segment.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterator

from pydantic import BaseModel, Field

from ..models import EmptyGraphError, InvalidIndexError, MalformedNodeError
from .api_client_core import _ClientLogger
from .contents import ContentList
from .index_codec import (
    IndexPath,
    format_index,
    index_tail,
    is_ancestor,
    is_direct_parent,
    parse_index,
)

logger = _ClientLogger("GRAPH")


class Node(BaseModel):
    """A single post in a graph together with the subtree it owns."""

    index: IndexPath
    author: str
    time_sent: int
    contents: ContentList = Field(default_factory=ContentList)
    hash: str | None = None
    signatures: list[Any] = Field(default_factory=list)
    children: dict[int, Node] = Field(default_factory=dict)

    @property
    def index_str(self) -> str:
        return format_index(self.index)

    def index_tail(self) -> int:
        return index_tail(self.index)

    def is_direct_parent(self, other: Node) -> bool:
        return is_direct_parent(self.index, other.index)

    def is_ancestor(self, other: Node) -> bool:
        return is_ancestor(self.index, other.index)

    def time_sent_formatted(self) -> str:
        try:
            sent = datetime.fromtimestamp(self.time_sent / 1000)
        except (OverflowError, OSError, ValueError) as err:
            raise MalformedNodeError(
                f"Post {self.index_str} has an unusable time-sent: {self.time_sent}"
            ) from err
        return sent.strftime("%Y-%m-%d %H:%M:%S")

    def attach(self, new_node: Node) -> bool:
        """Place ``new_node`` under its direct parent somewhere in this subtree.

        Children are searched depth-first in insertion order; the first
        child that is the direct parent (or failing that, an ancestor) wins.
        Returns False when no direct parent exists in the subtree.
        """
        for child in self.children.values():
            if child.is_direct_parent(new_node):
                child._adopt(new_node)
                return True
            if child.is_ancestor(new_node):
                return child.attach(new_node)

        if self.is_direct_parent(new_node):
            self._adopt(new_node)
            return True
        return False

    def _adopt(self, child: Node) -> None:
        key = child.index_tail()
        existing = self.children.get(key)
        if existing is not None:
            # A later fragment for the same index keeps children it doesn't repeat.
            for grandchild_key, grandchild in existing.children.items():
                child.children.setdefault(grandchild_key, grandchild)
        self.children[key] = child

    def add_child(self, child: Node) -> Node:
        """Builder form of ``attach`` that raises instead of returning False."""
        if not self.attach(child):
            raise MalformedNodeError(
                f"Node {child.index_str} cannot be placed under {self.index_str}"
            )
        return self

    def find(self, index: IndexPath) -> Node | None:
        index = tuple(index)
        if self.index == index:
            return self
        for child in self.children.values():
            if child.index == index or is_ancestor(child.index, index):
                return child.find(index)
        return None

    def walk(self) -> Iterator[Node]:
        """Depth-first, parents before children, siblings in insertion order."""
        yield self
        for child in self.children.values():
            yield from child.walk()

    def without_children(self) -> Node:
        return self.model_copy(update={"children": {}})

    def to_wire(self) -> dict[str, Any]:
        children: dict[str, Any] | None = None
        if self.children:
            children = {str(key): child.to_wire() for key, child in self.children.items()}
        return {
            "post": {
                "author": self.author,
                "index": self.index_str,
                "time-sent": self.time_sent,
                "contents": self.contents.to_wire_value(),
                "hash": self.hash,
                "signatures": list(self.signatures),
            },
            "children": children,
        }

    def to_fragment(self) -> dict[str, Any]:
        return {self.index_str: self.to_wire()}

    @classmethod
    def from_wire(cls, value: Any) -> Node:
        """Parse ``{"post": {...}, "children": {...} | null}`` recursively."""
        if not isinstance(value, dict):
            raise MalformedNodeError(f"Node JSON must be an object, got {type(value).__name__}")
        post = value.get("post")
        if not isinstance(post, dict):
            raise MalformedNodeError("Node JSON has no 'post' object")

        author = post.get("author")
        raw_index = post.get("index")
        time_sent = post.get("time-sent")
        raw_contents = post.get("contents")
        if "hash" not in post:
            raise MalformedNodeError("Post 'hash' missing")
        if "signatures" not in post:
            raise MalformedNodeError("Post 'signatures' missing")
        hash_ = post["hash"]
        signatures = post["signatures"]

        if not isinstance(author, str):
            raise MalformedNodeError("Post 'author' missing or not a string")
        if not isinstance(raw_index, str):
            raise MalformedNodeError("Post 'index' missing or not a string")
        if not isinstance(time_sent, int) or isinstance(time_sent, bool):
            raise MalformedNodeError("Post 'time-sent' missing or not an integer")
        if raw_contents is None:
            raise MalformedNodeError("Post 'contents' missing")
        if hash_ is not None and not isinstance(hash_, str):
            raise MalformedNodeError("Post 'hash' must be a string or null")
        if not isinstance(signatures, list):
            raise MalformedNodeError("Post 'signatures' must be a list")

        try:
            index = parse_index(raw_index)
        except InvalidIndexError as err:
            raise MalformedNodeError(str(err)) from err

        node = cls(
            index=index,
            author=author,
            time_sent=time_sent,
            contents=ContentList.from_wire_value(raw_contents),
            hash=hash_,
            signatures=signatures,
        )

        raw_children = value.get("children")
        if raw_children is None:
            return node
        if not isinstance(raw_children, dict):
            raise MalformedNodeError(f"Node {raw_index} has non-object 'children'")

        for key, child_value in raw_children.items():
            child = cls.from_wire(child_value)
            if not node.is_direct_parent(child) or str(child.index_tail()) != str(key).replace(".", ""):
                raise MalformedNodeError(
                    f"Child {child.index_str} stored under key {key!r} of {node.index_str}"
                )
            node.children[child.index_tail()] = child
        return node

    @classmethod
    def from_fragment(cls, fragment: Any) -> Node:
        """Parse a single-entry ``{"<index>": {...}}`` fragment."""
        if not isinstance(fragment, dict) or len(fragment) != 1:
            raise MalformedNodeError("A node fragment must be an object with exactly one index key")
        (key, value), = fragment.items()
        return _node_from_keyed(key, value)


class Graph(BaseModel):
    """An ordered forest of top-level nodes."""

    nodes: list[Node] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def insert(self, node: Node) -> None:
        """Attach ``node`` below its deepest existing ancestor, or at top level."""
        for top in self.nodes:
            if top.index == node.index:
                raise MalformedNodeError(f"Duplicate index {node.index_str}")
            if top.is_ancestor(node):
                if not top.attach(node):
                    raise MalformedNodeError(f"No parent for {node.index_str} under {top.index_str}")
                return
        self.nodes.append(node)

    def find(self, index: IndexPath) -> Node | None:
        for top in self.nodes:
            found = top.find(index)
            if found is not None:
                return found
        return None

    def walk(self) -> Iterator[Node]:
        for top in self.nodes:
            yield from top.walk()

    def flatten(self) -> list[dict[str, Any]]:
        """Childless fragments in depth-first document order."""
        return [node.without_children().to_fragment() for node in self.walk()]

    def to_wire(self) -> dict[str, Any]:
        return {top.index_str: top.to_wire() for top in self.nodes}


def _node_from_keyed(key: Any, value: Any) -> Node:
    node = Node.from_wire(value)
    try:
        key_index = parse_index(key) if isinstance(key, str) else None
    except InvalidIndexError as err:
        raise MalformedNodeError(str(err)) from err
    if key_index != node.index:
        raise MalformedNodeError(f"Fragment key {key!r} does not match post index {node.index_str}")
    return node


def _unwrap_update(payload: Any) -> Any:
    """Strip ``graph-update`` / ``add-graph`` / ``add-nodes`` envelopes."""
    if isinstance(payload, dict) and "graph-update" in payload:
        payload = payload["graph-update"]
        if not isinstance(payload, dict):
            raise MalformedNodeError("'graph-update' must be an object")
        if "add-graph" in payload:
            payload = (payload["add-graph"] or {}).get("graph")
        elif "add-nodes" in payload:
            payload = (payload["add-nodes"] or {}).get("nodes")
        else:
            raise MalformedNodeError(f"Unsupported graph-update kind: {sorted(payload)}")
    return payload


def parse_fragments(payload: Any) -> list[Node]:
    """Parse every fragment of a graph payload, preserving document order."""
    payload = _unwrap_update(payload)
    if payload is None:
        return []
    if isinstance(payload, dict):
        return [_node_from_keyed(key, value) for key, value in payload.items()]
    if isinstance(payload, list):
        return [Node.from_fragment(fragment) for fragment in payload]
    raise MalformedNodeError(f"Graph payload must be an object or list, got {type(payload).__name__}")


def build_graph(payload: Any) -> Graph:
    """Fold flat wire fragments into a forest.

    Fragments must arrive in a valid forest traversal order: an ancestor
    always before its descendants. Out-of-order input yields misplaced
    siblings rather than an error.
    """
    fragments = parse_fragments(payload)
    if not fragments:
        raise EmptyGraphError()

    graph = Graph()
    building = fragments[0]
    for node in fragments[1:]:
        if building.is_ancestor(node):
            if not building.attach(node):
                logger.warning(
                    f"Dropping fragment {node.index_str}: no parent under {building.index_str}"
                )
        else:
            graph.nodes.append(building)
            building = node
    graph.nodes.append(building)
    return graph


def build_node_from_update(payload: Any) -> Node:
    """Build the single node carried by an ``add-nodes`` fact."""
    graph = build_graph(payload)
    if len(graph.nodes) != 1:
        raise MalformedNodeError(f"Expected one node in update, found {len(graph.nodes)}")
    return graph.nodes[0]


def update_resource(payload: Any) -> tuple[str, str] | None:
    """``(ship, name)`` of an ``add-nodes`` fact, ship without ``~``."""
    try:
        resource = payload["graph-update"]["add-nodes"]["resource"]
        return str(resource["ship"]).lstrip("~"), str(resource["name"])
    except (KeyError, TypeError):
        return None


Node.model_rebuild()
