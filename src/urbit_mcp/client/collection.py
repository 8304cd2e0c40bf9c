"""Collections: shared links, each with comment threads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..models import MalformedNodeError
from .contents import ContentList, TextContent, UrlContent
from .graph import Node
from .notebook import Comment, comments_from_container

if TYPE_CHECKING:
    from .channel import Channel


@dataclass
class Link:
    title: str
    author: str
    time_sent: str
    url: str
    comments: list[Comment] = field(default_factory=list)
    index: str = ""

    @classmethod
    def from_node(cls, node: Node) -> "Link":
        """A link node holds ``[title text, url]``; its children are comment roots."""
        if len(node.contents) < 2:
            raise MalformedNodeError(f"{node.index_str} is not a collection link")
        title, url = node.contents[0], node.contents[1]
        if not isinstance(title, TextContent) or not isinstance(url, UrlContent):
            raise MalformedNodeError(f"{node.index_str} is not a collection link")

        return cls(
            title=title.text,
            author=node.author,
            time_sent=node.time_sent_formatted(),
            url=url.url,
            comments=comments_from_container(node),
            index=node.index_str,
        )


class Collection:
    """Interface to Urbit collections."""

    def __init__(self, channel: "Channel"):
        self.channel = channel

    async def export_collection(self, collection_ship: str, collection_name: str) -> list[Link]:
        graph = await self.channel.graph_store().get_graph(collection_ship, collection_name)
        return [Link.from_node(node) for node in graph.nodes]

    async def add_link(self, collection_ship: str, collection_name: str, title: str, url: str) -> str:
        """Post a link; returns its index."""
        graph_store = self.channel.graph_store()
        node = graph_store.new_node(ContentList().add_text(title).add_url(url))
        await graph_store.add_node(collection_ship, collection_name, node)
        return node.index_str
