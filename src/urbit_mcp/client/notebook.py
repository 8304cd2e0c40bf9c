"""Notebooks: notes with revisions and comments, stored as Graph Store trees.

Layout of one note (``N`` is the note's ``@da`` index)::

    /N              note root (no contents)
    /N/1            revision container
    /N/1/<rev>      note revision: [title text, body text]
    /N/2            comments container
    /N/2/C          comment root (no contents)
    /N/2/C/<rev>    comment revision
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import mdformat

from ..models import InvalidIndexError, MalformedNodeError, NodeNotFoundError
from .contents import ContentList, TextContent
from .graph import Node
from .index_codec import IndexPath, format_index, mint_leaf_index, parse_index
from .messaging import AuthoredMessage

if TYPE_CHECKING:
    from .channel import Channel

# Comments on notes and links are plain authored messages.
Comment = AuthoredMessage

CONTENT_SEGMENT = 1
COMMENTS_SEGMENT = 2


def latest_revision(container: Node) -> Node | None:
    """Child with the highest revision number."""
    if not container.children:
        return None
    return container.children[max(container.children)]


class NotebookIndex:
    """Classifies and derives notebook index paths."""

    def __init__(self, index: IndexPath | str):
        self.path: IndexPath = parse_index(index) if isinstance(index, str) else tuple(index)

    def __repr__(self) -> str:
        return f"NotebookIndex({format_index(self.path)!r})"

    @property
    def index(self) -> str:
        return format_index(self.path)

    def is_note_root(self) -> bool:
        return len(self.path) == 1

    def is_note_revision(self) -> bool:
        return len(self.path) == 3 and self.path[1] == CONTENT_SEGMENT

    def is_valid_comment_index(self) -> bool:
        return len(self.path) >= 3 and self.path[1] == COMMENTS_SEGMENT

    def is_comment_root(self) -> bool:
        return len(self.path) == 3 and self.path[1] == COMMENTS_SEGMENT

    def is_comment_revision(self) -> bool:
        return len(self.path) == 4 and self.path[1] == COMMENTS_SEGMENT

    def index_tail(self) -> int:
        return self.path[-1]

    def note_root_index(self) -> IndexPath:
        return (self.path[0],)

    def note_content_node_index(self) -> IndexPath:
        return (self.path[0], CONTENT_SEGMENT)

    def note_comments_node_index(self) -> IndexPath:
        return (self.path[0], COMMENTS_SEGMENT)

    def note_revision_index(self, revision: int) -> IndexPath:
        return (self.path[0], CONTENT_SEGMENT, revision)

    def comment_root_index(self) -> IndexPath:
        if not self.is_valid_comment_index():
            raise InvalidIndexError(f"Not a comment index: {self.index}")
        return self.path[:3]

    def comment_revision_index(self, revision: int) -> IndexPath:
        return self.comment_root_index() + (revision,)

    def new_comment_root_index(self, now_ms: int | None = None) -> IndexPath:
        return (self.path[0], COMMENTS_SEGMENT) + mint_leaf_index(now_ms)

    def revision(self) -> int:
        if self.is_note_revision() or self.is_comment_revision():
            return self.path[-1]
        raise InvalidIndexError(f"Not a revision index: {self.index}")

    def next_revision_index(self) -> IndexPath:
        return self.path[:-1] + (self.revision() + 1,)


def _text_at(node: Node, position: int) -> str:
    try:
        item = node.contents[position]
    except IndexError:
        raise MalformedNodeError(f"Node {node.index_str} has no content item {position}") from None
    if not isinstance(item, TextContent):
        raise MalformedNodeError(f"Content item {position} of {node.index_str} is not text")
    return item.text


def comments_from_container(container: Node) -> list[Comment]:
    """Latest revision of every comment under a comments container."""
    comments: list[Comment] = []
    for comment_root in container.children.values():
        newest = latest_revision(comment_root)
        if newest is not None:
            comments.append(Comment.from_node(newest))
    return comments


@dataclass
class Note:
    title: str
    author: str
    time_sent: str
    contents: str
    comments: list[Comment] = field(default_factory=list)
    index: str = ""

    @classmethod
    def from_node(cls, node: Node, revision: IndexPath | None = None) -> "Note":
        """Build a note from its root node; latest revision unless one is named."""
        content_node = node.children.get(CONTENT_SEGMENT)
        comments_node = node.children.get(COMMENTS_SEGMENT)
        if content_node is None or comments_node is None:
            raise MalformedNodeError(f"{node.index_str} is not a notebook note")

        if revision is None:
            fetched = latest_revision(content_node)
            if fetched is None:
                raise MalformedNodeError(f"Note {node.index_str} has no revisions")
        else:
            fetched = content_node.find(tuple(revision))
            if fetched is None or fetched is content_node:
                raise NodeNotFoundError(format_index(tuple(revision)))

        return cls(
            title=_text_at(fetched, 0),
            author=fetched.author,
            time_sent=fetched.time_sent_formatted(),
            contents=_text_at(fetched, 1),
            comments=comments_from_container(comments_node),
            index=fetched.index_str,
        )

    def content_as_markdown(self) -> list[str]:
        """The note body as normalised markdown lines."""
        return mdformat.text(self.contents).splitlines()


class Notebook:
    """Interface to Urbit notebooks."""

    def __init__(self, channel: "Channel"):
        self.channel = channel

    async def export_notebook(self, notebook_ship: str, notebook_name: str) -> list[Note]:
        graph = await self.channel.graph_store().get_graph(notebook_ship, notebook_name)
        return [Note.from_node(node) for node in graph.nodes]

    async def _note_root(self, notebook_ship: str, notebook_name: str, index: NotebookIndex) -> Node:
        return await self.channel.graph_store().get_node(
            notebook_ship, notebook_name, index.note_root_index()
        )

    async def fetch_note(self, notebook_ship: str, notebook_name: str, note_index: str) -> Note:
        """Fetch a note by any of its indices.

        A note revision index selects that revision; any other index (note
        root, comment, ...) yields the latest revision.
        """
        index = NotebookIndex(note_index)
        node = await self._note_root(notebook_ship, notebook_name, index)
        revision = index.path if index.is_note_revision() else None
        return Note.from_node(node, revision)

    async def fetch_note_with_comment_index(
        self, notebook_ship: str, notebook_name: str, comment_index: str
    ) -> Note:
        return await self.fetch_note(notebook_ship, notebook_name, comment_index)

    async def fetch_note_latest_revision_index(
        self, notebook_ship: str, notebook_name: str, note_index: str
    ) -> str:
        index = NotebookIndex(note_index)
        node = await self._note_root(notebook_ship, notebook_name, index)
        content_node = node.children.get(CONTENT_SEGMENT)
        newest = latest_revision(content_node) if content_node is not None else None
        if newest is None:
            raise InvalidIndexError(f"No note revisions under {note_index}")
        return newest.index_str

    async def _comment_root(
        self, notebook_ship: str, notebook_name: str, comment_index: str
    ) -> tuple[NotebookIndex, Node]:
        index = NotebookIndex(comment_index)
        if not index.is_valid_comment_index():
            raise InvalidIndexError(f"Not a comment index: {comment_index}")
        node = await self.channel.graph_store().get_node(
            notebook_ship, notebook_name, index.comment_root_index()
        )
        return index, node

    async def fetch_comment(
        self, notebook_ship: str, notebook_name: str, comment_index: str
    ) -> Comment:
        """Latest revision for a comment root index, or the named revision."""
        index, node = await self._comment_root(notebook_ship, notebook_name, comment_index)
        if index.is_comment_root():
            newest = latest_revision(node)
            if newest is None:
                raise InvalidIndexError(f"Comment {comment_index} has no revisions")
            return Comment.from_node(newest)

        revision = node.children.get(index.index_tail())
        if revision is None:
            raise InvalidIndexError(f"No comment revision {comment_index}")
        return Comment.from_node(revision)

    async def fetch_comment_latest_revision_index(
        self, notebook_ship: str, notebook_name: str, comment_index: str
    ) -> str:
        _, node = await self._comment_root(notebook_ship, notebook_name, comment_index)
        newest = latest_revision(node)
        if newest is None:
            raise InvalidIndexError(f"Comment {comment_index} has no revisions")
        return newest.index_str

    async def add_note(self, notebook_ship: str, notebook_name: str, title: str, body: str) -> str:
        """Create a note; returns the index of its first revision."""
        graph_store = self.channel.graph_store()
        root = graph_store.new_node(ContentList())
        now = root.time_sent
        index = NotebookIndex(root.index)

        root.add_child(graph_store.new_node(ContentList(), index.note_content_node_index(), now))
        root.add_child(graph_store.new_node(ContentList(), index.note_comments_node_index(), now))
        root.add_child(
            graph_store.new_node(
                ContentList().add_text(title).add_text(body),
                index.note_revision_index(1),
                now,
            )
        )

        await graph_store.add_node(notebook_ship, notebook_name, root)
        return format_index(index.note_revision_index(1))

    async def update_note(
        self, notebook_ship: str, notebook_name: str, note_index: str, title: str, body: str
    ) -> str:
        """Add a new revision after the latest one; returns its index."""
        latest = await self.fetch_note_latest_revision_index(notebook_ship, notebook_name, note_index)
        new_index = NotebookIndex(latest).next_revision_index()

        graph_store = self.channel.graph_store()
        node = graph_store.new_node(ContentList().add_text(title).add_text(body), new_index)
        await graph_store.add_node(notebook_ship, notebook_name, node)
        return node.index_str

    async def add_comment(
        self, notebook_ship: str, notebook_name: str, note_index: str, comment: ContentList
    ) -> str:
        """Comment on the note that ``note_index`` belongs to; returns the revision index."""
        index = NotebookIndex(note_index)
        graph_store = self.channel.graph_store()

        comment_root = graph_store.new_node(ContentList(), index.new_comment_root_index())
        revision_index = NotebookIndex(comment_root.index).comment_revision_index(1)
        comment_root.add_child(graph_store.new_node(comment, revision_index, comment_root.time_sent))

        await graph_store.add_node(notebook_ship, notebook_name, comment_root)
        return format_index(revision_index)

    async def update_comment(
        self, notebook_ship: str, notebook_name: str, comment_index: str, comment: ContentList
    ) -> str:
        latest = await self.fetch_comment_latest_revision_index(
            notebook_ship, notebook_name, comment_index
        )
        new_index = NotebookIndex(latest).next_revision_index()

        graph_store = self.channel.graph_store()
        node = graph_store.new_node(comment, new_index)
        await graph_store.add_node(notebook_ship, notebook_name, node)
        return node.index_str
