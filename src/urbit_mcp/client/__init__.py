"""Urbit HTTP API client package."""

from .api_client import UrbitClient
from .api_client_core import UrbitClientCore
from .channel import Channel
from .collection import Collection, Link
from .contents import ContentList
from .graph import Graph, Node, build_graph, build_node_from_update
from .graph_store import GraphStore
from .messaging import DM, AuthoredMessage, Chat, Message, MessageFeed, Messaging
from .notebook import Comment, Note, Notebook, NotebookIndex
from .subscription import Subscription, SubscriptionRegistry

__all__ = [
    "AuthoredMessage",
    "Channel",
    "Chat",
    "Collection",
    "Comment",
    "ContentList",
    "DM",
    "Graph",
    "GraphStore",
    "Link",
    "Message",
    "MessageFeed",
    "Messaging",
    "Node",
    "Note",
    "Notebook",
    "NotebookIndex",
    "Subscription",
    "SubscriptionRegistry",
    "UrbitClient",
    "UrbitClientCore",
    "build_graph",
    "build_node_from_update",
]
