"""Tests for collections of links."""

import pytest

from conftest import add_graph_fact, post
from urbit_mcp.client.collection import Link
from urbit_mcp.client.graph import Node
from urbit_mcp.models import MalformedNodeError

LINKS_SCRY = "/~/scry/graph-store/graph/~zod/links.json"


def link_wire() -> dict:
    return post(
        "/1000",
        [{"text": "Urbit"}, {"url": "https://urbit.org"}],
        children={
            "7": post(
                "/1000/7",
                children={
                    "1": post("/1000/7/1", [{"text": "cool"}], author="~nec"),
                    "2": post("/1000/7/2", [{"text": "very cool"}], author="~nec"),
                },
            )
        },
    )


def test_link_from_node():
    link = Link.from_node(Node.from_wire(link_wire()))
    assert link.title == "Urbit"
    assert link.url == "https://urbit.org"
    assert link.index == "/1000"
    assert [c.contents.to_display_string() for c in link.comments] == ["very cool"]


@pytest.mark.parametrize(
    "contents",
    [[{"text": "only a title"}], [{"url": "https://urbit.org"}, {"text": "Urbit"}]],
)
def test_link_from_node_rejects_other_posts(contents):
    with pytest.raises(MalformedNodeError):
        Link.from_node(Node.from_wire(post("/1000", contents)))


@pytest.mark.asyncio
async def test_export_collection(ship, client):
    ship.scries[LINKS_SCRY] = (200, add_graph_fact("~zod", "links", {"/1000": link_wire()}))
    links = await client.collection().export_collection("zod", "links")
    assert [(link.title, link.url) for link in links] == [("Urbit", "https://urbit.org")]


@pytest.mark.asyncio
async def test_add_link(ship, client):
    index = await client.collection().add_link("~zod", "links", "Docs", "https://docs.urbit.org")
    nodes = ship.actions()[-1]["json"]["add-nodes"]["nodes"]
    assert nodes[index]["post"]["contents"] == [{"text": "Docs"}, {"url": "https://docs.urbit.org"}]
