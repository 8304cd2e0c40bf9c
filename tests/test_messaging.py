"""Tests for chat/DM messaging and live message feeds."""

import asyncio

import pytest

from conftest import add_graph_fact, add_nodes_fact, post
from urbit_mcp.client.contents import ContentList
from urbit_mcp.client.messaging import DM, AuthoredMessage
from urbit_mcp.models import FeedClosedError, NetworkError

CHAT_SCRY = "/~/scry/graph-store/graph/~zod/chat-1.json"


def test_dm_name():
    assert DM.ship_to_dm_name("~nec") == "dm--nec"
    assert DM.ship_to_dm_name("nec") == "dm--nec"


def test_formatted_string():
    message = AuthoredMessage(
        author="~nec",
        contents=ContentList().add_text("hello").add_mention("zod"),
        time_sent="2022-04-15 05:20:00",
        index="/1",
    )
    assert message.to_formatted_string() == "2022-04-15 05:20:00 - ~nec:hello ~zod"


@pytest.mark.asyncio
async def test_send_message(ship, client):
    index = await client.chat().send_chat_message("~zod", "chat-1", ContentList().add_text("hi"))
    nodes = ship.actions()[-1]["json"]["add-nodes"]["nodes"]
    assert list(nodes) == [index]


@pytest.mark.asyncio
async def test_export_log_is_time_ordered_and_skips_empty_nodes(ship, client):
    ship.scries[CHAT_SCRY] = (
        200,
        add_graph_fact(
            "~zod",
            "chat-1",
            {
                "/3": post("/3", [{"text": "second"}], author="~nec", time_sent=2_000),
                "/1": post("/1", [{"text": "first"}], time_sent=1_000),
                "/2": post("/2", [], time_sent=1_500),
            },
        ),
    )
    log = await client.chat().export_chat_log("zod", "chat-1")
    assert len(log) == 2
    assert log[0].endswith(" - ~zod:first")
    assert log[1].endswith(" - ~nec:second")

    nodes = await client.chat().export_message_nodes("zod", "chat-1")
    assert [n.time_sent for n in nodes] == [1_000, 1_500, 2_000]


async def wait_for_event_source(event_sources, count: int) -> None:
    while len(event_sources) < count:
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_feed_delivers_matching_messages(ship, client, event_sources):
    feed = await client.dm().subscribe_to_messages("~zod", "dm--nec", poll_interval=0.01)
    await wait_for_event_source(event_sources, 2)
    watcher_source = event_sources[1]

    subscribe = ship.actions_for(feed.channel.uid)[-1]
    assert subscribe["action"] == "subscribe"
    assert subscribe["app"] == "graph-store"
    assert subscribe["path"] == "/updates"
    handle = subscribe["id"]

    assert feed.try_recv() is None

    other = add_nodes_fact("~zod", "chat-1", {"/5": post("/5", [{"text": "elsewhere"}])})
    mine = add_nodes_fact("~zod", "dm--nec", {"/6": post("/6", [{"text": "psst"}], author="~nec")})
    watcher_source.push(0, {"id": handle, "response": "diff", "json": other})
    watcher_source.push(1, {"id": handle, "response": "diff", "json": mine})

    message = await asyncio.wait_for(feed.recv(), timeout=2)
    assert message.author == "~nec"
    assert message.contents.to_display_string() == "psst"
    assert message.index == "/6"

    await feed.aclose()
    assert feed.stopped
    assert not feed.channel.is_open
    assert watcher_source.closed
    with pytest.raises(FeedClosedError):
        feed.try_recv()
    with pytest.raises(FeedClosedError):
        await feed.recv()


@pytest.mark.asyncio
async def test_feed_keeps_queued_messages_after_stop(client, event_sources):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1", poll_interval=0.01)
    watcher_source = event_sources[1]
    handle = feed.channel.find_subscription("graph-store", "/updates").creation_id

    fact = add_nodes_fact("~zod", "chat-1", {"/6": post("/6", [{"text": "late"}])})
    watcher_source.push(0, {"id": handle, "json": fact})
    await feed.aclose()

    message = feed.try_recv()
    assert message is not None and message.index == "/6"
    with pytest.raises(FeedClosedError):
        feed.try_recv()


@pytest.mark.asyncio
async def test_feed_skips_malformed_updates(client, event_sources):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1", poll_interval=0.01)
    handle = feed.channel.find_subscription("graph-store", "/updates").creation_id

    broken = add_nodes_fact("~zod", "chat-1", {"/6": {"post": {"index": "/6"}}})
    good = add_nodes_fact("~zod", "chat-1", {"/7": post("/7", [{"text": "ok"}])})
    event_sources[1].push(0, {"id": handle, "json": broken})
    event_sources[1].push(1, {"id": handle, "json": good})

    message = await asyncio.wait_for(feed.recv(), timeout=2)
    assert message.index == "/7"
    await feed.aclose()


@pytest.mark.asyncio
async def test_feed_survives_out_of_range_time_sent(client, event_sources):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1", poll_interval=0.01)
    handle = feed.channel.find_subscription("graph-store", "/updates").creation_id

    far_future = add_nodes_fact("~zod", "chat-1", {"/6": post("/6", time_sent=10**20)})
    good = add_nodes_fact("~zod", "chat-1", {"/7": post("/7", [{"text": "ok"}])})
    event_sources[1].push(0, {"id": handle, "json": far_future})
    event_sources[1].push(1, {"id": handle, "json": good})

    message = await asyncio.wait_for(feed.recv(), timeout=2)
    assert message.index == "/7"
    assert not feed.stopped
    await feed.aclose()


@pytest.mark.asyncio
async def test_feed_stops_when_stream_is_lost(client, event_sources):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1", poll_interval=0.01)
    event_sources[1].fail(NetworkError("Event stream ended"))

    with pytest.raises(FeedClosedError):
        await asyncio.wait_for(feed.recv(), timeout=2)
    assert feed.stopped
    assert not feed.channel.is_open
    await feed.aclose()


@pytest.mark.asyncio
async def test_feed_uses_its_own_channel(client):
    feed = await client.chat().subscribe_to_chat("zod", "chat-1")
    assert feed.channel.uid != client.channel.uid
    assert feed.poll_interval == 0.01
    await feed.aclose()
    assert client.channel.is_open
