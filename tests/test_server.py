"""Tests for the MCP server helpers and the watch worker CLI."""

import argparse
from datetime import datetime, timedelta

import pytest

from urbit_mcp import server
from urbit_mcp.watch_worker import build_parser, watch


def test_resource_name_for_dm():
    assert server._resource_name("~nec", dm=True) == "dm--nec"
    assert server._resource_name("chat-1", dm=False) == "chat-1"


def test_get_client_before_startup(monkeypatch):
    monkeypatch.setattr(server, "_client", None)
    with pytest.raises(RuntimeError):
        server.get_client()


@pytest.mark.asyncio
async def test_stop_all_watches_closes_feeds(client, monkeypatch):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1")
    monkeypatch.setattr(server, "_watches", {"watch-1": {"watch_id": "watch-1", "_feed": feed}})

    await server._stop_all_watches()

    assert server._watches == {}
    assert feed.stopped
    assert not feed.channel.is_open


@pytest.mark.asyncio
async def test_register_watch_records_utc_start(client, monkeypatch):
    feed = await client.chat().subscribe_to_messages("zod", "chat-1")
    monkeypatch.setattr(server, "_watches", {})

    entry = server._register_watch("watch-7", "~zod", "chat-1", feed)

    assert server._watches["watch-7"] is entry
    started = datetime.fromisoformat(entry["started_at"])
    assert started.utcoffset() == timedelta(0)
    await feed.aclose()


def test_worker_arguments():
    args = build_parser().parse_args(["--ship", "~zod", "--name", "~nec", "--dm"])
    assert args.ship == "~zod"
    assert args.dm
    assert args.config == "ship_config.yaml"


@pytest.mark.asyncio
async def test_worker_writes_config_on_first_run(tmp_path):
    path = tmp_path / "ship_config.yaml"
    args = argparse.Namespace(ship="~zod", name="chat-1", dm=False, config=str(path))
    assert await watch(args) == 1
    assert path.exists()
