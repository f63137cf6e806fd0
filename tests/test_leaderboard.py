import asyncio
from types import SimpleNamespace

import discord

from hllvip.leaderboard import (
    LeaderboardService,
    extract_stat,
    format_stat_value,
    leaderboard_lines,
    rank_linked_players,
)
from hllvip.models import init_db, list_leaderboards, save_link
from tests.fakes import FakeChannel, FakeConsole, ok, status

ROSTER = {
    "players": [
        {"name": "Alpha", "player_id": "1", "kills": 30, "deaths": 10, "combat": 100, "offense": 50},
        {"name": "Bravo", "player_id": "2", "kills": 9, "deaths": 1, "score": 400},
        {"name": "Charlie", "player_id": "3", "kills": 50, "deaths": 0},
        {"name": "Stranger", "player_id": "4", "kills": 99},
    ]
}


def links():
    return [
        SimpleNamespace(player_id="1", player_name="Alpha", discord_user_id=11),
        SimpleNamespace(player_id="2", player_name="Bravo", discord_user_id=12),
        SimpleNamespace(player_id="3", player_name="Charlie", discord_user_id=13),
    ]


def test_ranks_only_linked_players():
    entries = rank_linked_players(ROSTER, links(), "kills")

    assert [e.name for e in entries] == ["Charlie", "Alpha", "Bravo"]
    assert entries[0].discord_user_id == 13


def test_kdr_requires_minimum_kills():
    assert extract_stat(ROSTER["players"][0], "kdr") == 3.0
    assert extract_stat(ROSTER["players"][1], "kdr") == 0.0
    assert extract_stat(ROSTER["players"][2], "kdr") == 50.0


def test_score_falls_back_to_component_sum():
    assert extract_stat(ROSTER["players"][0], "score") == 150
    assert extract_stat(ROSTER["players"][1], "score") == 400


def test_playtime_reads_profile():
    player = {"profile": {"current_playtime_seconds": 5400}}

    assert extract_stat(player, "playtime") == 5400
    assert format_stat_value("playtime", 5400) == "1h 30m"
    assert format_stat_value("playtime", 600) == "10m"
    assert format_stat_value("kills", 12345) == "12,345"
    assert format_stat_value("kdr", 2.5) == "2.50"


def test_lines_use_medals_then_positions():
    entries = rank_linked_players(ROSTER, links(), "kills")

    lines = leaderboard_lines(entries, "kills")

    assert lines[0].startswith("🥇 **Charlie**")
    assert lines[2].startswith("🥉 **Bravo**")


def test_create_registers_and_update_all_refreshes(tmp_path):
    models = init_db(str(tmp_path / "bot.db"))
    save_link(models, 11, "1", "Alpha")
    client = FakeConsole()
    client.route("GET", "/api/get_detailed_players", ok(ROSTER))
    channel = FakeChannel(id=500)

    async def fetch_channel(channel_id):
        return channel

    async def scenario():
        service = LeaderboardService(client, models, fetch_channel)
        message = await service.create(channel, "kills")
        result = await service.update_all()
        return service, message, result

    service, message, result = asyncio.run(scenario())

    assert result == (1, 0)
    assert message.edits == 1
    assert "Alpha" in message.embed.fields[0].value
    registration = list_leaderboards(models)[0]
    assert registration.channel_id == 500
    assert registration.message_id == message.id
    assert service.update_in_progress is False


def test_vanished_channel_is_unregistered(tmp_path):
    models = init_db(str(tmp_path / "bot.db"))
    client = FakeConsole()
    client.route("GET", "/api/get_detailed_players", ok([]))
    channel = FakeChannel(id=500)

    async def missing_channel(channel_id):
        raise discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Channel")

    async def scenario():
        creator = LeaderboardService(client, models, missing_channel)
        await creator.create(channel, "score")
        return await creator.update_all()

    assert asyncio.run(scenario()) == (0, 1)
    assert list_leaderboards(models) == []


def test_console_failure_renders_error_embed(tmp_path):
    models = init_db(str(tmp_path / "bot.db"))
    client = FakeConsole()
    client.route("GET", "/api/get_detailed_players", status(400))

    async def fetch_channel(channel_id):
        raise AssertionError("not used")

    embed = asyncio.run(LeaderboardService(client, models, fetch_channel).build_embed("kdr"))

    assert "Unavailable" in embed.title
