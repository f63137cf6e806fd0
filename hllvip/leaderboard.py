import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import discord

from .crcon import ConsoleError, CRCONClient
from .embeds import error_embed, leaderboard_embed, rate_limited_message
from .models import (
    BotModels,
    list_leaderboards,
    list_links,
    register_leaderboard,
    remove_leaderboard,
    utcnow_naive,
)
from .players import pick_name, pick_player_id

LOGGER = logging.getLogger(__name__)

STAT_TYPES: Dict[str, Tuple[str, str]] = {
    "kills": ("Most Kills", "💀"),
    "score": ("Highest Score", "🎯"),
    "playtime": ("Most Playtime", "⏱️"),
    "kdr": ("Best K/D Ratio", "📈"),
}
DEFAULT_STAT = "kills"
LEADERBOARD_SIZE = 20
KDR_MIN_KILLS = 10
MEDALS = ("🥇", "🥈", "🥉")

ChannelFetcher = Callable[[int], Awaitable[Any]]


@dataclass
class LeaderboardEntry:
    name: str
    player_id: str
    discord_user_id: int
    value: float


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def extract_stat(player: Dict[str, Any], stat_type: str) -> float:
    kills = _number(player.get("kills"))
    if stat_type == "kills":
        return kills
    if stat_type == "score":
        if player.get("score") is not None:
            return _number(player.get("score"))
        return sum(
            _number(player.get(key)) for key in ("combat", "offense", "defense", "support")
        )
    if stat_type == "playtime":
        if player.get("current_playtime_seconds") is not None:
            return _number(player.get("current_playtime_seconds"))
        profile = player.get("profile") or {}
        return _number(profile.get("current_playtime_seconds"))
    if stat_type == "kdr":
        if kills < KDR_MIN_KILLS:
            return 0.0
        deaths = _number(player.get("deaths"))
        return kills / deaths if deaths > 0 else kills
    raise ValueError(f"Unknown leaderboard type '{stat_type}'")


def format_stat_value(stat_type: str, value: float) -> str:
    if stat_type in ("kills", "score"):
        return f"{int(value):,}"
    if stat_type == "playtime":
        total = int(value)
        hours, minutes = total // 3600, (total % 3600) // 60
        return f"{hours}h {minutes}m" if hours else f"{minutes}m"
    if stat_type == "kdr":
        return f"{value:.2f}"
    return str(value)


def _roster(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        players = payload.get("players")
        if isinstance(players, dict):
            payload = list(players.values())
        else:
            payload = players or []
    if not isinstance(payload, list):
        return []
    return [p for p in payload if isinstance(p, dict)]


def rank_linked_players(
    payload: Any,
    links: Iterable[Any],
    stat_type: str,
    limit: int = LEADERBOARD_SIZE,
) -> List[LeaderboardEntry]:
    by_player = {str(link.player_id).casefold(): link for link in links}
    entries: List[LeaderboardEntry] = []
    for player in _roster(payload):
        player_id = pick_player_id(player)
        if not player_id:
            continue
        link = by_player.get(player_id.casefold())
        if link is None:
            continue
        entries.append(
            LeaderboardEntry(
                name=pick_name(player) or link.player_name,
                player_id=player_id,
                discord_user_id=link.discord_user_id,
                value=extract_stat(player, stat_type),
            )
        )
    entries.sort(key=lambda e: (-e.value, e.name.casefold()))
    return entries[:limit]


def leaderboard_lines(entries: List[LeaderboardEntry], stat_type: str) -> List[str]:
    _, emoji = STAT_TYPES[stat_type]
    lines = []
    for index, entry in enumerate(entries):
        value = format_stat_value(stat_type, entry.value)
        if index < len(MEDALS):
            lines.append(f"{MEDALS[index]} **{entry.name}** • {emoji} {value}")
        else:
            lines.append(f"`{index + 1:>2}.` {entry.name} • {value}")
    return lines


class LeaderboardView(discord.ui.View):
    def __init__(self, service: "LeaderboardService", active: str = DEFAULT_STAT):
        super().__init__(timeout=None)
        self.service = service
        for stat_type, (label, emoji) in STAT_TYPES.items():
            button = discord.ui.Button(
                label=label,
                emoji=emoji,
                custom_id=f"leaderboard:{stat_type}",
                style=(
                    discord.ButtonStyle.success
                    if stat_type == active
                    else discord.ButtonStyle.secondary
                ),
            )
            button.callback = self._switcher(stat_type)
            self.add_item(button)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        limiter = getattr(interaction.client, "rate_limiter", None)
        if limiter is None or limiter.check(interaction.user.id):
            return True
        await interaction.response.send_message(
            rate_limited_message(limiter.retry_after(interaction.user.id)), ephemeral=True
        )
        return False

    def _switcher(self, stat_type: str):
        async def callback(interaction: discord.Interaction):
            await self.service.handle_switch(interaction, stat_type)

        return callback


class LeaderboardService:
    def __init__(self, client: CRCONClient, models: BotModels, fetch_channel: ChannelFetcher):
        self.client = client
        self.models = models
        self.fetch_channel = fetch_channel
        self.update_in_progress = False
        self.last_update_at = None

    async def build_embed(self, stat_type: str) -> discord.Embed:
        if stat_type not in STAT_TYPES:
            stat_type = DEFAULT_STAT
        title, emoji = STAT_TYPES[stat_type]
        try:
            payload = await self.client.execute("/api/get_detailed_players")
        except ConsoleError as exc:
            LOGGER.warning("Leaderboard data unavailable: %s", exc)
            return error_embed(
                "Leaderboard Unavailable",
                "Could not load player statistics. The server might be temporarily unavailable.",
            )
        entries = rank_linked_players(payload, list_links(self.models), stat_type)
        return leaderboard_embed(
            f"{emoji} {title}",
            leaderboard_lines(entries, stat_type),
            footer="Live stats from the current match • linked players only",
        )

    def view(self, stat_type: str = DEFAULT_STAT) -> LeaderboardView:
        return LeaderboardView(self, stat_type)

    async def create(self, channel: Any, stat_type: str = DEFAULT_STAT) -> Any:
        LOGGER.info("Creating %s leaderboard in channel %s", stat_type, channel.id)
        embed = await self.build_embed(stat_type)
        message = await channel.send(embed=embed, view=self.view(stat_type))
        register_leaderboard(self.models, channel.id, message.id, stat_type)
        return message

    async def update_one(self, registration: Any) -> bool:
        try:
            channel = await self.fetch_channel(registration.channel_id)
            message = await channel.fetch_message(registration.message_id)
        except (discord.NotFound, discord.Forbidden) as exc:
            LOGGER.warning(
                "Leaderboard message in channel %s is gone (%s); unregistering",
                registration.channel_id,
                exc,
            )
            remove_leaderboard(self.models, registration.channel_id)
            return False
        embed = await self.build_embed(registration.stat_type)
        await message.edit(embed=embed, view=self.view(registration.stat_type))
        registration.last_update = utcnow_naive()
        registration.save()
        return True

    async def update_all(self) -> Tuple[int, int]:
        if self.update_in_progress:
            LOGGER.debug("Leaderboard update already in progress; skipping")
            return 0, 0
        self.update_in_progress = True
        updated = errors = 0
        try:
            for registration in list_leaderboards(self.models):
                try:
                    if await self.update_one(registration):
                        updated += 1
                    else:
                        errors += 1
                except discord.HTTPException as exc:
                    errors += 1
                    LOGGER.warning(
                        "Failed updating leaderboard in channel %s: %s",
                        registration.channel_id,
                        exc,
                    )
            self.last_update_at = utcnow_naive()
            LOGGER.info("Leaderboard update complete: %s updated, %s errors", updated, errors)
        finally:
            self.update_in_progress = False
        return updated, errors

    async def handle_switch(self, interaction: discord.Interaction, stat_type: str) -> None:
        await interaction.response.defer()
        embed = await self.build_embed(stat_type)
        message = interaction.message
        if message is None:
            return
        await message.edit(embed=embed, view=self.view(stat_type))
        channel_id = getattr(message.channel, "id", None)
        registration: Optional[Any] = None
        if channel_id is not None:
            registration = self.models.LeaderboardChannel.get_or_none(
                self.models.LeaderboardChannel.channel_id == channel_id
            )
        if registration and registration.message_id == message.id:
            registration.stat_type = stat_type
            registration.last_update = utcnow_naive()
            registration.save()
