from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .broadcast import BroadcastDispatcher
from .config import BotConfig, load_config
from .contest import (
    ContestError,
    create_contest,
    creation_announcement,
    current_contest,
    end_announcement,
    end_contest,
    expire_due_contest,
    hours_remaining,
    select_winners,
    winners_announcement,
)
from .crcon import ConsoleError, CRCONClient, DeliveryError
from .embeds import (
    ADMIN_REQUIRED,
    ALREADY_LINKED,
    ALREADY_LINKED_TO_ANOTHER,
    HOW_TO_FIND_USERNAME,
    INFO_COLOR,
    NOT_LINKED,
    SERVER_UNAVAILABLE,
    USER_NOT_LINKED,
    USERNAME_NOT_FOUND,
    contest_embed,
    link_success_embed,
    profile_embed,
    rate_limited_message,
    server_status_embed,
    vip_status_embed,
)
from .jobs import PeriodicJob
from .leaderboard import DEFAULT_STAT, STAT_TYPES, LeaderboardService
from .models import (
    BotModels,
    count_links,
    delete_link,
    get_link,
    get_link_by_player_id,
    init_db,
    save_link,
)
from .notifications import VipExpiryNotifier
from .platforms import detect_platform, normalize_platform, platform_label
from .players import PlayerResolver, find_player_by_id
from .ratelimit import RateLimiter
from .validators import (
    ValidationError,
    parse_user_ids,
    validate_player_id,
    validate_player_name,
)
from .vip import VipStatus, get_vip_status

# Default to INFO until the configured level is applied at startup
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
LOGGER = logging.getLogger(__name__)

HELP_TEXT = (
    "**VIP Bot commands**\n"
    "• `/link <name>` link your Discord account to your in-game name\n"
    "• `/vip` check your VIP status\n"
    "• `/profile` show your linked account\n"
    "• `/contest_status` show the current contest\n"
    "• `/unlink` remove your link"
)


def _member_is_admin(user: Any) -> bool:
    perms = getattr(user, "guild_permissions", None)
    if perms is None:
        return False
    return bool(perms.administrator or perms.manage_guild)


def user_label(user: Any) -> str:
    name = getattr(user, "display_name", None) or getattr(user, "name", None)
    uid = getattr(user, "id", None)
    return f"{name} ({uid})" if name else str(uid)


@dataclass
class LinkOutcome:
    linked: bool
    message: str | None = None
    link: Any = None
    status: VipStatus | None = None


class RateLimitedTree(app_commands.CommandTree):
    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        limiter: RateLimiter | None = getattr(self.client, "rate_limiter", None)
        if limiter is None or limiter.check(interaction.user.id):
            return True
        LOGGER.info("Rate limited %s", user_label(interaction.user))
        if not interaction.response.is_done():
            await interaction.response.send_message(
                rate_limited_message(limiter.retry_after(interaction.user.id)),
                ephemeral=True,
            )
        return False


class LinkAccountModal(discord.ui.Modal, title="Link Hell Let Loose Account"):
    username = discord.ui.TextInput(
        label="In-game name",
        placeholder="Your exact T17 / in-game name",
        min_length=2,
        max_length=50,
    )

    def __init__(self, bot: "VipBot"):
        super().__init__(custom_id="link_account_modal")
        self.bot = bot

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        outcome = await self.bot.link_account(interaction.user.id, str(self.username.value))
        await self.bot.send_link_outcome(interaction, outcome)


class VipPanelView(discord.ui.View):
    def __init__(self, bot: "VipBot"):
        super().__init__(timeout=None)
        self.bot = bot

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if self.bot.rate_limiter.check(interaction.user.id):
            return True
        limiter = self.bot.rate_limiter
        await interaction.response.send_message(
            rate_limited_message(limiter.retry_after(interaction.user.id)), ephemeral=True
        )
        return False

    @discord.ui.button(
        label="Link Account",
        emoji="🔗",
        style=discord.ButtonStyle.primary,
        custom_id="panel:link_account",
    )
    async def link_account(self, interaction: discord.Interaction, button: discord.ui.Button):
        existing = get_link(self.bot.models, interaction.user.id)
        if existing:
            await interaction.response.send_message(
                ALREADY_LINKED.format(name=existing.player_name), ephemeral=True
            )
            return
        await interaction.response.send_modal(LinkAccountModal(self.bot))

    @discord.ui.button(
        label="Check VIP",
        emoji="🎖️",
        style=discord.ButtonStyle.success,
        custom_id="panel:check_vip",
    )
    async def check_vip(self, interaction: discord.Interaction, button: discord.ui.Button):
        link = get_link(self.bot.models, interaction.user.id)
        if not link:
            await interaction.response.send_message(NOT_LINKED, ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        status = await get_vip_status(self.bot.client, link.player_id)
        await interaction.followup.send(embed=vip_status_embed(link, status), ephemeral=True)

    @discord.ui.button(
        label="My Profile",
        emoji="👤",
        style=discord.ButtonStyle.secondary,
        custom_id="panel:view_stats",
    )
    async def view_stats(self, interaction: discord.Interaction, button: discord.ui.Button):
        link = get_link(self.bot.models, interaction.user.id)
        if not link:
            await interaction.response.send_message(NOT_LINKED, ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        status = await get_vip_status(self.bot.client, link.player_id)
        embed = profile_embed(link, status, getattr(interaction.user, "display_name", "Player"))
        await interaction.followup.send(embed=embed, ephemeral=True)

    @discord.ui.button(
        label="Contest",
        emoji="🏆",
        style=discord.ButtonStyle.secondary,
        custom_id="panel:contest",
    )
    async def contest(self, interaction: discord.Interaction, button: discord.ui.Button):
        contest = current_contest(self.bot.models)
        if not contest:
            await interaction.response.send_message("No contest has been run yet.", ephemeral=True)
            return
        await interaction.response.send_message(
            embed=contest_embed(contest, hours_remaining(contest)), ephemeral=True
        )

    @discord.ui.button(
        label="Unlink",
        emoji="🔓",
        style=discord.ButtonStyle.danger,
        custom_id="panel:unlink_account",
    )
    async def unlink_account(self, interaction: discord.Interaction, button: discord.ui.Button):
        message = self.bot.unlink_account(interaction.user.id)
        await interaction.response.send_message(message, ephemeral=True)

    @discord.ui.button(
        label="Help",
        emoji="❓",
        style=discord.ButtonStyle.secondary,
        custom_id="panel:help",
    )
    async def show_help(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.send_message(
            f"{HELP_TEXT}\n\n{HOW_TO_FIND_USERNAME}", ephemeral=True
        )


class VipBot(commands.Bot):
    def __init__(self, config: BotConfig, client: CRCONClient | None = None):
        intents = discord.Intents.default()
        intents.members = True
        intents.guilds = True
        super().__init__(command_prefix="!", intents=intents, tree_cls=RateLimitedTree)
        self.config = config
        self.client = client or CRCONClient(config.console)
        self.models: BotModels = init_db(config.database_path, config.warning_days)
        self.resolver = PlayerResolver(self.client)
        self.broadcaster = BroadcastDispatcher(
            self.client, author=config.console.message_author
        )
        self.rate_limiter = RateLimiter()
        self.notifier = VipExpiryNotifier(self.client, self.models, self.send_dm)
        self.leaderboards = LeaderboardService(self.client, self.models, self.resolve_channel)
        interval = config.jobs.interval_seconds
        delay = config.jobs.initial_delay_seconds
        self.vip_job = PeriodicJob(
            "vip-expiry", self.notifier.check_expirations, interval, delay
        )
        self.leaderboard_job = PeriodicJob(
            "leaderboard-refresh", self.leaderboards.update_all, interval, delay
        )
        self.housekeeping_job = PeriodicJob(
            "housekeeping", self.run_housekeeping, interval, delay
        )

    @property
    def jobs(self) -> List[PeriodicJob]:
        return [self.vip_job, self.leaderboard_job, self.housekeeping_job]

    async def setup_hook(self) -> None:
        self.add_view(VipPanelView(self))
        for stat_type in STAT_TYPES:
            self.add_view(self.leaderboards.view(stat_type))
        await self.tree.sync()
        for job in self.jobs:
            job.start()

    async def on_ready(self):
        LOGGER.info("Bot ready as %s (%s linked players)", self.user, count_links(self.models))
        status = await self.client.test_connection()
        if status.connected:
            LOGGER.info(
                "Connected to %s (%s/%s players)",
                status.server_name,
                status.player_count,
                status.max_players,
            )
        else:
            LOGGER.warning("Console API unreachable at startup: %s", status.error)

    async def close(self) -> None:
        for job in self.jobs:
            await job.stop()
        await self.broadcaster.close()
        self.models.db.close()
        await super().close()
        await self.client.close()

    async def resolve_channel(self, channel_id: int) -> Any:
        return self.get_channel(channel_id) or await self.fetch_channel(channel_id)

    async def send_dm(self, discord_user_id: int, embed: discord.Embed) -> bool:
        try:
            user = self.get_user(discord_user_id) or await self.fetch_user(discord_user_id)
            await user.send(embed=embed)
        except discord.HTTPException as exc:
            LOGGER.warning("Could not DM user %s: %s", discord_user_id, exc)
            return False
        return True

    async def announce(self, message: str) -> str | None:
        try:
            return await self.broadcaster.broadcast(message)
        except DeliveryError as exc:
            LOGGER.warning("In-game announcement failed: %s", exc)
            return None

    async def run_housekeeping(self) -> None:
        contest = expire_due_contest(self.models)
        if contest:
            await self.announce(end_announcement(contest))
        self.rate_limiter.cleanup()

    async def link_account(self, discord_user_id: int, username: str) -> LinkOutcome:
        existing = get_link(self.models, discord_user_id)
        if existing:
            return LinkOutcome(False, ALREADY_LINKED.format(name=existing.player_name))
        try:
            username = validate_player_name(username)
        except ValidationError as exc:
            return LinkOutcome(False, f"❌ {exc}")
        try:
            record = await self.resolver.resolve(username)
        except ConsoleError as exc:
            LOGGER.warning("Player lookup failed for %s: %s", username, exc)
            return LinkOutcome(False, SERVER_UNAVAILABLE)
        if record is None:
            return LinkOutcome(
                False,
                USERNAME_NOT_FOUND.format(name=username) + "\n\n" + HOW_TO_FIND_USERNAME,
            )
        owner = get_link_by_player_id(self.models, record.player_id)
        if owner and owner.discord_user_id != discord_user_id:
            return LinkOutcome(False, ALREADY_LINKED_TO_ANOTHER.format(name=record.name))
        link = save_link(
            self.models,
            discord_user_id,
            record.player_id,
            record.name,
            display_name=record.display_name,
            platform=record.platform,
        )
        LOGGER.info(
            "Linked user %s to %s (%s)", discord_user_id, record.name, record.player_id
        )
        status = await get_vip_status(self.client, record.player_id)
        return LinkOutcome(True, None, link, status)

    async def send_link_outcome(self, interaction: discord.Interaction, outcome: LinkOutcome):
        if outcome.linked:
            link = outcome.link
            embed = link_success_embed(
                link.player_name, link.player_id, link.platform, outcome.status or VipStatus(False)
            )
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.followup.send(outcome.message, ephemeral=True)

    def unlink_account(self, discord_user_id: int) -> str:
        link = get_link(self.models, discord_user_id)
        if not link:
            return NOT_LINKED
        delete_link(self.models, discord_user_id)
        LOGGER.info("Unlinked user %s from %s", discord_user_id, link.player_name)
        return f"✅ Unlinked from **{link.player_name}**."


# Command registrations
async def setup_commands(bot: VipBot):
    tree = bot.tree

    async def require_admin(interaction: discord.Interaction) -> bool:
        if interaction.guild is None:
            await interaction.response.send_message(
                "Commands must be used inside a guild.", ephemeral=True
            )
            return False
        if not _member_is_admin(interaction.user):
            await interaction.response.send_message(ADMIN_REQUIRED, ephemeral=True)
            return False
        return True

    @bot.listen("on_interaction")
    async def log_app_command(interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.application_command:
            return
        cmd = interaction.command
        data = getattr(interaction, "namespace", None)
        try:
            payload = vars(data) if data else {}
        except TypeError:
            payload = str(data)
        LOGGER.info(
            "Slash command %s by %s with options %s",
            cmd.qualified_name if cmd else "unknown",
            user_label(interaction.user),
            payload,
        )

    @tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ):
        if isinstance(error, app_commands.CheckFailure):
            if not interaction.response.is_done():
                await interaction.response.send_message(ADMIN_REQUIRED, ephemeral=True)
            return
        original = getattr(error, "original", error)
        if isinstance(original, ConsoleError):
            LOGGER.warning("Console API error during command: %s", original)
            message = SERVER_UNAVAILABLE
        else:
            LOGGER.exception("App command error: %s", error)
            message = "❌ Something went wrong while running that command. Please try again later."
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as exc:
            LOGGER.warning("Failed sending error response for command: %s", exc)

    @tree.command(name="link", description="Link your Discord account to your Hell Let Loose name")
    @app_commands.describe(username="Your exact in-game (T17) name")
    async def link(interaction: discord.Interaction, username: str):
        LOGGER.info("Link request user=%s name=%s", user_label(interaction.user), username)
        await interaction.response.defer(ephemeral=True, thinking=True)
        outcome = await bot.link_account(interaction.user.id, username)
        await bot.send_link_outcome(interaction, outcome)

    @tree.command(name="unlink", description="Remove the link to your Hell Let Loose account")
    async def unlink(interaction: discord.Interaction):
        await interaction.response.send_message(
            bot.unlink_account(interaction.user.id), ephemeral=True
        )

    @tree.command(name="vip", description="Check VIP status")
    @app_commands.describe(user="Optional user to check instead of yourself")
    async def vip(interaction: discord.Interaction, user: Optional[discord.Member] = None):
        target = user or interaction.user
        link = get_link(bot.models, target.id)
        if not link:
            await interaction.response.send_message(
                USER_NOT_LINKED if user else NOT_LINKED, ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        status = await get_vip_status(bot.client, link.player_id)
        await interaction.followup.send(embed=vip_status_embed(link, status), ephemeral=True)

    @tree.command(name="profile", description="Show a linked Hell Let Loose profile")
    @app_commands.describe(user="Optional user to show instead of yourself")
    async def profile(interaction: discord.Interaction, user: Optional[discord.Member] = None):
        target = user or interaction.user
        link = get_link(bot.models, target.id)
        if not link:
            await interaction.response.send_message(
                USER_NOT_LINKED if user else NOT_LINKED, ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        status = await get_vip_status(bot.client, link.player_id)
        embed = profile_embed(link, status, getattr(target, "display_name", str(target.id)))
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="adminlink", description="Link a Discord user to a player (admin)")
    @app_commands.describe(
        user="Discord user to link",
        username="In-game name to look up",
        player_id="Steam ID or console ID, when the name cannot be found",
        platform="Override the detected platform (pc, playstation, xbox, console)",
    )
    async def adminlink(
        interaction: discord.Interaction,
        user: discord.Member,
        username: Optional[str] = None,
        player_id: Optional[str] = None,
        platform: Optional[str] = None,
    ):
        if not await require_admin(interaction):
            return
        if bool(username) == bool(player_id):
            await interaction.response.send_message(
                "❌ Provide either a username or a player ID.", ephemeral=True
            )
            return
        platform_override = normalize_platform(platform)
        if platform and not platform_override:
            await interaction.response.send_message(
                "❌ Platform must be one of: pc, steam, playstation, xbox, console.",
                ephemeral=True,
            )
            return
        await interaction.response.defer(ephemeral=True, thinking=True)

        existing = get_link(bot.models, user.id)
        if existing:
            await interaction.followup.send(
                f"❌ {user_label(user)} is already linked to **{existing.player_name}**. "
                "Use `/adminunlink` first.",
                ephemeral=True,
            )
            return

        try:
            if player_id:
                player_id = validate_player_id(player_id)
                name = await find_player_by_id(bot.client, player_id) or f"Player_{player_id[-8:]}"
                display_name = name
            else:
                record = await bot.resolver.resolve(validate_player_name(username or ""))
                if record is None:
                    await interaction.followup.send(
                        USERNAME_NOT_FOUND.format(name=username)
                        + "\nTry again with the player's ID instead.",
                        ephemeral=True,
                    )
                    return
                player_id, name, display_name = record.player_id, record.name, record.display_name
        except ValidationError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return

        owner = get_link_by_player_id(bot.models, player_id)
        if owner and owner.discord_user_id != user.id:
            await interaction.followup.send(
                ALREADY_LINKED_TO_ANOTHER.format(name=name) + f" (<@{owner.discord_user_id}>)",
                ephemeral=True,
            )
            return

        detected = platform_override or detect_platform(player_id, name)
        link = save_link(
            bot.models,
            user.id,
            player_id,
            name,
            display_name=display_name,
            platform=detected,
            linked_by=interaction.user.id,
        )
        LOGGER.info(
            "Admin %s linked %s to %s (%s)",
            user_label(interaction.user),
            user_label(user),
            name,
            player_id,
        )
        status = await get_vip_status(bot.client, player_id)
        notice = discord.Embed(
            title="🔗 Account Linked by Admin",
            description=f"An administrator linked your Discord account to **{name}**.",
            color=INFO_COLOR,
        )
        notice.add_field(name="🖥️ Platform", value=platform_label(detected), inline=True)
        dm_sent = await bot.send_dm(user.id, notice)
        lines = [
            f"✅ Linked {user.mention} to **{link.player_name}** (`{player_id}`).",
            f"Platform: {platform_label(detected)}",
            f"VIP: {'yes' if status.is_vip else 'no'}",
        ]
        if not dm_sent:
            lines.append("Could not DM the user about the link.")
        await interaction.followup.send("\n".join(lines), ephemeral=True)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="adminunlink", description="Remove a user's link (admin)")
    async def adminunlink(interaction: discord.Interaction, user: discord.Member):
        if not await require_admin(interaction):
            return
        link = get_link(bot.models, user.id)
        if not link:
            await interaction.response.send_message(USER_NOT_LINKED, ephemeral=True)
            return
        delete_link(bot.models, user.id)
        LOGGER.info("Admin %s unlinked %s", user_label(interaction.user), user_label(user))
        await interaction.response.send_message(
            f"✅ Unlinked {user.mention} from **{link.player_name}**.", ephemeral=True
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="contest_create", description="Start a timed contest (admin)")
    @app_commands.describe(
        title="Contest title",
        description="What players need to do",
        duration_hours="How long the contest runs",
        prize="Prize for the winners",
        max_winners="Maximum number of winners",
    )
    async def contest_create(
        interaction: discord.Interaction,
        title: str,
        description: str,
        duration_hours: int,
        prize: str,
        max_winners: int = 1,
    ):
        if not await require_admin(interaction):
            return
        try:
            contest = create_contest(
                bot.models,
                title,
                description,
                prize,
                duration_hours,
                max_winners,
                interaction.user.id,
            )
        except (ValidationError, ContestError) as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        await interaction.response.defer(thinking=True)
        hours = hours_remaining(contest)
        delivered = await bot.announce(creation_announcement(contest, hours))
        await interaction.followup.send(embed=contest_embed(contest, hours))
        if not delivered:
            await interaction.followup.send(
                "⚠️ Contest created, but the in-game announcement could not be delivered.",
                ephemeral=True,
            )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="contest_end", description="End the active contest (admin)")
    async def contest_end(interaction: discord.Interaction):
        if not await require_admin(interaction):
            return
        try:
            contest = end_contest(bot.models, interaction.user.id)
        except ContestError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        await interaction.response.defer(thinking=True)
        await bot.announce(end_announcement(contest))
        embed = contest_embed(contest, 0)
        embed.set_footer(text="Use /contest_winners to select winners")
        await interaction.followup.send(embed=embed)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="contest_winners", description="Record contest winners (admin)")
    @app_commands.describe(winners="Comma separated user IDs or mentions")
    async def contest_winners(interaction: discord.Interaction, winners: str):
        if not await require_admin(interaction):
            return
        contest = current_contest(bot.models)
        if not contest:
            await interaction.response.send_message("❌ No contest found.", ephemeral=True)
            return
        try:
            winner_ids = parse_user_ids(winners)
        except ValidationError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        if len(winner_ids) > contest.max_winners:
            await interaction.response.send_message(
                f"❌ Too many winners selected. Maximum allowed: {contest.max_winners}",
                ephemeral=True,
            )
            return
        await interaction.response.defer(thinking=True)
        resolved = []
        for winner_id in winner_ids:
            member = interaction.guild.get_member(winner_id) if interaction.guild else None
            if member is None:
                try:
                    member = await bot.fetch_user(winner_id)
                except discord.HTTPException as exc:
                    LOGGER.warning("Contest winner %s not found: %s", winner_id, exc)
                    continue
            resolved.append(member)
        try:
            contest = select_winners(
                contest,
                [{"id": m.id, "tag": str(m)} for m in resolved],
                interaction.user.id,
            )
        except ContestError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        for member in resolved:
            notice = discord.Embed(
                title="🎉 You won!",
                description=f"Congratulations, you are a winner of **{contest.title}**!",
                color=INFO_COLOR,
            )
            notice.add_field(name="🎁 Prize", value=contest.prize, inline=False)
            await bot.send_dm(member.id, notice)
        names = [getattr(m, "display_name", None) or str(m) for m in resolved]
        await bot.announce(winners_announcement(contest, names))
        await interaction.followup.send(embed=contest_embed(contest, 0))

    @tree.command(name="contest_status", description="Show the current contest")
    async def contest_status(interaction: discord.Interaction):
        contest = current_contest(bot.models)
        if not contest:
            await interaction.response.send_message("No contest has been run yet.", ephemeral=True)
            return
        await interaction.response.send_message(
            embed=contest_embed(contest, hours_remaining(contest)), ephemeral=True
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="leaderboard_create", description="Post an auto-updating leaderboard (admin)")
    @app_commands.describe(stat_type="Statistic to rank by")
    @app_commands.choices(
        stat_type=[
            app_commands.Choice(name=label, value=key)
            for key, (label, _) in STAT_TYPES.items()
        ]
    )
    async def leaderboard_create(interaction: discord.Interaction, stat_type: str = DEFAULT_STAT):
        if not await require_admin(interaction):
            return
        channel = interaction.channel
        if channel is None:
            await interaction.response.send_message("❌ No channel to post in.", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        await bot.leaderboards.create(channel, stat_type)
        await interaction.followup.send(
            f"✅ {STAT_TYPES[stat_type][0]} leaderboard posted; it refreshes hourly.",
            ephemeral=True,
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="leaderboard_refresh", description="Refresh every leaderboard now (admin)")
    async def leaderboard_refresh(interaction: discord.Interaction):
        if not await require_admin(interaction):
            return
        if bot.leaderboard_job.trigger():
            await interaction.response.send_message("Leaderboard refresh started.", ephemeral=True)
        else:
            await interaction.response.send_message(
                "A leaderboard refresh is already running.", ephemeral=True
            )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="vip_notify_settings", description="Configure VIP expiry reminders (admin)")
    @app_commands.describe(
        warning_days="Days before expiry for the first reminder",
        enabled="Turn reminders on or off",
    )
    async def vip_notify_settings(
        interaction: discord.Interaction,
        warning_days: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        if not await require_admin(interaction):
            return
        try:
            settings = bot.notifier.update_settings(warning_days, enabled)
        except ValueError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        days = ", ".join(str(d) for d in settings.warning_day_list())
        await interaction.response.send_message(
            f"VIP reminders {'enabled' if settings.enabled else 'disabled'}; "
            f"warning days: {days}",
            ephemeral=True,
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="vip_notify_stats", description="Show VIP expiry statistics (admin)")
    async def vip_notify_stats(interaction: discord.Interaction):
        if not await require_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        stats = await bot.notifier.notification_stats()
        if stats is None:
            await interaction.followup.send(SERVER_UNAVAILABLE, ephemeral=True)
            return
        last = stats.last_check_at.strftime("%Y-%m-%d %H:%M UTC") if stats.last_check_at else "never"
        embed = discord.Embed(title="🎖️ VIP Notification Stats", color=INFO_COLOR)
        embed.add_field(name="Total VIPs", value=str(stats.total_vips), inline=True)
        embed.add_field(name="Linked VIPs", value=str(stats.linked_vips), inline=True)
        embed.add_field(name="Expiring Today", value=str(stats.expiring_today), inline=True)
        embed.add_field(name="Expiring This Week", value=str(stats.expiring_soon), inline=True)
        embed.add_field(name="Expired", value=str(stats.expired), inline=True)
        embed.add_field(
            name="Reminders",
            value=f"{'On' if stats.enabled else 'Off'} "
            f"({', '.join(str(d) for d in stats.warning_days)} days)",
            inline=True,
        )
        embed.set_footer(text=f"Last check: {last}")
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="vip_notify_test", description="Send a test VIP reminder (admin)")
    @app_commands.describe(user="User to send the test to (defaults to you)")
    async def vip_notify_test(
        interaction: discord.Interaction, user: Optional[discord.Member] = None
    ):
        if not await require_admin(interaction):
            return
        target = user or interaction.user
        await interaction.response.defer(ephemeral=True, thinking=True)
        if await bot.notifier.send_test(target.id):
            await interaction.followup.send(
                f"✅ Test reminder sent to {user_label(target)}.", ephemeral=True
            )
        else:
            await interaction.followup.send(
                "❌ Could not send the test reminder. The user must be linked and accept DMs.",
                ephemeral=True,
            )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="vip_notify_check", description="Run the VIP expiry check now (admin)")
    async def vip_notify_check(interaction: discord.Interaction):
        if not await require_admin(interaction):
            return
        if bot.vip_job.trigger():
            await interaction.response.send_message("VIP expiry check started.", ephemeral=True)
        else:
            await interaction.response.send_message(
                "A VIP expiry check is already running.", ephemeral=True
            )

    @tree.command(name="server_status", description="Show game server connection status")
    async def server_status(interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        status = await bot.client.test_connection()
        await interaction.followup.send(
            embed=server_status_embed(status, bot.client.health), ephemeral=True
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="server_message", description="Send an in-game message to all players (admin)")
    @app_commands.describe(message="Message to show in game")
    async def server_message(interaction: discord.Interaction, message: str):
        if not await require_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            route = await bot.broadcaster.broadcast(message)
        except DeliveryError as exc:
            LOGGER.warning("Admin broadcast failed: %s", exc)
            await interaction.followup.send(
                f"❌ Message could not be delivered (tried: {', '.join(exc.attempts)}).",
                ephemeral=True,
            )
            return
        await interaction.followup.send(f"✅ Message delivered via {route}.", ephemeral=True)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="vip_panel", description="Post the VIP self-service panel (admin)")
    async def vip_panel(interaction: discord.Interaction):
        if not await require_admin(interaction):
            return
        channel = interaction.channel
        if channel is None:
            await interaction.response.send_message("❌ No channel to post in.", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        server_name = await bot.client.get_server_name()
        embed = discord.Embed(
            title=f"🎖️ {server_name} VIP",
            description="Link your account, check your VIP status and follow contests.",
            color=INFO_COLOR,
        )
        await channel.send(embed=embed, view=VipPanelView(bot))
        await interaction.followup.send("✅ Panel posted.", ephemeral=True)


async def main():
    bot_config = load_config()
    logging.getLogger().setLevel(bot_config.log_level)
    LOGGER.setLevel(bot_config.log_level)
    bot = VipBot(bot_config)
    await setup_commands(bot)
    await bot.start(bot_config.token)


if __name__ == "__main__":
    asyncio.run(main())
