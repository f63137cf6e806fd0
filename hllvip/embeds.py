import math
from datetime import datetime, timezone
from typing import Any, List, Optional

import discord

from .platforms import platform_label
from .vip import VipStatus

SUCCESS_COLOR = 0x00FF00
ERROR_COLOR = 0xFF0000
WARNING_COLOR = 0xFF8C00
INFO_COLOR = 0x00D4FF
VIP_ACTIVE_COLOR = 0xFFD700
VIP_EXPIRED_COLOR = 0x808080

ALREADY_LINKED = "❌ You're already linked to **{name}**. Use `/unlink` first if you want to change accounts."
USER_NOT_LINKED = "❌ That user hasn't linked their Hell Let Loose account yet."
NOT_LINKED = "❌ You haven't linked your Hell Let Loose account yet. Use `/link` first."
USERNAME_NOT_FOUND = '❌ Player "{name}" was not found in the Hell Let Loose records.'
ALREADY_LINKED_TO_ANOTHER = '❌ The account "{name}" is already linked to another Discord user.'
SERVER_UNAVAILABLE = "❌ Failed to reach the Hell Let Loose server. It might be temporarily unavailable, please try again later."
ADMIN_REQUIRED = "❌ You need Administrator or Manage Server permission to use this command."
RATE_LIMITED = "❌ You're doing that too fast! Please wait {seconds} second(s) and try again."
HOW_TO_FIND_USERNAME = (
    "**How to find your in-game name:**\n"
    "• In-game: check your profile or the scoreboard\n"
    "• Console: it is your cross-platform T17 name\n"
    "• PC: usually your Steam name or custom T17 name"
)


def rate_limited_message(retry_after: float) -> str:
    return RATE_LIMITED.format(seconds=max(1, math.ceil(retry_after)))


def _stamp(embed: discord.Embed) -> discord.Embed:
    embed.timestamp = datetime.now(timezone.utc)
    return embed


def link_success_embed(name: str, player_id: str, platform: str, status: VipStatus) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Account Linked",
        description=f"Your Discord account is now linked to **{name}**.",
        color=SUCCESS_COLOR,
    )
    embed.add_field(name="🎮 Player", value=name, inline=True)
    embed.add_field(name="🖥️ Platform", value=platform_label(platform), inline=True)
    embed.add_field(name="🆔 Player ID", value=f"`{player_id}`", inline=False)
    embed.add_field(name="🎖️ VIP", value=vip_summary(status), inline=False)
    return _stamp(embed)


def vip_summary(status: VipStatus) -> str:
    if status.is_permanent:
        return "✅ Permanent VIP"
    if status.is_vip:
        return f"✅ Active, {status.days_remaining} day(s) remaining"
    if status.expires_at is not None:
        return f"❌ Expired {status.expiration_label}"
    return "❌ No VIP"


def vip_status_embed(link: Any, status: VipStatus) -> discord.Embed:
    name = link.display_name or link.player_name
    if status.is_vip:
        embed = discord.Embed(
            title="🎖️ VIP Status",
            description=f"**{name}** has VIP.",
            color=VIP_ACTIVE_COLOR,
        )
        embed.add_field(name="⏰ Expires", value=status.expiration_label, inline=True)
        if status.days_remaining is not None:
            embed.add_field(
                name="📅 Days Remaining", value=str(status.days_remaining), inline=True
            )
            if status.days_remaining <= 7:
                embed.add_field(
                    name="⚠️ Renewal",
                    value="VIP expiring soon! Contact an admin to renew.",
                    inline=False,
                )
        embed.add_field(name="📝 Description", value=status.description or "VIP Player", inline=False)
    else:
        embed = discord.Embed(
            title="🎖️ VIP Status",
            description=f"**{name}** does not currently have VIP.",
            color=VIP_EXPIRED_COLOR,
        )
        if status.expires_at is not None:
            embed.add_field(name="⏰ Expired", value=status.expiration_label, inline=True)
    embed.set_footer(text=f"Player ID: {link.player_id}")
    return _stamp(embed)


def profile_embed(link: Any, status: VipStatus, member_name: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"👤 {member_name}",
        color=INFO_COLOR,
    )
    embed.add_field(name="🎮 Player", value=link.player_name, inline=True)
    embed.add_field(name="🖥️ Platform", value=platform_label(link.platform), inline=True)
    embed.add_field(name="🎖️ VIP", value=vip_summary(status), inline=False)
    linked = link.linked_at.strftime("%Y-%m-%d %H:%M UTC") if link.linked_at else "unknown"
    embed.add_field(name="🔗 Linked", value=linked, inline=True)
    if link.admin_linked:
        embed.add_field(name="🛡️ Linked By", value=f"<@{link.linked_by}>", inline=True)
    embed.set_footer(text=f"Player ID: {link.player_id}")
    return _stamp(embed)


def urgency(days_remaining: int) -> tuple[int, str, str]:
    if days_remaining <= 1:
        return ERROR_COLOR, "🚨", "very soon"
    if days_remaining <= 3:
        return WARNING_COLOR, "⚠️", "soon"
    return VIP_ACTIVE_COLOR, "🔔", "in a few days"


def expiry_notice_embed(player_name: str, expires_at: datetime, days_remaining: int) -> discord.Embed:
    color, emoji, text = urgency(days_remaining)
    embed = discord.Embed(
        title=f"{emoji} VIP Expiration Notice",
        description=f"Your VIP status is expiring {text}!",
        color=color,
    )
    embed.add_field(name="🎮 Player", value=player_name, inline=True)
    embed.add_field(name="⏰ Expires", value=expires_at.strftime("%Y-%m-%d"), inline=True)
    embed.add_field(name="📅 Days Remaining", value=str(days_remaining), inline=True)
    if days_remaining <= 3:
        embed.add_field(
            name="🔄 Renewal Required",
            value="Contact a server administrator immediately to renew your VIP status.",
            inline=False,
        )
    else:
        embed.add_field(
            name="💡 Renewal Information",
            value="Contact a server administrator to renew your VIP status before it expires.",
            inline=False,
        )
    embed.set_footer(text="This is an automated reminder from the VIP system")
    return _stamp(embed)


def sample_notice_embed(player_name: str) -> discord.Embed:
    embed = discord.Embed(
        title="🧪 Test VIP Notification",
        description="This is a test of the VIP expiration reminder system.",
        color=WARNING_COLOR,
    )
    embed.add_field(name="🎮 Player", value=player_name, inline=True)
    embed.set_footer(text="Test notification from the VIP system")
    return _stamp(embed)


def contest_embed(contest: Any, hours_left: int) -> discord.Embed:
    embed = discord.Embed(
        title=f"🏆 {contest.title}",
        description=contest.description,
        color=SUCCESS_COLOR if contest.active else VIP_EXPIRED_COLOR,
    )
    embed.add_field(name="🎁 Prize", value=contest.prize, inline=True)
    embed.add_field(
        name="📊 Status", value="🟢 Active" if contest.active else "🔴 Ended", inline=True
    )
    embed.add_field(name="👑 Max Winners", value=str(contest.max_winners), inline=True)
    if contest.active and hours_left > 0:
        embed.add_field(name="⏰ Time Left", value=f"{hours_left} hour(s)", inline=True)
    ends = contest.ends_at.strftime("%Y-%m-%d %H:%M UTC")
    embed.add_field(name="📅 Ends", value=ends, inline=True)
    winners = contest.winner_list()
    if winners:
        lines = "\n".join(f"• {w.get('tag') or w.get('id')}" for w in winners)
        embed.add_field(name="🎉 Winners", value=lines, inline=False)
    return _stamp(embed)


def error_embed(title: str, description: str) -> discord.Embed:
    return _stamp(discord.Embed(title=f"❌ {title}", description=description, color=ERROR_COLOR))


def leaderboard_embed(
    title: str,
    lines: List[str],
    footer: Optional[str] = None,
) -> discord.Embed:
    embed = discord.Embed(title=title, color=VIP_ACTIVE_COLOR)
    if not lines:
        embed.description = "No linked players are online right now."
    else:
        tiers = (
            (0, 3, "🏆 Top 3 Champions"),
            (3, 10, "🎯 Elite Players (4-10)"),
            (10, 20, "⚔️ Skilled Players (11-20)"),
        )
        for start, end, label in tiers:
            chunk = lines[start:end]
            if chunk:
                embed.add_field(name=label, value="\n".join(chunk), inline=False)
    if footer:
        embed.set_footer(text=footer)
    return _stamp(embed)


def server_status_embed(status: Any, health: Any) -> discord.Embed:
    if status.connected:
        embed = discord.Embed(title="🟢 Server Online", color=SUCCESS_COLOR)
        embed.add_field(name="🏷️ Name", value=status.server_name or "Unknown", inline=False)
        count = "?" if status.player_count is None else status.player_count
        limit = "?" if status.max_players is None else status.max_players
        embed.add_field(name="👥 Players", value=f"{count}/{limit}", inline=True)
    else:
        embed = discord.Embed(
            title="🔴 Server Unreachable",
            description=status.error or "Unknown error",
            color=ERROR_COLOR,
        )
    last = (
        health.last_success_at.strftime("%Y-%m-%d %H:%M:%S UTC")
        if health.last_success_at
        else "never"
    )
    embed.add_field(
        name="🩺 Connection",
        value=f"{'Healthy' if health.is_healthy else 'Degraded'} "
        f"({health.consecutive_failures} consecutive failure(s), last success {last})",
        inline=False,
    )
    return _stamp(embed)
