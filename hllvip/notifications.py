import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import discord

from .crcon import ConsoleError, CRCONClient, utcnow
from .embeds import expiry_notice_embed, sample_notice_embed
from .models import BotModels, get_link, get_link_by_player_id, notification_settings, utcnow_naive
from .vip import (
    days_remaining,
    entry_player_id,
    fetch_vip_entries,
    parse_expiration,
    raw_expiration,
)

LOGGER = logging.getLogger(__name__)

DirectMessenger = Callable[[int, discord.Embed], Awaitable[bool]]


@dataclass
class NotificationStats:
    total_vips: int = 0
    linked_vips: int = 0
    expiring_today: int = 0
    expiring_soon: int = 0
    expired: int = 0
    enabled: bool = True
    warning_days: List[int] = field(default_factory=list)
    last_check_at: datetime | None = None


def warning_days_for(days: int) -> List[int]:
    """Reminder schedule for a first warning ``days`` before expiry."""
    return sorted({d for d in (days, max(1, days - 3), 1) if d > 0}, reverse=True)


def notification_key(player_id: str, days: int, today: str) -> str:
    return f"{player_id}:{days}:{today}"


class VipExpiryNotifier:
    def __init__(self, client: CRCONClient, models: BotModels, send_dm: DirectMessenger):
        self.client = client
        self.models = models
        self.send_dm = send_dm

    def settings(self) -> Any:
        return notification_settings(self.models)

    def update_settings(
        self, warning_days: int | None = None, enabled: bool | None = None
    ) -> Any:
        settings = self.settings()
        if warning_days is not None:
            if warning_days < 1 or warning_days > 30:
                raise ValueError("Warning days must be between 1 and 30.")
            settings.warning_days = ",".join(str(d) for d in warning_days_for(warning_days))
        if enabled is not None:
            settings.enabled = enabled
        settings.save()
        LOGGER.info(
            "VIP notification settings updated: enabled=%s warning_days=%s",
            settings.enabled,
            settings.warning_days,
        )
        return settings

    async def check_expirations(self, now: datetime | None = None) -> int:
        settings = self.settings()
        if not settings.enabled:
            LOGGER.debug("VIP notifications disabled; skipping check")
            return 0
        now = now or utcnow()
        try:
            entries = await fetch_vip_entries(self.client)
        except ConsoleError as exc:
            LOGGER.warning("VIP expiry check could not load the VIP list: %s", exc)
            return 0

        warning_days = set(settings.warning_day_list())
        today = now.strftime("%Y-%m-%d")
        self.prune_log([today])
        sent = 0
        for entry in entries:
            player_id = entry_player_id(entry)
            if not player_id:
                continue
            try:
                expires_at = parse_expiration(raw_expiration(entry))
            except (TypeError, ValueError, OverflowError, OSError):
                continue
            if expires_at is None:
                continue
            remaining = days_remaining(expires_at, now)
            if remaining not in warning_days:
                continue
            key = notification_key(player_id, remaining, today)
            if self.models.NotificationLog.get_or_none(
                self.models.NotificationLog.key == key
            ):
                continue
            link = get_link_by_player_id(self.models, player_id)
            if not link:
                continue
            embed = expiry_notice_embed(link.player_name, expires_at, remaining)
            if not await self.send_dm(link.discord_user_id, embed):
                continue
            self.models.NotificationLog.create(
                key=key,
                player_id=player_id,
                discord_user_id=link.discord_user_id,
                days_remaining=remaining,
            )
            sent += 1
            LOGGER.info(
                "VIP expiry reminder sent to %s (%s), %s day(s) remaining",
                link.discord_user_id,
                link.player_name,
                remaining,
            )

        settings.last_check_at = utcnow_naive()
        settings.save()
        if sent:
            LOGGER.info("Sent %s VIP expiry reminder(s)", sent)
        return sent

    async def notification_stats(self, now: datetime | None = None) -> Optional[NotificationStats]:
        settings = self.settings()
        try:
            entries = await fetch_vip_entries(self.client)
        except ConsoleError as exc:
            LOGGER.warning("Could not load VIP list for stats: %s", exc)
            return None
        now = now or utcnow()
        stats = NotificationStats(
            total_vips=len(entries),
            enabled=bool(settings.enabled),
            warning_days=settings.warning_day_list(),
            last_check_at=settings.last_check_at,
        )
        for entry in entries:
            player_id = entry_player_id(entry)
            if player_id and get_link_by_player_id(self.models, player_id):
                stats.linked_vips += 1
            try:
                expires_at = parse_expiration(raw_expiration(entry))
            except (TypeError, ValueError, OverflowError, OSError):
                continue
            if expires_at is None:
                continue
            remaining = days_remaining(expires_at, now)
            if remaining <= 0:
                stats.expired += 1
            elif remaining == 1:
                stats.expiring_today += 1
            elif remaining <= 7:
                stats.expiring_soon += 1
        return stats

    async def send_test(self, discord_user_id: int) -> bool:
        link = get_link(self.models, discord_user_id)
        if not link:
            return False
        return await self.send_dm(discord_user_id, sample_notice_embed(link.player_name))

    def prune_log(self, keep_days: Iterable[str]) -> int:
        keep = set(keep_days)
        removed = 0
        for row in self.models.NotificationLog.select():
            if row.key.rsplit(":", 1)[-1] not in keep:
                row.delete_instance()
                removed += 1
        return removed
