from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional

from peewee import (
    AutoField,
    BooleanField,
    CharField,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)

DEFAULT_WARNING_DAYS = (7, 3, 1)


def utcnow_naive() -> datetime:
    """Return current UTC time without tzinfo for SQLite storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class BotModels:
    db: SqliteDatabase
    PlayerLink: type
    Contest: type
    LeaderboardChannel: type
    NotificationSettings: type
    NotificationLog: type


def _create_models(db: SqliteDatabase) -> BotModels:
    class BaseModel(Model):
        created_at = DateTimeField(default=utcnow_naive)
        updated_at = DateTimeField(default=utcnow_naive)

        def save(self, *args, **kwargs):  # type: ignore[override]
            self.updated_at = utcnow_naive()
            return super().save(*args, **kwargs)

        class Meta:
            database = db

    class PlayerLink(BaseModel):
        discord_user_id = IntegerField(primary_key=True)
        player_id = CharField(unique=True)
        player_name = CharField()
        display_name = CharField(null=True)
        platform = CharField(null=True)
        linked_at = DateTimeField(default=utcnow_naive)
        linked_by = IntegerField(null=True)
        admin_linked = BooleanField(default=False)

    class Contest(BaseModel):
        id = AutoField()
        title = CharField()
        description = TextField()
        prize = CharField()
        max_winners = IntegerField(default=1)
        starts_at = DateTimeField()
        ends_at = DateTimeField()
        created_by = IntegerField()
        active = BooleanField(default=True)
        ended_at = DateTimeField(null=True)
        ended_by = IntegerField(null=True)
        winners = TextField(null=True)
        winners_selected_at = DateTimeField(null=True)
        winners_selected_by = IntegerField(null=True)

        def winner_list(self) -> List[dict]:
            if not self.winners:
                return []
            try:
                return list(json.loads(self.winners))
            except (TypeError, ValueError):
                return []

    class LeaderboardChannel(BaseModel):
        channel_id = IntegerField(primary_key=True)
        message_id = IntegerField()
        stat_type = CharField()
        last_update = DateTimeField(null=True)

    class NotificationSettings(BaseModel):
        id = IntegerField(primary_key=True)
        enabled = BooleanField(default=True)
        warning_days = CharField(default=",".join(str(d) for d in DEFAULT_WARNING_DAYS))
        last_check_at = DateTimeField(null=True)

        def warning_day_list(self) -> List[int]:
            days = []
            for part in str(self.warning_days or "").split(","):
                part = part.strip()
                if part.isdigit():
                    days.append(int(part))
            return days

    class NotificationLog(BaseModel):
        key = CharField(primary_key=True)
        player_id = CharField()
        discord_user_id = IntegerField()
        days_remaining = IntegerField()

    return BotModels(
        db=db,
        PlayerLink=PlayerLink,
        Contest=Contest,
        LeaderboardChannel=LeaderboardChannel,
        NotificationSettings=NotificationSettings,
        NotificationLog=NotificationLog,
    )


def init_db(path: str, warning_days: Iterable[int] = DEFAULT_WARNING_DAYS) -> BotModels:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    db = SqliteDatabase(path)
    models = _create_models(db)
    db.connect(reuse_if_open=True)
    db.create_tables(
        [
            models.PlayerLink,
            models.Contest,
            models.LeaderboardChannel,
            models.NotificationSettings,
            models.NotificationLog,
        ]
    )
    if models.NotificationSettings.get_or_none(models.NotificationSettings.id == 1) is None:
        models.NotificationSettings.create(
            id=1,
            enabled=True,
            warning_days=",".join(str(d) for d in warning_days),
        )
    return models


def get_link(models: BotModels, discord_user_id: int) -> Optional[Any]:
    return models.PlayerLink.get_or_none(
        models.PlayerLink.discord_user_id == discord_user_id
    )


def get_link_by_player_id(models: BotModels, player_id: str) -> Optional[Any]:
    return models.PlayerLink.get_or_none(models.PlayerLink.player_id == str(player_id))


def save_link(
    models: BotModels,
    discord_user_id: int,
    player_id: str,
    player_name: str,
    display_name: str | None = None,
    platform: str | None = None,
    linked_by: int | None = None,
) -> Any:
    now = utcnow_naive()
    models.PlayerLink.insert(
        discord_user_id=discord_user_id,
        player_id=str(player_id),
        player_name=player_name,
        display_name=display_name or player_name,
        platform=platform,
        linked_at=now,
        linked_by=linked_by,
        admin_linked=linked_by is not None,
        created_at=now,
        updated_at=now,
    ).on_conflict_replace().execute()
    return models.PlayerLink.get_by_id(discord_user_id)


def delete_link(models: BotModels, discord_user_id: int) -> bool:
    deleted = (
        models.PlayerLink.delete()
        .where(models.PlayerLink.discord_user_id == discord_user_id)
        .execute()
    )
    return bool(deleted)


def list_links(models: BotModels) -> List[Any]:
    return list(models.PlayerLink.select())


def count_links(models: BotModels) -> int:
    return models.PlayerLink.select().count()


def notification_settings(models: BotModels) -> Any:
    return models.NotificationSettings.get_by_id(1)


def list_leaderboards(models: BotModels) -> List[Any]:
    return list(models.LeaderboardChannel.select())


def register_leaderboard(
    models: BotModels, channel_id: int, message_id: int, stat_type: str
) -> Any:
    now = utcnow_naive()
    models.LeaderboardChannel.insert(
        channel_id=channel_id,
        message_id=message_id,
        stat_type=stat_type,
        last_update=now,
        created_at=now,
        updated_at=now,
    ).on_conflict_replace().execute()
    return models.LeaderboardChannel.get_by_id(channel_id)


def remove_leaderboard(models: BotModels, channel_id: int) -> bool:
    deleted = (
        models.LeaderboardChannel.delete()
        .where(models.LeaderboardChannel.channel_id == channel_id)
        .execute()
    )
    return bool(deleted)
