import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .crcon import ConsoleError, CRCONClient, utcnow
from .players import ID_FIELDS, ids_match

LOGGER = logging.getLogger(__name__)

EXPIRATION_FIELDS = ("expiration", "expires_at", "expire_date", "expiry")
PERMANENT_MARKERS = ("", "none", "null", "never")
DEFAULT_DESCRIPTION = "VIP Player"
PERMANENT_DESCRIPTION = "Permanent VIP"


@dataclass(frozen=True)
class VipStatus:
    is_vip: bool
    expires_at: datetime | None = None
    days_remaining: int | None = None
    description: str | None = None

    @property
    def is_permanent(self) -> bool:
        return self.is_vip and self.expires_at is None

    @property
    def expiration_label(self) -> str:
        if self.expires_at is None:
            return "Never"
        return self.expires_at.strftime("%Y-%m-%d %H:%M UTC")


NOT_VIP = VipStatus(is_vip=False)


def parse_expiration(value: Any) -> Optional[datetime]:
    """Return an aware UTC datetime, or None for a permanent entitlement.

    Raises ValueError for values that are neither permanent markers nor
    recognisable timestamps.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        if seconds > 1e11:
            seconds = seconds / 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.lower() in PERMANENT_MARKERS:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def raw_expiration(entry: Dict[str, Any]) -> Any:
    for key in EXPIRATION_FIELDS:
        if entry.get(key) is not None:
            return entry[key]
    return None


def days_remaining(expires_at: datetime, now: datetime) -> int:
    return math.ceil((expires_at - now) / timedelta(days=1))


def vip_entries(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("vips") or payload.get("players") or []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def entry_player_id(entry: Dict[str, Any]) -> Optional[str]:
    for key in ID_FIELDS:
        value = entry.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def find_entitlement(
    entries: Iterable[Dict[str, Any]], player_id: str
) -> Optional[Dict[str, Any]]:
    entries = list(entries)
    # exact matches win over case-insensitive ones
    for entry in entries:
        if any(entry.get(key) == player_id for key in ID_FIELDS):
            return entry
    for entry in entries:
        if any(ids_match(entry.get(key), player_id) for key in ID_FIELDS):
            return entry
    return None


def evaluate_entitlement(entry: Dict[str, Any], now: datetime) -> VipStatus:
    description = entry.get("description") or entry.get("reason")
    try:
        expires_at = parse_expiration(raw_expiration(entry))
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        LOGGER.warning(
            "Unreadable VIP expiration %r for %s: %s",
            raw_expiration(entry),
            entry_player_id(entry),
            exc,
        )
        return NOT_VIP
    if expires_at is None:
        return VipStatus(
            is_vip=True,
            expires_at=None,
            days_remaining=None,
            description=description or PERMANENT_DESCRIPTION,
        )
    remaining = days_remaining(expires_at, now)
    if remaining <= 0:
        return VipStatus(
            is_vip=False,
            expires_at=expires_at,
            days_remaining=0,
            description=description or DEFAULT_DESCRIPTION,
        )
    return VipStatus(
        is_vip=True,
        expires_at=expires_at,
        days_remaining=remaining,
        description=description or DEFAULT_DESCRIPTION,
    )


async def fetch_vip_entries(client: CRCONClient) -> List[Dict[str, Any]]:
    return vip_entries(await client.execute("/api/get_vip_ids"))


async def get_vip_status(
    client: CRCONClient, player_id: str, now: datetime | None = None
) -> VipStatus:
    """Evaluate a player's VIP entitlement; reports not-VIP on any console failure."""
    try:
        entries = await fetch_vip_entries(client)
    except ConsoleError as exc:
        LOGGER.warning("VIP status check failed for %s: %s", player_id, exc)
        return NOT_VIP
    entry = find_entitlement(entries, player_id)
    if entry is None:
        return NOT_VIP
    return evaluate_entitlement(entry, now or utcnow())
