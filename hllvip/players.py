import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from .crcon import ConsoleError, CRCONClient, RemoteError
from .platforms import detect_platform

LOGGER = logging.getLogger(__name__)

ID_FIELDS = ("player_id", "steam_id_64", "steamId", "steam_id", "id")
NAME_FIELDS = ("name", "player_name", "display_name")
STEAM_ID = re.compile(r"^\d{17}$")
HEX_ID = re.compile(r"^[0-9a-fA-F]{32}$")


@dataclass(frozen=True)
class PlayerRecord:
    name: str
    player_id: str
    display_name: str

    @property
    def platform(self) -> str:
        return detect_platform(self.player_id, self.name)


def pick_player_id(record: Dict[str, Any]) -> Optional[str]:
    for key in ID_FIELDS:
        value = record.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def pick_name(record: Dict[str, Any]) -> Optional[str]:
    for key in NAME_FIELDS:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def names_match(candidate: Optional[str], query: str) -> bool:
    if not candidate:
        return False
    return candidate.casefold() == query.strip().casefold()


def ids_match(candidate: Any, player_id: str) -> bool:
    if candidate in (None, ""):
        return False
    if candidate == player_id:
        return True
    return str(candidate).casefold() == str(player_id).casefold()


def is_unreachable(exc: ConsoleError) -> bool:
    """True when the error means the endpoint never answered usefully.

    A 4xx reply or a ``failed`` body still proves the console is reachable.
    """
    status = getattr(exc, "status", None)
    return status is None or status == 429 or status >= 500


def _record(name: str, player_id: str, source: Dict[str, Any] | None = None) -> PlayerRecord:
    display = name
    if source and isinstance(source.get("display_name"), str) and source["display_name"]:
        display = source["display_name"]
    return PlayerRecord(name=name, player_id=player_id, display_name=display)


def _object_list(payload: Any, keys: Iterable[str] = ("players", "vips", "admins")) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def parse_player_objects(payload: Any, name: str) -> Optional[PlayerRecord]:
    for item in _object_list(payload):
        candidate = pick_name(item)
        player_id = pick_player_id(item)
        if player_id and names_match(candidate, name):
            return _record(str(candidate), player_id, item)
    return None


def parse_name_id_pairs(payload: Any, name: str) -> Optional[PlayerRecord]:
    if isinstance(payload, dict):
        for candidate, player_id in payload.items():
            if player_id and names_match(str(candidate), name):
                return _record(str(candidate), str(player_id))
        return None
    if not isinstance(payload, list):
        return None
    for item in payload:
        if isinstance(item, (list, tuple)) and len(item) >= 2:
            candidate, player_id = item[0], item[1]
            if player_id and names_match(str(candidate), name):
                return _record(str(candidate), str(player_id))
        elif isinstance(item, dict):
            found = parse_player_objects([item], name)
            if found:
                return found
    return None


def parse_single_player(payload: Any, name: str) -> Optional[PlayerRecord]:
    if isinstance(payload, list):
        return parse_player_objects(payload, name)
    if not isinstance(payload, dict):
        return None
    player_id = pick_player_id(payload)
    if not player_id:
        return None
    candidate = pick_name(payload)
    if candidate is None:
        return _record(name, player_id, payload)
    if names_match(candidate, name):
        return _record(candidate, player_id, payload)
    return None


def _history_names(item: Dict[str, Any]) -> List[str]:
    names: List[str] = []
    for entry in item.get("names") or []:
        if isinstance(entry, str):
            names.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            names.append(entry["name"])
    current = pick_name(item)
    if current:
        names.insert(0, current)
    return names


def parse_history(payload: Any, name: str) -> Optional[PlayerRecord]:
    for item in _object_list(payload):
        player_id = pick_player_id(item)
        if not player_id:
            continue
        for candidate in _history_names(item):
            if names_match(candidate, name):
                return _record(candidate, player_id, item)
    return None


@dataclass(frozen=True)
class ResolutionStrategy:
    label: str
    endpoint: str
    parser: Callable[[Any, str], Optional[PlayerRecord]]
    method: str = "GET"
    params: Callable[[str], Dict[str, Any]] | None = None
    body: Callable[[str], Dict[str, Any]] | None = None


DEFAULT_STRATEGIES = (
    ResolutionStrategy("online players", "/api/get_players", parse_player_objects),
    ResolutionStrategy(
        "detailed online players", "/api/get_detailed_players", parse_player_objects
    ),
    ResolutionStrategy("player ids", "/api/get_playerids", parse_name_id_pairs),
    ResolutionStrategy("vip list", "/api/get_vip_ids", parse_player_objects),
    ResolutionStrategy("admin list", "/api/get_admin_ids", parse_player_objects),
    ResolutionStrategy(
        "name lookup",
        "/api/get_player_info",
        parse_single_player,
        params=lambda name: {"player_name": name},
    ),
    ResolutionStrategy(
        "detailed name lookup",
        "/api/get_detailed_player_info",
        parse_single_player,
        params=lambda name: {"player_name": name},
    ),
    ResolutionStrategy(
        "name history",
        "/api/get_players_history",
        parse_history,
        method="POST",
        body=lambda name: {
            "player_name": name,
            "exact_name_match": True,
            "page_size": 10,
            "page": 1,
        },
    ),
)


class PlayerResolver:
    """Finds a player's stable identifier by walking the lookup strategies in order."""

    def __init__(
        self,
        client: CRCONClient,
        strategies: Iterable[ResolutionStrategy] = DEFAULT_STRATEGIES,
    ):
        self.client = client
        self.strategies = list(strategies)

    async def resolve(self, name: str) -> Optional[PlayerRecord]:
        query = (name or "").strip()
        if not query:
            return None
        failures = 0
        last_error: ConsoleError | None = None
        for strategy in self.strategies:
            try:
                payload = await self.client.execute(
                    strategy.endpoint,
                    method=strategy.method,
                    body=strategy.body(query) if strategy.body else None,
                    params=strategy.params(query) if strategy.params else None,
                )
            except ConsoleError as exc:
                if is_unreachable(exc):
                    failures += 1
                    last_error = exc
                LOGGER.warning(
                    "Player lookup via %s failed for %s: %s", strategy.label, query, exc
                )
                continue
            record = strategy.parser(payload, query)
            if record:
                LOGGER.info(
                    "Resolved player %s to %s via %s",
                    query,
                    record.player_id,
                    strategy.label,
                )
                return record
        if self.strategies and failures == len(self.strategies):
            raise RemoteError(
                f"Every player lookup failed for {query}: {last_error}",
                getattr(last_error, "status", None),
            )
        LOGGER.info("No player named %s found", query)
        return None


async def find_player_by_id(client: CRCONClient, player_id: str) -> Optional[str]:
    """Return a player name for an identifier from the VIP list or online roster."""
    for endpoint in ("/api/get_vip_ids", "/api/get_players"):
        try:
            payload = await client.execute(endpoint)
        except ConsoleError as exc:
            LOGGER.warning("Reverse lookup via %s failed: %s", endpoint, exc)
            continue
        for item in _object_list(payload):
            if ids_match(pick_player_id(item), player_id):
                name = pick_name(item)
                if name:
                    return name
    return None


def is_valid_player_id(value: str) -> bool:
    value = (value or "").strip()
    return bool(STEAM_ID.match(value) or HEX_ID.match(value))
