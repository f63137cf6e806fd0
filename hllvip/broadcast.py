import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Set

from .crcon import ConsoleError, CRCONClient, DeliveryError
from .players import pick_name, pick_player_id

LOGGER = logging.getLogger(__name__)

BROADCAST_CLEAR_DELAY = 30.0
PER_PLAYER_DELAY = 0.1


def _online_players(payload: Any) -> List[tuple[str, str | None]]:
    if isinstance(payload, dict):
        payload = payload.get("players") or []
    players: List[tuple[str, str | None]] = []
    for item in payload if isinstance(payload, list) else []:
        if isinstance(item, dict):
            name = pick_name(item)
            if name:
                players.append((name, pick_player_id(item)))
        elif isinstance(item, (list, tuple)) and item:
            players.append((str(item[0]), str(item[1]) if len(item) > 1 else None))
    return players


class BroadcastDispatcher:
    """Delivers an in-game message through the first messaging route that works."""

    def __init__(
        self,
        client: CRCONClient,
        author: str = "VIP Bot",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clear_delay: float = BROADCAST_CLEAR_DELAY,
        message_delay: float = PER_PLAYER_DELAY,
    ):
        self.client = client
        self.author = author
        self._sleep = sleep
        self.clear_delay = clear_delay
        self.message_delay = message_delay
        self.pending_clears: Set[asyncio.Task[None]] = set()

    async def broadcast(self, message: str) -> str:
        strategies = (
            ("server broadcast", self._server_broadcast),
            ("per-player messages", self._message_each_player),
            ("legacy message", self._legacy_message),
        )
        attempted: List[str] = []
        last_error: Exception | None = None
        for label, strategy in strategies:
            attempted.append(label)
            try:
                await strategy(message)
            except ConsoleError as exc:
                last_error = exc
                LOGGER.warning("Broadcast via %s failed: %s", label, exc)
                continue
            LOGGER.info("Broadcast delivered via %s", label)
            return label
        raise DeliveryError(attempted, last_error)

    async def _server_broadcast(self, message: str) -> None:
        await self.client.execute(
            "/api/set_broadcast", method="POST", body={"message": message}
        )
        task = asyncio.create_task(self._clear_broadcast())
        self.pending_clears.add(task)
        task.add_done_callback(self.pending_clears.discard)

    async def _clear_broadcast(self) -> None:
        await self._sleep(self.clear_delay)
        try:
            await self.client.execute(
                "/api/set_broadcast", method="POST", body={"message": ""}
            )
        except ConsoleError as exc:
            LOGGER.warning("Failed to clear server broadcast: %s", exc)

    async def _message_each_player(self, message: str) -> None:
        players = _online_players(await self.client.execute("/api/get_players"))
        if not players:
            LOGGER.info("No players online; nothing to message")
            return
        delivered = 0
        last_error: ConsoleError | None = None
        for index, (name, player_id) in enumerate(players):
            if index:
                await self._sleep(self.message_delay)
            body = {"player_name": name, "message": message, "by": self.author}
            if player_id:
                body["player_id"] = player_id
            try:
                await self.client.execute(
                    "/api/message_player", method="POST", body=body
                )
            except ConsoleError as exc:
                last_error = exc
                LOGGER.warning("Failed to message %s: %s", name, exc)
                continue
            delivered += 1
        if not delivered and last_error:
            raise last_error
        LOGGER.info("Messaged %s/%s online players", delivered, len(players))

    async def _legacy_message(self, message: str) -> None:
        await self.client.execute(
            "/api/message_player",
            method="POST",
            body={"message": message, "by": self.author},
        )

    async def close(self) -> None:
        for task in list(self.pending_clears):
            task.cancel()
        for task in list(self.pending_clears):
            try:
                await task
            except asyncio.CancelledError:
                pass
