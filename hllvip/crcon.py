import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .config import ConsoleConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "Hell Let Loose Server"
SESSION_TTL = timedelta(minutes=25)
SESSION_COOKIE_NAME = "sessionid"
TOKEN_FIELDS = ("token", "jwt", "access_token", "accessToken")
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)
UNHEALTHY_AFTER = 3


class ConsoleError(Exception):
    """Base class for failures talking to the console API."""


class AuthError(ConsoleError):
    pass


class RemoteError(ConsoleError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class DeliveryError(ConsoleError):
    def __init__(self, attempts: List[str], last_error: Exception | None = None):
        tried = ", ".join(attempts) or "none"
        super().__init__(f"All broadcast strategies failed (tried: {tried}): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialMode(Enum):
    TOKEN = "token"
    SESSION_COOKIE = "session_cookie"


@dataclass(frozen=True)
class Credential:
    mode: CredentialMode
    value: str
    expires_at: datetime | None = None

    def is_live(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return (now or utcnow()) < self.expires_at

    def headers(self) -> Dict[str, str]:
        if self.mode is CredentialMode.TOKEN:
            return {"Authorization": f"Bearer {self.value}"}
        return {"Cookie": self.value}


@dataclass
class HttpResult:
    status: int
    body: Any = None
    cookies: List[str] = field(default_factory=list)


@dataclass
class ConnectionHealth:
    consecutive_failures: int = 0
    last_success_at: datetime | None = None

    @property
    def is_healthy(self) -> bool:
        return self.consecutive_failures < UNHEALTHY_AFTER

    def record_success(self, now: datetime | None = None) -> None:
        self.consecutive_failures = 0
        self.last_success_at = now or utcnow()

    def record_failure(self) -> None:
        self.consecutive_failures += 1


@dataclass
class ConnectionStatus:
    connected: bool
    server_name: str | None = None
    player_count: int | None = None
    max_players: int | None = None
    error: str | None = None


Sender = Callable[..., Awaitable[HttpResult]]


def _extract_token(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    for key in TOKEN_FIELDS:
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    for nested_key in ("result", "data"):
        nested = body.get(nested_key)
        if isinstance(nested, dict):
            token = _extract_token(nested)
            if token:
                return token
    return None


def _extract_session_cookie(cookies: List[str]) -> Optional[str]:
    pairs = [c.split(";", 1)[0].strip() for c in cookies if c and "=" in c]
    for pair in pairs:
        if pair.split("=", 1)[0].strip().lower() == SESSION_COOKIE_NAME:
            return pair
    return pairs[0] if pairs else None


class SessionAuthenticator:
    """Owns the single credential used for console API calls.

    Token mode hands out the configured static token. Login mode exchanges
    username/password at /api/login for a session cookie (or a token in the
    response body) that is treated as expired after SESSION_TTL.
    """

    def __init__(
        self,
        config: ConsoleConfig,
        send: Sender,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._config = config
        self._send = send
        self._clock = clock
        self._credential: Credential | None = None

    @property
    def login_mode(self) -> bool:
        return not self._config.uses_token

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def current(self) -> Credential | None:
        credential = self._credential
        if credential and credential.is_live(self._clock()):
            return credential
        return None

    def invalidate(self) -> None:
        if self.login_mode:
            self._credential = None

    async def ensure(self) -> Credential:
        return self.current() or await self.authenticate()

    async def authenticate(self) -> Credential:
        if not self.login_mode:
            if self._credential is None:
                self._credential = Credential(
                    CredentialMode.TOKEN, str(self._config.api_token)
                )
            return self._credential

        if not (self._config.username and self._config.password):
            self._credential = None
            raise AuthError("No console credentials configured")

        url = f"{self._config.base_url}/api/login"
        payload = {
            "username": self._config.username,
            "password": self._config.password,
        }
        try:
            result = await self._send("POST", url, headers={}, json=payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._credential = None
            raise AuthError(f"Login request failed: {exc}") from exc

        if result.status >= 400:
            self._credential = None
            raise AuthError(f"Login rejected with status {result.status}")
        body = result.body
        if isinstance(body, dict) and body.get("failed"):
            self._credential = None
            raise AuthError(f"Login failed: {body.get('error') or 'unknown error'}")

        issued_at = self._clock()
        expires_at = issued_at + SESSION_TTL
        cookie = _extract_session_cookie(result.cookies)
        token = _extract_token(body)
        if cookie:
            credential = Credential(CredentialMode.SESSION_COOKIE, cookie, expires_at)
        elif token:
            credential = Credential(CredentialMode.TOKEN, token, expires_at)
        else:
            self._credential = None
            raise AuthError("Login response carried neither a session cookie nor a token")
        self._credential = credential
        LOGGER.info(
            "Authenticated with console API as %s (%s)",
            self._config.username,
            credential.mode.value,
        )
        return credential


def unwrap_result(body: Any) -> Any:
    if isinstance(body, dict) and "result" in body:
        return body["result"]
    return body


class CRCONClient:
    MAX_RETRIES = 3
    BACKOFF_BASE = 1.0

    def __init__(
        self,
        config: ConsoleConfig,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self.health = ConnectionHealth()
        self.authenticator = SessionAuthenticator(config, self._send)

    async def close(self):
        if self._owns_session and self._session:
            await self._session.close()

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.config.base_url}{endpoint}"

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        json: Any = None,
        params: Dict[str, Any] | None = None,
    ) -> HttpResult:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        async with self._session.request(
            method, url, headers=headers, json=json, params=params
        ) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError:
                body = None
            cookies = list(resp.headers.getall("Set-Cookie", []))
            return HttpResult(status=resp.status, body=body, cookies=cookies)

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        params: Dict[str, Any] | None = None,
    ) -> Any:
        try:
            result = await self._execute(endpoint, method, body, params)
        except ConsoleError:
            self.health.record_failure()
            raise
        self.health.record_success()
        return result

    async def _execute(
        self,
        endpoint: str,
        method: str,
        body: Any,
        params: Dict[str, Any] | None,
    ) -> Any:
        url = self._url(endpoint)
        backoff = self.BACKOFF_BASE
        retries = 0
        reauthenticated = False
        while True:
            credential = await self.authenticator.ensure()
            try:
                result = await self._send(
                    method, url, headers=credential.headers(), json=body, params=params
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if retries >= self.MAX_RETRIES:
                    raise RemoteError(
                        f"Request to {endpoint} failed: {exc or type(exc).__name__}"
                    ) from exc
                LOGGER.warning(
                    "Transport error on %s (retry %s/%s): %s",
                    endpoint,
                    retries + 1,
                    self.MAX_RETRIES,
                    exc,
                )
            else:
                status = result.status
                if status == 401 and self.authenticator.login_mode:
                    if reauthenticated:
                        raise RemoteError(
                            f"Request to {endpoint} unauthorized after re-login", 401
                        )
                    LOGGER.info("Session rejected on %s; logging in again", endpoint)
                    self.authenticator.invalidate()
                    reauthenticated = True
                    continue
                if status in RETRYABLE_STATUSES or status >= 500:
                    if retries >= self.MAX_RETRIES:
                        raise RemoteError(
                            f"Request to {endpoint} failed with status {status}", status
                        )
                    LOGGER.warning(
                        "Transient status %s on %s (retry %s/%s)",
                        status,
                        endpoint,
                        retries + 1,
                        self.MAX_RETRIES,
                    )
                elif status >= 400:
                    raise RemoteError(
                        f"Request to {endpoint} failed with status {status}", status
                    )
                else:
                    payload = result.body
                    if isinstance(payload, dict) and payload.get("failed"):
                        raise RemoteError(
                            f"{endpoint} reported failure: "
                            f"{payload.get('error') or 'unknown error'}",
                            status,
                        )
                    return unwrap_result(payload)
            retries += 1
            await self._sleep(backoff + random.uniform(0, 0.25))
            backoff *= 2

    async def test_connection(self) -> ConnectionStatus:
        try:
            status = await self.execute("/api/get_status")
        except ConsoleError as exc:
            LOGGER.warning("Console connection test failed: %s", exc)
            return ConnectionStatus(connected=False, error=str(exc))
        status = status if isinstance(status, dict) else {}
        return ConnectionStatus(
            connected=True,
            server_name=status.get("name") or DEFAULT_SERVER_NAME,
            player_count=status.get("player_count"),
            max_players=status.get("player_count_max"),
        )

    async def get_server_name(self) -> str:
        try:
            status = await self.execute("/api/get_status")
        except ConsoleError as exc:
            LOGGER.warning("Could not fetch server name: %s", exc)
            return DEFAULT_SERVER_NAME
        if isinstance(status, dict) and status.get("name"):
            return str(status["name"])
        return DEFAULT_SERVER_NAME
