import asyncio
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from hllvip.crcon import (
    AuthError,
    CredentialMode,
    HttpResult,
    RemoteError,
    SessionAuthenticator,
    unwrap_result,
)
from tests.fakes import FakeConsole, login_config, ok, status, token_config

LOGIN_OK = HttpResult(
    status=200,
    body={"result": True, "failed": False},
    cookies=["csrftoken=x; Path=/", "sessionid=abc123; HttpOnly; Path=/"],
)


def test_token_mode_sends_bearer_header_only():
    client = FakeConsole(token_config())
    client.route("GET", "/api/get_status", ok({"name": "My Server"}))

    result = asyncio.run(client.execute("/api/get_status"))

    assert result == {"name": "My Server"}
    headers = client.requests[0].headers
    assert headers == {"Authorization": "Bearer secret-token"}
    assert "Cookie" not in headers
    assert client.calls("/api/login") == []


def test_login_mode_uses_session_cookie():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", LOGIN_OK)
    client.route("GET", "/api/get_status", ok({"name": "My Server"}))

    asyncio.run(client.execute("/api/get_status"))

    login = client.calls("/api/login")[0]
    assert login.json == {"username": "admin", "password": "hunter2"}
    request = client.calls("/api/get_status")[0]
    assert request.headers == {"Cookie": "sessionid=abc123"}
    assert client.authenticator.credential.mode is CredentialMode.SESSION_COOKIE


def test_login_mode_accepts_token_in_body():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", ok({"token": "jwt-value"}))
    client.route("GET", "/api/get_status", ok({}))

    asyncio.run(client.execute("/api/get_status"))

    request = client.calls("/api/get_status")[0]
    assert request.headers == {"Authorization": "Bearer jwt-value"}
    credential = client.authenticator.credential
    assert credential.mode is CredentialMode.TOKEN
    assert credential.expires_at is not None


def test_login_without_cookie_or_token_is_auth_error():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", ok(True))

    with pytest.raises(AuthError):
        asyncio.run(client.execute("/api/get_status"))

    assert client.authenticator.credential is None
    assert client.health.consecutive_failures == 1


def test_login_rejected_clears_credential():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", status(403))

    with pytest.raises(AuthError):
        asyncio.run(client.authenticator.authenticate())

    assert client.authenticator.credential is None


def test_login_transport_failure_is_auth_error():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", aiohttp.ClientConnectionError("refused"))

    with pytest.raises(AuthError):
        asyncio.run(client.authenticator.authenticate())


def test_session_expires_after_25_minutes():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", LOGIN_OK)
    now = [datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)]
    auth = SessionAuthenticator(client.config, client._send, clock=lambda: now[0])

    async def scenario():
        first = await auth.ensure()
        now[0] += timedelta(minutes=24, seconds=59)
        still = await auth.ensure()
        now[0] += timedelta(seconds=2)
        renewed = await auth.ensure()
        return first, still, renewed

    first, still, renewed = asyncio.run(scenario())

    assert first.expires_at == datetime(2030, 1, 1, 12, 25, tzinfo=timezone.utc)
    assert still is first
    assert renewed is not first
    assert len(client.calls("/api/login")) == 2


def test_token_mode_authenticate_is_noop_without_expiry():
    client = FakeConsole(token_config())

    credential = asyncio.run(client.authenticator.authenticate())

    assert credential.mode is CredentialMode.TOKEN
    assert credential.expires_at is None
    assert client.requests == []


def test_401_reauthenticates_exactly_once():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", LOGIN_OK)
    client.route(
        "GET", "/api/get_vip_ids", status(401), ok([{"player_id": "1"}])
    )

    result = asyncio.run(client.execute("/api/get_vip_ids"))

    assert result == [{"player_id": "1"}]
    assert len(client.calls("/api/login")) == 2
    assert len(client.calls("/api/get_vip_ids")) == 2
    assert client.recorded_sleep.delays == []


def test_second_consecutive_401_raises():
    client = FakeConsole(login_config())
    client.route("POST", "/api/login", LOGIN_OK)
    client.route("GET", "/api/get_vip_ids", status(401))

    with pytest.raises(RemoteError) as excinfo:
        asyncio.run(client.execute("/api/get_vip_ids"))

    assert excinfo.value.status == 401
    assert len(client.calls("/api/login")) == 2
    assert len(client.calls("/api/get_vip_ids")) == 2


def test_401_in_token_mode_fails_without_retry():
    client = FakeConsole(token_config())
    client.route("GET", "/api/get_vip_ids", status(401))

    with pytest.raises(RemoteError) as excinfo:
        asyncio.run(client.execute("/api/get_vip_ids"))

    assert excinfo.value.status == 401
    assert len(client.requests) == 1


def test_transient_503_retries_with_increasing_backoff():
    client = FakeConsole()
    client.route(
        "GET",
        "/api/get_status",
        status(503),
        status(503),
        status(503),
        ok({"name": "Recovered"}),
    )

    result = asyncio.run(client.execute("/api/get_status"))

    assert result == {"name": "Recovered"}
    assert len(client.requests) == 4
    delays = client.recorded_sleep.delays
    assert len(delays) == 3
    assert delays[0] >= 1.0
    assert delays[0] < delays[1] < delays[2]
    assert client.health.consecutive_failures == 0


def test_retries_exhausted_raises_remote_error():
    client = FakeConsole()
    client.route("GET", "/api/get_status", status(500))

    with pytest.raises(RemoteError) as excinfo:
        asyncio.run(client.execute("/api/get_status"))

    assert excinfo.value.status == 500
    assert len(client.requests) == 1 + client.MAX_RETRIES


def test_transport_errors_are_retried():
    client = FakeConsole()
    client.route(
        "GET",
        "/api/get_status",
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("reset"),
        ok({"name": "Back"}),
    )

    result = asyncio.run(client.execute("/api/get_status"))

    assert result == {"name": "Back"}
    assert len(client.recorded_sleep.delays) == 2


def test_client_errors_fail_immediately():
    client = FakeConsole()
    client.route("GET", "/api/get_player_info", status(404))

    with pytest.raises(RemoteError) as excinfo:
        asyncio.run(client.execute("/api/get_player_info", params={"player_name": "x"}))

    assert excinfo.value.status == 404
    assert len(client.requests) == 1
    assert client.requests[0].params == {"player_name": "x"}
    assert client.recorded_sleep.delays == []


def test_failed_flag_in_body_is_remote_error():
    client = FakeConsole()
    client.route(
        "POST",
        "/api/message_player",
        HttpResult(200, {"result": None, "failed": True, "error": "player not found"}),
    )

    with pytest.raises(RemoteError, match="player not found"):
        asyncio.run(client.execute("/api/message_player", method="POST", body={}))


def test_unwrap_result_leaves_bare_payloads():
    assert unwrap_result({"result": [1, 2]}) == [1, 2]
    assert unwrap_result([1, 2]) == [1, 2]
    assert unwrap_result({"name": "x"}) == {"name": "x"}


def test_health_turns_unhealthy_after_three_failures_and_recovers():
    client = FakeConsole()
    client.route("GET", "/api/get_admin_ids", status(400))
    client.route("GET", "/api/get_status", ok({}))

    async def scenario():
        for _ in range(3):
            with pytest.raises(RemoteError):
                await client.execute("/api/get_admin_ids")
        unhealthy = client.health.is_healthy
        await client.execute("/api/get_status")
        return unhealthy

    was_healthy = asyncio.run(scenario())

    assert was_healthy is False
    assert client.health.is_healthy
    assert client.health.consecutive_failures == 0
    assert client.health.last_success_at is not None


def test_connection_probe_reports_server_details():
    client = FakeConsole()
    client.route(
        "GET",
        "/api/get_status",
        ok({"name": "HLL EU #1", "player_count": 87, "player_count_max": 100}),
    )

    result = asyncio.run(client.test_connection())

    assert result.connected
    assert result.server_name == "HLL EU #1"
    assert result.player_count == 87
    assert result.max_players == 100


def test_connection_probe_never_raises():
    client = FakeConsole()
    client.route("GET", "/api/get_status", status(403))

    result = asyncio.run(client.test_connection())
    name = asyncio.run(client.get_server_name())

    assert result.connected is False
    assert result.error
    assert name == "Hell Let Loose Server"
