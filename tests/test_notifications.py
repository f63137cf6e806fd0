import asyncio
from datetime import datetime, timedelta, timezone

from hllvip.models import init_db, notification_settings, save_link
from hllvip.notifications import VipExpiryNotifier, warning_days_for
from tests.fakes import AsyncRecorder, FakeConsole, ok, status

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def expiring(player_id, days):
    return {"player_id": player_id, "expiration": (NOW + timedelta(days=days)).isoformat()}


def make_notifier(tmp_path, entries):
    models = init_db(str(tmp_path / "bot.db"))
    client = FakeConsole()
    client.route("GET", "/api/get_vip_ids", ok(entries))
    send_dm = AsyncRecorder(True)
    return VipExpiryNotifier(client, models, send_dm), models, send_dm


def test_reminds_linked_players_on_warning_days_once(tmp_path):
    entries = [
        expiring("P3", 3),
        expiring("P5", 5),
        expiring("UNLINKED", 1),
        {"player_id": "PERM", "expiration": None},
    ]
    notifier, models, send_dm = make_notifier(tmp_path, entries)
    save_link(models, 42, "P3", "ThreeDays")
    save_link(models, 43, "P5", "FiveDays")
    save_link(models, 44, "PERM", "Forever")

    first = asyncio.run(notifier.check_expirations(NOW))
    second = asyncio.run(notifier.check_expirations(NOW + timedelta(minutes=5)))

    assert first == 1
    assert second == 0
    assert [call[0] for call in send_dm.calls] == [42]
    embed = send_dm.calls[0][1]
    assert "Expiration Notice" in embed.title
    assert notification_settings(models).last_check_at is not None


def test_failed_dm_is_retried_next_run(tmp_path):
    notifier, models, send_dm = make_notifier(tmp_path, [expiring("P1", 1)])
    save_link(models, 42, "P1", "Soon")
    send_dm.result = False

    assert asyncio.run(notifier.check_expirations(NOW)) == 0
    send_dm.result = True
    assert asyncio.run(notifier.check_expirations(NOW)) == 1


def test_disabled_notifications_skip_remote_calls(tmp_path):
    notifier, models, send_dm = make_notifier(tmp_path, [expiring("P1", 1)])
    notifier.update_settings(enabled=False)

    assert asyncio.run(notifier.check_expirations(NOW)) == 0
    assert notifier.client.requests == []


def test_remote_failure_sends_nothing(tmp_path):
    notifier, models, send_dm = make_notifier(tmp_path, [])
    notifier.client.route("GET", "/api/get_vip_ids", status(400))

    assert asyncio.run(notifier.check_expirations(NOW)) == 0
    assert asyncio.run(notifier.notification_stats(NOW)) is None


def test_warning_day_schedule():
    assert warning_days_for(7) == [7, 4, 1]
    assert warning_days_for(10) == [10, 7, 1]
    assert warning_days_for(2) == [2, 1]
    assert warning_days_for(1) == [1]


def test_update_settings_persists(tmp_path):
    notifier, models, _ = make_notifier(tmp_path, [])

    notifier.update_settings(warning_days=5)

    assert notification_settings(models).warning_day_list() == [5, 2, 1]


def test_stats_count_expiry_buckets(tmp_path):
    entries = [
        expiring("A", 1),
        expiring("B", 5),
        expiring("C", 30),
        {"player_id": "D", "expiration": (NOW - timedelta(days=2)).isoformat()},
        {"player_id": "E", "expiration": "None"},
    ]
    notifier, models, _ = make_notifier(tmp_path, entries)
    save_link(models, 1, "A", "Alpha")

    stats = asyncio.run(notifier.notification_stats(NOW))

    assert stats.total_vips == 5
    assert stats.linked_vips == 1
    assert stats.expiring_today == 1
    assert stats.expiring_soon == 1
    assert stats.expired == 1
    assert stats.warning_days == [7, 3, 1]


def test_send_test_requires_link(tmp_path):
    notifier, models, send_dm = make_notifier(tmp_path, [])
    save_link(models, 42, "P1", "Linked")

    assert asyncio.run(notifier.send_test(99)) is False
    assert asyncio.run(notifier.send_test(42)) is True
    assert send_dm.calls[0][0] == 42
