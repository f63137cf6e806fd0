import pytest

from hllvip.platforms import detect_platform, normalize_platform, platform_label


@pytest.mark.parametrize(
    "player_id,name,expected",
    [
        ("abcdef0123456789abcdef0123456789", "Anyone", "Console"),
        ("11000123456789012", "Gamer", "PlayStation"),
        ("76561199012345678", "Gamer", "PlayStation"),
        ("76561198012345678", "XboxLegend", "Xbox"),
        ("76561198012345678", "the_xbl_guy", "Xbox"),
        ("76561198012345678", "abcdefghijklmnop1234", "Xbox"),
        ("76561198012345678", "shortname12", "PC"),
        ("76561197960287930", "OldSteam", "PC"),
        ("12345", "Someone", "Console"),
        (None, "Someone", "Console"),
        ("", None, "Console"),
    ],
)
def test_detect_platform(player_id, name, expected):
    assert detect_platform(player_id, name) == expected


def test_normalize_platform_aliases():
    assert normalize_platform("Steam") == "PC"
    assert normalize_platform("ps") == "PlayStation"
    assert normalize_platform(" XBOX ") == "Xbox"
    assert normalize_platform("switch") is None
    assert normalize_platform(None) is None


def test_platform_label_has_fallback():
    assert platform_label("PC") == "💻 PC (Steam)"
    assert platform_label("Unknown") == "🎮 Unknown"
