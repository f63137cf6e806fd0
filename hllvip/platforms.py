import re
from typing import Optional

PC = "PC"
PLAYSTATION = "PlayStation"
XBOX = "Xbox"
CONSOLE = "Console"

PLAYSTATION_PREFIXES = ("11000", "76561199")
STEAM_PREFIX = "7656119"
HEX_ID = re.compile(r"^[0-9a-fA-F]{32}$")
GENERATED_XBOX_NAME = re.compile(r"^[a-z]+\d+$")

PLATFORM_LABELS = {
    PC: "💻 PC (Steam)",
    PLAYSTATION: "🎮 PlayStation",
    XBOX: "🎮 Xbox",
    CONSOLE: "🎮 Console",
}

PLATFORM_ALIASES = {
    "pc": PC,
    "steam": PC,
    "ps": PLAYSTATION,
    "ps4": PLAYSTATION,
    "ps5": PLAYSTATION,
    "playstation": PLAYSTATION,
    "xbox": XBOX,
    "console": CONSOLE,
}


def detect_platform(player_id: Optional[str], name: Optional[str] = None) -> str:
    """Best-effort platform guess from the identifier shape and player name."""
    identifier = str(player_id or "").strip()
    lowered = str(name or "").lower()
    if not identifier:
        return CONSOLE
    if HEX_ID.match(identifier):
        return CONSOLE
    if identifier.isdigit() and identifier.startswith(PLAYSTATION_PREFIXES):
        return PLAYSTATION
    if "xbox" in lowered or "xbl" in lowered:
        return XBOX
    if identifier.isdigit() and identifier.startswith(STEAM_PREFIX):
        if GENERATED_XBOX_NAME.match(lowered) and len(lowered) > 15:
            return XBOX
        return PC
    return CONSOLE


def platform_label(platform: Optional[str]) -> str:
    return PLATFORM_LABELS.get(str(platform), f"🎮 {platform or CONSOLE}")


def normalize_platform(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return PLATFORM_ALIASES.get(value.strip().lower())
