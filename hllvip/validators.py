from typing import List

from .players import is_valid_player_id


class ValidationError(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


def _length_between(field: str, value: str, low: int, high: int, label: str) -> str:
    text = (value or "").strip()
    if len(text) < low or len(text) > high:
        raise ValidationError(
            field, f"{label} must be between {low} and {high} characters."
        )
    return text


def validate_player_name(value: str) -> str:
    return _length_between("username", value, 2, 50, "Username")


def validate_player_id(value: str) -> str:
    text = (value or "").strip()
    if not is_valid_player_id(text):
        raise ValidationError(
            "player_id",
            "Player ID must be a 17-digit Steam ID or a 32-character console ID.",
        )
    return text


def validate_contest_title(value: str) -> str:
    return _length_between("title", value, 3, 100, "Contest title")


def validate_contest_description(value: str) -> str:
    return _length_between("description", value, 10, 500, "Contest description")


def validate_prize(value: str) -> str:
    return _length_between("prize", value, 1, 200, "Prize")


def validate_duration_hours(value: int) -> int:
    if value < 1 or value > 24 * 30:
        raise ValidationError("duration_hours", "Duration must be between 1 and 720 hours.")
    return value


def validate_max_winners(value: int) -> int:
    if value < 1 or value > 10:
        raise ValidationError("max_winners", "Max winners must be between 1 and 10.")
    return value


def parse_user_ids(value: str) -> List[int]:
    """Parse a comma separated list of Discord user IDs or mentions."""
    ids: List[int] = []
    for part in (value or "").split(","):
        token = part.strip().removeprefix("<@").removeprefix("!").removesuffix(">")
        if not token:
            continue
        if not token.isdigit():
            raise ValidationError("winners", f"`{part.strip()}` is not a valid user ID.")
        user_id = int(token)
        if user_id not in ids:
            ids.append(user_id)
    if not ids:
        raise ValidationError("winners", "Provide at least one winner.")
    return ids
