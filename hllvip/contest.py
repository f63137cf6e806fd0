import json
import logging
import math
from datetime import datetime, timedelta
from typing import Any, List, Optional

from .models import BotModels, utcnow_naive
from .validators import (
    validate_contest_description,
    validate_contest_title,
    validate_duration_hours,
    validate_max_winners,
    validate_prize,
)

LOGGER = logging.getLogger(__name__)


class ContestError(Exception):
    pass


def active_contest(models: BotModels) -> Optional[Any]:
    Contest = models.Contest
    return (
        Contest.select()
        .where(Contest.active == True)  # noqa: E712
        .order_by(Contest.id.desc())
        .first()
    )


def current_contest(models: BotModels) -> Optional[Any]:
    """Active contest if any, otherwise the most recent one."""
    contest = active_contest(models)
    if contest:
        return contest
    Contest = models.Contest
    return Contest.select().order_by(Contest.id.desc()).first()


def create_contest(
    models: BotModels,
    title: str,
    description: str,
    prize: str,
    duration_hours: int,
    max_winners: int,
    created_by: int,
    now: datetime | None = None,
) -> Any:
    title = validate_contest_title(title)
    description = validate_contest_description(description)
    prize = validate_prize(prize)
    validate_duration_hours(duration_hours)
    validate_max_winners(max_winners)
    if active_contest(models):
        raise ContestError(
            "There is already an active contest. End it before creating a new one."
        )
    starts_at = now or utcnow_naive()
    contest = models.Contest.create(
        title=title,
        description=description,
        prize=prize,
        max_winners=max_winners,
        starts_at=starts_at,
        ends_at=starts_at + timedelta(hours=duration_hours),
        created_by=created_by,
        active=True,
    )
    LOGGER.info("Contest %s (%s) created by %s", contest.id, title, created_by)
    return contest


def end_contest(models: BotModels, ended_by: int | None, now: datetime | None = None) -> Any:
    contest = active_contest(models)
    if not contest:
        raise ContestError("There is no active contest to end.")
    contest.active = False
    contest.ended_at = now or utcnow_naive()
    contest.ended_by = ended_by
    contest.save()
    LOGGER.info("Contest %s ended by %s", contest.id, ended_by or "schedule")
    return contest


def expire_due_contest(models: BotModels, now: datetime | None = None) -> Optional[Any]:
    now = now or utcnow_naive()
    contest = active_contest(models)
    if not contest or contest.ends_at > now:
        return None
    return end_contest(models, None, now)


def select_winners(
    contest: Any,
    winners: List[dict],
    selected_by: int,
    now: datetime | None = None,
) -> Any:
    if contest is None:
        raise ContestError("No contest found.")
    if not winners:
        raise ContestError("No valid winners found.")
    if len(winners) > contest.max_winners:
        raise ContestError(
            f"Too many winners. This contest allows at most {contest.max_winners}."
        )
    contest.winners = json.dumps(winners)
    contest.winners_selected_at = now or utcnow_naive()
    contest.winners_selected_by = selected_by
    contest.save()
    LOGGER.info("Contest %s winners recorded by %s", contest.id, selected_by)
    return contest


def hours_remaining(contest: Any, now: datetime | None = None) -> int:
    now = now or utcnow_naive()
    seconds = (contest.ends_at - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))


def creation_announcement(contest: Any, hours: int) -> str:
    return (
        f"NEW CONTEST: {contest.title} | Prize: {contest.prize} | "
        f"Duration: {hours}h | Check Discord for details!"
    )


def end_announcement(contest: Any) -> str:
    return f"CONTEST ENDED: {contest.title} | Winners will be announced soon on Discord!"


def winners_announcement(contest: Any, names: List[str]) -> str:
    return f"CONTEST WINNERS: {contest.title} | Congratulations {', '.join(names)}!"
