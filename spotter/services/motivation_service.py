"""
spotter.services.motivation_service — Classification + message generation
===========================================================================

Glues the read side to the classifier and the text generator:

    load stats (+ partner stats) → classify → MessageRequest → text

and picks the members whose reminder schedule is due for a nudge.

Derived state is read in a worker thread via :func:`run_db`; only the text
generator call happens on the event loop, always under a timeout, and
always after scoring has committed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spotter.database.engine import run_db
from spotter.database.models import User, Workout
from spotter.engine.classifier import MessageRequest, classify
from spotter.engine.comparison import comparison_delta
from spotter.engine.events import local_day
from spotter.engine.messages import (
    DEFAULT_TIMEOUT_SECONDS,
    GeneratedMessage,
    TextGenerator,
    produce_message,
    produce_messages,
)
from spotter.engine.reminders import ReminderSchedule, should_remind
from spotter.services.stats_service import find_partner_id, read_behavior_stats, user_zone

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from spotter.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def build_message_request(
    engine: Engine,
    cache: ConfigCache | None,
    user_id: int,
    *,
    now: datetime | None = None,
    new_badges: Sequence[str] = (),
    default_timezone: str = "UTC",
) -> MessageRequest | None:
    """Classify a member right now.  ``None`` for an unknown member.

    Members without an active partner get no comparison, so
    ``buddy_ahead`` is never chosen for them.
    """
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        stats = read_behavior_stats(
            session, user_id, now=now, cache=cache, default_timezone=default_timezone,
        )
        if stats is None:
            return None
        partner_stats = None
        partner_id = find_partner_id(session, user_id)
        if partner_id is not None:
            partner_stats = read_behavior_stats(
                session, partner_id, now=now, cache=cache, default_timezone=default_timezone,
            )

    delta = comparison_delta(stats, partner_stats) if partner_stats else None
    return classify(
        stats,
        delta,
        new_badges=new_badges,
        partner_name=partner_stats.user_name if partner_stats else None,
        now=now,
        cache=cache,
    )


async def generate_motivation(
    engine: Engine,
    cache: ConfigCache | None,
    generator: TextGenerator | None,
    user_id: int,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    now: datetime | None = None,
    new_badges: Sequence[str] = (),
    default_timezone: str = "UTC",
) -> GeneratedMessage | None:
    """Classify *user_id* and produce the message text.

    Generator failures degrade to the static fallback; they never raise.
    """
    request = await run_db(
        build_message_request,
        engine,
        cache,
        user_id,
        now=now,
        new_badges=new_badges,
        default_timezone=default_timezone,
    )
    if request is None:
        logger.warning("No motivation for unknown user %d", user_id)
        return None
    return await produce_message(request, generator, timeout=timeout)


async def generate_bulk_motivation(
    engine: Engine,
    cache: ConfigCache | None,
    generator: TextGenerator | None,
    user_ids: Sequence[int],
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    now: datetime | None = None,
    batch_size: int = 5,
    default_timezone: str = "UTC",
) -> list[GeneratedMessage]:
    """Messages for many members (e.g. a daily check run), batched."""
    requests: list[MessageRequest] = []
    for user_id in user_ids:
        request = await run_db(
            build_message_request,
            engine,
            cache,
            user_id,
            now=now,
            default_timezone=default_timezone,
        )
        if request is not None:
            requests.append(request)
    return await produce_messages(requests, generator, timeout=timeout, batch_size=batch_size)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------
def due_reminders(
    engine: Engine,
    *,
    now: datetime | None = None,
    default_timezone: str = "UTC",
) -> list[int]:
    """Members whose reminder falls due at *now* and who haven't trained today."""
    now = now or datetime.now(UTC)
    logged = (Workout.user_id == User.id) & (Workout.completed_at <= now.astimezone(UTC))
    with Session(engine) as session:
        rows = session.execute(
            select(User, func.max(Workout.completed_at))
            .outerjoin(Workout, logged)
            .group_by(User.id)
            .order_by(User.id)
        ).all()

    due: list[int] = []
    for user, last_completed in rows:
        if not user.reminder_prefs:
            continue
        tz = user_zone(user, default_timezone)
        schedule = ReminderSchedule.from_dict(user.reminder_prefs)
        last_day = local_day(last_completed, tz) if last_completed else None
        if should_remind(schedule, now.astimezone(tz), last_day):
            due.append(user.id)
    logger.info("%d member(s) due a reminder", len(due))
    return due


async def generate_reminders(
    engine: Engine,
    cache: ConfigCache | None,
    generator: TextGenerator | None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    now: datetime | None = None,
    default_timezone: str = "UTC",
) -> list[GeneratedMessage]:
    """Nudge messages for every member whose reminder is due at *now*."""
    now = now or datetime.now(UTC)
    user_ids = await run_db(due_reminders, engine, now=now, default_timezone=default_timezone)
    return await generate_bulk_motivation(
        engine,
        cache,
        generator,
        user_ids,
        timeout=timeout,
        now=now,
        default_timezone=default_timezone,
    )
