"""
spotter.__main__ — Entry point for ``python -m spotter``
=========================================================

Wiring:
1. Load .env (secrets: ``DATABASE_URL``, ``SPOTTER_GENERATOR_API_KEY``).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed defaults.
4. Build and warm the ConfigCache.
5. Run the requested operator command.

Commands::

    python -m spotter replay --user 42       # rebuild one member's derived state
    python -m spotter replay --all           # ... or everyone's
    python -m spotter leaderboard --period weekly --limit 10
    python -m spotter motivate --user 42     # classify + generate a message
    python -m spotter remind                 # nudge members whose reminder is due
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.orm import Session

from spotter.config import SpotterConfig, load_config
from spotter.constants import RANK_BADGES, RARITY_EMOJI
from spotter.database.engine import create_db_engine, init_db
from spotter.database.models import User
from spotter.engine.cache import ConfigCache
from spotter.engine.celebrations import CelebrationQueue
from spotter.engine.comparison import LeaderboardPeriod
from spotter.engine.messages import HttpTextGenerator
from spotter.services.locks import UserLocks
from spotter.services.motivation_service import generate_motivation, generate_reminders
from spotter.services.scoring_service import replay_user
from spotter.services.stats_service import get_leaderboard

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("spotter")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spotter", description="Spotter operator commands")
    parser.add_argument("--config", default="config.yaml", help="path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="rebuild derived state from the workout log")
    target = replay.add_mutually_exclusive_group(required=True)
    target.add_argument("--user", type=int, help="member id")
    target.add_argument("--all", action="store_true", help="every member")

    board = sub.add_parser("leaderboard", help="print the leaderboard")
    board.add_argument(
        "--period",
        choices=[p.value for p in LeaderboardPeriod],
        default=LeaderboardPeriod.ALL_TIME.value,
    )
    board.add_argument("--limit", type=int, default=10)

    motivate = sub.add_parser("motivate", help="classify a member and generate a message")
    motivate.add_argument("--user", type=int, required=True, help="member id")

    sub.add_parser("remind", help="generate nudges for members whose reminder is due now")
    return parser


def _cmd_replay(args: argparse.Namespace, cfg: SpotterConfig, engine, cache: ConfigCache) -> int:
    if args.all:
        with Session(engine) as session:
            user_ids = list(session.scalars(select(User.id).order_by(User.id)).all())
    else:
        user_ids = [args.user]

    locks = UserLocks()
    celebrations: CelebrationQueue = CelebrationQueue(maxsize=cfg.celebration_queue_size)
    for user_id in user_ids:
        try:
            result = replay_user(
                engine, cache, user_id, locks=locks, default_timezone=cfg.default_timezone,
            )
        except LookupError:
            logger.error("User %d does not exist", user_id)
            return 2
        celebrations = celebrations.extend((user_id, b) for b in result.awarded)
        print(
            f"user={user_id} scored={result.scored} total={result.stats.total_points} "
            f"level={result.stats.level} streak={result.streak.current_streak}"
        )

    while celebrations:
        item, celebrations = celebrations.dequeue()
        user_id, badge = item
        print(f"  {RARITY_EMOJI.get(badge.rarity, '')} user {user_id} earned {badge.name}")
    return 0


def _cmd_leaderboard(args: argparse.Namespace, cfg: SpotterConfig, engine, cache: ConfigCache) -> int:
    period = LeaderboardPeriod(args.period)
    for ranked in get_leaderboard(
        engine, period, args.limit, cache=cache, default_timezone=cfg.default_timezone,
    ):
        e = ranked.entry
        medal = RANK_BADGES[ranked.rank - 1] if ranked.rank <= len(RANK_BADGES) else " "
        print(
            f"{medal} #{ranked.rank:<3} {e.display_name:24} {ranked.points:>7} pts  "
            f"lvl {e.level:<3} streak {e.current_streak}"
        )
    return 0


def _generator(cfg: SpotterConfig) -> HttpTextGenerator | None:
    if not cfg.generator_endpoint:
        return None
    return HttpTextGenerator(
        cfg.generator_endpoint,
        api_key=os.getenv("SPOTTER_GENERATOR_API_KEY"),
        timeout=cfg.generator_timeout_seconds,
    )


def _cmd_motivate(args: argparse.Namespace, cfg: SpotterConfig, engine, cache: ConfigCache) -> int:
    message = asyncio.run(generate_motivation(
        engine,
        cache,
        _generator(cfg),
        args.user,
        timeout=cfg.generator_timeout_seconds,
        default_timezone=cfg.default_timezone,
    ))
    if message is None:
        logger.error("User %d does not exist", args.user)
        return 2
    suffix = " (fallback)" if message.degraded else ""
    print(f"{message.text}{suffix}")
    return 0


def _cmd_remind(args: argparse.Namespace, cfg: SpotterConfig, engine, cache: ConfigCache) -> int:
    messages = asyncio.run(generate_reminders(
        engine,
        cache,
        _generator(cfg),
        timeout=cfg.generator_timeout_seconds,
        default_timezone=cfg.default_timezone,
    ))
    for message in messages:
        suffix = " (fallback)" if message.degraded else ""
        print(f"{message.request_id}  {message.text}{suffix}")
    return 0


_COMMANDS = {
    "replay": _cmd_replay,
    "leaderboard": _cmd_leaderboard,
    "motivate": _cmd_motivate,
    "remind": _cmd_remind,
}


def main(argv: list[str] | None = None) -> int:
    """Bootstrap Spotter and run one operator command."""
    args = _build_parser().parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config(args.config)
    logger.info("Config loaded — %s (default tz %s)", cfg.app_name, cfg.default_timezone)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1
    init_db(engine)

    # 4. Build and warm the ConfigCache.
    cache = ConfigCache(engine)
    cache.load_all()

    # 5. Command.
    return _COMMANDS[args.command](args, cfg, engine, cache)


if __name__ == "__main__":
    sys.exit(main())
