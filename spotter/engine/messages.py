"""
spotter.engine.messages — Text generation with a deterministic fallback
=========================================================================

The classifier only describes *what* kind of message a member should get
(:class:`~spotter.engine.classifier.MessageRequest`).  Turning that into
text is delegated to an external generator behind the
:class:`TextGenerator` protocol.

The generator is allowed to be slow, wrong or down.  :func:`produce_message`
always returns text: on timeout, transport error, malformed payload or an
empty answer it degrades to a static template chosen deterministically
from the request id, and says so via ``GeneratedMessage.degraded``.
"""

from __future__ import annotations

import asyncio
import logging
import zlib
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from spotter.engine.classifier import BehaviorEvent, MessageRequest, Severity

logger = logging.getLogger(__name__)

__all__ = [
    "FALLBACK_TEMPLATES",
    "GeneratedMessage",
    "HttpTextGenerator",
    "TextGenerator",
    "fallback_message",
    "produce_message",
    "produce_messages",
    "request_payload",
]

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_BATCH_SIZE = 5


class TextGenerator(Protocol):
    async def generate(self, request: MessageRequest) -> str: ...


@dataclass(frozen=True, slots=True)
class GeneratedMessage:
    request_id: str
    text: str
    degraded: bool = False


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------
def request_payload(request: MessageRequest) -> dict[str, Any]:
    """JSON body sent to the generator endpoint."""
    s = request.stats
    payload: dict[str, Any] = {
        "request_id": request.request_id,
        "user_name": request.user_name,
        "event": request.event.value,
        "severity": request.severity.value,
        "tone": request.tone.value,
        "stats": {
            "current_streak": s.current_streak,
            "longest_streak": s.longest_streak,
            "weekly_workouts": s.weekly_workouts,
            "monthly_workouts": s.monthly_workouts,
            "total_workouts": s.total_workouts,
            "days_since_last_workout": s.days_since_last_workout,
        },
        "new_badges": list(request.new_badges),
    }
    if request.comparison is not None:
        payload["partner_name"] = request.partner_name
        payload["comparison"] = request.comparison.as_dict()
    return payload


class HttpTextGenerator:
    """:class:`TextGenerator` backed by an HTTP endpoint.

    POSTs :func:`request_payload` as JSON and expects ``{"text": "..."}``
    back.  Non-2xx responses and payloads without a string ``text`` raise;
    :func:`produce_message` turns those into the fallback.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def generate(self, request: MessageRequest) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        async with httpx.AsyncClient(timeout=self._timeout, transport=transport) as client:
            resp = await client.post(self.endpoint, json=request_payload(request), headers=headers)
            resp.raise_for_status()
            body = resp.json()

        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise ValueError(f"generator response has no 'text' field: {body!r}")
        return text


# ---------------------------------------------------------------------------
# Fallback templates
# ---------------------------------------------------------------------------
# (event, severity) → templates; (event, None) is the default for the event.
FALLBACK_TEMPLATES: dict[tuple[BehaviorEvent, Severity | None], tuple[str, ...]] = {
    (BehaviorEvent.STREAK_BROKEN, None): (
        "RIP to your {longest_streak} day streak, {user_name}. Time to start a new one!",
        "Streaks are meant to be broken... but so are PRs. Get back in there!",
        "{longest_streak} days down the drain. But hey, muscle memory is real!",
    ),
    (BehaviorEvent.STREAK_BROKEN, Severity.NUCLEAR): (
        "{user_name}, your {longest_streak} day streak is a distant memory. The gym misses you.",
    ),
    (BehaviorEvent.BUDDY_AHEAD, None): (
        "{partner_name} is making you look bad, {user_name}. You gonna take that?",
        "While you're reading this, {partner_name} is probably at the gym. Just saying...",
        "Someone's getting out-worked, and it ain't {partner_name}!",
    ),
    (BehaviorEvent.BUDDY_AHEAD, Severity.NUCLEAR): (
        "{partner_name} is lapping you, {user_name}. At this point it's not a race, it's a rescue.",
    ),
    (BehaviorEvent.MILESTONE, None): (
        "{current_streak} days strong! You're officially a gym regular now!",
        "Look at you with that {current_streak} day streak! Beast mode: ACTIVATED",
        "{current_streak} days of pure dedication. You love to see it!",
    ),
    (BehaviorEvent.SLACKING, None): (
        "{weekly_workouts} workouts this week? Those are rookie numbers, gotta pump those up!",
        "{days_since} days without a workout? Your muscles are filing a missing person report!",
        'Remember when you said "this is the year"? The gym remembers...',
    ),
    (BehaviorEvent.SLACKING, Severity.NUCLEAR): (
        "{user_name}, the gym called. It asked if you're still alive.",
        "It's been so long your gym bag has its own ecosystem. Time to go back.",
    ),
    (BehaviorEvent.CRUSHING_IT, None): (
        "{weekly_workouts} workouts this week?! Save some gains for the rest of us!",
        "{current_streak} day streak and counting! You're making this look easy!",
        "Absolutely destroying it! Keep this energy up!",
    ),
    (BehaviorEvent.DAILY_CHECK, None): (
        "{days_since} days off? Time to get back to business!",
    ),
    (BehaviorEvent.DAILY_CHECK, Severity.NONE): (
        "Already crushed it today! Rest up, warrior!",
    ),
    (BehaviorEvent.DAILY_CHECK, Severity.MILD): (
        "You showed up yesterday. Let's make it two in a row!",
    ),
}

_LAST_RESORT = "Time to move, {user_name}!"


class _SafeFields(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _template_fields(request: MessageRequest) -> _SafeFields:
    s = request.stats
    days = s.days_since_last_workout
    return _SafeFields(
        user_name=request.user_name,
        partner_name=request.partner_name or "your buddy",
        current_streak=s.current_streak,
        longest_streak=s.longest_streak,
        weekly_workouts=s.weekly_workouts,
        monthly_workouts=s.monthly_workouts,
        total_workouts=s.total_workouts,
        days_since="So many" if days is None else days,
    )


def fallback_message(request: MessageRequest) -> str:
    """Static message for *request*.  Deterministic and never raises.

    The template list is looked up by ``(event, severity)`` first, then by
    the event default; the entry is picked by ``crc32(request_id)`` so the
    same request always gets the same text.
    """
    templates = (
        FALLBACK_TEMPLATES.get((request.event, request.severity))
        or FALLBACK_TEMPLATES.get((request.event, None))
        or (_LAST_RESORT,)
    )
    index = zlib.crc32(request.request_id.encode("utf-8")) % len(templates)
    template = templates[index]
    try:
        return template.format_map(_template_fields(request))
    except (ValueError, IndexError, AttributeError):
        logger.warning("Bad fallback template %r", template)
        return template


# ---------------------------------------------------------------------------
# Generation with degradation
# ---------------------------------------------------------------------------
async def produce_message(
    request: MessageRequest,
    generator: TextGenerator | None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> GeneratedMessage:
    """Ask *generator* for text; degrade to :func:`fallback_message` on failure.

    Never raises.  Cancellation of the calling task still propagates.
    """
    if generator is None:
        return GeneratedMessage(request.request_id, fallback_message(request), degraded=True)

    try:
        text = await asyncio.wait_for(generator.generate(request), timeout=timeout)
    except TimeoutError:
        logger.warning(
            "Generator timed out after %.1fs for %s — using fallback",
            timeout, request.request_id,
        )
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
        logger.warning(
            "Generator failed for %s (%s) — using fallback", request.request_id, exc,
        )
    except Exception:
        logger.exception("Unexpected generator error for %s — using fallback", request.request_id)
    else:
        if isinstance(text, str) and text.strip():
            return GeneratedMessage(request.request_id, text.strip())
        logger.warning("Generator returned empty text for %s — using fallback", request.request_id)

    return GeneratedMessage(request.request_id, fallback_message(request), degraded=True)


async def produce_messages(
    requests: Sequence[MessageRequest],
    generator: TextGenerator | None,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[GeneratedMessage]:
    """Generate messages for many requests, *batch_size* at a time.

    Results are returned in the order of *requests*.
    """
    batch_size = max(1, batch_size)
    results: list[GeneratedMessage] = []
    for start in range(0, len(requests), batch_size):
        batch = requests[start:start + batch_size]
        results.extend(await asyncio.gather(
            *(produce_message(r, generator, timeout=timeout) for r in batch)
        ))
    logger.info(
        "Generated %d message(s), %d degraded",
        len(results), sum(1 for m in results if m.degraded),
    )
    return results
