from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

from db.database import fetch_one, insert_row, new_id
from sqlalchemy import text
from utils.sm2 import (
    DEFAULT_EASE,
    GRADE_AGAIN,
    GRADE_EASY,
    GRADE_GOOD,
    GRADE_HARD,
    map_grade_to_quality,
    normalize_grade,
    review_interval_days,
    update_ease,
)

MINUTE_MS = 60_000
DAY_MS = 86_400_000
DEFAULT_EASY_INTERVAL_DAYS = 4


class CardSuspendedError(Exception):
    """Raised when reviewing a card that was suspended as a leech."""


@dataclass(frozen=True)
class DeckOptions:
    new_per_day: int = 10
    reviews_per_day: int = 50
    learning_steps_minutes: List[int] = field(default_factory=lambda: [10, 1440])
    relearn_steps_minutes: List[int] = field(default_factory=lambda: [10, 1440])
    leech_threshold: int = 8
    bury_siblings: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CardState:
    state: str = "new"
    due_at: int = 0
    interval_days: int = 0
    ease: float = DEFAULT_EASE
    reps: int = 0
    lapses: int = 0
    suspended: bool = False
    last_reviewed_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_card_state(now: int) -> CardState:
    return CardState(due_at=now)


def _parse_steps(raw: Any, fallback: List[int]) -> List[int]:
    try:
        steps = json.loads(raw) if isinstance(raw, str) else list(raw or [])
    except ValueError:
        return list(fallback)
    steps = [int(step) for step in steps if int(step) > 0]
    return steps or list(fallback)


def schedule_review(
    prev: CardState,
    grade: int,
    now: int,
    options: DeckOptions,
    easy_interval_days: int = DEFAULT_EASY_INTERVAL_DAYS,
) -> CardState:
    """Compute the next state of a card after a review at `now` (epoch ms).

    Failed recall sends any card to relearning. New and (re)learning cards
    graduate to review on good/easy and repeat a step on hard. Review cards
    grow their interval by ease. For a fixed prior state the due time never
    decreases as the grade increases.
    """
    grade = normalize_grade(grade)
    ease = update_ease(prev.ease, map_grade_to_quality(grade))
    relearn_minutes = options.relearn_steps_minutes[0] if options.relearn_steps_minutes else 10
    again_due = now + relearn_minutes * MINUTE_MS
    easy_days = max(2, int(easy_interval_days))

    if grade == GRADE_AGAIN:
        nxt = replace(
            prev,
            state="relearning",
            due_at=again_due,
            interval_days=0,
            ease=ease,
            reps=0,
            lapses=prev.lapses + 1,
        )
    elif prev.state == "new":
        if grade == GRADE_HARD and len(options.learning_steps_minutes) > 1:
            step_due = now + options.learning_steps_minutes[0] * MINUTE_MS
            nxt = replace(prev, state="learning", due_at=min(max(step_due, again_due), now + DAY_MS), ease=ease, reps=prev.reps + 1)
        else:
            days = easy_days if grade == GRADE_EASY else 1
            nxt = replace(prev, state="review", due_at=now + days * DAY_MS, interval_days=days, ease=ease, reps=prev.reps + 1)
    elif prev.state in ("learning", "relearning"):
        if grade >= GRADE_GOOD:
            days = easy_days if grade == GRADE_EASY else 1
            nxt = replace(prev, state="review", due_at=now + days * DAY_MS, interval_days=days, ease=ease, reps=prev.reps + 1)
        else:
            steps = options.learning_steps_minutes if prev.state == "learning" else options.relearn_steps_minutes
            step_due = now + (steps[0] if steps else 10) * MINUTE_MS
            # Hard sits between again and good.
            nxt = replace(prev, due_at=min(max(step_due, again_due), now + DAY_MS), ease=ease, reps=prev.reps + 1)
    else:
        reps_after = prev.reps + 1
        days = review_interval_days(prev.interval_days, reps_after, grade, prev.ease)
        nxt = replace(prev, state="review", due_at=now + days * DAY_MS, interval_days=days, ease=ease, reps=reps_after)

    leech = options.leech_threshold > 0 and nxt.lapses >= options.leech_threshold
    suspended = prev.suspended or leech
    return replace(nxt, suspended=suspended, last_reviewed_at=now)


def get_deck_options(conn, deck_id: str, now: Optional[int] = None) -> DeckOptions:
    """Load a deck's options, creating the default row on first access."""
    row = fetch_one(conn, "SELECT * FROM srs_deck_options WHERE deck_id = :deck_id", {"deck_id": deck_id})
    if not row:
        defaults = DeckOptions()
        save_deck_options(conn, deck_id, defaults, now or 0)
        return defaults
    return DeckOptions(
        new_per_day=int(row["new_per_day"]),
        reviews_per_day=int(row["reviews_per_day"]),
        learning_steps_minutes=_parse_steps(row["learning_steps_minutes"], [10, 1440]),
        relearn_steps_minutes=_parse_steps(row["relearn_steps_minutes"], [10, 1440]),
        leech_threshold=int(row["leech_threshold"]),
        bury_siblings=bool(row["bury_siblings"]),
    )


def save_deck_options(conn, deck_id: str, options: DeckOptions, now: int) -> None:
    conn.execute(
        text(
            """
            INSERT INTO srs_deck_options (
                deck_id, new_per_day, reviews_per_day, learning_steps_minutes,
                relearn_steps_minutes, leech_threshold, bury_siblings, updated_at
            )
            VALUES (:deck_id, :new_per_day, :reviews_per_day, :learning, :relearn, :leech, :bury, :now)
            ON CONFLICT(deck_id) DO UPDATE SET
                new_per_day = excluded.new_per_day,
                reviews_per_day = excluded.reviews_per_day,
                learning_steps_minutes = excluded.learning_steps_minutes,
                relearn_steps_minutes = excluded.relearn_steps_minutes,
                leech_threshold = excluded.leech_threshold,
                bury_siblings = excluded.bury_siblings,
                updated_at = excluded.updated_at
            """
        ),
        {
            "deck_id": deck_id,
            "new_per_day": options.new_per_day,
            "reviews_per_day": options.reviews_per_day,
            "learning": json.dumps(options.learning_steps_minutes),
            "relearn": json.dumps(options.relearn_steps_minutes),
            "leech": options.leech_threshold,
            "bury": 1 if options.bury_siblings else 0,
            "now": now,
        },
    )


def get_card_state(conn, user_id: str, card_id: str) -> Optional[CardState]:
    row = fetch_one(
        conn,
        """
        SELECT state, due_at, interval_days, ease, reps, lapses, suspended, last_reviewed_at
        FROM srs_card_states
        WHERE user_id = :user_id AND card_id = :card_id
        """,
        {"user_id": user_id, "card_id": card_id},
    )
    if not row:
        return None
    return CardState(
        state=row["state"],
        due_at=int(row["due_at"]),
        interval_days=int(row["interval_days"]),
        ease=float(row["ease"]),
        reps=int(row["reps"]),
        lapses=int(row["lapses"]),
        suspended=bool(row["suspended"]),
        last_reviewed_at=row["last_reviewed_at"],
    )


def upsert_card_state(conn, *, user_id: str, card_id: str, deck_id: str, state: CardState, now: int) -> None:
    conn.execute(
        text(
            """
            INSERT INTO srs_card_states (
                user_id, card_id, deck_id, state, due_at, interval_days, ease,
                reps, lapses, suspended, last_reviewed_at, updated_at
            )
            VALUES (
                :user_id, :card_id, :deck_id, :state, :due_at, :interval_days, :ease,
                :reps, :lapses, :suspended, :last_reviewed_at, :updated_at
            )
            ON CONFLICT(user_id, card_id) DO UPDATE SET
                state = excluded.state,
                due_at = excluded.due_at,
                interval_days = excluded.interval_days,
                ease = excluded.ease,
                reps = excluded.reps,
                lapses = excluded.lapses,
                suspended = excluded.suspended,
                last_reviewed_at = excluded.last_reviewed_at,
                updated_at = excluded.updated_at
            """
        ),
        {
            "user_id": user_id,
            "card_id": card_id,
            "deck_id": deck_id,
            "state": state.state,
            "due_at": state.due_at,
            "interval_days": state.interval_days,
            "ease": state.ease,
            "reps": state.reps,
            "lapses": state.lapses,
            "suspended": 1 if state.suspended else 0,
            "last_reviewed_at": state.last_reviewed_at,
            "updated_at": now,
        },
    )


def review_card(
    conn,
    *,
    user_id: str,
    card_id: str,
    deck_id: str,
    grade: int,
    now: int,
    easy_interval_days: int = DEFAULT_EASY_INTERVAL_DAYS,
    duration_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Apply a review: update the card state and append a review event. Caller commits."""
    options = get_deck_options(conn, deck_id, now)
    prev = get_card_state(conn, user_id, card_id) or new_card_state(now)
    if prev.suspended:
        raise CardSuspendedError(card_id)
    grade = normalize_grade(grade)
    nxt = schedule_review(prev, grade, now, options, easy_interval_days)
    upsert_card_state(conn, user_id=user_id, card_id=card_id, deck_id=deck_id, state=nxt, now=now)
    event_id = new_id()
    insert_row(
        conn,
        "srs_review_events",
        {
            "id": event_id,
            "user_id": user_id,
            "card_id": card_id,
            "deck_id": deck_id,
            "grade": grade,
            "reviewed_at": now,
            "duration_ms": duration_ms,
            "prev_state": prev.state,
            "next_state": nxt.state,
            "prev_due_at": prev.due_at,
            "next_due_at": nxt.due_at,
            "prev_interval_days": prev.interval_days,
            "next_interval_days": nxt.interval_days,
            "prev_ease": prev.ease,
            "next_ease": nxt.ease,
        },
    )
    return {
        "event_id": event_id,
        "card_id": card_id,
        "grade": grade,
        "reviewed_at": now,
        "prev": prev.to_dict(),
        "next": nxt.to_dict(),
    }
