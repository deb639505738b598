"""Spaced-repetition decks, cards and reviews.

State rows are per (user, card); a card without a state row is new for that
user. All scheduling timestamps are epoch milliseconds.
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import bindparam, text

from config import get_config_value
from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, now_ms, utc_now_iso
from models.srs import CardCreate, DeckCreate, DeckOptionsUpdate, ReviewSubmit, TagCreate
from utils.auth import is_admin, require_user, resolve_user_id
from utils.srs import DAY_MS, CardSuspendedError, get_deck_options, review_card, save_deck_options
from utils.tags import parse_tag_names, set_card_tags, upsert_tags

logger = logging.getLogger(__name__)

router = APIRouter()
analytics_router = APIRouter()

SYNC_PAGE_SIZE = 500
PASS_GRADE = 2


def _start_of_day_ms(now: int) -> int:
    day = datetime.fromtimestamp(now / 1000, tz=timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return int(day.timestamp() * 1000)


def _clamp_limit(limit: Optional[int]) -> int:
    default = int(get_config_value("srs", "default_limit", 20))
    maximum = int(get_config_value("srs", "max_limit", 100))
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


def _get_deck_or_404(conn, deck_id: str, user: dict) -> dict:
    deck = fetch_one(conn, "SELECT * FROM srs_decks WHERE id = :id", {"id": deck_id})
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    if deck["user_id"] and deck["user_id"] != user["id"] and not is_admin(user):
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


def _require_deck_owner(deck: dict, user: dict) -> None:
    if is_admin(user):
        return
    if deck["user_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Only the deck owner can change this deck")


def _tags_for_cards(conn, card_ids: List[str]) -> Dict[str, List[str]]:
    if not card_ids:
        return {}
    rows = conn.execute(
        text(
            """
            SELECT ct.card_id, t.name
            FROM srs_card_tags ct
            JOIN srs_tags t ON t.id = ct.tag_id
            WHERE ct.card_id IN :card_ids
            ORDER BY t.name
            """
        ).bindparams(bindparam("card_ids", expanding=True)),
        {"card_ids": card_ids},
    ).mappings().all()
    tags: Dict[str, List[str]] = {}
    for row in rows:
        tags.setdefault(row["card_id"], []).append(row["name"])
    return tags


def _attach_tags(conn, cards: List[dict]) -> List[dict]:
    tag_map = _tags_for_cards(conn, [card["id"] for card in cards])
    for card in cards:
        card["tags"] = tag_map.get(card["id"], [])
    return cards


@router.get("/decks")
async def list_decks(user: dict = Depends(require_user), conn=Depends(get_db)):
    rows = fetch_all(
        conn,
        """
        SELECT d.id, d.user_id, d.name, d.description, d.created_at,
               (SELECT COUNT(*) FROM srs_cards c WHERE c.deck_id = d.id) AS card_count
        FROM srs_decks d
        WHERE d.user_id = :user_id OR d.user_id IS NULL
        ORDER BY d.name
        """,
        {"user_id": user["id"]},
    )
    return {"decks": rows}


@router.post("/decks", status_code=status.HTTP_201_CREATED)
async def create_deck(payload: DeckCreate, user: dict = Depends(require_user), conn=Depends(get_db)):
    if payload.shared and not is_admin(user):
        raise HTTPException(status_code=403, detail="Only admins can create shared decks")
    deck = {
        "id": new_id(),
        "user_id": None if payload.shared else user["id"],
        "name": payload.name,
        "description": payload.description,
        "created_at": utc_now_iso(),
    }
    insert_row(conn, "srs_decks", deck)
    options = get_deck_options(conn, deck["id"], now_ms())
    conn.commit()
    return {**deck, "options": options.to_dict()}


@router.get("/decks/{deck_id}/options")
async def read_deck_options(deck_id: str, user: dict = Depends(require_user), conn=Depends(get_db)):
    _get_deck_or_404(conn, deck_id, user)
    options = get_deck_options(conn, deck_id, now_ms())
    conn.commit()
    return {"deck_id": deck_id, **options.to_dict()}


@router.put("/decks/{deck_id}/options")
async def update_deck_options(
    deck_id: str, payload: DeckOptionsUpdate, user: dict = Depends(require_user), conn=Depends(get_db)
):
    deck = _get_deck_or_404(conn, deck_id, user)
    _require_deck_owner(deck, user)
    now = now_ms()
    current = get_deck_options(conn, deck_id, now)
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    for key in ("new_per_day", "reviews_per_day"):
        if key in changes and changes[key] < 0:
            raise HTTPException(status_code=400, detail=f"{key} must be zero or more")
    if "leech_threshold" in changes and changes["leech_threshold"] < 1:
        raise HTTPException(status_code=400, detail="leech_threshold must be at least 1")
    updated = replace(current, **changes)
    save_deck_options(conn, deck_id, updated, now)
    conn.commit()
    return {"deck_id": deck_id, **updated.to_dict()}


@router.get("/tags")
async def list_tags(_user: dict = Depends(require_user), conn=Depends(get_db)):
    rows = fetch_all(
        conn,
        """
        SELECT t.id, t.name, COUNT(ct.card_id) AS card_count
        FROM srs_tags t
        LEFT JOIN srs_card_tags ct ON ct.tag_id = t.id
        GROUP BY t.id, t.name
        ORDER BY t.name
        """,
    )
    return {"tags": rows}


@router.post("/tags", status_code=status.HTTP_201_CREATED)
async def create_tag(payload: TagCreate, _user: dict = Depends(require_user), conn=Depends(get_db)):
    names = parse_tag_names(payload.name)
    if not names:
        raise HTTPException(status_code=400, detail="Tag name is required")
    tag_ids = upsert_tags(conn, names[:1])
    conn.commit()
    return {"id": tag_ids[0], "name": names[0]}


@router.get("/decks/{deck_id}/cards")
async def list_cards(deck_id: str, user: dict = Depends(require_user), conn=Depends(get_db)):
    _get_deck_or_404(conn, deck_id, user)
    cards = fetch_all(
        conn,
        "SELECT * FROM srs_cards WHERE deck_id = :deck_id ORDER BY created_at",
        {"deck_id": deck_id},
    )
    return {"cards": _attach_tags(conn, cards)}


@router.post("/cards", status_code=status.HTTP_201_CREATED)
async def create_card(payload: CardCreate, user: dict = Depends(require_user), conn=Depends(get_db)):
    deck = _get_deck_or_404(conn, payload.deck_id, user)
    _require_deck_owner(deck, user)
    if not payload.front.strip() or not payload.back.strip():
        raise HTTPException(status_code=400, detail="Card front and back are required")
    now = now_ms()
    card = {
        "id": new_id(),
        "deck_id": payload.deck_id,
        "front": payload.front.strip(),
        "back": payload.back.strip(),
        "lesson_id": payload.lesson_id,
        "created_at": now,
        "updated_at": now,
    }
    insert_row(conn, "srs_cards", card)
    tags = parse_tag_names(payload.tags)
    set_card_tags(conn, card["id"], tags)
    conn.commit()
    return {**card, "tags": tags}


@router.get("/due")
async def due_cards(
    deck_id: str,
    user_id: Optional[str] = None,
    limit: Optional[int] = None,
    user: dict = Depends(require_user),
    conn=Depends(get_db),
):
    """Due cards first (oldest due first), then unseen cards, within the deck's daily caps."""
    target_user = resolve_user_id(user, user_id)
    _get_deck_or_404(conn, deck_id, user)
    limit = _clamp_limit(limit)
    now = now_ms()
    options = get_deck_options(conn, deck_id, now)
    conn.commit()

    today = fetch_one(
        conn,
        """
        SELECT
            SUM(CASE WHEN prev_state = 'new' THEN 1 ELSE 0 END) AS new_seen,
            SUM(CASE WHEN prev_state <> 'new' THEN 1 ELSE 0 END) AS reviewed
        FROM srs_review_events
        WHERE user_id = :user_id AND deck_id = :deck_id AND reviewed_at >= :since
        """,
        {"user_id": target_user, "deck_id": deck_id, "since": _start_of_day_ms(now)},
    )
    review_slots = max(0, options.reviews_per_day - int(today["reviewed"] or 0))
    new_slots = max(0, options.new_per_day - int(today["new_seen"] or 0))

    due = fetch_all(
        conn,
        """
        SELECT c.id, c.deck_id, c.front, c.back, c.lesson_id,
               s.state, s.due_at, s.interval_days, s.ease, s.reps, s.lapses
        FROM srs_card_states s
        JOIN srs_cards c ON c.id = s.card_id
        WHERE s.user_id = :user_id AND c.deck_id = :deck_id
          AND s.suspended = 0 AND s.due_at <= :now
        ORDER BY s.due_at, c.created_at
        LIMIT :limit
        """,
        {"user_id": target_user, "deck_id": deck_id, "now": now, "limit": min(limit, review_slots)},
    )
    remaining = min(limit - len(due), new_slots)
    unseen: List[dict] = []
    if remaining > 0:
        unseen = fetch_all(
            conn,
            """
            SELECT c.id, c.deck_id, c.front, c.back, c.lesson_id
            FROM srs_cards c
            LEFT JOIN srs_card_states s ON s.card_id = c.id AND s.user_id = :user_id
            WHERE c.deck_id = :deck_id AND s.card_id IS NULL
            ORDER BY c.created_at
            LIMIT :limit
            """,
            {"user_id": target_user, "deck_id": deck_id, "limit": remaining},
        )
        for card in unseen:
            card.update({"state": "new", "due_at": now, "interval_days": 0, "ease": 2.5, "reps": 0, "lapses": 0})
    cards = _attach_tags(conn, due + unseen)
    return {"user_id": target_user, "deck_id": deck_id, "now": now, "cards": cards}


@router.post("/review")
async def submit_review(payload: ReviewSubmit, user: dict = Depends(require_user), conn=Depends(get_db)):
    target_user = resolve_user_id(user, payload.user_id)
    card = fetch_one(conn, "SELECT id, deck_id FROM srs_cards WHERE id = :id", {"id": payload.card_id})
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    _get_deck_or_404(conn, card["deck_id"], user)
    if payload.grade not in (0, 1, 2, 3):
        raise HTTPException(status_code=400, detail="Grade must be 0 (again), 1 (hard), 2 (good) or 3 (easy)")
    try:
        result = review_card(
            conn,
            user_id=target_user,
            card_id=card["id"],
            deck_id=card["deck_id"],
            grade=payload.grade,
            now=now_ms(),
            easy_interval_days=int(get_config_value("srs", "easy_interval_days", 4)),
            duration_ms=payload.duration_ms,
        )
    except CardSuspendedError:
        conn.rollback()
        raise HTTPException(status_code=409, detail="Card is suspended")
    conn.commit()
    if result["next"]["suspended"] and not result["prev"]["suspended"]:
        logger.info("Card %s suspended as a leech for user %s", card["id"], target_user)
    return result


@router.get("/filtered")
async def filtered_cards(
    deck_id: Optional[str] = None,
    tags: List[str] = Query(default=[]),
    due_only: bool = False,
    user_id: Optional[str] = None,
    limit: Optional[int] = None,
    user: dict = Depends(require_user),
    conn=Depends(get_db),
):
    target_user = resolve_user_id(user, user_id)
    now = now_ms()
    filters = ["(d.user_id = :user_id OR d.user_id IS NULL)"]
    params: Dict[str, object] = {"user_id": target_user, "limit": _clamp_limit(limit)}
    binds = []
    if deck_id:
        filters.append("c.deck_id = :deck_id")
        params["deck_id"] = deck_id
    tag_names = parse_tag_names(tags)
    if tag_names:
        filters.append(
            """
            c.id IN (
                SELECT ct.card_id FROM srs_card_tags ct
                JOIN srs_tags t ON t.id = ct.tag_id
                WHERE t.name IN :tags
            )
            """
        )
        params["tags"] = tag_names
        binds.append(bindparam("tags", expanding=True))
    if due_only:
        filters.append("(s.card_id IS NULL OR (s.suspended = 0 AND s.due_at <= :now))")
        params["now"] = now
    statement = text(
        f"""
        SELECT c.id, c.deck_id, c.front, c.back, c.lesson_id,
               COALESCE(s.state, 'new') AS state, s.due_at, s.interval_days, s.suspended
        FROM srs_cards c
        JOIN srs_decks d ON d.id = c.deck_id
        LEFT JOIN srs_card_states s ON s.card_id = c.id AND s.user_id = :user_id
        WHERE {" AND ".join(filters)}
        ORDER BY COALESCE(s.due_at, 0), c.created_at
        LIMIT :limit
        """
    )
    if binds:
        statement = statement.bindparams(*binds)
    cards = [dict(row) for row in conn.execute(statement, params).mappings().all()]
    for card in cards:
        card["suspended"] = bool(card["suspended"])
    return {"cards": _attach_tags(conn, cards)}


def _parse_sync_cursor(raw: str) -> Tuple[int, str, int, str]:
    """Accept a plain epoch-ms `since` or a cursor returned by a previous pull.

    A cursor is `events_ms:event_id:states_ms:card_id`; each stream resumes
    strictly after its own (timestamp, id) position.
    """
    parts = raw.split(":")
    try:
        if len(parts) == 1:
            since = int(parts[0])
            return since, "", since, ""
        if len(parts) == 4:
            return int(parts[0]), parts[1], int(parts[2]), parts[3]
    except ValueError:
        pass
    raise HTTPException(status_code=400, detail="Invalid sync cursor")


def _after_position(time_column: str, key_column: str, key: str) -> str:
    if not key:
        return f"{time_column} > :after_ms"
    return f"({time_column} > :after_ms OR ({time_column} = :after_ms AND {key_column} > :after_key))"


@router.get("/sync/pull")
async def sync_pull(
    since: str = "0",
    user_id: Optional[str] = None,
    user: dict = Depends(require_user),
    conn=Depends(get_db),
):
    """Review events and card states changed after `since`.

    Pass the returned `cursor` back as `since` until `has_more` is false.
    """
    target_user = resolve_user_id(user, user_id)
    events_ms, event_key, states_ms, state_key = _parse_sync_cursor(since)
    events = fetch_all(
        conn,
        f"""
        SELECT * FROM srs_review_events
        WHERE user_id = :user_id AND {_after_position("reviewed_at", "id", event_key)}
        ORDER BY reviewed_at, id
        LIMIT :limit
        """,
        {"user_id": target_user, "after_ms": events_ms, "after_key": event_key, "limit": SYNC_PAGE_SIZE},
    )
    states = fetch_all(
        conn,
        f"""
        SELECT * FROM srs_card_states
        WHERE user_id = :user_id AND {_after_position("updated_at", "card_id", state_key)}
        ORDER BY updated_at, card_id
        LIMIT :limit
        """,
        {"user_id": target_user, "after_ms": states_ms, "after_key": state_key, "limit": SYNC_PAGE_SIZE},
    )
    for state in states:
        state["suspended"] = bool(state["suspended"])
    if events:
        events_ms, event_key = int(events[-1]["reviewed_at"]), events[-1]["id"]
    if states:
        states_ms, state_key = int(states[-1]["updated_at"]), states[-1]["card_id"]
    return {
        "events": events,
        "states": states,
        "cursor": f"{events_ms}:{event_key}:{states_ms}:{state_key}",
        "has_more": len(events) == SYNC_PAGE_SIZE or len(states) == SYNC_PAGE_SIZE,
    }


@analytics_router.get("/srs")
async def srs_analytics(
    user_id: Optional[str] = None,
    user: dict = Depends(require_user),
    conn=Depends(get_db),
):
    target_user = resolve_user_id(user, user_id)
    now = now_ms()
    decks = fetch_all(
        conn,
        """
        SELECT d.id, d.name,
               (SELECT COUNT(*) FROM srs_cards c WHERE c.deck_id = d.id) AS total_cards,
               (SELECT COUNT(*) FROM srs_card_states s
                  WHERE s.deck_id = d.id AND s.user_id = :user_id) AS seen_cards,
               (SELECT COUNT(*) FROM srs_card_states s
                  WHERE s.deck_id = d.id AND s.user_id = :user_id
                    AND s.suspended = 0 AND s.due_at <= :now) AS due_now,
               (SELECT COUNT(*) FROM srs_card_states s
                  WHERE s.deck_id = d.id AND s.user_id = :user_id AND s.suspended = 1) AS suspended
        FROM srs_decks d
        WHERE d.user_id = :user_id OR d.user_id IS NULL
        ORDER BY d.name
        """,
        {"user_id": target_user, "now": now},
    )
    for deck in decks:
        deck["new_cards"] = int(deck["total_cards"]) - int(deck["seen_cards"])
    week = fetch_one(
        conn,
        """
        SELECT COUNT(*) AS reviews,
               SUM(CASE WHEN grade >= :pass_grade THEN 1 ELSE 0 END) AS passed,
               SUM(COALESCE(duration_ms, 0)) AS duration_ms
        FROM srs_review_events
        WHERE user_id = :user_id AND reviewed_at >= :since
        """,
        {"user_id": target_user, "since": now - 7 * DAY_MS, "pass_grade": PASS_GRADE},
    )
    reviews = int(week["reviews"] or 0)
    passed = int(week["passed"] or 0)
    recent = fetch_all(
        conn,
        """
        SELECT id, card_id, deck_id, grade, reviewed_at, prev_state, next_state, next_interval_days
        FROM srs_review_events
        WHERE user_id = :user_id
        ORDER BY reviewed_at DESC
        LIMIT 50
        """,
        {"user_id": target_user},
    )
    return {
        "user_id": target_user,
        "decks": decks,
        "last_7_days": {
            "reviews": reviews,
            "passed": passed,
            "pass_rate": round(passed / reviews * 100, 1) if reviews else 0,
            "time_spent_ms": int(week["duration_ms"] or 0),
        },
        "recent_reviews": recent,
    }
