from __future__ import annotations

import re
from typing import Iterable, List

from sqlalchemy import bindparam, text

from db.database import new_id

_TAG_SPLIT_RE = re.compile(r"[,\n]+")


def parse_tag_names(raw) -> List[str]:
    """Split a comma/newline string (or a list) into unique lower-cased tag names."""
    if not raw:
        return []
    parts = _TAG_SPLIT_RE.split(raw) if isinstance(raw, str) else list(raw)
    seen = set()
    tags: List[str] = []
    for part in parts:
        name = str(part).strip()
        if not name:
            continue
        normalized = name.lower()
        if normalized in seen:
            continue
        seen.add(normalized)
        tags.append(normalized)
    return tags


def upsert_tags(conn, tag_names: Iterable[str]) -> List[str]:
    names = list(tag_names)
    if not names:
        return []
    for name in names:
        conn.execute(
            text("INSERT INTO srs_tags (id, name) VALUES (:id, :name) ON CONFLICT(name) DO NOTHING"),
            {"id": new_id(), "name": name},
        )
    rows = conn.execute(
        text("SELECT id, name FROM srs_tags WHERE name IN :names").bindparams(
            bindparam("names", expanding=True)
        ),
        {"names": names},
    ).mappings().all()
    id_map = {row["name"]: row["id"] for row in rows}
    return [id_map[name] for name in names if name in id_map]


def set_card_tags(conn, card_id: str, tag_names: Iterable[str]) -> None:
    conn.execute(text("DELETE FROM srs_card_tags WHERE card_id = :card_id"), {"card_id": card_id})
    for tag_id in upsert_tags(conn, tag_names):
        conn.execute(
            text(
                "INSERT INTO srs_card_tags (card_id, tag_id) VALUES (:card_id, :tag_id) "
                "ON CONFLICT(card_id, tag_id) DO NOTHING"
            ),
            {"card_id": card_id, "tag_id": tag_id},
        )
