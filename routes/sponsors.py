import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from db.database import fetch_all, fetch_one, get_db, insert_row, new_id, update_row, utc_now_iso
from models.sponsor import PlacementCreate, PlacementUpdate, SponsorCreate, SponsorEventCreate, SponsorUpdate
from utils.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter()

CLICK_EVENTS = ("CLICK", "CTA_CLICK")


def _enum_values(values: dict) -> dict:
    return {key: getattr(value, "value", value) for key, value in values.items()}


def _get_sponsor_or_404(conn, sponsor_id: str) -> dict:
    sponsor = fetch_one(conn, "SELECT * FROM sponsors WHERE id = :id", {"id": sponsor_id})
    if not sponsor:
        raise HTTPException(status_code=404, detail="Sponsor not found")
    return sponsor


def _get_placement_or_404(conn, sponsor_id: str, placement_id: str) -> dict:
    placement = fetch_one(
        conn,
        "SELECT * FROM sponsor_placements WHERE id = :id AND sponsor_id = :sponsor_id",
        {"id": placement_id, "sponsor_id": sponsor_id},
    )
    if not placement:
        raise HTTPException(status_code=404, detail="Placement not found")
    return placement


def _placement_out(row: dict) -> dict:
    row["is_active"] = bool(row["is_active"])
    return row


def _active_window() -> Dict[str, str]:
    return {"now": utc_now_iso(), "today": date.today().isoformat()}


@router.get("/public/active")
async def active_sponsors(conn=Depends(get_db)):
    rows = fetch_all(
        conn,
        """
        SELECT id, company_name, category, tier, logo_url, landing_url, cta_text, description
        FROM sponsors
        WHERE status = 'ACTIVE'
          AND (start_date IS NULL OR start_date <= :now)
          AND (end_date IS NULL OR end_date >= :today)
        ORDER BY tier, created_at DESC
        """,
        _active_window(),
    )
    return {"sponsors": rows}


@router.get("/placements/active")
async def active_placements(placement_type: Optional[str] = None, conn=Depends(get_db)):
    params: Dict[str, object] = _active_window()
    type_filter = ""
    if placement_type:
        type_filter = "AND p.placement_type = :placement_type"
        params["placement_type"] = placement_type
    rows = fetch_all(
        conn,
        f"""
        SELECT p.*, s.company_name, s.logo_url, s.landing_url, s.cta_text
        FROM sponsor_placements p
        JOIN sponsors s ON s.id = p.sponsor_id
        WHERE p.is_active = 1 AND s.status = 'ACTIVE'
          AND (p.start_date IS NULL OR p.start_date <= :now)
          AND (p.end_date IS NULL OR p.end_date >= :today)
          {type_filter}
        ORDER BY p.position
        """,
        params,
    )
    return {"placements": [_placement_out(row) for row in rows]}


@router.post("/track-event", status_code=status.HTTP_201_CREATED)
async def track_event(payload: SponsorEventCreate, conn=Depends(get_db)):
    """Record an impression or click. Storage failures never reach the caller."""
    event_id = new_id()
    try:
        insert_row(
            conn,
            "sponsor_events",
            {
                "id": event_id,
                "sponsor_id": payload.sponsor_id,
                "placement_id": payload.placement_id,
                "event_type": payload.event_type.value,
                "user_id": payload.user_id,
                "page": payload.page,
                "utm_source": payload.utm_source,
                "utm_medium": payload.utm_medium,
                "utm_campaign": payload.utm_campaign,
                "details": json.dumps(payload.metadata) if payload.metadata else None,
                "created_at": utc_now_iso(),
            },
        )
        conn.commit()
    except SQLAlchemyError:
        conn.rollback()
        logger.exception("Failed to track sponsor event for %s", payload.sponsor_id)
        return {"tracked": False}
    return {"tracked": True, "id": event_id}


@router.get("")
async def list_sponsors(
    status: Optional[str] = None,
    _admin: dict = Depends(require_admin),
    conn=Depends(get_db),
):
    if status:
        rows = fetch_all(
            conn, "SELECT * FROM sponsors WHERE status = :status ORDER BY created_at DESC", {"status": status}
        )
    else:
        rows = fetch_all(conn, "SELECT * FROM sponsors ORDER BY created_at DESC")
    return {"sponsors": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sponsor(payload: SponsorCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    if payload.monthly_fee < 0:
        raise HTTPException(status_code=400, detail="Monthly fee cannot be negative")
    now = utc_now_iso()
    sponsor = _enum_values(payload.model_dump())
    sponsor.update({"id": new_id(), "created_at": now, "updated_at": now})
    insert_row(conn, "sponsors", sponsor)
    conn.commit()
    logger.info("Created sponsor %s (%s)", sponsor["company_name"], sponsor["tier"])
    return sponsor


@router.get("/{sponsor_id}")
async def get_sponsor(sponsor_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    sponsor = _get_sponsor_or_404(conn, sponsor_id)
    sponsor["placements"] = [
        _placement_out(row)
        for row in fetch_all(
            conn,
            "SELECT * FROM sponsor_placements WHERE sponsor_id = :id ORDER BY position, created_at DESC",
            {"id": sponsor_id},
        )
    ]
    return sponsor


@router.put("/{sponsor_id}")
async def update_sponsor(
    sponsor_id: str, payload: SponsorUpdate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    _get_sponsor_or_404(conn, sponsor_id)
    values = _enum_values(payload.model_dump(exclude_unset=True))
    values["updated_at"] = utc_now_iso()
    update_row(conn, "sponsors", sponsor_id, values)
    conn.commit()
    return _get_sponsor_or_404(conn, sponsor_id)


@router.delete("/{sponsor_id}")
async def delete_sponsor(sponsor_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    _get_sponsor_or_404(conn, sponsor_id)
    conn.execute(text("DELETE FROM sponsors WHERE id = :id"), {"id": sponsor_id})
    conn.commit()
    return {"deleted": True}


@router.get("/{sponsor_id}/placements")
async def list_placements(sponsor_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)):
    _get_sponsor_or_404(conn, sponsor_id)
    rows = fetch_all(
        conn,
        "SELECT * FROM sponsor_placements WHERE sponsor_id = :id ORDER BY position, created_at DESC",
        {"id": sponsor_id},
    )
    return {"placements": [_placement_out(row) for row in rows]}


@router.post("/{sponsor_id}/placements", status_code=status.HTTP_201_CREATED)
async def create_placement(
    sponsor_id: str, payload: PlacementCreate, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    _get_sponsor_or_404(conn, sponsor_id)
    placement = _enum_values(payload.model_dump())
    placement.update(
        {
            "id": new_id(),
            "sponsor_id": sponsor_id,
            "is_active": int(payload.is_active),
            "created_at": utc_now_iso(),
        }
    )
    insert_row(conn, "sponsor_placements", placement)
    conn.commit()
    return _placement_out(placement)


@router.put("/{sponsor_id}/placements/{placement_id}")
async def update_placement(
    sponsor_id: str,
    placement_id: str,
    payload: PlacementUpdate,
    _admin: dict = Depends(require_admin),
    conn=Depends(get_db),
):
    values = _enum_values(payload.model_dump(exclude_unset=True))
    if "is_active" in values:
        values["is_active"] = int(bool(values["is_active"]))
    if not values:
        raise HTTPException(status_code=400, detail="Nothing to update")
    _get_placement_or_404(conn, sponsor_id, placement_id)
    update_row(conn, "sponsor_placements", placement_id, values)
    conn.commit()
    return _placement_out(_get_placement_or_404(conn, sponsor_id, placement_id))


@router.delete("/{sponsor_id}/placements/{placement_id}")
async def delete_placement(
    sponsor_id: str, placement_id: str, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    result = conn.execute(
        text("DELETE FROM sponsor_placements WHERE id = :id AND sponsor_id = :sponsor_id"),
        {"id": placement_id, "sponsor_id": sponsor_id},
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Placement not found")
    conn.commit()
    return {"deleted": True}


@router.get("/{sponsor_id}/analytics")
async def sponsor_analytics(
    sponsor_id: str, days: int = 30, _admin: dict = Depends(require_admin), conn=Depends(get_db)
):
    _get_sponsor_or_404(conn, sponsor_id)
    since = (datetime.now(timezone.utc) - timedelta(days=max(days, 0))).isoformat()
    rows = fetch_all(
        conn,
        """
        SELECT COALESCE(placement_id, 'unknown') AS placement_id, event_type, COUNT(*) AS total
        FROM sponsor_events
        WHERE sponsor_id = :sponsor_id AND created_at >= :since
        GROUP BY COALESCE(placement_id, 'unknown'), event_type
        """,
        {"sponsor_id": sponsor_id, "since": since},
    )
    totals = {"IMPRESSION": 0, "CLICK": 0, "CTA_CLICK": 0, "CONVERSION": 0}
    breakdown: Dict[str, Dict[str, float]] = {}
    for row in rows:
        count = int(row["total"])
        totals[row["event_type"]] = totals.get(row["event_type"], 0) + count
        placement = breakdown.setdefault(row["placement_id"], {"impressions": 0, "clicks": 0, "ctr": 0})
        if row["event_type"] == "IMPRESSION":
            placement["impressions"] += count
        elif row["event_type"] in CLICK_EVENTS:
            placement["clicks"] += count
    for placement in breakdown.values():
        placement["ctr"] = _ctr(placement["clicks"], placement["impressions"])
    clicks = totals["CLICK"] + totals["CTA_CLICK"]
    return {
        "sponsor_id": sponsor_id,
        "days": days,
        "impressions": totals["IMPRESSION"],
        "clicks": clicks,
        "cta_clicks": totals["CTA_CLICK"],
        "conversions": totals["CONVERSION"],
        "ctr": _ctr(clicks, totals["IMPRESSION"]),
        "placement_breakdown": breakdown,
    }


def _ctr(clicks: int, impressions: int) -> float:
    return round(clicks / impressions * 100, 2) if impressions else 0
