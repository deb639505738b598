from pydantic import BaseModel
from typing import Any, Dict, Optional
from enum import Enum


class SponsorTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    TITLE = "TITLE"
    FOUNDING = "FOUNDING"


class SponsorStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    CANCELLED = "CANCELLED"


class PlacementType(str, Enum):
    HOMEPAGE_STRIP = "HOMEPAGE_STRIP"
    ABOVE_FOLD = "ABOVE_FOLD"
    IN_APP_TILE = "IN_APP_TILE"
    RESOURCE_PAGE = "RESOURCE_PAGE"
    PARTNER_DIRECTORY = "PARTNER_DIRECTORY"
    FEATURED_PARTNER = "FEATURED_PARTNER"


class EventType(str, Enum):
    IMPRESSION = "IMPRESSION"
    CLICK = "CLICK"
    CTA_CLICK = "CTA_CLICK"
    CONVERSION = "CONVERSION"


class SponsorCreate(BaseModel):
    company_name: str
    contact_email: str
    contact_name: Optional[str] = None
    category: Optional[str] = None
    tier: SponsorTier = SponsorTier.BRONZE
    status: SponsorStatus = SponsorStatus.PENDING
    monthly_fee: int = 0
    logo_url: Optional[str] = None
    landing_url: Optional[str] = None
    cta_text: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class SponsorUpdate(BaseModel):
    company_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_name: Optional[str] = None
    category: Optional[str] = None
    tier: Optional[SponsorTier] = None
    status: Optional[SponsorStatus] = None
    monthly_fee: Optional[int] = None
    logo_url: Optional[str] = None
    landing_url: Optional[str] = None
    cta_text: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class PlacementCreate(BaseModel):
    placement_type: PlacementType
    position: int = 0
    is_active: bool = True
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class PlacementUpdate(BaseModel):
    placement_type: Optional[PlacementType] = None
    position: Optional[int] = None
    is_active: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class SponsorEventCreate(BaseModel):
    sponsor_id: str
    event_type: EventType
    placement_id: Optional[str] = None
    user_id: Optional[str] = None
    page: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
