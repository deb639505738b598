from pydantic import BaseModel
from typing import Optional


class ClickCreate(BaseModel):
    affiliate_code: str
    visitor_id: Optional[str] = None
    referrer: Optional[str] = None
    landing_page: Optional[str] = None


class ReferralCreate(BaseModel):
    affiliate_code: str
    referred_user_id: str
    subscription_type: str
    monthly_value: int
