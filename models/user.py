from pydantic import BaseModel, validator
from typing import Optional


class UserBase(BaseModel):
    email: str
    name: Optional[str] = None

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if '@' not in v or v.startswith('@') or v.endswith('@'):
            raise ValueError("A valid email address is required")
        return v


class UserCreate(UserBase):
    password: str
    referral_code: Optional[str] = None

    @validator('password')
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class User(UserBase):
    id: str
    role: str = "USER"
    subscription_type: Optional[str] = None
    subscription_status: str = "TRIAL"
    subscription_expires_at: Optional[str] = None

    class Config:
        from_attributes = True
