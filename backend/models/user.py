from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    SELLER = "seller"
    BUYER = "buyer"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# -----------------------------
# REGISTRATION PAYLOADS
# -----------------------------

class StoreDetails(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None


class SellerRegistration(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    store_details: StoreDetails


class BuyerRegistration(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    phone: Optional[str] = None


# -----------------------------
# ADMIN ACTIONS
# -----------------------------

class RejectRequest(BaseModel):
    reason: Optional[str] = None


class BlacklistRequest(BaseModel):
    reason: Optional[str] = None
    expiry_date: Optional[datetime] = None


class ReapplicationRequest(BaseModel):
    reason: Optional[str] = None


# -----------------------------
# LOGIN
# -----------------------------

class EmailLogin(BaseModel):
    email: EmailStr
    password: str


class BuyerLogin(BaseModel):
    user_account_id: str
    password: str


class Credentials(BaseModel):
    user_account_id: str
    password: str


def public_account(account: dict) -> dict:
    """Account document without secrets."""
    hidden = {"password_hash", "refresh_token"}
    return {k: v for k, v in account.items() if k not in hidden}
