from pydantic import BaseModel, EmailStr, Field
from enum import Enum


class OtpPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class OtpRequest(BaseModel):
    email: EmailStr
    purpose: OtpPurpose = OtpPurpose.PASSWORD_RESET


class OtpVerify(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)
    purpose: OtpPurpose = OtpPurpose.PASSWORD_RESET


class PasswordResetConfirm(OtpVerify):
    new_password: str
