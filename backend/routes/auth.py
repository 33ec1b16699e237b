from fastapi import APIRouter, Depends

from models.otp import OtpRequest, OtpVerify, PasswordResetConfirm
from models.user import (
    BuyerLogin,
    BuyerRegistration,
    EmailLogin,
    SellerRegistration,
    public_account,
)
from services.providers import get_auth_service, get_otp_manager
from utils.mongo import serialize_doc
from utils.security import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


# =====================================================
# REGISTRATION
# =====================================================
@router.post("/register/seller", status_code=201)
async def register_seller(data: SellerRegistration, auth=Depends(get_auth_service)):
    account = await auth.register_seller(data)
    return {
        "message": "Registration received. An admin will review your account.",
        "user": serialize_doc(public_account(account)),
    }


@router.post("/register/buyer", status_code=201)
async def register_buyer(data: BuyerRegistration, auth=Depends(get_auth_service)):
    account = await auth.register_buyer(data)
    return {
        "message": "Registration received. Login details will be emailed after approval.",
        "user": serialize_doc(public_account(account)),
    }


# =====================================================
# LOGIN
# =====================================================
@router.post("/login")
async def login(data: EmailLogin, auth=Depends(get_auth_service)):
    return await auth.login_with_email(data.email, data.password)


@router.post("/buyer/login")
async def buyer_login(data: BuyerLogin, auth=Depends(get_auth_service)):
    return await auth.login_buyer(data.user_account_id, data.password)


@router.get("/me")
async def me(user=Depends(get_current_user)):
    return serialize_doc(public_account(user))


# =====================================================
# PASSWORD RESET
# =====================================================
@router.post("/password-reset/request")
async def request_password_reset(data: OtpRequest, otp=Depends(get_otp_manager)):
    await otp.request_code(data.email, data.purpose)
    return {"message": "Verification code sent"}


@router.post("/password-reset/verify")
async def verify_password_reset(data: OtpVerify, otp=Depends(get_otp_manager)):
    return {"valid": await otp.verify(data.email, data.code, data.purpose)}


@router.post("/password-reset/confirm")
async def confirm_password_reset(data: PasswordResetConfirm, otp=Depends(get_otp_manager)):
    await otp.consume(data.email, data.code, data.purpose, data.new_password)
    return {"message": "Password updated"}
