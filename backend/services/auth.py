import logging

from models.user import (
    ApprovalStatus,
    BuyerRegistration,
    Role,
    SellerRegistration,
)
from repositories.accounts import AccountRepository
from utils.errors import Unauthenticated, UniqueConstraintViolation
from utils.hash import hash_password, verify_password
from utils.jwt import issue_session_token

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, accounts: AccountRepository):
        self.accounts = accounts

    # =====================================================
    # REGISTRATION (accounts start pending)
    # =====================================================
    async def register_seller(self, data: SellerRegistration) -> dict:
        await self._ensure_email_free(data.email)
        return await self.accounts.create({
            "role": Role.SELLER.value,
            "name": data.name,
            "email": data.email,
            "password_hash": hash_password(data.password),
            "store_details": data.store_details.model_dump(),
            "approval_status": ApprovalStatus.PENDING.value,
            "is_blacklisted": False,
        })

    async def register_buyer(self, data: BuyerRegistration) -> dict:
        # credentials are issued on approval, never at registration
        await self._ensure_email_free(data.email)
        return await self.accounts.create({
            "role": Role.BUYER.value,
            **data.model_dump(),
            "approval_status": ApprovalStatus.PENDING.value,
        })

    async def _ensure_email_free(self, email: str):
        if await self.accounts.find_by_email(email):
            raise UniqueConstraintViolation("Email already registered")

    # =====================================================
    # LOGIN
    # =====================================================
    async def login_with_email(self, email: str, password: str) -> dict:
        account = await self.accounts.find_by_email(email)
        if (
            not account
            or account.get("role") not in (Role.SELLER.value, Role.ADMIN.value)
            or not verify_password(password, account.get("password_hash"))
        ):
            raise Unauthenticated("Invalid credentials")
        return self._session(account)

    async def login_buyer(self, user_account_id: str, password: str) -> dict:
        account = await self.accounts.find_by_account_id(user_account_id)
        if (
            not account
            or account.get("role") != Role.BUYER.value
            or account.get("approval_status") != ApprovalStatus.APPROVED.value
            or not verify_password(password, account.get("password_hash"))
        ):
            raise Unauthenticated("Invalid credentials")
        return self._session(account)

    def _session(self, account: dict) -> dict:
        logger.info("LOGIN role=%s account=%s", account["role"], account["_id"])
        token = issue_session_token(account)
        return {
            "access_token": token,
            "token_type": "bearer",
            "role": account["role"],
        }
