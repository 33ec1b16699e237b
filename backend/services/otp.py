import logging
from datetime import datetime

from config.constants import (
    OTP_EXPIRY_MINUTES,
    OTP_MAX_ATTEMPTS,
    OTP_RATE_LIMIT_REQUESTS,
    OTP_RATE_LIMIT_WINDOW_SECONDS,
)
from models.otp import OtpPurpose
from repositories.accounts import AccountRepository
from repositories.otp import OtpRepository
from services.notifications import NotificationKind, Notifier, deliver
from utils.errors import InvalidOrExpired, NotFound, NotificationFailed, ValidationFailed
from utils.hash import check_password_length, hash_password
from utils.otp import generate_otp, hash_otp, otp_expiry, verify_hash

logger = logging.getLogger(__name__)


class OtpManager:
    """
    Single-use codes keyed by (email, purpose).

    Issuing a code drops any unused one for the same key, so at most one
    code is live at a time. Codes are stored hashed.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        otps: OtpRepository,
        notifier: Notifier,
        limiter,
    ):
        self.accounts = accounts
        self.otps = otps
        self.notifier = notifier
        self.limiter = limiter

    async def request_code(self, email: str, purpose: OtpPurpose = OtpPurpose.PASSWORD_RESET) -> None:
        email = email.lower()
        await self.limiter(
            f"otp:{purpose.value}:{email}",
            OTP_RATE_LIMIT_REQUESTS,
            OTP_RATE_LIMIT_WINDOW_SECONDS,
        )

        if not await self.accounts.find_by_email(email):
            raise NotFound("No account with this email")

        await self.otps.delete_unused(email, purpose.value)

        code = generate_otp()
        await self.otps.create({
            "email": email,
            "purpose": purpose.value,
            "code_hash": hash_otp(code),
            "expires_at": otp_expiry(),
            "is_used": False,
            "attempts": 0,
        })

        sent = await deliver(self.notifier, NotificationKind.OTP_CODE, email, {
            "code": code,
            "expires_in_minutes": OTP_EXPIRY_MINUTES,
        })
        if not sent:
            raise NotificationFailed("Could not send the code. Please try again.")

    async def _live_match(self, email: str, code: str, purpose: OtpPurpose) -> dict | None:
        record = await self.otps.find_live(email.lower(), purpose.value, datetime.utcnow())
        if not record:
            return None

        if record.get("attempts", 0) >= OTP_MAX_ATTEMPTS:
            await self.otps.discard(record["_id"])
            return None

        if not verify_hash(code, record["code_hash"]):
            attempts = await self.otps.record_failure(record["_id"])
            if attempts >= OTP_MAX_ATTEMPTS:
                logger.warning("OTP_ATTEMPTS_EXHAUSTED purpose=%s email=%s", purpose.value, email.lower())
                await self.otps.discard(record["_id"])
            return None

        return record

    async def verify(self, email: str, code: str, purpose: OtpPurpose = OtpPurpose.PASSWORD_RESET) -> bool:
        """Check without consuming."""
        return await self._live_match(email, code, purpose) is not None

    async def consume(
        self,
        email: str,
        code: str,
        purpose: OtpPurpose = OtpPurpose.PASSWORD_RESET,
        new_password: str | None = None,
    ) -> dict:
        if purpose == OtpPurpose.PASSWORD_RESET:
            if new_password is None:
                raise ValidationFailed("New password is required")
            check_password_length(new_password)

        record = await self._live_match(email, code, purpose)
        if record is None:
            raise InvalidOrExpired()

        # claim first so two concurrent consumes cannot both apply
        if await self.otps.claim(record["_id"]) is None:
            raise InvalidOrExpired()

        try:
            account = await self._apply(email.lower(), purpose, new_password)
        except Exception:
            await self.otps.release(record["_id"])
            raise

        logger.info("OTP_CONSUMED purpose=%s account=%s", purpose.value, account["_id"])
        return account

    async def _apply(self, email: str, purpose: OtpPurpose, new_password: str | None) -> dict:
        account = await self.accounts.find_by_email(email)
        if not account:
            raise NotFound("No account with this email")

        now = datetime.utcnow()
        if purpose == OtpPurpose.PASSWORD_RESET:
            changes = {"password_hash": hash_password(new_password), "password_changed_at": now}
        else:
            changes = {"email_verified": True, "email_verified_at": now}

        updated = await self.accounts.update_if(str(account["_id"]), {}, changes)
        if updated is None:
            raise NotFound("No account with this email")
        return updated
