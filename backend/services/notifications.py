import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum

import resend

from config.env import (
    RESEND_API_KEY,
    EMAIL_FROM,
    NOTIFICATION_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SELLER_APPROVED = "seller_approved"
    SELLER_REJECTED = "seller_rejected"
    BUYER_APPROVED = "buyer_approved"
    BUYER_REJECTED = "buyer_rejected"
    SELLER_BLACKLISTED = "seller_blacklisted"
    BLACKLIST_REMOVED = "blacklist_removed"
    REAPPLICATION_REQUESTED = "reapplication_requested"
    PRODUCT_APPROVED = "product_approved"
    PRODUCT_REJECTED = "product_rejected"
    OTP_CODE = "otp_code"


# kind -> (subject, text body); bodies are formatted with the payload
TEMPLATES = {
    NotificationKind.SELLER_APPROVED: (
        "Your seller account has been approved",
        "Hi {name},\n\nYour seller account is approved. You can now list products.",
    ),
    NotificationKind.SELLER_REJECTED: (
        "Your seller application was not approved",
        "Hi {name},\n\nYour seller application was rejected.\nReason: {reason}",
    ),
    NotificationKind.BUYER_APPROVED: (
        "Your buyer account has been approved",
        "Hi {name},\n\nYour account is approved. Sign in with:\n"
        "User ID: {user_account_id}\nPassword: {password}\n\n"
        "Please change your password after your first login.",
    ),
    NotificationKind.BUYER_REJECTED: (
        "Your buyer application was not approved",
        "Hi {name},\n\nYour buyer application was rejected.\nReason: {reason}",
    ),
    NotificationKind.SELLER_BLACKLISTED: (
        "Your seller account has been suspended",
        "Hi {name},\n\nYour seller account has been blacklisted.\nReason: {reason}\n"
        "The blacklist expires on {expiry_date}. After that you may request reactivation.",
    ),
    NotificationKind.BLACKLIST_REMOVED: (
        "Your seller account has been reactivated",
        "Hi {name},\n\nYour seller account has been removed from the blacklist "
        "and your inactive products are live again.",
    ),
    NotificationKind.REAPPLICATION_REQUESTED: (
        "Seller reapplication request",
        "Seller {seller_name} ({seller_email}) asked to be removed from the blacklist.\n"
        "Reason: {reason}",
    ),
    NotificationKind.PRODUCT_APPROVED: (
        "Your product has been approved",
        "Hi {name},\n\nYour product \"{product_name}\" is approved and visible to buyers.",
    ),
    NotificationKind.PRODUCT_REJECTED: (
        "Your product was not approved",
        "Hi {name},\n\nYour product \"{product_name}\" was rejected.\nReason: {reason}",
    ),
    NotificationKind.OTP_CODE: (
        "Your verification code",
        "Your code is {code}. It expires in {expires_in_minutes} minutes.",
    ),
}


def render(kind: NotificationKind, payload: dict) -> tuple[str, str]:
    subject, body = TEMPLATES[kind]
    return subject, body.format(**payload)


class Notifier(ABC):

    @abstractmethod
    async def send(self, kind: NotificationKind, recipient: str, payload: dict) -> bool:
        """True when the provider accepted the message."""


class ResendNotifier(Notifier):
    def __init__(self, api_key: str = RESEND_API_KEY, sender: str = EMAIL_FROM):
        self.api_key = api_key
        self.sender = sender

    async def send(self, kind, recipient, payload):
        subject, text = render(kind, payload)
        params = {
            "from": self.sender,
            "to": [recipient],
            "subject": subject,
            "text": text,
        }
        resend.api_key = self.api_key
        response = await asyncio.to_thread(resend.Emails.send, params)

        if not isinstance(response, dict) or not response.get("id"):
            logger.warning("NOTIFICATION_REJECTED kind=%s response=%s", kind.value, response)
            return False
        return True


class LoggingNotifier(Notifier):
    """Used when no provider key is configured."""

    async def send(self, kind, recipient, payload):
        subject, _ = render(kind, payload)
        logger.info("NOTIFICATION_LOGGED kind=%s to=%s subject=%s", kind.value, recipient, subject)
        return True


async def deliver(
    notifier: Notifier,
    kind: NotificationKind,
    recipient: str,
    payload: dict,
    timeout: float = NOTIFICATION_TIMEOUT_SECONDS,
) -> bool:
    """
    Send without letting delivery problems escape.
    Call only after the state change it reports has been written.
    """
    try:
        return await asyncio.wait_for(notifier.send(kind, recipient, payload), timeout)
    except Exception:
        logger.exception("NOTIFICATION_FAILED kind=%s to=%s", kind.value, recipient)
        return False


def build_notifier() -> Notifier:
    if (RESEND_API_KEY or "").strip():
        return ResendNotifier()
    return LoggingNotifier()
