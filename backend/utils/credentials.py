import logging
import secrets
from typing import Awaitable, Callable

from config.constants import (
    ACCOUNT_ID_PREFIX,
    ACCOUNT_ID_ALPHABET,
    ACCOUNT_ID_LENGTH,
    ACCOUNT_ID_MAX_RETRIES,
    PASSWORD_LENGTH,
    PASSWORD_UPPER,
    PASSWORD_LOWER,
    PASSWORD_DIGITS,
    PASSWORD_SYMBOLS,
)
from utils.errors import ExhaustedRetries

logger = logging.getLogger(__name__)

_sysrand = secrets.SystemRandom()


# ===============================
# ACCOUNT IDS
# ===============================
def generate_account_id() -> str:
    random_part = "".join(secrets.choice(ACCOUNT_ID_ALPHABET) for _ in range(ACCOUNT_ID_LENGTH))
    return f"{ACCOUNT_ID_PREFIX}{random_part}"


def is_account_id(value: str) -> bool:
    if not value or not value.startswith(ACCOUNT_ID_PREFIX):
        return False
    tail = value[len(ACCOUNT_ID_PREFIX):]
    return len(tail) == ACCOUNT_ID_LENGTH and all(c in ACCOUNT_ID_ALPHABET for c in tail)


async def generate_unique_account_id(
    exists_check: Callable[[str], Awaitable[bool]],
    max_retries: int = ACCOUNT_ID_MAX_RETRIES,
) -> str:
    """
    Draw ids until exists_check reports no collision.
    The unique index on users.user_account_id stays the real guarantor;
    this lookup only keeps retries rare.
    """
    for attempt in range(max_retries):
        candidate = generate_account_id()
        if not await exists_check(candidate):
            return candidate
        logger.warning("ACCOUNT_ID_COLLISION attempt=%s", attempt + 1)

    raise ExhaustedRetries(f"Failed to generate unique user account ID after {max_retries} attempts")


# ===============================
# PASSWORDS
# ===============================
PASSWORD_CLASSES = (PASSWORD_UPPER, PASSWORD_LOWER, PASSWORD_DIGITS, PASSWORD_SYMBOLS)


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    if length < len(PASSWORD_CLASSES):
        raise ValueError("Password length too short for required character classes")

    chars = [secrets.choice(cls) for cls in PASSWORD_CLASSES]

    union = "".join(PASSWORD_CLASSES)
    chars += [secrets.choice(union) for _ in range(length - len(chars))]

    _sysrand.shuffle(chars)
    return "".join(chars)


def meets_password_policy(password: str) -> bool:
    return all(any(c in cls for c in password) for cls in PASSWORD_CLASSES)
