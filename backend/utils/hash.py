from passlib.context import CryptContext

from config.constants import MIN_PASSWORD_LENGTH
from utils.errors import ValidationFailed

# bcrypt configuration
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto"
)

# bcrypt hard limit
MAX_BCRYPT_BYTES = 72


def check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        raise ValidationFailed("Password too long (max 72 bytes)")


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.
    Generated and user-chosen passwords both pass through here.
    """
    check_password_length(password)
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Buyers have no hash until approval; that is a plain mismatch.
    """
    if not hashed_password:
        return False
    if len(plain_password.encode("utf-8")) > MAX_BCRYPT_BYTES:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False
