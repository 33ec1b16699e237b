import hashlib
import hmac
import secrets
from datetime import datetime, timedelta

from config.env import OTP_SECRET
from config.constants import OTP_LENGTH, OTP_EXPIRY_MINUTES


# ===============================
# GENERATE NUMERIC OTP
# ===============================
def generate_otp() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


# ===============================
# OTP EXPIRY (10 MINUTES)
# ===============================
def otp_expiry(now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(minutes=OTP_EXPIRY_MINUTES)


# ===============================
# HASH OTP
# ===============================
def hash_otp(otp: str) -> str:
    secret = (OTP_SECRET or "").strip()
    if secret:
        return hmac.new(secret.encode(), otp.encode(), hashlib.sha256).hexdigest()
    return hashlib.sha256(otp.encode()).hexdigest()


# ===============================
# VERIFY OTP
# ===============================
def verify_hash(plain_otp: str, hashed_otp: str) -> bool:
    return hmac.compare_digest(hash_otp(plain_otp), hashed_otp)
