from datetime import datetime, timedelta
from jose import jwt, ExpiredSignatureError, JWTError
from config.env import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_DAYS
from utils.errors import Unauthenticated


def _signing_key() -> str:
    secret = (JWT_SECRET or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def create_access_token(claims: dict, lifetime: timedelta | None = None) -> str:
    issued_at = datetime.utcnow()
    body = {
        **claims,
        "iat": issued_at,
        "exp": issued_at + (lifetime or timedelta(days=ACCESS_TOKEN_DAYS)),
    }
    return jwt.encode(body, _signing_key(), algorithm=JWT_ALGORITHM)


def issue_session_token(account: dict) -> str:
    """Bearer token naming the account and its role."""
    return create_access_token({"sub": str(account["_id"]), "role": account["role"]})


def decode_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthenticated("Session expired")
    except JWTError:
        raise Unauthenticated("Invalid token")

    if not claims.get("sub"):
        raise Unauthenticated("Invalid token payload")
    return claims
