from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from utils.errors import BadRequest, Unauthenticated, Unauthorized
from utils.jwt import decode_token
from services.providers import get_account_repository

security = HTTPBearer(auto_error=False)


async def _resolve_user(credentials, accounts):
    payload = decode_token(credentials.credentials)

    account_id = payload.get("sub")
    if not account_id:
        raise Unauthenticated("Invalid token payload")

    try:
        user = await accounts.get(account_id)
    except BadRequest:
        raise Unauthenticated("Invalid token payload")
    if not user:
        raise Unauthenticated("User not found")

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    accounts=Depends(get_account_repository),
):
    if credentials is None:
        raise Unauthenticated()
    return await _resolve_user(credentials, accounts)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    accounts=Depends(get_account_repository),
):
    if credentials is None:
        return None
    return await _resolve_user(credentials, accounts)


def require_role(required_role: str):
    async def checker(user=Depends(get_current_user)):
        if user.get("role") != required_role:
            raise Unauthorized()
        return user

    return checker
