from bson import ObjectId
from bson.errors import InvalidId

from models.user import Role
from utils.errors import BadRequest, MissingReason, Unauthorized

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequest(f"Invalid {name}")


# -------------------------------
# Reason Guard
# -------------------------------

def require_reason(reason: str | None) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise MissingReason()
    return reason


# -------------------------------
# Seller State Guard
# -------------------------------

def assert_active_seller(user: dict):
    """Approved and not blacklisted."""
    if user.get("role") != Role.SELLER.value:
        raise Unauthorized("Seller access only")
    if user.get("approval_status") != "approved":
        raise Unauthorized("Seller account is not approved")
    if user.get("is_blacklisted"):
        raise Unauthorized("Seller account is blacklisted")
