from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Users
    await _create_index_safe(
        db.users,
        [("email", ASCENDING)],
        name="users_email_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.users,
        [("user_account_id", ASCENDING)],
        name="users_account_id_unique_idx",
        unique=True,
        sparse=True,
    )
    await _create_index_safe(
        db.users,
        [("role", ASCENDING), ("approval_status", ASCENDING)],
        name="users_role_approval_status_idx",
    )
    await _create_index_safe(
        db.users,
        [("role", ASCENDING), ("is_blacklisted", ASCENDING)],
        name="users_role_blacklisted_idx",
    )

    # OTP
    await _create_index_safe(
        db.otp_codes,
        [("email", ASCENDING), ("purpose", ASCENDING)],
        name="otp_email_purpose_idx",
    )
    await _create_index_safe(
        db.otp_codes,
        [("expires_at", ASCENDING)],
        name="otp_expires_ttl_idx",
        expireAfterSeconds=0,
    )

    # Rate limits
    await _create_index_safe(
        db.rate_limits,
        [("key", ASCENDING)],
        name="rate_limits_key_unique_idx",
        unique=True,
    )

    # Products
    await _create_index_safe(
        db.products,
        [("status", ASCENDING), ("is_admin_approved", ASCENDING), ("created_at", DESCENDING)],
        name="products_public_listing_idx",
    )
    await _create_index_safe(
        db.products,
        [("seller_id", ASCENDING), ("status", ASCENDING)],
        name="products_seller_status_idx",
    )
    await _create_index_safe(
        db.products,
        [("slug", ASCENDING)],
        name="products_slug_unique_idx",
        unique=True,
    )

    # Assets
    await _create_index_safe(
        db.assets,
        [("object_key", ASCENDING)],
        name="assets_object_key_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.assets,
        [("status", ASCENDING), ("updated_at", ASCENDING)],
        name="assets_status_updated_idx",
    )

    # Entitlements
    await _create_index_safe(
        db.entitlements,
        [("buyer_id", ASCENDING), ("product_id", ASCENDING)],
        name="entitlements_buyer_product_unique_idx",
        unique=True,
    )

    # Audit
    await _create_index_safe(
        db.audit_logs,
        [("action", ASCENDING), ("created_at", DESCENDING)],
        name="audit_logs_action_created_idx",
    )
