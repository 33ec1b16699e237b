import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from config.constants import (
    ACCOUNT_ID_MAX_RETRIES,
    BLACKLIST_DEFAULT_DAYS,
    BLACKLIST_INACTIVE_REASON,
)
from config.env import ADMIN_NOTIFICATION_EMAILS
from database import mongo_transaction
from models.product import ProductStatus
from models.user import ApprovalStatus, Credentials, Role
from repositories.accounts import AccountRepository
from repositories.products import ProductRepository
from services.notifications import NotificationKind, Notifier, deliver
from utils.credentials import generate_password, generate_unique_account_id
from utils.errors import (
    AlreadyApproved,
    AlreadyBlacklisted,
    AlreadyRejected,
    ExhaustedRetries,
    NotBlacklisted,
    NotFound,
    UniqueConstraintViolation,
)
from utils.guards import require_reason
from utils.hash import hash_password

logger = logging.getLogger(__name__)

BLACKLIST_FIELDS = (
    "blacklist_reason",
    "blacklisted_at",
    "blacklist_expiry_date",
    "blacklisted_by",
)
REAPPLICATION_FIELDS = ("reapplication_date", "reapplication_reason")


@dataclass
class ApprovalResult:
    account: dict
    credentials: Credentials | None = None
    notification_sent: bool = False


@dataclass
class CascadeResult:
    seller: dict
    affected_products: int
    notification_sent: bool = False


@dataclass
class ReapplicationResult:
    seller: dict
    admins_notified: int = 0
    failed_recipients: list = field(default_factory=list)


class ModerationService:
    """
    Approval and blacklist transitions for seller and buyer accounts.

    Every transition is a conditional write guarded on the current state,
    so two concurrent calls cannot both succeed. Notifications go out after
    the write and never undo it.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        products: ProductRepository,
        notifier: Notifier,
        audit,
        transaction=mongo_transaction,
    ):
        self.accounts = accounts
        self.products = products
        self.notifier = notifier
        self.audit = audit
        self.transaction = transaction

    async def _load(self, account_id: str, role: Role) -> dict:
        account = await self.accounts.get(account_id)
        if not account or account.get("role") != role.value:
            raise NotFound(f"{role.value.capitalize()} not found")
        return account

    # =====================================================
    # APPROVE
    # =====================================================
    async def approve(self, role: Role, account_id: str, admin_id: str) -> ApprovalResult:
        account = await self._load(account_id, role)
        if account.get("approval_status") == ApprovalStatus.APPROVED.value:
            raise AlreadyApproved(f"{role.value.capitalize()} is already approved")

        now = datetime.utcnow()
        changes = {
            "approval_status": ApprovalStatus.APPROVED.value,
            "approved_at": now,
            "approved_by": admin_id,
        }
        unset = ("rejection_reason", "rejected_at", "rejected_by")
        guard = {"role": role.value, "approval_status": {"$ne": ApprovalStatus.APPROVED.value}}

        credentials = None
        if role == Role.BUYER:
            updated, credentials = await self._approve_with_credentials(
                account_id, guard, changes, unset
            )
        else:
            updated = await self.accounts.update_if(account_id, guard, changes, unset)

        if updated is None:
            # lost the race, or the account vanished in between
            await self._load(account_id, role)
            raise AlreadyApproved(f"{role.value.capitalize()} is already approved")

        await self.audit(admin_id, Role.ADMIN.value, f"{role.value.upper()}_APPROVED", {
            "account_id": account_id,
        })

        if role == Role.BUYER:
            sent = await deliver(self.notifier, NotificationKind.BUYER_APPROVED, updated["email"], {
                "name": updated.get("name", ""),
                "user_account_id": credentials.user_account_id,
                "password": credentials.password,
            })
        else:
            sent = await deliver(self.notifier, NotificationKind.SELLER_APPROVED, updated["email"], {
                "name": updated.get("name", ""),
            })

        return ApprovalResult(account=updated, credentials=credentials, notification_sent=sent)

    async def _approve_with_credentials(self, account_id, guard, changes, unset):
        """
        The unique index on user_account_id decides collisions; the
        existence check only keeps them rare.
        """
        for attempt in range(ACCOUNT_ID_MAX_RETRIES):
            user_account_id = await generate_unique_account_id(self.accounts.account_id_exists)
            password = generate_password()

            try:
                updated = await self.accounts.update_if(
                    account_id,
                    guard,
                    {
                        **changes,
                        "user_account_id": user_account_id,
                        "password_hash": hash_password(password),
                    },
                    unset,
                )
            except UniqueConstraintViolation:
                logger.warning("ACCOUNT_ID_CONFLICT attempt=%s account=%s", attempt + 1, account_id)
                continue

            return updated, Credentials(user_account_id=user_account_id, password=password)

        raise ExhaustedRetries("Could not issue a unique user account ID")

    # =====================================================
    # REJECT
    # =====================================================
    async def reject(self, role: Role, account_id: str, admin_id: str, reason: str | None) -> ApprovalResult:
        reason = require_reason(reason)
        account = await self._load(account_id, role)
        if account.get("approval_status") == ApprovalStatus.REJECTED.value:
            raise AlreadyRejected(f"{role.value.capitalize()} is already rejected")

        updated = await self.accounts.update_if(
            account_id,
            {"role": role.value, "approval_status": {"$ne": ApprovalStatus.REJECTED.value}},
            {
                "approval_status": ApprovalStatus.REJECTED.value,
                "rejection_reason": reason,
                "rejected_at": datetime.utcnow(),
                "rejected_by": admin_id,
            },
            unset=("approved_at", "approved_by"),
        )
        if updated is None:
            await self._load(account_id, role)
            raise AlreadyRejected(f"{role.value.capitalize()} is already rejected")

        await self.audit(admin_id, Role.ADMIN.value, f"{role.value.upper()}_REJECTED", {
            "account_id": account_id,
            "reason": reason,
        })

        kind = NotificationKind.BUYER_REJECTED if role == Role.BUYER else NotificationKind.SELLER_REJECTED
        sent = await deliver(self.notifier, kind, updated["email"], {
            "name": updated.get("name", ""),
            "reason": reason,
        })
        return ApprovalResult(account=updated, notification_sent=sent)

    # =====================================================
    # BLACKLIST
    # =====================================================
    async def blacklist(
        self,
        seller_id: str,
        admin_id: str,
        reason: str | None,
        expiry_date: datetime | None = None,
    ) -> CascadeResult:
        reason = require_reason(reason)
        seller = await self._load(seller_id, Role.SELLER)
        if seller.get("is_blacklisted"):
            raise AlreadyBlacklisted()

        now = datetime.utcnow()
        expiry_date = expiry_date or now + timedelta(days=BLACKLIST_DEFAULT_DAYS)

        async with self.transaction() as session:
            updated = await self.accounts.update_if(
                seller_id,
                {"role": Role.SELLER.value, "is_blacklisted": {"$ne": True}},
                {
                    "is_blacklisted": True,
                    "blacklist_reason": reason,
                    "blacklisted_at": now,
                    "blacklist_expiry_date": expiry_date,
                    "blacklisted_by": admin_id,
                },
                unset=REAPPLICATION_FIELDS,
                session=session,
            )
            if updated is None:
                raise AlreadyBlacklisted()

            # every product, whatever its prior status
            affected = await self.products.set_status_for_seller(
                str(seller["_id"]),
                ProductStatus.INACTIVE.value,
                changes={"inactive_reason": BLACKLIST_INACTIVE_REASON},
                session=session,
            )

        logger.info("SELLER_BLACKLISTED seller=%s products=%s", seller_id, affected)
        await self.audit(admin_id, Role.ADMIN.value, "SELLER_BLACKLISTED", {
            "seller_id": seller_id,
            "reason": reason,
            "expiry_date": expiry_date.isoformat(),
            "affected_products": affected,
        })

        sent = await deliver(self.notifier, NotificationKind.SELLER_BLACKLISTED, updated["email"], {
            "name": updated.get("name", ""),
            "reason": reason,
            "expiry_date": expiry_date.strftime("%Y-%m-%d"),
        })
        return CascadeResult(seller=updated, affected_products=affected, notification_sent=sent)

    async def remove_blacklist(self, seller_id: str, admin_id: str) -> CascadeResult:
        seller = await self._load(seller_id, Role.SELLER)
        if not seller.get("is_blacklisted"):
            raise NotBlacklisted()

        async with self.transaction() as session:
            updated = await self.accounts.update_if(
                seller_id,
                {"role": Role.SELLER.value, "is_blacklisted": True},
                {"is_blacklisted": False},
                unset=BLACKLIST_FIELDS + REAPPLICATION_FIELDS,
                session=session,
            )
            if updated is None:
                raise NotBlacklisted()

            # cannot tell blacklist-inactive from otherwise-inactive on legacy rows
            reactivated = await self.products.set_status_for_seller(
                str(seller["_id"]),
                ProductStatus.ACTIVE.value,
                only_status=ProductStatus.INACTIVE.value,
                unset=("inactive_reason",),
                session=session,
            )

        logger.info("SELLER_BLACKLIST_REMOVED seller=%s products=%s", seller_id, reactivated)
        await self.audit(admin_id, Role.ADMIN.value, "SELLER_BLACKLIST_REMOVED", {
            "seller_id": seller_id,
            "reactivated_products": reactivated,
        })

        sent = await deliver(self.notifier, NotificationKind.BLACKLIST_REMOVED, updated["email"], {
            "name": updated.get("name", ""),
        })
        return CascadeResult(seller=updated, affected_products=reactivated, notification_sent=sent)

    # =====================================================
    # REAPPLICATION
    # =====================================================
    async def request_reapplication(self, seller_id: str, reason: str | None) -> ReapplicationResult:
        seller = await self._load(seller_id, Role.SELLER)
        if not seller.get("is_blacklisted"):
            raise NotBlacklisted()
        reason = require_reason(reason)

        updated = await self.accounts.update_if(
            seller_id,
            {"role": Role.SELLER.value, "is_blacklisted": True},
            {"reapplication_date": datetime.utcnow(), "reapplication_reason": reason},
        )
        if updated is None:
            raise NotBlacklisted()

        await self.audit(seller_id, Role.SELLER.value, "SELLER_REAPPLICATION_REQUESTED", {
            "reason": reason,
        })

        recipients = ADMIN_NOTIFICATION_EMAILS or await self.accounts.emails_for_role(Role.ADMIN.value)
        result = ReapplicationResult(seller=updated)
        for email in recipients:
            sent = await deliver(self.notifier, NotificationKind.REAPPLICATION_REQUESTED, email, {
                "seller_name": updated.get("name", ""),
                "seller_email": updated.get("email", ""),
                "reason": reason,
            })
            if sent:
                result.admins_notified += 1
            else:
                result.failed_recipients.append(email)
        return result

    # =====================================================
    # LISTINGS / STATS
    # =====================================================
    async def list_accounts(
        self,
        role: Role,
        status: ApprovalStatus | None = None,
        blacklisted: bool | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = 20,
    ):
        filters = {"role": role.value}
        if status:
            filters["approval_status"] = status.value
        if blacklisted is not None:
            filters["is_blacklisted"] = blacklisted
        if search:
            filters["name"] = {"$regex": re.escape(search), "$options": "i"}
        return await self.accounts.find_page(filters, skip, limit)

    async def account_stats(self) -> dict:
        stats = {}
        for role in (Role.SELLER, Role.BUYER):
            counts = {}
            for status in ApprovalStatus:
                counts[status.value] = await self.accounts.count({
                    "role": role.value,
                    "approval_status": status.value,
                })
            counts["total"] = sum(counts.values())
            stats[f"{role.value}s"] = counts
        return stats

    async def blacklist_stats(self) -> dict:
        now = datetime.utcnow()
        base = {"role": Role.SELLER.value, "is_blacklisted": True}
        return {
            "blacklisted": await self.accounts.count(base),
            "pending_reapplications": await self.accounts.count({
                **base, "reapplication_date": {"$exists": True},
            }),
            "expired": await self.accounts.count({
                **base, "blacklist_expiry_date": {"$lt": now},
            }),
        }
