import asyncio
import re
from datetime import datetime, timedelta

import pytest

from models.user import BuyerRegistration, Role, SellerRegistration, StoreDetails
from services.moderation import ModerationService
from utils.credentials import meets_password_policy
from utils.errors import (
    AlreadyApproved,
    AlreadyBlacklisted,
    AlreadyRejected,
    ExhaustedRetries,
    MissingReason,
    NotBlacklisted,
    NotFound,
    Unauthenticated,
)
from utils.hash import verify_password

from fakes import FakeNotifier


# =====================================================
# APPROVAL
# =====================================================

def test_buyer_registration_to_login(auth, moderation, accounts, admin):
    async def run():
        buyer = await auth.register_buyer(BuyerRegistration(
            name="Riley", email="riley@example.com", company_name="Riley Events",
        ))
        assert buyer["approval_status"] == "pending"
        assert "user_account_id" not in buyer
        assert "password_hash" not in buyer

        result = await moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"]))
        creds = result.credentials
        assert re.fullmatch(r"CHARIOT[A-Z0-9]{5}", creds.user_account_id)
        assert meets_password_policy(creds.password)

        session = await auth.login_buyer(creds.user_account_id, creds.password)
        assert session["role"] == "buyer"
        assert session["access_token"]

        with pytest.raises(AlreadyApproved):
            await moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"]))

    asyncio.run(run())


def test_buyer_approval_persists_hash_not_password(moderation, accounts, make_buyer, admin, notifier):
    buyer = make_buyer(email="b@example.com")
    result = asyncio.run(moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])))

    stored = accounts.raw(buyer["_id"])
    assert stored["approval_status"] == "approved"
    assert stored["user_account_id"] == result.credentials.user_account_id
    assert stored["password_hash"] != result.credentials.password
    assert verify_password(result.credentials.password, stored["password_hash"])
    assert result.notification_sent is True
    assert notifier.kinds() == ["buyer_approved"]


def test_buyer_approval_survives_notification_failure(accounts, products, make_buyer, admin, audit):
    moderation = ModerationService(accounts, products, FakeNotifier(raises=RuntimeError("smtp down")), audit)
    buyer = make_buyer()

    result = asyncio.run(moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])))

    assert result.notification_sent is False
    assert result.credentials is not None
    assert accounts.raw(buyer["_id"])["approval_status"] == "approved"


def test_buyer_approval_retries_on_id_conflict(moderation, accounts, make_buyer, admin):
    buyer = make_buyer()
    accounts.forced_id_conflicts = 2

    result = asyncio.run(moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])))

    assert accounts.forced_id_conflicts == 0
    assert accounts.raw(buyer["_id"])["user_account_id"] == result.credentials.user_account_id


def test_buyer_approval_gives_up_after_repeated_conflicts(moderation, accounts, make_buyer, admin):
    buyer = make_buyer()
    accounts.forced_id_conflicts = 100

    with pytest.raises(ExhaustedRetries):
        asyncio.run(moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])))
    assert accounts.raw(buyer["_id"])["approval_status"] == "pending"


def test_concurrent_approvals_issue_one_set_of_credentials(moderation, make_buyer, admin):
    buyer = make_buyer()

    async def run():
        return await asyncio.gather(
            moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])),
            moderation.approve(Role.BUYER, str(buyer["_id"]), str(admin["_id"])),
            return_exceptions=True,
        )

    results = asyncio.run(run())
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, AlreadyApproved)]
    assert len(successes) == 1
    assert len(failures) == 1


def test_approve_missing_or_wrong_role(moderation, make_buyer, admin):
    buyer = make_buyer()
    with pytest.raises(NotFound):
        asyncio.run(moderation.approve(Role.SELLER, str(buyer["_id"]), str(admin["_id"])))
    with pytest.raises(NotFound):
        asyncio.run(moderation.approve(Role.BUYER, "0" * 24, str(admin["_id"])))


def test_seller_approval_clears_rejection(moderation, accounts, make_seller, admin):
    seller = make_seller(approval_status="pending")

    async def run():
        await moderation.reject(Role.SELLER, str(seller["_id"]), str(admin["_id"]), "incomplete documents")
        return await moderation.approve(Role.SELLER, str(seller["_id"]), str(admin["_id"]))

    result = asyncio.run(run())
    stored = accounts.raw(seller["_id"])
    assert stored["approval_status"] == "approved"
    assert "rejection_reason" not in stored
    assert "rejected_at" not in stored
    assert result.credentials is None


def test_reject_requires_reason(moderation, make_seller, admin):
    seller = make_seller(approval_status="pending")
    with pytest.raises(MissingReason):
        asyncio.run(moderation.reject(Role.SELLER, str(seller["_id"]), str(admin["_id"]), "   "))


def test_reject_twice(moderation, make_buyer, admin, notifier):
    buyer = make_buyer()

    async def run():
        await moderation.reject(Role.BUYER, str(buyer["_id"]), str(admin["_id"]), "no company details")
        with pytest.raises(AlreadyRejected):
            await moderation.reject(Role.BUYER, str(buyer["_id"]), str(admin["_id"]), "still no details")

    asyncio.run(run())
    assert notifier.kinds() == ["buyer_rejected"]


def test_approved_and_blacklisted_are_independent(moderation, accounts, seller, admin):
    asyncio.run(moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "fraud reports"))
    stored = accounts.raw(seller["_id"])
    assert stored["approval_status"] == "approved"
    assert stored["is_blacklisted"] is True


# =====================================================
# BLACKLIST
# =====================================================

def test_blacklist_deactivates_every_product(moderation, products, seller, make_seller, make_product, admin):
    statuses = ["active", "draft", "pending", "rejected", "inactive"]
    for status in statuses:
        make_product(seller, status=status)
    other = make_seller(email="other@example.com")
    bystander = make_product(other, status="active")

    result = asyncio.run(moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "counterfeit goods"))

    assert result.affected_products == len(statuses)
    owned = [d for d in products.store.docs.values() if d["seller_id"] == str(seller["_id"])]
    assert {d["status"] for d in owned} == {"inactive"}
    assert {d["inactive_reason"] for d in owned} == {"seller_blacklist"}
    assert products.raw(bystander["_id"])["status"] == "active"


def test_blacklist_default_expiry_is_thirty_days(moderation, accounts, seller, admin):
    before = datetime.utcnow()
    asyncio.run(moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "policy violation"))
    after = datetime.utcnow()

    stored = accounts.raw(seller["_id"])
    expiry = stored["blacklist_expiry_date"]
    assert before + timedelta(days=30) <= expiry <= after + timedelta(days=30)
    assert (expiry - stored["blacklisted_at"]) == timedelta(days=30)


def test_blacklist_keeps_explicit_expiry(moderation, accounts, seller, admin):
    expiry = datetime(2031, 1, 1)
    asyncio.run(moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam", expiry))
    assert accounts.raw(seller["_id"])["blacklist_expiry_date"] == expiry


def test_blacklist_guards(moderation, seller, admin):
    async def run():
        with pytest.raises(MissingReason):
            await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "")
        await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam")
        with pytest.raises(AlreadyBlacklisted):
            await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam again")

    asyncio.run(run())


def test_blacklist_notification_failure_is_not_fatal(accounts, products, seller, admin, audit):
    moderation = ModerationService(accounts, products, FakeNotifier(fail=True), audit)
    result = asyncio.run(moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam"))
    assert result.notification_sent is False
    assert accounts.raw(seller["_id"])["is_blacklisted"] is True
    assert "SELLER_BLACKLISTED" in audit.actions()


def test_remove_blacklist_reactivates_inactive_products(moderation, accounts, products, seller, make_product, admin):
    for status in ["active", "active", "draft"]:
        make_product(seller, status=status)

    async def run():
        await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam")
        await moderation.request_reapplication(str(seller["_id"]), "fixed listings")
        return await moderation.remove_blacklist(str(seller["_id"]), str(admin["_id"]))

    result = asyncio.run(run())

    assert result.affected_products == 3
    stored = accounts.raw(seller["_id"])
    assert stored["is_blacklisted"] is False
    for field in (
        "blacklist_reason", "blacklisted_at", "blacklist_expiry_date",
        "blacklisted_by", "reapplication_date", "reapplication_reason",
    ):
        assert field not in stored
    owned = [d for d in products.store.docs.values() if d["seller_id"] == str(seller["_id"])]
    assert {d["status"] for d in owned} == {"active"}
    assert all("inactive_reason" not in d for d in owned)


def test_remove_blacklist_when_not_blacklisted(moderation, seller, admin):
    with pytest.raises(NotBlacklisted):
        asyncio.run(moderation.remove_blacklist(str(seller["_id"]), str(admin["_id"])))


def test_blacklist_unknown_seller(moderation, admin):
    with pytest.raises(NotFound):
        asyncio.run(moderation.blacklist("0" * 24, str(admin["_id"]), "spam"))


# =====================================================
# REAPPLICATION
# =====================================================

def test_reapplication_notifies_admins(moderation, accounts, notifier, seller, admin):
    accounts.add(role="admin", name="Second admin", email="admin2@example.com")

    async def run():
        await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam")
        return await moderation.request_reapplication(str(seller["_id"]), "I removed the listings")

    result = asyncio.run(run())

    assert result.admins_notified == 2
    stored = accounts.raw(seller["_id"])
    assert stored["is_blacklisted"] is True
    assert stored["reapplication_reason"] == "I removed the listings"
    recipients = {to for kind, to, _ in notifier.sent if kind == "reapplication_requested"}
    assert recipients == {"admin@example.com", "admin2@example.com"}


def test_reapplication_guards(moderation, seller, admin):
    async def run():
        with pytest.raises(NotBlacklisted):
            await moderation.request_reapplication(str(seller["_id"]), "please")
        await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam")
        with pytest.raises(MissingReason):
            await moderation.request_reapplication(str(seller["_id"]), "")

    asyncio.run(run())


# =====================================================
# LISTINGS / STATS / LOGIN
# =====================================================

def test_account_stats_and_listing(moderation, make_seller, make_buyer, admin):
    make_seller(approval_status="pending", name="Pending Paper Co")
    make_seller(approval_status="approved", name="Approved Prints")
    make_buyer(approval_status="rejected")

    async def run():
        stats = await moderation.account_stats()
        items, total = await moderation.list_accounts(Role.SELLER, search="paper")
        return stats, items, total

    stats, items, total = asyncio.run(run())
    assert stats["sellers"]["pending"] == 1
    assert stats["sellers"]["approved"] == 1
    assert stats["buyers"]["rejected"] == 1
    assert total == 1
    assert items[0]["name"] == "Pending Paper Co"


def test_blacklist_stats(moderation, seller, make_seller, admin):
    expired = make_seller(email="old@example.com")

    async def run():
        await moderation.blacklist(str(seller["_id"]), str(admin["_id"]), "spam")
        await moderation.blacklist(
            str(expired["_id"]), str(admin["_id"]), "spam", datetime.utcnow() - timedelta(days=1)
        )
        await moderation.request_reapplication(str(expired["_id"]), "time served")
        return await moderation.blacklist_stats()

    stats = asyncio.run(run())
    assert stats == {"blacklisted": 2, "pending_reapplications": 1, "expired": 1}


def test_seller_registration_and_login(auth):
    async def run():
        seller = await auth.register_seller(SellerRegistration(
            name="Morgan",
            email="Morgan@Example.com",
            password="correct-horse",
            store_details=StoreDetails(name="Morgan Prints"),
        ))
        assert seller["approval_status"] == "pending"
        assert seller["is_blacklisted"] is False

        session = await auth.login_with_email("morgan@example.com", "correct-horse")
        assert session["role"] == "seller"

        with pytest.raises(Unauthenticated):
            await auth.login_with_email("morgan@example.com", "wrong-password")

    asyncio.run(run())


def test_unapproved_buyer_cannot_login(auth, make_buyer):
    make_buyer(user_account_id="CHARIOTAAAAA")
    with pytest.raises(Unauthenticated):
        asyncio.run(auth.login_buyer("CHARIOTAAAAA", "whatever-pass"))
