import asyncio
import re

import pytest

from config.constants import PASSWORD_LENGTH, PASSWORD_SYMBOLS
from utils.credentials import (
    generate_account_id,
    generate_password,
    generate_unique_account_id,
    is_account_id,
    meets_password_policy,
)
from utils.errors import ExhaustedRetries

ACCOUNT_ID_PATTERN = re.compile(r"^CHARIOT[A-Z0-9]{5}$")


async def never_taken(_candidate):
    return False


async def always_taken(_candidate):
    return True


def test_account_id_shape():
    for _ in range(200):
        account_id = generate_account_id()
        assert ACCOUNT_ID_PATTERN.match(account_id)
        assert is_account_id(account_id)


def test_is_account_id_rejects_foreign_values():
    assert not is_account_id("")
    assert not is_account_id("CHARIOTabcde")
    assert not is_account_id("CHARIOT1234")
    assert not is_account_id("OTHER12345")


def test_thousand_unique_ids_without_collisions():
    async def run():
        return [await generate_unique_account_id(never_taken) for _ in range(1000)]

    ids = asyncio.run(run())
    assert len(set(ids)) == 1000
    assert all(ACCOUNT_ID_PATTERN.match(i) for i in ids)


def test_retries_past_collisions():
    seen = []

    async def taken_twice(candidate):
        seen.append(candidate)
        return len(seen) <= 2

    account_id = asyncio.run(generate_unique_account_id(taken_twice))
    assert len(seen) == 3
    assert account_id == seen[-1]


def test_exhausted_retries():
    calls = []

    async def taken(candidate):
        calls.append(candidate)
        return True

    with pytest.raises(ExhaustedRetries):
        asyncio.run(generate_unique_account_id(taken, max_retries=4))
    assert len(calls) == 4


def test_password_composition():
    for _ in range(500):
        password = generate_password()
        assert len(password) == PASSWORD_LENGTH
        assert any(c.isupper() for c in password)
        assert any(c.islower() for c in password)
        assert any(c.isdigit() for c in password)
        assert any(c in PASSWORD_SYMBOLS for c in password)
        assert meets_password_policy(password)


def test_passwords_are_not_repeated():
    passwords = {generate_password() for _ in range(200)}
    assert len(passwords) == 200


def test_password_too_short_for_classes():
    with pytest.raises(ValueError):
        generate_password(3)
