from contextlib import contextmanager
from datetime import datetime

from pymongo.errors import DuplicateKeyError

from utils.errors import UniqueConstraintViolation


@contextmanager
def unique_guard(field: str):
    """DuplicateKeyError -> UniqueConstraintViolation naming the field."""
    try:
        yield
    except DuplicateKeyError as e:
        raise UniqueConstraintViolation(f"Duplicate {field}") from e


def update_ops(changes: dict, unset=()) -> dict:
    ops = {"$set": {**changes, "updated_at": datetime.utcnow()}}
    if unset:
        ops["$unset"] = {field: "" for field in unset}
    return ops
