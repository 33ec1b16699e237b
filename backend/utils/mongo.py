from datetime import datetime

from bson import ObjectId


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict | None) -> dict | None:
    if not doc:
        return doc

    doc = serialize_value(dict(doc))
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return doc


def serialize_docs(docs):
    return [serialize_doc(d) for d in docs]


def page_bounds(page: int, limit: int, max_limit: int) -> tuple[int, int]:
    page = max(1, page)
    limit = max(1, min(limit, max_limit))
    return (page - 1) * limit, limit
