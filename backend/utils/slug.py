import re
import secrets
from typing import Awaitable, Callable

def make_slug(text: str) -> str:
    text = text.lower().strip()
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text or "product"

async def generate_unique_slug(
    base_slug: str,
    exists_check: Callable[[str], Awaitable[bool]],
    max_attempts: int = 20,
) -> str:
    slug = base_slug
    counter = 1

    while await exists_check(slug):
        counter += 1
        if counter > max_attempts:
            # heavily reused names fall back to a random suffix
            return f"{base_slug}-{secrets.token_hex(3)}"
        slug = f"{base_slug}-{counter}"

    return slug
