import re
import uuid

# Fixed namespace so both devices derive the same id for the same book
BOOK_NAMESPACE = uuid.UUID("6f1c2b1e-8d4a-4f5e-9a57-2f0f4c1d9b30")


def _normalize(value: str | int) -> str:
    s = str(value).lower()
    s = re.sub(r"[^a-z0-9]", "", s)
    if len(s) > 50:
        s = s[:50]
    return s


def make_uuid(*parts: str | int) -> uuid.UUID:
    key = ":".join(_normalize(p) for p in parts)
    return uuid.uuid5(BOOK_NAMESPACE, key)
