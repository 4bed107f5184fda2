import uuid
from typing import Iterable, List

RECIPIENT_SEPARATOR = ";"


def normalize_recipients(recipients: Iterable[str]) -> List[str]:
    """Trim, drop blanks and de-duplicate (case-insensitive) keeping first-seen order."""
    seen = set()
    result = []
    for raw in recipients:
        address = (raw or "").strip()
        if not address or address.lower() in seen:
            continue
        seen.add(address.lower())
        result.append(address)
    return result


def join_recipients(recipients: Iterable[str]) -> str:
    return RECIPIENT_SEPARATOR.join(normalize_recipients(recipients))


def split_recipients(stored: str) -> List[str]:
    return normalize_recipients((stored or "").split(RECIPIENT_SEPARATOR))


def reminder_token(recipients: str) -> str:
    """Deterministic public check-in key for a stored recipient string (UUIDv5, URL namespace)."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, recipients))


def parse_token(token: str) -> str:
    """Canonical form of a check-in token; raises ValueError for anything that is not a UUID."""
    return str(uuid.UUID(token.strip()))
