"""
Shared service plumbing: errors, validation results, free-text search,
whitelisted sorting, and query-string parsing used by every list endpoint.
"""
from datetime import datetime
from dataclasses import dataclass, field
from typing import Iterable, Optional


class RecordNotFound(ValueError):
    """Raised when a document id does not resolve."""


class ValidationFailed(ValueError):
    """Raised when a payload fails validation; carries every error found."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class ValidationResult:
    """Result of payload validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.valid = False


def parse_bool_param(value: Optional[str]) -> Optional[bool]:
    """Parse a boolean query value: absent is None, "true" is True, anything else False."""
    if value is None:
        return None
    return str(value).strip().lower() == 'true'


def clean_str(value) -> Optional[str]:
    """Trim a value to a string; blank becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def clean_tags(tags: Optional[Iterable]) -> list[str]:
    if not tags:
        return []
    return [str(t).strip() for t in tags if str(t).strip()]


def search(docs: list[dict], q: Optional[str], fields: Iterable[str]) -> list[dict]:
    """Case-insensitive substring match of q over the named fields."""
    q = (q or '').strip().lower()
    if not q:
        return list(docs)
    fields = list(fields)
    return [
        d for d in docs
        if any(q in str(d.get(f) or '').lower() for f in fields)
    ]


def sort_docs(
    docs: list[dict],
    sort: Optional[str],
    direction: Optional[str],
    allowed: set[str],
    default: str,
) -> list[dict]:
    """
    Sort by a whitelisted field.

    Unknown keys fall back to default; anything but "asc" sorts descending.
    Missing values always sort last.
    """
    field = sort if sort in allowed else default
    descending = (direction or 'desc').lower() != 'asc'

    present = [d for d in docs if d.get(field) is not None]
    missing = [d for d in docs if d.get(field) is None]

    def key(d):
        value = d.get(field)
        return value.lower() if isinstance(value, str) else value

    present.sort(key=key, reverse=descending)
    return present + missing


def now_iso() -> str:
    return datetime.now().isoformat()
