# === MODULE PURPOSE ===
# Limit/offset pagination with a one-row lookahead.
# Stores fetch limit+1 rows; paginate() trims the extra row and sets has_more.

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass
class Page(Generic[T]):
    """One page of results."""

    items: list[T] = field(default_factory=list)
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    has_more: bool = False

    def to_dict(self, item_to_dict: Callable[[T], Any] | None = None) -> dict[str, Any]:
        """Convert to dictionary for the response envelope."""
        convert = item_to_dict or (lambda item: item.to_dict())  # type: ignore[attr-defined]
        return {
            "entries": [convert(item) for item in self.items],
            "pagination": {
                "limit": self.limit,
                "offset": self.offset,
                "has_more": self.has_more,
            },
        }


def normalize_page_args(limit: int | None, offset: int | None) -> tuple[int, int]:
    """
    Clamp pagination arguments to sane values.

    Limits outside 1..MAX_LIMIT fall back to DEFAULT_LIMIT; negative offsets become 0.
    """
    if limit is None or limit <= 0 or limit > MAX_LIMIT:
        limit = DEFAULT_LIMIT
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


def paginate(rows: list[T], limit: int, offset: int) -> Page[T]:
    """Build a Page from rows fetched with LIMIT limit+1."""
    has_more = len(rows) > limit
    return Page(items=rows[:limit], limit=limit, offset=offset, has_more=has_more)
