# === MODULE PURPOSE ===
# Explicit partial-update support for ledger rows.
# Distinguishes "leave the column alone" (UNSET) from "set it to None/empty".

# === KEY CONCEPTS ===
# - UNSET: sentinel default for every field of an *Update dataclass
# - changed_fields(): collects the fields a caller actually supplied
# - build_set_clause(): renders "col = $n" fragments for an UPDATE statement

from dataclasses import fields
from enum import Enum
from typing import Any


class _Unset:
    """Marker type for a field the caller did not supply."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def is_set(value: Any) -> bool:
    """Return True if value was explicitly supplied."""
    return value is not UNSET


def changed_fields(patch: Any) -> dict[str, Any]:
    """
    Collect explicitly supplied fields from an update dataclass.

    Enum members are unwrapped to their stored value.

    Args:
        patch: Dataclass instance whose fields default to UNSET.

    Returns:
        Mapping of field name to new value, in declaration order.
    """
    result: dict[str, Any] = {}
    for f in fields(patch):
        value = getattr(patch, f.name)
        if value is UNSET:
            continue
        if isinstance(value, Enum):
            value = value.value
        result[f.name] = value
    return result


def build_set_clause(
    changes: dict[str, Any],
    allowed_columns: frozenset[str],
    start_index: int = 1,
) -> tuple[str, list[Any]]:
    """
    Render the SET list of an UPDATE statement.

    Column names come only from allowed_columns, never from caller input.

    Args:
        changes: Column -> value mapping (output of changed_fields).
        allowed_columns: Whitelist of updatable columns.
        start_index: First positional parameter number to use.

    Returns:
        Tuple of (sql fragment, positional args). The fragment always ends with
        an updated_at assignment so an empty patch still renders valid SQL.

    Raises:
        KeyError: If a column is not in the whitelist.
    """
    parts: list[str] = []
    args: list[Any] = []
    index = start_index
    for column, value in changes.items():
        if column not in allowed_columns:
            raise KeyError(f"Column not updatable: {column}")
        parts.append(f"{column} = ${index}")
        args.append(value)
        index += 1
    parts.append("updated_at = CURRENT_TIMESTAMP")
    return ", ".join(parts), args
