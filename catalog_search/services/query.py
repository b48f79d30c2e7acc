"""Normalization of raw search input."""

from typing import Any

from .errors import InvalidLimit, InvalidQuery


def normalize_query(raw: str | None) -> str:
    """Trim and lowercase a search string.

    Raises:
        InvalidQuery: If nothing is left after trimming
    """
    if raw is None:
        raise InvalidQuery(raw)
    normalized = raw.strip().lower()
    if not normalized:
        raise InvalidQuery(raw)
    return normalized


def normalize_limit(raw: Any, default: int, maximum: int) -> int:
    """Resolve a requested result count.

    Args:
        raw: Requested limit, None when the caller did not ask for one
        default: Limit used when raw is None
        maximum: Upper bound applied to raw

    Raises:
        InvalidLimit: If raw is not a positive integer
    """
    if raw is None:
        return default

    # bool is an int subclass but never a meaningful limit
    if isinstance(raw, bool):
        raise InvalidLimit(raw)
    if isinstance(raw, float):
        if not raw.is_integer():
            raise InvalidLimit(raw)
        raw = int(raw)
    if not isinstance(raw, int):
        raise InvalidLimit(raw)

    if raw <= 0:
        raise InvalidLimit(raw)

    return min(raw, maximum)
