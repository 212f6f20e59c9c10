"""Utility modules."""

from practice_growth.utils.normalization import (
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_state,
    phone_digits,
    slugify,
)
from practice_growth.utils.pagination import (
    Page,
    PaginationParams,
    get_pagination,
)

__all__ = [
    # Normalization
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "normalize_state",
    "phone_digits",
    "slugify",
    # Pagination
    "Page",
    "PaginationParams",
    "get_pagination",
]
