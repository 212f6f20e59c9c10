"""Data normalization utilities for consistent lead and referral data."""

import re
import unicodedata
from typing import Optional


# =============================================================================
# US States (including DC and territories)
# =============================================================================

_STATE_NAMES = (
    ("alabama", "AL"), ("alaska", "AK"), ("arizona", "AZ"), ("arkansas", "AR"),
    ("california", "CA"), ("colorado", "CO"), ("connecticut", "CT"), ("delaware", "DE"),
    ("florida", "FL"), ("georgia", "GA"), ("hawaii", "HI"), ("idaho", "ID"),
    ("illinois", "IL"), ("indiana", "IN"), ("iowa", "IA"), ("kansas", "KS"),
    ("kentucky", "KY"), ("louisiana", "LA"), ("maine", "ME"), ("maryland", "MD"),
    ("massachusetts", "MA"), ("michigan", "MI"), ("minnesota", "MN"), ("mississippi", "MS"),
    ("missouri", "MO"), ("montana", "MT"), ("nebraska", "NE"), ("nevada", "NV"),
    ("new hampshire", "NH"), ("new jersey", "NJ"), ("new mexico", "NM"), ("new york", "NY"),
    ("north carolina", "NC"), ("north dakota", "ND"), ("ohio", "OH"), ("oklahoma", "OK"),
    ("oregon", "OR"), ("pennsylvania", "PA"), ("rhode island", "RI"), ("south carolina", "SC"),
    ("south dakota", "SD"), ("tennessee", "TN"), ("texas", "TX"), ("utah", "UT"),
    ("vermont", "VT"), ("virginia", "VA"), ("washington", "WA"), ("west virginia", "WV"),
    ("wisconsin", "WI"), ("wyoming", "WY"), ("district of columbia", "DC"),
    ("washington dc", "DC"), ("puerto rico", "PR"), ("guam", "GU"),
    ("virgin islands", "VI"), ("american samoa", "AS"), ("northern mariana islands", "MP"),
)

US_STATES = dict(_STATE_NAMES)
VALID_STATE_CODES = set(US_STATES.values())


def normalize_state(state: Optional[str]) -> Optional[str]:
    """
    Normalize state input to 2-letter uppercase code.

    Raises:
        ValueError: If state is not a recognized US state
    """
    if not state:
        return None

    normalized = " ".join(state.strip().lower().replace(".", "").split())
    if normalized in US_STATES:
        return US_STATES[normalized]

    upper = normalized.upper()
    if upper in VALID_STATE_CODES:
        return upper

    raise ValueError(
        f"Invalid state '{state}'. Use 2-letter code (e.g., CA) or full name (e.g., California)."
    )


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize phone to E.164 format (+15551234567).

    Accepts:
    - 10 digits: 5551234567 → +15551234567
    - 11 digits starting with 1: 15551234567 → +15551234567
    - Already E.164 (any country code): +445551234567 → +445551234567

    Raises:
        ValueError: If phone cannot be read as a dialable number
    """
    if not phone:
        return None

    cleaned = phone.strip()
    digits = re.sub(r"\D", "", cleaned)
    if cleaned.startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    raise ValueError(f"Invalid phone number '{phone}'. Use 10-digit US format (e.g., 5551234567).")


def phone_digits(phone: Optional[str]) -> Optional[str]:
    """Digits only, for duplicate matching."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    return digits or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercased, stripped email or None if empty."""
    if not email:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Strip whitespace and collapse multiple spaces."""
    if not name:
        return None
    collapsed = " ".join(name.split())
    return collapsed or None


def _strip_accents(value: str) -> str:
    """Remove diacritics for accent-insensitive matching."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def slugify(value: str, max_length: int | None = None) -> str:
    """
    URL/UTM-safe slug: ascii lowercase, runs of other characters become one hyphen.

    "Spring Back-Pain Promo!" → "spring-back-pain-promo"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", _strip_accents(value).lower()).strip("-")
    if max_length is not None:
        slug = slug[:max_length].rstrip("-")
    return slug
