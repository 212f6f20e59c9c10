"""Review request enums."""

from enum import Enum


class ReviewPlatform(str, Enum):
    GOOGLE = "google"
    YELP = "yelp"
    FACEBOOK = "facebook"
    HEALTHGRADES = "healthgrades"
    ZOCDOC = "zocdoc"
    OTHER = "other"


class ReviewRequestStatus(str, Enum):
    """
    Review request lifecycle (forward only).

    pending → sent → clicked → reviewed, or declined/failed from any
    non-terminal state.
    """

    PENDING = "pending"
    SENT = "sent"
    CLICKED = "clicked"
    REVIEWED = "reviewed"
    DECLINED = "declined"
    FAILED = "failed"


class ReviewChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


ACTIVE_REVIEW_STATUSES = (
    ReviewRequestStatus.PENDING.value,
    ReviewRequestStatus.SENT.value,
    ReviewRequestStatus.CLICKED.value,
)
