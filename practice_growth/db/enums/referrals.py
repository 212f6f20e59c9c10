"""Referral-related enums."""

from enum import Enum


class ReferralRewardType(str, Enum):
    """How a referral reward is valued."""

    DISCOUNT_PERCENT = "discount_percent"
    DISCOUNT_FIXED = "discount_fixed"
    CREDIT = "credit"
    CASH = "cash"
    GIFT_CARD = "gift_card"
    FREE_SERVICE = "free_service"


class ReferralStatus(str, Enum):
    """
    Referral lifecycle.

    pending → qualified → completed, or expired/cancelled from
    pending/qualified. Completed, expired and cancelled are terminal.
    """

    PENDING = "pending"
    QUALIFIED = "qualified"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RewardRecipientRole(str, Enum):
    """Which side of the referral a reward was issued to."""

    REFERRER = "referrer"
    REFEREE = "referee"


OPEN_REFERRAL_STATUSES = (ReferralStatus.PENDING.value, ReferralStatus.QUALIFIED.value)
TERMINAL_REFERRAL_STATUSES = (
    ReferralStatus.COMPLETED.value,
    ReferralStatus.EXPIRED.value,
    ReferralStatus.CANCELLED.value,
)
