"""Lead-related enums."""

from enum import Enum


class LeadStatus(str, Enum):
    """Lead lifecycle. Converted is terminal."""

    NEW = "new"
    CONTACTED = "contacted"
    ENGAGED = "engaged"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    LOST = "lost"
    UNRESPONSIVE = "unresponsive"


class LeadSource(str, Enum):
    """Acquisition channel a lead came from."""

    WEBSITE = "website"
    REFERRAL = "referral"
    GOOGLE_ADS = "google_ads"
    FACEBOOK_ADS = "facebook_ads"
    INSTAGRAM = "instagram"
    WALK_IN = "walk_in"
    PHONE_CALL = "phone_call"
    SOCIAL_MEDIA = "social_media"
    EVENT = "event"
    PARTNER = "partner"
    DIRECTORY = "directory"
    OTHER = "other"


class LeadActivityType(str, Enum):
    """Entries in the append-only lead activity trail."""

    LEAD_CREATED = "lead_created"
    DUPLICATE_MERGED = "duplicate_merged"
    STATUS_CHANGED = "status_changed"
    CONTACT_ATTEMPT = "contact_attempt"
    NOTE_ADDED = "note_added"
    FOLLOW_UP_SET = "follow_up_set"
    SCORE_CHANGED = "score_changed"
    UNSUBSCRIBED = "unsubscribed"
    CONVERTED = "converted"
    REFERRAL_COMPLETION_FAILED = "referral_completion_failed"
    NURTURE_ENROLLED = "nurture_enrolled"
    NURTURE_STEP_EXECUTED = "nurture_step_executed"
    NURTURE_STEP_SKIPPED = "nurture_step_skipped"
    NURTURE_STEP_FAILED = "nurture_step_failed"
    NURTURE_EXITED = "nurture_exited"
    NURTURE_COMPLETED = "nurture_completed"


# Statuses that still accept follow-ups, nurture steps and status writes.
OPEN_LEAD_STATUSES = (
    LeadStatus.NEW.value,
    LeadStatus.CONTACTED.value,
    LeadStatus.ENGAGED.value,
    LeadStatus.QUALIFIED.value,
)
