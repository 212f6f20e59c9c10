"""Nurture sequence enums."""

from enum import Enum


class NurtureSequenceStatus(str, Enum):
    """Sequence lifecycle. A sequence never returns to draft."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NurtureActionType(str, Enum):
    """What a nurture step does when it fires."""

    SEND_EMAIL = "send_email"
    SEND_SMS = "send_sms"
    CREATE_TASK = "create_task"
    UPDATE_SCORE = "update_score"


class NurtureTriggerType(str, Enum):
    """How leads are expected to enter a sequence."""

    MANUAL = "manual"
    LEAD_CREATED = "lead_created"
    STATUS_CHANGED = "status_changed"
    SCORE_THRESHOLD = "score_threshold"
    SOURCE = "source"


class NurtureEnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXITED = "exited"


class NurtureExitReason(str, Enum):
    CONVERTED = "converted"
    UNSUBSCRIBED = "unsubscribed"
    MAX_DAYS = "max_days"
    SEQUENCE_CLOSED = "sequence_closed"
    MANUAL = "manual"


class NurtureStepOutcome(str, Enum):
    EXECUTED = "executed"
    SKIPPED = "skipped"
    FAILED = "failed"
