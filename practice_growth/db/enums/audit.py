"""Audit event enums."""

from enum import Enum


class AuditAction(str, Enum):
    """State-changing operations reported to the audit sink."""

    CREATE = "create"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"
    LINK = "link"
    COMPLETE = "complete"
    ISSUE_REWARD = "issue_reward"
    CONVERT = "convert"
    ENROLL = "enroll"
    UNENROLL = "unenroll"
    ACTIVATE = "activate"
    SEND = "send"
    RECORD = "record"
