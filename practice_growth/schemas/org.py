"""Organization-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from practice_growth.db.enums import ReviewPlatform


class OrgCreate(BaseModel):
    """Request schema for creating an organization (practice)."""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100)
    timezone: str = "America/Los_Angeles"
    review_links: dict[ReviewPlatform, str] = Field(default_factory=dict)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        """Validate slug format: lowercase, alphanumeric with hyphens/underscores."""
        v = v.lower().strip()
        if not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError(
                "Slug must be alphanumeric with optional hyphens/underscores"
            )
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class OrgRead(BaseModel):
    """Response schema for reading an organization."""

    id: UUID
    name: str
    slug: str
    timezone: str
    review_links: dict
    created_at: datetime

    model_config = {"from_attributes": True}
