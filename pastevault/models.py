"""
Pydantic models for paste records and request/response validation.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator


def as_positive_count(value) -> Optional[int]:
    """
    Normalise an optional count such as ttl_seconds or max_views.

    Whole-number floats like 2.0 become ints; bools, strings, fractions and
    values below 1 raise ValueError.
    """
    if value is None:
        return None
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a positive integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("must be a positive integer")
        value = int(value)
    if value < 1:
        raise ValueError("must be a positive integer")
    return value


class PasteRecord(BaseModel):
    """A stored paste with its expiry constraints and view counter."""
    id: str
    content: str
    created_at: datetime
    ttl_seconds: Optional[int] = None
    max_views: Optional[int] = None
    current_views: int = 0

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.ttl_seconds is None:
            return None
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    @property
    def remaining_views(self) -> Optional[int]:
        if self.max_views is None:
            return None
        return self.max_views - self.current_views

    def is_time_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def is_view_exhausted(self) -> bool:
        return self.max_views is not None and self.current_views >= self.max_views

    def is_dead(self, now: datetime) -> bool:
        """True when either constraint makes the paste unreachable."""
        return self.is_time_expired(now) or self.is_view_exhausted()

    def to_mapping(self) -> Dict[str, str]:
        """
        Flatten into the Redis hash layout.

        Unset constraints are omitted rather than stored as empty strings.
        """
        mapping = {
            "id": self.id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "current_views": str(self.current_views),
        }
        if self.ttl_seconds is not None:
            mapping["ttl_seconds"] = str(self.ttl_seconds)
        if self.max_views is not None:
            mapping["max_views"] = str(self.max_views)
        return mapping

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "PasteRecord":
        """Rebuild a record from a Redis hash."""
        return cls(
            id=mapping["id"],
            content=mapping["content"],
            created_at=datetime.fromisoformat(mapping["created_at"]),
            ttl_seconds=int(mapping["ttl_seconds"]) if "ttl_seconds" in mapping else None,
            max_views=int(mapping["max_views"]) if "max_views" in mapping else None,
            current_views=int(mapping.get("current_views", 0)),
        )


class FetchedPaste(BaseModel):
    """What a successful fetch hands back to the caller."""
    content: str
    remaining_views: Optional[int] = None
    expires_at: Optional[datetime] = None


class PasteCreate(BaseModel):
    """Schema for creating a new paste."""
    content: str = Field(..., min_length=1, description="Text content (required, non-empty)")
    ttl_seconds: Optional[int] = Field(None, description="Optional TTL in seconds")
    max_views: Optional[int] = Field(None, description="Optional view limit")

    @field_validator("ttl_seconds", "max_views", mode="before")
    @classmethod
    def _positive_count(cls, value):
        return as_positive_count(value)


class PasteResponse(BaseModel):
    """Schema for paste creation response."""
    id: str = Field(..., description="Unique paste ID")
    url: str = Field(..., description="Shareable URL to view the paste")


class PasteView(BaseModel):
    """Schema for viewing/fetching a paste."""
    content: str = Field(..., description="Paste text content")
    remaining_views: Optional[int] = Field(None, description="Views left (null if unlimited)")
    expires_at: Optional[str] = Field(None, description="Expiry timestamp (ISO 8601, null if no TTL)")


class HealthCheck(BaseModel):
    """Schema for health check response."""
    ok: bool = Field(..., description="Is the application healthy?")
