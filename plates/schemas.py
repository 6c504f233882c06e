# plates/schemas.py

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .config import MAX_VIEW_SCALE, MIN_VIEW_SCALE


class PlateCategory(str, Enum):
    car = "car"
    motorcycle = "motorcycle"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_text(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be empty")
    return value


class PlateMetadata(BaseModel):
    """User-editable fields of a plate record."""
    title: str
    plate_number: str
    category: PlateCategory = PlateCategory.car

    @field_validator("title", "plate_number")
    @classmethod
    def strip_text(cls, value):
        return _clean_text(value)


class MetadataUpdate(BaseModel):
    title: Optional[str] = None
    plate_number: Optional[str] = None
    category: Optional[PlateCategory] = None

    @field_validator("title", "plate_number")
    @classmethod
    def strip_text(cls, value):
        if value is None:
            return value
        return _clean_text(value)


class PlateRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    plate_number: str
    category: PlateCategory = PlateCategory.car
    view_count: int = Field(default=0, ge=0)
    local_path: Optional[str] = None
    cloud_id: Optional[str] = None
    cache_path: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_image(self) -> bool:
        return bool(self.local_path or self.cloud_id)


class Offset(BaseModel):
    x: float = Field(default=0.0, allow_inf_nan=False)
    y: float = Field(default=0.0, allow_inf_nan=False)


class ViewTransformState(BaseModel):
    """Zoom/pan state of the full-screen photo viewer."""
    scale: float = Field(default=1.0, allow_inf_nan=False)
    offset: Offset = Field(default_factory=Offset)

    def clamped(self, viewport_width: Optional[float] = None, viewport_height: Optional[float] = None) -> "ViewTransformState":
        """
        Keep the scale within the viewer's zoom range and, when the viewport
        size is known, keep the image edge from being dragged past the
        viewport edge.
        """
        scale = min(max(self.scale, MIN_VIEW_SCALE), MAX_VIEW_SCALE)
        x, y = self.offset.x, self.offset.y
        if viewport_width is not None:
            limit = max(0.0, viewport_width * (scale - 1) / 2)
            x = min(max(x, -limit), limit)
        if viewport_height is not None:
            limit = max(0.0, viewport_height * (scale - 1) / 2)
            y = min(max(y, -limit), limit)
        return ViewTransformState(scale=scale, offset=Offset(x=x, y=y))


class StorageUsage(BaseModel):
    count: int
    total_bytes: int

    @property
    def label(self) -> str:
        return f"{self.total_bytes / (1024 * 1024):.1f} MB"
