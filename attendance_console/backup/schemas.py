"""Backup Pydantic v2 schemas."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BackupCreate(BaseModel):
    exclude_tables: list[str] = Field(default_factory=list)


class BackupSummary(BaseModel):
    """Backup without its payload."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_name: str
    meta: dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    size_bytes: int
    created_at: datetime


class BackupStats(BaseModel):
    count: int
    total_size_bytes: int
    latest_at: Optional[datetime] = None
    oldest_at: Optional[datetime] = None
