"""
Pydantic data models for task index sync.

A Mutation is one task state destined for the search index; an IndexDocument
is its indexed projection.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PayloadDecodeError
from .utils import utc_now


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    TODO = "TODO"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class Mutation(BaseModel):
    """Committed task state, produced by the write path after each commit."""

    id: int = 0
    title: str
    content: str = ""
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    @field_validator("title")
    @classmethod
    def _title_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("title cannot be empty")
        return v

    @classmethod
    def new(cls, title: str, content: str = "", status: TaskStatus | str = TaskStatus.TODO) -> Mutation:
        """Build an unsaved task with both timestamps set to now."""
        now = utc_now()
        return cls(title=title, content=content, status=status, created_at=now, updated_at=now)

    def to_payload(self) -> str:
        """Serialize for the dead-letter store."""
        return self.model_dump_json()

    @classmethod
    def from_payload(cls, payload: str | bytes) -> Mutation:
        try:
            return cls.model_validate_json(payload)
        except ValidationError as exc:
            raise PayloadDecodeError(f"invalid mutation payload: {exc}") from exc


class IndexDocument(BaseModel):
    """Indexed projection of a task; one document per id."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    content: str
    status: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_mutation(cls, m: Mutation) -> IndexDocument:
        return cls(
            id=m.id,
            title=m.title,
            content=m.content,
            status=m.status.value,
            created_at=m.created_at,
            updated_at=m.updated_at,
        )

    def to_json_dict(self) -> dict[str, Any]:
        # camelCase keys are what index-side consumers read
        return self.model_dump(mode="json", by_alias=True)
