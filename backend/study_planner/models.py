"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Records are plain rows: there are no relationship attributes, and every
traversal from a child to its study plan is an explicit query in
`repositories`.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp on every backend.

    SQLite keeps no offset, so values are written as UTC and read back
    with `timezone.utc` attached.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


UTC_TIMESTAMP = UTCDateTime(timezone=True)


class PlanStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"


class MaterialType(str, Enum):
    book = "book"
    article = "article"
    video = "video"
    document = "document"
    note = "note"
    other = "other"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class RecommendationType(str, Enum):
    resource = "resource"
    schedule = "schedule"
    technique = "technique"
    suggestion = "suggestion"
    other = "other"


class RecommendationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    name: str
    created_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)


class StudyPlan(SQLModel, table=True):
    """A study plan owned directly by a user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    title: str
    description: Optional[str] = ""
    start_date: datetime = Field(sa_type=UTC_TIMESTAMP)
    end_date: datetime = Field(sa_type=UTC_TIMESTAMP)
    status: PlanStatus = Field(default=PlanStatus.pending)
    created_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)


class StudyMaterial(SQLModel, table=True):
    """A book, link or note attached to a `StudyPlan`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    study_plan_id: int = Field(foreign_key='studyplan.id', index=True)
    title: str
    description: Optional[str] = ""
    url: Optional[str] = None
    content: Optional[str] = None
    type: MaterialType = Field(default=MaterialType.note)
    priority: Priority = Field(default=Priority.medium)
    created_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)


class StudySession(SQLModel, table=True):
    """A scheduled block of study time; `duration` is in minutes."""
    id: Optional[int] = Field(default=None, primary_key=True)
    study_plan_id: int = Field(foreign_key='studyplan.id', index=True)
    title: str
    start_time: datetime = Field(sa_type=UTC_TIMESTAMP)
    end_time: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    duration: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)


class StudyRecommendation(SQLModel, table=True):
    """A suggestion for a plan; `is_applied` marks it as acted upon."""
    id: Optional[int] = Field(default=None, primary_key=True)
    study_plan_id: int = Field(foreign_key='studyplan.id', index=True)
    title: str = "Study Recommendation"
    description: Optional[str] = None
    content: str
    type: RecommendationType = Field(default=RecommendationType.suggestion)
    priority: Priority = Field(default=Priority.medium)
    status: RecommendationStatus = Field(default=RecommendationStatus.pending)
    is_applied: bool = False
    created_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=UTC_TIMESTAMP)
