"""Pydantic request/response schemas used by the API.

Inbound schemas enumerate, per entity, which fields a client may set,
which are required and what the defaults are. Services run raw field
mappings through `validate_fields`, so the same rules apply whether a
call comes from HTTP or from a script. Outbound schemas fix the public
shape of each record: camelCase keys, enum values as plain strings, and
no password material.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .errors import ValidationFailed
from .models import (
    MaterialType,
    PlanStatus,
    Priority,
    RecommendationStatus,
    RecommendationType,
)

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _reject_null(value):
    if value is None:
        raise ValueError("may not be null")
    return value


def _to_utc(value):
    # naive input is taken to be UTC already
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _FieldSet(BaseModel):
    """Base for inbound field sets: camelCase on the wire, unknown keys ignored."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class RegisterIn(_FieldSet):
    """Payload for the registration endpoint."""
    email: EmailStr
    password: str = Field(min_length=6)
    name: NonEmptyStr


class LoginIn(_FieldSet):
    """Payload for the login endpoint."""
    email: str
    password: str


class StudyPlanCreate(_FieldSet):
    title: NonEmptyStr
    description: Optional[str] = ""
    start_date: datetime
    end_date: datetime
    status: PlanStatus = PlanStatus.pending

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def normalise_dates(cls, v):
        return _to_utc(v)


class StudyPlanUpdate(_FieldSet):
    title: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[PlanStatus] = None

    @field_validator("title", "start_date", "end_date", "status", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _reject_null(v)

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def normalise_dates(cls, v):
        return _to_utc(v)


class StudyMaterialCreate(_FieldSet):
    title: NonEmptyStr
    description: Optional[str] = ""
    url: Optional[str] = None
    content: Optional[str] = None
    type: MaterialType = MaterialType.note
    priority: Priority = Priority.medium


class StudyMaterialUpdate(_FieldSet):
    title: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    url: Optional[str] = None
    content: Optional[str] = None
    type: Optional[MaterialType] = None
    priority: Optional[Priority] = None

    @field_validator("title", "type", "priority", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _reject_null(v)


class StudySessionCreate(_FieldSet):
    title: NonEmptyStr
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def normalise_times(cls, v):
        return _to_utc(v)


class StudySessionUpdate(_FieldSet):
    title: Optional[NonEmptyStr] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("title", "start_time", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _reject_null(v)

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def normalise_times(cls, v):
        return _to_utc(v)


class StudyRecommendationCreate(_FieldSet):
    content: NonEmptyStr
    title: NonEmptyStr = "Study Recommendation"
    description: Optional[str] = None
    type: RecommendationType = RecommendationType.suggestion
    priority: Priority = Priority.medium


class StudyRecommendationUpdate(_FieldSet):
    content: Optional[NonEmptyStr] = None
    title: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    type: Optional[RecommendationType] = None
    priority: Optional[Priority] = None
    status: Optional[RecommendationStatus] = None
    is_applied: Optional[bool] = None

    @field_validator("content", "title", "type", "priority", "status", "is_applied", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _reject_null(v)


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(part) for part in err.get("loc", ()))
    return f"{where}: {err.get('msg')}" if where else str(err.get("msg"))


def validate_fields(schema: type[BaseModel], fields, partial: bool = False) -> dict:
    """Validate a raw field mapping against `schema`.

    Returns snake_case attributes ready to set on a model. With
    `partial=True` only the keys present in `fields` are returned, so
    omitted fields keep their stored values. Raises `ValidationFailed`.
    """
    if fields is None:
        fields = {}
    if not isinstance(fields, Mapping):
        raise ValidationFailed("request body must be a JSON object")
    try:
        parsed = schema.model_validate(dict(fields))
    except ValidationError as exc:
        raise ValidationFailed(_describe(exc)) from exc
    return parsed.model_dump(exclude_unset=partial)


class _Out(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserOut(_Out):
    id: int
    email: str
    name: str
    created_at: datetime


class StudyPlanOut(_Out):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    status: PlanStatus
    created_at: datetime
    updated_at: datetime


class StudyMaterialOut(_Out):
    id: int
    study_plan_id: int
    title: str
    description: Optional[str] = None
    url: Optional[str] = None
    content: Optional[str] = None
    type: MaterialType
    priority: Priority
    created_at: datetime
    updated_at: datetime


class StudySessionOut(_Out):
    id: int
    study_plan_id: int
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StudyRecommendationOut(_Out):
    id: int
    study_plan_id: int
    title: str
    description: Optional[str] = None
    content: str
    type: RecommendationType
    priority: Priority
    status: RecommendationStatus
    is_applied: bool
    created_at: datetime
    updated_at: datetime


def dump(schema: type[_Out], record) -> dict:
    """Serialise a model instance through its public schema."""
    return schema.model_validate(record).model_dump(by_alias=True, mode="json")
