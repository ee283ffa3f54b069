"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
validation. Every resource operation takes the acting user's id as its
first argument and only ever sees rows whose ownership chain ends at
that user. Expected failures are raised as `errors.ServiceError`
subclasses; a record owned by someone else is reported exactly like a
record that does not exist.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .errors import NotFound, ValidationFailed

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
PLAN_NOT_FOUND = "Study plan not found"

logger = logging.getLogger("study_planner.services")


def _log(event: str, **fields):
    logger.info("%s %s", event, json.dumps(fields, ensure_ascii=True))


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, password: str, name: str) -> models.User:
        """Create a new user with a hashed password.

        Emails are compared case-insensitively; a duplicate raises
        `ValidationFailed`.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(email):
            raise ValidationFailed("email already registered")
        u = models.User(email=email, password_hash=PWD_CTX.hash(password), name=name)
        try:
            user = self.user_repo.create(u)
        except IntegrityError:
            # lost a race with a concurrent registration
            self.session.rollback()
            raise ValidationFailed("email already registered")
        _log("user_registered", user_id=user.id)
        return user

    def authenticate(self, email: str, password: str) -> Optional[Tuple[models.User, str]]:
        """Verify credentials and return the user with a signed JWT token.

        Returns `None` if authentication fails, without saying whether
        the email or the password was wrong.
        """
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return user, self.issue_token(user)

    @staticmethod
    def issue_token(user: models.User) -> str:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class StudyPlanService:
    """Create, read, update and delete the caller's study plans."""
    def __init__(self, session: Session):
        self.session = session
        self.plan_repo = repositories.StudyPlanRepository(session)

    def list(self, owner_id: int, status: Optional[str] = None) -> List[models.StudyPlan]:
        """Return the owner's plans, newest first, optionally by status."""
        wanted = None
        if status is not None:
            try:
                wanted = models.PlanStatus(status)
            except ValueError:
                raise ValidationFailed(f"status: must be one of {[s.value for s in models.PlanStatus]}")
        return self.plan_repo.list_for_user(owner_id, wanted)

    def create(self, owner_id: int, fields) -> models.StudyPlan:
        data = schemas.validate_fields(schemas.StudyPlanCreate, fields)
        plan = self.plan_repo.create(models.StudyPlan(user_id=owner_id, **data))
        _log("plan_created", user_id=owner_id, plan_id=plan.id)
        return plan

    def get(self, owner_id: int, plan_id: int) -> models.StudyPlan:
        plan = self.plan_repo.get_owned(plan_id, owner_id)
        if plan is None:
            raise NotFound(PLAN_NOT_FOUND)
        return plan

    def update(self, owner_id: int, plan_id: int, fields) -> models.StudyPlan:
        """Apply the provided fields; anything omitted keeps its value."""
        plan = self.get(owner_id, plan_id)
        changes = schemas.validate_fields(schemas.StudyPlanUpdate, fields, partial=True)
        plan = self.plan_repo.update(plan, changes)
        _log("plan_updated", user_id=owner_id, plan_id=plan.id, fields=sorted(changes))
        return plan

    def delete(self, owner_id: int, plan_id: int) -> None:
        """Delete a plan together with its materials, sessions and recommendations."""
        plan = self.get(owner_id, plan_id)
        removed = self.plan_repo.delete_with_children(plan)
        _log("plan_deleted", user_id=owner_id, plan_id=plan_id, removed=removed)


class _PlanChildService:
    """Operations shared by the record types that hang off a study plan.

    Subclasses name their repository, their create/update schemas and the
    message used when a record cannot be found.
    """
    repo_cls = None
    create_schema = None
    update_schema = None
    not_found_message = "Not found"
    event_prefix = "item"

    def __init__(self, session: Session):
        self.session = session
        self.plan_repo = repositories.StudyPlanRepository(session)
        self.repo = self.repo_cls(session)

    def _owned_plan(self, owner_id: int, plan_id: int, for_update: bool = False) -> models.StudyPlan:
        plan = self.plan_repo.get_owned(plan_id, owner_id, for_update=for_update)
        if plan is None:
            raise NotFound(PLAN_NOT_FOUND)
        return plan

    def list(self, owner_id: int, plan_id: Optional[int] = None) -> list:
        """List records for one owned plan, or across all owned plans."""
        if plan_id is None:
            return self.repo.list_for_user(owner_id)
        self._owned_plan(owner_id, plan_id)
        return self.repo.list_for_plan(plan_id)

    def create(self, owner_id: int, plan_id: int, fields):
        """Insert a record under `plan_id`.

        The parent check runs first so a foreign or missing plan is always
        reported as NotFound, whatever the fields contain.
        """
        plan = self._owned_plan(owner_id, plan_id, for_update=True)
        try:
            data = schemas.validate_fields(self.create_schema, fields)
        except ValidationFailed:
            self.session.rollback()
            raise
        try:
            item = self.repo.create(self.repo.model(study_plan_id=plan.id, **data))
        except IntegrityError:
            # parent vanished between the check and the insert
            self.session.rollback()
            raise NotFound(PLAN_NOT_FOUND)
        _log(f"{self.event_prefix}_created", user_id=owner_id, plan_id=plan.id, id=item.id)
        return item

    def get(self, owner_id: int, item_id: int):
        item = self.repo.get_owned(item_id, owner_id)
        if item is None:
            raise NotFound(self.not_found_message)
        return item

    def update(self, owner_id: int, item_id: int, fields):
        item = self.get(owner_id, item_id)
        changes = schemas.validate_fields(self.update_schema, fields, partial=True)
        item = self.repo.update(item, changes)
        _log(f"{self.event_prefix}_updated", user_id=owner_id, id=item.id, fields=sorted(changes))
        return item

    def delete(self, owner_id: int, item_id: int) -> None:
        item = self.get(owner_id, item_id)
        self.repo.delete(item)
        _log(f"{self.event_prefix}_deleted", user_id=owner_id, id=item_id)


class StudyMaterialService(_PlanChildService):
    repo_cls = repositories.StudyMaterialRepository
    create_schema = schemas.StudyMaterialCreate
    update_schema = schemas.StudyMaterialUpdate
    not_found_message = "Study material not found"
    event_prefix = "material"


class StudySessionService(_PlanChildService):
    repo_cls = repositories.StudySessionRepository
    create_schema = schemas.StudySessionCreate
    update_schema = schemas.StudySessionUpdate
    not_found_message = "Study session not found"
    event_prefix = "session"


class StudyRecommendationService(_PlanChildService):
    repo_cls = repositories.StudyRecommendationRepository
    create_schema = schemas.StudyRecommendationCreate
    update_schema = schemas.StudyRecommendationUpdate
    not_found_message = "Recommendation not found"
    event_prefix = "recommendation"

    def update_in_plan(self, owner_id: int, plan_id: int, item_id: int, fields) -> models.StudyRecommendation:
        """Update a recommendation addressed through its plan.

        The plan must be owned by the caller and the recommendation must
        belong to that plan; both failures are NotFound.
        """
        self._owned_plan(owner_id, plan_id)
        item = self.repo.get_in_plan(item_id, plan_id)
        if item is None:
            raise NotFound(self.not_found_message)
        changes = schemas.validate_fields(self.update_schema, fields, partial=True)
        item = self.repo.update(item, changes)
        _log("recommendation_updated", user_id=owner_id, plan_id=plan_id, id=item.id, fields=sorted(changes))
        return item
