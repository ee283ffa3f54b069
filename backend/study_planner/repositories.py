"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table. Repositories
return SQLModel rows and perform commits/refreshes where appropriate.
Ownership of child rows is always resolved with an explicit join on
`StudyPlan.user_id`; nothing relies on lazy relationship loading.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import case
from sqlmodel import Session, select

from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


def _touch(row, changes: dict):
    for key, value in changes.items():
        setattr(row, key, value)
    row.updated_at = datetime.now(timezone.utc)


class StudyPlanRepository:
    """Queries for `StudyPlan` rows, always filtered by owner."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, plan: models.StudyPlan) -> models.StudyPlan:
        self.session.add(plan)
        self.session.commit()
        self.session.refresh(plan)
        return plan

    def list_for_user(self, user_id: int, status: Optional[models.PlanStatus] = None) -> List[models.StudyPlan]:
        """Return the user's plans, newest first."""
        stmt = select(models.StudyPlan).where(models.StudyPlan.user_id == user_id)
        if status is not None:
            stmt = stmt.where(models.StudyPlan.status == status)
        stmt = stmt.order_by(models.StudyPlan.created_at.desc(), models.StudyPlan.id.desc())
        return self.session.exec(stmt).all()

    def get_owned(self, plan_id: int, user_id: int, for_update: bool = False) -> Optional[models.StudyPlan]:
        """Return the plan only if `user_id` owns it.

        `for_update` locks the row until the surrounding transaction ends
        on backends that support it; SQLite ignores the clause.
        """
        stmt = select(models.StudyPlan).where(
            models.StudyPlan.id == plan_id,
            models.StudyPlan.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.exec(stmt).first()

    def update(self, plan: models.StudyPlan, changes: dict) -> models.StudyPlan:
        _touch(plan, changes)
        self.session.add(plan)
        self.session.commit()
        self.session.refresh(plan)
        return plan

    def delete_with_children(self, plan: models.StudyPlan) -> dict:
        """Delete a plan and every row that hangs off it in one commit.

        Returns the number of child rows removed per table.
        """
        removed = {}
        for model in (models.StudyMaterial, models.StudySession, models.StudyRecommendation):
            rows = self.session.exec(select(model).where(model.study_plan_id == plan.id)).all()
            for row in rows:
                self.session.delete(row)
            removed[model.__name__] = len(rows)
        # children must be gone before the parent row under enforced foreign keys
        self.session.flush()
        self.session.delete(plan)
        self.session.commit()
        return removed


class _PlanChildRepository:
    """Shared queries for rows that belong to a `StudyPlan`."""
    model = None

    def __init__(self, session: Session):
        self.session = session

    def _ordering(self):
        return (self.model.created_at.desc(), self.model.id.desc())

    def _owned(self, user_id: int):
        return (
            select(self.model)
            .join(models.StudyPlan, models.StudyPlan.id == self.model.study_plan_id)
            .where(models.StudyPlan.user_id == user_id)
        )

    def create(self, item):
        """Insert a child row.

        Callers verify the parent in the same session first, so the check
        and the insert commit together.
        """
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def list_for_plan(self, plan_id: int) -> list:
        stmt = select(self.model).where(self.model.study_plan_id == plan_id).order_by(*self._ordering())
        return self.session.exec(stmt).all()

    def list_for_user(self, user_id: int) -> list:
        """Return children across all of the user's plans."""
        stmt = self._owned(user_id).order_by(*self._ordering())
        return self.session.exec(stmt).all()

    def get_owned(self, item_id: int, user_id: int):
        """Return the row only if its plan is owned by `user_id`."""
        stmt = self._owned(user_id).where(self.model.id == item_id)
        return self.session.exec(stmt).first()

    def get_in_plan(self, item_id: int, plan_id: int):
        stmt = select(self.model).where(self.model.id == item_id, self.model.study_plan_id == plan_id)
        return self.session.exec(stmt).first()

    def update(self, item, changes: dict):
        _touch(item, changes)
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item) -> None:
        self.session.delete(item)
        self.session.commit()


class StudyMaterialRepository(_PlanChildRepository):
    """`StudyMaterial` rows, newest first."""
    model = models.StudyMaterial


class StudySessionRepository(_PlanChildRepository):
    """`StudySession` rows in calendar order."""
    model = models.StudySession

    def _ordering(self):
        return (self.model.start_time.asc(), self.model.id.asc())


class StudyRecommendationRepository(_PlanChildRepository):
    """`StudyRecommendation` rows, highest priority first."""
    model = models.StudyRecommendation

    def _ordering(self):
        rank = case(
            (self.model.priority == models.Priority.high, 0),
            (self.model.priority == models.Priority.medium, 1),
            else_=2,
        )
        return (rank, self.model.created_at.desc(), self.model.id.desc())
