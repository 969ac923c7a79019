"""
Record store.

The only shared mutable resource. Engines read through ``find``,
``count_distinct_users`` and ``find_user``; the write path goes through
``commit``. A unique-constraint violation surfaces as ``ConflictError``,
any other ``SQLAlchemyError`` as ``StoreError``.
"""
import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

import models
from errors import ConflictError, StoreError, ValidationError
from filters import PlantingFilter

logger = logging.getLogger("greenpulse.store")

SORT_FIELDS = {
    "createdAt": models.Planting.created_at,
    "plantingDate": models.Planting.planting_date,
    "treeType": models.Planting.tree_type,
}


@contextmanager
def store_errors(action):
    try:
        yield
    except IntegrityError as e:
        # a unique constraint lost a race with a concurrent request
        logger.warning("Conflict while %s: %s", action, e.orig)
        raise ConflictError(f"Conflicting change while {action}") from e
    except SQLAlchemyError as e:
        logger.exception("Store failure while %s", action)
        raise StoreError(f"Failed while {action}") from e


def _like(column, term):
    return column.icontains(term, autoescape=True)


def predicate_clauses(predicate: PlantingFilter):
    Planting = models.Planting
    clauses = [Planting.is_active == True]  # noqa: E712

    if predicate.verified is not None:
        clauses.append(Planting.is_verified == predicate.verified)
    if predicate.created_after is not None:
        clauses.append(Planting.created_at >= predicate.created_after)
    if predicate.location:
        clauses.append(or_(
            _like(Planting.city, predicate.location),
            _like(Planting.state, predicate.location),
            _like(Planting.country, predicate.location),
        ))
    if predicate.city:
        clauses.append(_like(Planting.city, predicate.city))
    if predicate.state:
        clauses.append(_like(Planting.state, predicate.state))
    if predicate.country:
        clauses.append(_like(Planting.country, predicate.country))
    if predicate.bounds is not None:
        b = predicate.bounds
        clauses.append(Planting.latitude.between(b.min_lat, b.max_lat))
        clauses.append(Planting.longitude.between(b.min_lng, b.max_lng))
    if predicate.tree_type:
        clauses.append(_like(Planting.tree_type, predicate.tree_type))
    if predicate.planted_by is not None:
        clauses.append(Planting.planted_by == predicate.planted_by)
    if predicate.planted_from is not None:
        clauses.append(Planting.planting_date >= predicate.planted_from)
    if predicate.planted_to is not None:
        clauses.append(Planting.planting_date <= predicate.planted_to)
    if predicate.search:
        clauses.append(or_(
            _like(Planting.tree_type, predicate.search),
            _like(Planting.species, predicate.search),
            _like(Planting.description, predicate.search),
            _like(Planting.address, predicate.search),
        ))
    return clauses


class PlantingStore:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, predicate):
        return self.db.query(models.Planting).filter(*predicate_clauses(predicate))

    def find(
        self,
        predicate: PlantingFilter,
        sort_by: Optional[str] = None,
        descending: bool = True,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[models.Planting]:
        query = self._query(predicate).options(
            selectinload(models.Planting.images),
            selectinload(models.Planting.planter),
        )
        if sort_by is not None:
            if sort_by not in SORT_FIELDS:
                raise ValidationError(f"sortBy must be one of {', '.join(SORT_FIELDS)}", field="sortBy")
            column = SORT_FIELDS[sort_by]
            query = query.order_by(column.desc() if descending else column.asc(), models.Planting.id)
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        with store_errors("finding plantings"):
            return query.all()

    def count(self, predicate: PlantingFilter) -> int:
        with store_errors("counting plantings"):
            return self._query(predicate).count()

    def count_distinct_users(self, predicate: PlantingFilter) -> int:
        """Distinct active planters among the plantings matching ``predicate``."""
        query = (
            self.db.query(func.count(func.distinct(models.Planting.planted_by)))
            .join(models.User, models.User.id == models.Planting.planted_by)
            .filter(*predicate_clauses(predicate))
            .filter(models.User.is_active == True)  # noqa: E712
        )
        with store_errors("counting planters"):
            return query.scalar() or 0

    def find_user(self, user_id) -> Optional[models.User]:
        with store_errors("loading user"):
            return self.db.get(models.User, user_id)

    def find_active_user(self, user_id) -> Optional[models.User]:
        user = self.find_user(user_id)
        if user is None or not user.is_active:
            return None
        return user

    def find_user_by_email(self, email) -> Optional[models.User]:
        with store_errors("loading user"):
            return self.db.query(models.User).filter(models.User.email == email).first()

    def get_planting(self, planting_id) -> Optional[models.Planting]:
        with store_errors("loading planting"):
            return (
                self.db.query(models.Planting)
                .filter(models.Planting.id == planting_id, models.Planting.is_active == True)  # noqa: E712
                .first()
            )

    def count_active_users(self) -> int:
        with store_errors("counting users"):
            return self.db.query(models.User).filter(models.User.is_active == True).count()  # noqa: E712

    def count_users_ahead_of(self, trees_planted) -> int:
        with store_errors("counting users"):
            return (
                self.db.query(models.User)
                .filter(models.User.is_active == True, models.User.trees_planted > trees_planted)  # noqa: E712
                .count()
            )

    def add(self, obj):
        self.db.add(obj)

    def commit(self, *refresh):
        with store_errors("saving changes"):
            try:
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise
            for obj in refresh:
                self.db.refresh(obj)
