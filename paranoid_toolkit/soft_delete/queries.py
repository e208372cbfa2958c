"""
Base read and aggregate operations of paranoid models.

Every operation issues a SELECT through the session, so the query gate applies
the default soft delete filter (or the filter of the current exclusive scope).
Each of them is a valid ``<base>`` for the ``_including_deleted`` and
``_deleted_only`` variants.
"""

from typing import Any, List, Optional, Sequence, Union

from sqlalchemy import func, inspect, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql.elements import ColumnElement

from .exceptions import NotFound
from .models import ScopePolicy


def primary_key_criteria(entity_type: type, ident: Any) -> List[ColumnElement[bool]]:
    """
    Build the WHERE criteria matching primary key ``ident``.

    Args:
        entity_type: Mapped class
        ident: Scalar key, or a tuple in primary key column order

    Raises:
        ValueError: Wrong number of key values
    """
    columns = inspect(entity_type).primary_key
    values = ident if isinstance(ident, tuple) else (ident,)
    if len(values) != len(columns):
        raise ValueError(
            f"{entity_type.__name__} has {len(columns)} primary key column(s), "
            f"got {len(values)} value(s)"
        )
    return [column == value for column, value in zip(columns, values)]


def identity_of(instance: Any) -> Any:
    """Primary key of a persistent instance; a scalar for single-column keys."""
    identity = inspect(instance).identity
    if identity is None:
        return None
    return identity[0] if len(identity) == 1 else identity


def instance_criteria(instance: Any) -> List[ColumnElement[bool]]:
    return primary_key_criteria(type(instance), inspect(instance).identity)


def write_tombstone(
    session: Session, instance: Any, policy: ScopePolicy, value: Any
) -> None:
    """
    Set the tombstone column of ``instance`` to ``value`` in a single UPDATE.

    The statement is an ORM bulk UPDATE, so no mapper ``before_update`` /
    ``after_update`` events or validators run. The new value is then written
    as the instance's committed state, leaving it clean.

    Raises:
        NotFound: The row no longer exists
    """
    entity_type = type(instance)
    stmt = (
        update(entity_type)
        .where(*instance_criteria(instance))
        .values({policy.column(entity_type): value})
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount == 0:
        raise NotFound(entity_type, identity_of(instance))

    set_committed_value(instance, policy.tombstone_field, value)


OrderBy = Union[Any, Sequence[Any], None]


class ReadOperationsMixin:
    """Class-level read and aggregate operations taking the session first."""

    @classmethod
    def _resolve_column(cls, column: Any) -> Any:
        if isinstance(column, str):
            return getattr(cls, column)
        return column

    @classmethod
    def _default_order(cls) -> List[Any]:
        return list(inspect(cls).primary_key)

    @classmethod
    def find(
        cls,
        session: Session,
        *criteria: Any,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Any]:
        """
        Return the records matching ``criteria``.

        Example:
            >>> Android.find(session, Android.name == "R2D2")
            >>> Android.variants.find_including_deleted(session, order_by=Android.name)
        """
        stmt = select(cls).where(*criteria)
        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                stmt = stmt.order_by(*order_by)
            else:
                stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return list(session.scalars(stmt).all())

    @classmethod
    def all(cls, session: Session) -> List[Any]:
        return cls.find(session, order_by=cls._default_order())

    @classmethod
    def first(
        cls, session: Session, *criteria: Any, order_by: OrderBy = None
    ) -> Optional[Any]:
        """First matching record, by primary key unless ``order_by`` is given."""
        records = cls.find(
            session,
            *criteria,
            order_by=order_by if order_by is not None else cls._default_order(),
            limit=1,
        )
        return records[0] if records else None

    @classmethod
    def get(cls, session: Session, ident: Any) -> Optional[Any]:
        """Record with primary key ``ident``.

        Unlike ``Session.get`` this always queries, so a soft-deleted record
        already in the identity map is not returned.
        """
        return cls.first(session, *primary_key_criteria(cls, ident))

    @classmethod
    def count(cls, session: Session, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(cls).where(*criteria)
        return session.scalar(stmt) or 0

    @classmethod
    def sum(cls, session: Session, column: Any, *criteria: Any) -> Any:
        stmt = (
            select(func.coalesce(func.sum(cls._resolve_column(column)), 0))
            .select_from(cls)
            .where(*criteria)
        )
        return session.scalar(stmt)

    @classmethod
    def average(cls, session: Session, column: Any, *criteria: Any) -> Optional[float]:
        stmt = (
            select(func.avg(cls._resolve_column(column)))
            .select_from(cls)
            .where(*criteria)
        )
        result = session.scalar(stmt)
        return float(result) if result is not None else None

    @classmethod
    def minimum(cls, session: Session, column: Any, *criteria: Any) -> Any:
        stmt = (
            select(func.min(cls._resolve_column(column)))
            .select_from(cls)
            .where(*criteria)
        )
        return session.scalar(stmt)

    @classmethod
    def maximum(cls, session: Session, column: Any, *criteria: Any) -> Any:
        stmt = (
            select(func.max(cls._resolve_column(column)))
            .select_from(cls)
            .where(*criteria)
        )
        return session.scalar(stmt)

    @classmethod
    def exists(cls, session: Session, *criteria: Any) -> bool:
        return cls.count(session, *criteria) > 0
