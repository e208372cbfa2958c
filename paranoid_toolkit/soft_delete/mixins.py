"""
SQLAlchemy mixins for soft delete functionality.

``ParanoidMixin`` gives a registered model its instance-level destroy and
restore, the class-level read operations and the ``variants`` namespace.
``DeletedAtMixin`` adds the conventional ``deleted_at`` tombstone column.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session

from .destroy import DestroyController
from .exceptions import DetachedInstanceError
from .models import DestroyState, RestoreOptions
from .queries import ReadOperationsMixin
from .registry import Registration, default_registry
from .restore import RestoreController
from .variants import VariantAccessor


class DeletedAtMixin:
    """
    Mixin adding a nullable ``deleted_at`` timestamp column.

    Usage:
        @paranoid()
        class Android(Base, DeletedAtMixin, ParanoidMixin):
            __tablename__ = 'androids'
            id = Column(Integer, primary_key=True)
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )


class ParanoidMixin(ReadOperationsMixin):
    """
    Mixin giving a registered model the soft delete API.

    The model must also be registered with ``configure()`` or ``@paranoid``,
    which chooses its tombstone column and values.

    Usage:
        @paranoid("alive", destroyed_value=False, not_destroyed_value=True)
        class Pirate(Base, ParanoidMixin):
            __tablename__ = 'pirates'
            id = Column(Integer, primary_key=True)
            alive = Column(Boolean, default=True)

        pirate.destroy()
        Pirate.count(session)                            # active only
        Pirate.variants.count_including_deleted(session)
        Pirate.restore_by_id(session, pirate.id)
    """

    variants = VariantAccessor()

    @classmethod
    def paranoid_registration(cls) -> Registration:
        return default_registry.require(cls)

    def _session(self, session: Optional[Session]) -> Session:
        session = session or object_session(self)
        if session is None:
            raise DetachedInstanceError(self)
        return session

    @property
    def destroy_state(self) -> DestroyState:
        return self.paranoid_registration().policy.state_of(self)

    @property
    def is_destroyed(self) -> bool:
        return self.destroy_state is not DestroyState.ACTIVE

    def destroy(self, session: Optional[Session] = None) -> Optional["ParanoidMixin"]:
        """
        Soft delete this record.

        Returns:
            The record, or None when a ``before_destroy`` hook refused
        """
        return DestroyController(self._session(session)).destroy(self)

    def restore(
        self,
        session: Optional[Session] = None,
        include: Union[str, List[str], None] = None,
        include_destroyed_dependents: Optional[bool] = None,
    ) -> Optional["ParanoidMixin"]:
        """
        Restore this record and, by default, its destroyed dependents.

        Args:
            session: Session to use; the record's own session if None
            include: Relationship name(s) restored unconditionally
            include_destroyed_dependents: Restore owned dependents; defaults
                to True unless ``include`` is given

        Returns:
            The record, or None when a ``before_restore`` hook refused
        """
        options: Dict[str, Any] = {
            "include": include or [],
            "include_destroyed_dependents": include_destroyed_dependents,
        }
        return RestoreController(self._session(session)).restore_instance(
            self, options
        )

    @classmethod
    def destroy_all(cls, session: Session, *criteria: Any) -> List[Any]:
        return DestroyController(session).destroy_all(cls, *criteria)

    @classmethod
    def delete_all(cls, session: Session, predicate_or_id: Any = None) -> int:
        """Hard delete rows in any state; no hooks run."""
        return DestroyController(session).hard_delete(cls, predicate_or_id)

    @classmethod
    def restore_by_id(
        cls,
        session: Session,
        ident: Any,
        include: Union[str, List[str], None] = None,
        include_destroyed_dependents: Optional[bool] = None,
    ) -> Optional[Any]:
        options: Dict[str, Any] = {
            "include": include or [],
            "include_destroyed_dependents": include_destroyed_dependents,
        }
        return RestoreController(session).restore(cls, ident, options)
