"""
Service layer for soft delete operations.

``ParanoidService`` binds the destroy and restore controllers, the deleted
record listings and variant lookup to one session.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import ParanoidConfig
from .destroy import DestroyController
from .registry import PolicyRegistry, default_registry
from .restore import OptionsLike, RestoreController
from .scope import ExclusiveScope, ScopeMode
from .variants import dispatch


class ParanoidService:
    """
    Facade over the soft delete controllers for one session.

    Example:
        >>> service = ParanoidService(session)
        >>> service.destroy(r2d2)
        >>> service.find_deleted(Android)
        [<Android R2D2>]
        >>> service.restore(Android, r2d2.id)
    """

    def __init__(
        self,
        session: Session,
        registry: Optional[PolicyRegistry] = None,
        config: Optional[ParanoidConfig] = None,
    ):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy database session
            registry: Registry of paranoid types; the default one if None
            config: Configuration overriding the global one
        """
        self.session = session
        self.registry = registry if registry is not None else default_registry
        self.config = config
        self._destroyer = DestroyController(session, self.registry, config)
        self._restorer = RestoreController(session, self.registry, config)

    def destroy(self, instance: Any) -> Optional[Any]:
        return self._destroyer.destroy(instance)

    def destroy_all(self, entity_type: type, *criteria: Any) -> List[Any]:
        return self._destroyer.destroy_all(entity_type, *criteria)

    def hard_delete(self, entity_type: type, predicate_or_id: Any = None) -> int:
        return self._destroyer.hard_delete(entity_type, predicate_or_id)

    def restore(
        self, entity_type: type, ident: Any, options: OptionsLike = None
    ) -> Optional[Any]:
        return self._restorer.restore(entity_type, ident, options)

    def restore_instance(
        self, instance: Any, options: OptionsLike = None
    ) -> Optional[Any]:
        return self._restorer.restore_instance(instance, options)

    def find_deleted(
        self, entity_type: type, *criteria: Any, limit: int = 100, offset: int = 0
    ) -> List[Any]:
        """
        List soft-deleted records, most recently destroyed first.

        Args:
            entity_type: Registered mapped class
            *criteria: Additional SQL criteria
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            Soft-deleted records ordered by tombstone value descending
        """
        policy = self.registry.require(entity_type).policy
        stmt = (
            select(entity_type)
            .where(*criteria)
            .order_by(policy.column(entity_type).desc())
            .limit(limit)
            .offset(offset)
        )
        with ExclusiveScope(entity_type, mode=ScopeMode.DELETED_ONLY):
            return list(self.session.scalars(stmt).all())

    def summarize(self, entity_type: type) -> Dict[str, int]:
        """Counts of active and soft-deleted records of ``entity_type``."""
        self.registry.require(entity_type)
        stmt = select(func.count()).select_from(entity_type)

        active = self.session.scalar(stmt) or 0
        with ExclusiveScope(entity_type, mode=ScopeMode.DELETED_ONLY):
            deleted = self.session.scalar(stmt) or 0

        return {
            "active": active,
            "soft_deleted": deleted,
            "total": active + deleted,
        }

    def variant(self, entity_type: type, name: str) -> Any:
        """Resolve a ``<base><suffix>`` variant of ``entity_type``."""
        return dispatch(entity_type, name, registry=self.registry)
