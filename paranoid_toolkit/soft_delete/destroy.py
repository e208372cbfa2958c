"""
Destroy and hard delete.

Destroy is the soft delete transition: run ``before_destroy`` hooks, then in
a SAVEPOINT cascade to dependent records, write the destroyed value and run
``after_destroy`` hooks. Any failure inside the SAVEPOINT rolls the database
back and restores the in-memory tombstone values.

Hard delete physically removes rows, ignoring the tombstone state, with no
hooks and no cascade.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Set, Tuple

from sqlalchemy import delete, inspect, select
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql.elements import ClauseElement

from ..config import ParanoidConfig, get_config
from .exceptions import DetachedInstanceError, InvalidPolicy, NotFound
from .hooks import AFTER_DESTROY, BEFORE_DESTROY
from .models import RelationshipDescriptor, ScopePolicy
from .queries import identity_of, primary_key_criteria, write_tombstone
from .registry import PolicyRegistry, Registration, default_registry
from .scope import ExclusiveScope

logger = logging.getLogger(__name__)

Visited = Set[Tuple[type, Any]]


class TransitionController:
    """Shared plumbing of the destroy and restore controllers.

    Tombstone writes are journaled so a failed SAVEPOINT can put the previous
    committed values back on the instances it touched.
    """

    def __init__(
        self,
        session: Session,
        registry: Optional[PolicyRegistry] = None,
        config: Optional[ParanoidConfig] = None,
    ):
        self.session = session
        self.registry = registry if registry is not None else default_registry
        self._config = config
        self._journal: List[Tuple[Any, str, Any]] = []

    @property
    def config(self) -> ParanoidConfig:
        return self._config or get_config()

    def _attach(self, instance: Any) -> None:
        """Make sure ``instance`` is persistent in this controller's session."""
        state = inspect(instance)
        if state.was_deleted:
            raise NotFound(type(instance), identity_of(instance))
        if object_session(instance) is not self.session:
            raise DetachedInstanceError(instance)
        if state.pending:
            self.session.flush([instance])

    @contextmanager
    def _savepoint(self) -> Iterator[None]:
        """SAVEPOINT on the session's connection that flushes nothing.

        ``Session.begin_nested`` would flush pending edits of unrelated
        attributes, running their update events and validators.
        """
        with self.session.no_autoflush:
            with self.session.connection().begin_nested():
                yield

    def _write(self, instance: Any, policy: ScopePolicy, value: Any) -> None:
        previous = getattr(instance, policy.tombstone_field)
        write_tombstone(self.session, instance, policy, value)
        self._journal.append((instance, policy.tombstone_field, previous))

    def _revert(self, mark: int) -> None:
        while len(self._journal) > mark:
            instance, field_name, previous = self._journal.pop()
            set_committed_value(instance, field_name, previous)

    def _log(self, message: str) -> None:
        if self.config.log_transitions:
            logger.info(message)

    @staticmethod
    def _describe(instance: Any) -> str:
        return f"{type(instance).__name__} {identity_of(instance)!r}"


class DestroyController(TransitionController):
    """Soft deletes and hard deletes records of registered types."""

    def destroy(self, instance: Any) -> Optional[Any]:
        """
        Soft delete ``instance``.

        Args:
            instance: Persistent instance of a registered type

        Returns:
            The instance, or None when a ``before_destroy`` hook refused

        Raises:
            NotConfigured: The instance's type is not registered
            DetachedInstanceError: The instance is not in this session
            InvalidPolicy: The destroyed-value provider returned the sentinel
        """
        registration = self.registry.require(type(instance))
        self._attach(instance)
        return self._destroy(instance, registration, set())

    def destroy_all(self, entity_type: type, *criteria: Any) -> List[Any]:
        """
        Destroy every currently visible record matching ``criteria``.

        Each record is destroyed on its own; a failure leaves the records
        destroyed before it destroyed. Refused records are left out of the
        returned list.
        """
        self.registry.require(entity_type)
        stmt = select(entity_type).where(*criteria)
        instances = list(self.session.scalars(stmt).all())

        destroyed = []
        for instance in instances:
            if self.destroy(instance) is not None:
                destroyed.append(instance)
        return destroyed

    def hard_delete(self, entity_type: type, predicate_or_id: Any = None) -> int:
        """
        Physically delete rows whatever their tombstone state.

        Args:
            entity_type: Registered mapped class
            predicate_or_id: SQL criterion, primary key value, or None for
                every row

        Returns:
            Number of deleted rows
        """
        self.registry.require(entity_type)

        if predicate_or_id is None:
            criteria: List[Any] = []
        elif isinstance(predicate_or_id, ClauseElement):
            criteria = [predicate_or_id]
        else:
            criteria = primary_key_criteria(entity_type, predicate_or_id)

        with ExclusiveScope(entity_type):
            # Counted up front; rowcount of DELETE .. RETURNING is driver dependent
            keys = self.session.execute(
                select(*inspect(entity_type).primary_key)
                .select_from(entity_type)
                .where(*criteria)
            ).all()
            if keys:
                self.session.execute(
                    delete(entity_type)
                    .where(*criteria)
                    .execution_options(synchronize_session="fetch")
                )

        self._log(f"Hard deleted {len(keys)} {entity_type.__name__} row(s)")
        return len(keys)

    def _destroy(
        self, instance: Any, registration: Registration, visited: Visited
    ) -> Optional[Any]:
        key = (registration.entity_type, identity_of(instance))
        if key in visited:
            return instance
        visited.add(key)

        if not registration.hooks.run_before(BEFORE_DESTROY, instance):
            logger.info(f"Destroy of {self._describe(instance)} aborted by hook")
            return None

        policy = registration.policy
        mark = len(self._journal)
        try:
            with self._savepoint():
                if self.config.cascade_destroy_enabled:
                    self._cascade(instance, registration, visited)

                value = policy.resolve_destroyed_value()
                if policy.is_active_value(value):
                    raise InvalidPolicy(
                        f"Destroyed value provider of {registration.name} returned "
                        f"the not-destroyed sentinel {value!r}",
                        entity_type=registration.entity_type,
                        entity_id=identity_of(instance),
                    )
                self._write(instance, policy, value)
                registration.hooks.run_after(AFTER_DESTROY, instance)
        except Exception:
            self._revert(mark)
            raise

        self._log(f"Destroyed {self._describe(instance)}")
        return instance

    def _cascade(
        self, instance: Any, registration: Registration, visited: Visited
    ) -> None:
        for relationship in registration.relationships:
            if not relationship.cascades_destroy:
                continue
            target = self.registry.get(relationship.target_type)
            if target is None:
                continue

            for dependent in self._active_dependents(instance, relationship):
                self._destroy(dependent, target, visited)
            # The loaded collection still holds the records destroyed above
            self.session.expire(instance, [relationship.name])

    @staticmethod
    def _active_dependents(
        instance: Any, relationship: RelationshipDescriptor
    ) -> List[Any]:
        # The relationship load always applies the default filter
        related = getattr(instance, relationship.name)
        if related is None:
            return []
        if relationship.uselist:
            return list(related)
        return [related]
