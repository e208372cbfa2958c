"""
Restore, with cascading restore through related records.

A restore writes the not-destroyed sentinel back with the same hook-bypassing
UPDATE as destroy, inside a SAVEPOINT shared with the restore hooks. It then
walks the relationships selected by :class:`RestoreOptions` and restores the
soft-deleted records found one hop away, recursively.

Each record's own transition is atomic; the cascade as a whole is not.
Records restored before a failing branch stay restored.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from sqlalchemy import select
from sqlalchemy.orm import with_parent

from ..config import CascadeFailurePolicy
from .destroy import TransitionController
from .exceptions import CascadeFailure, NotFound
from .hooks import AFTER_RESTORE, BEFORE_RESTORE
from .models import RelationshipDescriptor, RestoreOptions
from .queries import identity_of, primary_key_criteria
from .registry import Registration
from .scope import ExclusiveScope, ScopeMode

logger = logging.getLogger(__name__)

OptionsLike = Union[RestoreOptions, Dict[str, Any], None]


@dataclass
class _RestoreRun:
    """State of one top-level restore call."""

    options: RestoreOptions
    failure_policy: CascadeFailurePolicy
    visited: Set[Tuple[type, Any]] = field(default_factory=set)
    failures: List[Tuple[str, Any, BaseException]] = field(default_factory=list)


class RestoreController(TransitionController):
    """Brings soft-deleted records of registered types back."""

    def restore(
        self, entity_type: type, ident: Any, options: OptionsLike = None
    ) -> Optional[Any]:
        """
        Restore the record of ``entity_type`` with primary key ``ident``.

        Args:
            entity_type: Registered mapped class
            ident: Primary key value (tuple for composite keys)
            options: :class:`RestoreOptions` or an equivalent dict

        Returns:
            The restored instance, or None when a ``before_restore`` hook refused

        Raises:
            NotFound: No row with that key exists in any state
            CascadeFailure: A related branch failed to restore
        """
        registration = self.registry.require(entity_type)

        with ExclusiveScope(entity_type):
            instance = self.session.scalars(
                select(entity_type).where(*primary_key_criteria(entity_type, ident))
            ).first()
        if instance is None:
            raise NotFound(entity_type, ident)

        return self._run(instance, registration, RestoreOptions.coerce(options))

    def restore_instance(
        self, instance: Any, options: OptionsLike = None
    ) -> Optional[Any]:
        """Restore an instance already loaded in this controller's session."""
        registration = self.registry.require(type(instance))
        self._attach(instance)
        return self._run(instance, registration, RestoreOptions.coerce(options))

    def _run(
        self, instance: Any, registration: Registration, options: RestoreOptions
    ) -> Optional[Any]:
        run = _RestoreRun(
            options=options, failure_policy=self.config.cascade_failure_policy
        )
        # Cascade lookups must not flush unrelated edits either
        with self.session.no_autoflush:
            result = self._restore(instance, registration, run)
        if run.failures:
            raise CascadeFailure(type(instance), identity_of(instance), run.failures)
        return result

    def _restore(
        self, instance: Any, registration: Registration, run: _RestoreRun
    ) -> Optional[Any]:
        key = (registration.entity_type, identity_of(instance))
        if key in run.visited:
            return instance
        run.visited.add(key)

        if self._restore_one(instance, registration) is None:
            return None

        if self.config.cascade_restore_enabled:
            self._cascade(instance, registration, run)
        return instance

    def _restore_one(self, instance: Any, registration: Registration) -> Optional[Any]:
        if not registration.hooks.run_before(BEFORE_RESTORE, instance):
            logger.info(f"Restore of {self._describe(instance)} aborted by hook")
            return None

        policy = registration.policy
        mark = len(self._journal)
        try:
            with self._savepoint():
                self._write(instance, policy, policy.not_destroyed_value)
                registration.hooks.run_after(AFTER_RESTORE, instance)
        except Exception:
            self._revert(mark)
            raise

        self._log(f"Restored {self._describe(instance)}")
        return instance

    def _cascade(
        self, instance: Any, registration: Registration, run: _RestoreRun
    ) -> None:
        for relationship in registration.relationships:
            if not run.options.should_restore(relationship):
                continue
            target = self.registry.get(relationship.target_type)
            if target is None:
                continue

            for related in self._destroyed_related(instance, relationship):
                try:
                    self._restore(related, target, run)
                except CascadeFailure:
                    raise
                except Exception as e:
                    failure = (relationship.name, identity_of(related), e)
                    if run.failure_policy is CascadeFailurePolicy.ABORT:
                        raise CascadeFailure(
                            type(instance), identity_of(instance), [failure]
                        ) from e
                    logger.warning(
                        f"Restoring {relationship.name} of "
                        f"{self._describe(instance)} failed: {e}"
                    )
                    run.failures.append(failure)
            self.session.expire(instance, [relationship.name])

    def _destroyed_related(
        self, instance: Any, relationship: RelationshipDescriptor
    ) -> List[Any]:
        attribute = getattr(type(instance), relationship.name)
        stmt = select(relationship.target_type).where(with_parent(instance, attribute))
        with ExclusiveScope(relationship.target_type, mode=ScopeMode.DELETED_ONLY):
            return list(self.session.scalars(stmt).all())
