"""
Scoped query gate - the default soft delete filter.

Every ORM SELECT executed through a Session passes the gate, which adds a
``with_loader_criteria`` option per registered entity type:

- no exclusive scope: ``tombstone_field == not_destroyed_value``
- ``UNFILTERED`` scope: nothing
- ``DELETED_ONLY`` scope: the inverse criterion

Relationship loads (lazy, selectin, subquery loaders) always get the default
criterion, even inside an exclusive scope, so eager and lazy loading never
leak soft-deleted related rows. A statement can opt out entirely with the
``include_deleted`` execution option.

Usage:
    # Installed automatically by configure(); explicit form
    install_query_gate(sessionmaker_or_session_class)

    # Skip the filter for one statement
    session.execute(select(Android).execution_options(include_deleted=True))
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.orm import FromStatement, ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql import CompoundSelect, Select
from sqlalchemy.sql.elements import ColumnElement

from ..config import get_config
from .scope import ScopeMode, current_mode

if TYPE_CHECKING:
    from .registry import PolicyRegistry, Registration

logger = logging.getLogger(__name__)

# Execution option marking a statement as relationship pre-loading, for
# loaders SQLAlchemy does not already flag as relationship loads
PRELOAD_OPTION = "paranoid_preload"


class ScopedQueryGate:
    """Adds the soft delete criteria to ORM SELECT statements."""

    def __init__(self, registry: Optional["PolicyRegistry"] = None):
        self._registry = registry

    @property
    def registry(self) -> "PolicyRegistry":
        if self._registry is None:
            from .registry import default_registry

            return default_registry
        return self._registry

    def criterion_for(
        self, registration: "Registration", preloading: bool = False
    ) -> Optional[ColumnElement[bool]]:
        """Criterion to apply to ``registration``'s type, None for no filter."""
        policy = registration.policy
        entity = registration.entity_type

        if preloading:
            return policy.active_criterion(entity)

        mode = current_mode(entity)
        if mode is None:
            return policy.active_criterion(entity)
        if mode is ScopeMode.DELETED_ONLY:
            return policy.destroyed_criterion(entity)
        return None

    def loader_options(self, preloading: bool = False) -> List[Any]:
        options = []
        for registration in self.registry:
            criterion = self.criterion_for(registration, preloading=preloading)
            if criterion is not None:
                options.append(
                    with_loader_criteria(
                        registration.entity_type,
                        criterion,
                        include_aliases=True,
                        propagate_to_loaders=False,
                    )
                )
        return options

    def apply(self, statement: Any, preloading: bool = False) -> Any:
        """Return ``statement`` with the applicable criteria attached."""
        options = self.loader_options(preloading=preloading)
        if not options:
            return statement
        return statement.options(*options)

    def __call__(self, orm_execute_state: ORMExecuteState) -> None:
        if not orm_execute_state.is_select or orm_execute_state.is_column_load:
            return

        statement = orm_execute_state.statement
        if not isinstance(statement, (Select, CompoundSelect, FromStatement)):
            return

        execution_options = orm_execute_state.execution_options
        if execution_options.get(get_config().include_deleted_option):
            return

        preloading = orm_execute_state.is_relationship_load or bool(
            execution_options.get(PRELOAD_OPTION)
        )
        orm_execute_state.statement = self.apply(statement, preloading=preloading)


_installed: Dict[Tuple[Any, int], ScopedQueryGate] = {}


def _gate_key(target: Any, registry: Optional["PolicyRegistry"]) -> Tuple[Any, int]:
    # None and the default registry share one gate
    return target, id(ScopedQueryGate(registry).registry)


def install_query_gate(
    target: Any = Session, registry: Optional["PolicyRegistry"] = None
) -> ScopedQueryGate:
    """
    Listen for ``do_orm_execute`` on ``target`` with the gate of ``registry``.

    Args:
        target: Session class, sessionmaker or Session instance
        registry: Registry whose types are filtered; the default one if None

    Returns:
        The installed gate; installing twice is a no-op
    """
    key = _gate_key(target, registry)
    gate = _installed.get(key)
    if gate is None:
        gate = ScopedQueryGate(registry)
        _installed[key] = gate

    if not event.contains(target, "do_orm_execute", gate):
        event.listen(target, "do_orm_execute", gate)
        logger.debug(f"Installed soft delete query gate on {target!r}")

    return gate


def uninstall_query_gate(
    target: Any = Session, registry: Optional["PolicyRegistry"] = None
) -> None:
    gate = _installed.pop(_gate_key(target, registry), None)
    if gate is not None and event.contains(target, "do_orm_execute", gate):
        event.remove(target, "do_orm_execute", gate)
