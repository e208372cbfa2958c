"""
Per-entity-type registration of scope policies.

Registering a type freezes its :class:`ScopePolicy`, installs the query gate
and composes the type's attribute lookup with the variant dispatcher.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

from ..config import get_config
from .exceptions import InvalidPolicy, NotConfigured
from .hooks import HookDispatcher
from .models import (
    ProviderOrValue,
    RelationshipDescriptor,
    ScopePolicy,
    current_timestamp,
)
from .relationships import reflect_relationships
from .variants import (
    HandlerChain,
    VariantCache,
    build_class_chain,
    install_instance_dispatch,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)


@dataclass
class Registration:
    """Everything bound to one registered entity type.

    The policy is immutable; hooks and the variant caches grow over the
    lifetime of the registration but are never rebuilt.
    """

    entity_type: type
    policy: ScopePolicy
    hooks: HookDispatcher = field(default_factory=HookDispatcher)
    variants: VariantCache = field(default_factory=VariantCache)
    relationship_variants: VariantCache = field(default_factory=VariantCache)
    class_chain: Optional[HandlerChain] = None
    instance_chain: Optional[HandlerChain] = None
    _relationships: Optional[List[RelationshipDescriptor]] = field(
        default=None, repr=False
    )

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def relationships(self) -> List[RelationshipDescriptor]:
        # Reflected on first use so every mapper in the registry is configured
        if self._relationships is None:
            self._relationships = reflect_relationships(self.entity_type)
        return self._relationships

    def relationship(self, name: str) -> Optional[RelationshipDescriptor]:
        for descriptor in self.relationships:
            if descriptor.name == name:
                return descriptor
        return None


class PolicyRegistry:
    """Maps entity types to their registrations."""

    def __init__(self) -> None:
        self._registrations: Dict[type, Registration] = {}
        self._lock = threading.Lock()

    def register(self, entity_type: type, policy: ScopePolicy) -> Registration:
        """
        Register ``entity_type`` with ``policy``.

        Registering again with an equal policy returns the existing
        registration; a different policy raises :class:`InvalidPolicy`.
        """
        with self._lock:
            existing = self._registrations.get(entity_type)
            if existing is not None:
                if existing.policy != policy:
                    raise InvalidPolicy(
                        f"{entity_type.__name__} is already registered with a "
                        "different scope policy",
                        entity_type=entity_type,
                    )
                return existing

            registration = Registration(entity_type=entity_type, policy=policy)
            registration.class_chain = build_class_chain(registration)
            registration.instance_chain = install_instance_dispatch(registration, self)
            self._registrations[entity_type] = registration

        logger.debug(
            f"Registered {entity_type.__name__} for soft delete "
            f"on '{policy.tombstone_field}'"
        )
        return registration

    def unregister(self, entity_type: type) -> None:
        with self._lock:
            self._registrations.pop(entity_type, None)

    def get(self, entity_type: type) -> Optional[Registration]:
        """Registration of ``entity_type`` or of its nearest registered base."""
        for klass in getattr(entity_type, "__mro__", (entity_type,)):
            registration = self._registrations.get(klass)
            if registration is not None:
                return registration
        return None

    def require(self, entity_type: type) -> Registration:
        registration = self.get(entity_type)
        if registration is None:
            raise NotConfigured(entity_type)
        return registration

    def is_registered(self, entity_type: type) -> bool:
        return self.get(entity_type) is not None

    def __iter__(self) -> Iterator[Registration]:
        return iter(list(self._registrations.values()))

    def __len__(self) -> int:
        return len(self._registrations)


default_registry = PolicyRegistry()


def configure(
    entity_type: T,
    tombstone_field: Optional[str] = None,
    destroyed_value: ProviderOrValue = current_timestamp,
    not_destroyed_value: Any = None,
    registry: Optional[PolicyRegistry] = None,
) -> Registration:
    """
    Register a mapped class for soft delete.

    Args:
        entity_type: SQLAlchemy mapped class
        tombstone_field: Column attribute holding delete state; defaults to
            ``ParanoidConfig.default_tombstone_field``
        destroyed_value: Value written on destroy, or a zero-argument provider
            evaluated at each destroy
        not_destroyed_value: Sentinel meaning "active"
        registry: Registry to use instead of the default one

    Returns:
        The registration of ``entity_type``

    Raises:
        InvalidPolicy: Unmapped class, unknown tombstone column, or a
            conflicting earlier registration
    """
    from .gate import install_query_gate

    if registry is None:
        registry = default_registry
    field_name = tombstone_field or get_config().default_tombstone_field

    try:
        policy = ScopePolicy(
            tombstone_field=field_name,
            destroyed_value=destroyed_value,
            not_destroyed_value=not_destroyed_value,
        )
    except ValueError as e:
        raise InvalidPolicy(str(e), entity_type=entity_type) from e

    try:
        mapper = inspect(entity_type)
    except NoInspectionAvailable as e:
        raise InvalidPolicy(
            f"{entity_type.__name__} is not a mapped class", entity_type=entity_type
        ) from e

    # mapper.columns does not trigger configuration, so related classes may
    # still be undeclared at this point
    if field_name not in mapper.columns:
        raise InvalidPolicy(
            f"{entity_type.__name__} has no mapped column {field_name!r}",
            entity_type=entity_type,
        )

    registration = registry.register(entity_type, policy)
    install_query_gate(registry=registry)
    return registration


def paranoid(
    tombstone_field: Optional[str] = None,
    destroyed_value: ProviderOrValue = current_timestamp,
    not_destroyed_value: Any = None,
    registry: Optional[PolicyRegistry] = None,
) -> Callable[[T], T]:
    """
    Class decorator form of :func:`configure`.

    Example:
        >>> @paranoid()
        ... class Android(Base, ParanoidMixin):
        ...     __tablename__ = "androids"
        ...     id = Column(Integer, primary_key=True)
        ...     deleted_at = Column(DateTime)

        >>> @paranoid("alive", destroyed_value=False, not_destroyed_value=True)
        ... class Pirate(Base, ParanoidMixin):
        ...     ...
    """

    def decorator(cls: T) -> T:
        configure(
            cls,
            tombstone_field=tombstone_field,
            destroyed_value=destroyed_value,
            not_destroyed_value=not_destroyed_value,
            registry=registry,
        )
        return cls

    return decorator
