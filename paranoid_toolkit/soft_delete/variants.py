"""
Variant dispatch: ``<base>_including_deleted`` and ``<base>_deleted_only``.

Variants are synthesised on first request and cached per
``(entity type, base name, modifier)``; afterwards resolving one is a plain
dictionary lookup.

Unknown attribute names go through an ordered :class:`HandlerChain`. The
variant handlers are tried first; when none of them claims the name, the chain
falls back to whatever ``__getattr__`` the class had before registration, and
otherwise raises ``AttributeError``.
"""

import logging
import threading
import types
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from sqlalchemy import select
from sqlalchemy.orm import object_session, with_parent

from ..config import ParanoidConfig, get_config
from .exceptions import DetachedInstanceError
from .models import RelationshipDescriptor
from .scope import ExclusiveScope, ScopeMode

if TYPE_CHECKING:
    from .registry import PolicyRegistry, Registration

logger = logging.getLogger(__name__)


class VariantModifier(str, Enum):
    """How a variant changes the visibility filter of its base operation."""

    INCLUDING_DELETED = "including_deleted"
    DELETED_ONLY = "deleted_only"

    @property
    def scope_mode(self) -> ScopeMode:
        if self is VariantModifier.INCLUDING_DELETED:
            return ScopeMode.UNFILTERED
        return ScopeMode.DELETED_ONLY

    def suffix(self, config: Optional[ParanoidConfig] = None) -> str:
        config = config or get_config()
        if self is VariantModifier.INCLUDING_DELETED:
            return config.including_deleted_suffix
        return config.deleted_only_suffix


VariantKey = Tuple[type, str, VariantModifier]

# Only reads and aggregates get variants
STATE_CHANGING_OPERATIONS = frozenset(
    {"destroy", "restore", "destroy_all", "delete_all", "restore_by_id"}
)


def parse_variant_name(
    name: str, config: Optional[ParanoidConfig] = None
) -> Optional[Tuple[str, VariantModifier]]:
    """Split ``name`` into ``(base, modifier)``, or None if it is no variant."""
    if name.startswith("_"):
        return None
    config = config or get_config()
    candidates = sorted(
        ((modifier.suffix(config), modifier) for modifier in VariantModifier),
        key=lambda item: len(item[0]),
        reverse=True,
    )
    for suffix, modifier in candidates:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)], modifier
    return None


class VariantCache:
    """Lazily filled mapping of variant keys to synthesised callables."""

    def __init__(self) -> None:
        self._variants: Dict[VariantKey, Callable[..., Any]] = {}
        self._lock = threading.Lock()
        self.synthesis_count = 0

    def get_or_create(
        self, key: VariantKey, factory: Callable[[], Callable[..., Any]]
    ) -> Callable[..., Any]:
        variant = self._variants.get(key)
        if variant is not None:
            return variant

        with self._lock:
            variant = self._variants.get(key)
            if variant is None:
                variant = factory()
                self._variants[key] = variant
                self.synthesis_count += 1
                logger.debug(
                    f"Synthesised variant {variant.__name__} for {key[0].__name__}"
                )
        return variant

    def __contains__(self, key: object) -> bool:
        return key in self._variants

    def __len__(self) -> int:
        return len(self._variants)

    def keys(self) -> List[VariantKey]:
        return list(self._variants)


def synthesize_operation_variant(
    base: str, modifier: VariantModifier, name: str
) -> Callable[..., Any]:
    """Wrap the class operation ``base`` in an exclusive scope."""
    mode = modifier.scope_mode

    def variant(owner: type, *args: Any, **kwargs: Any) -> Any:
        operation = getattr(owner, base)
        with ExclusiveScope(owner, mode=mode):
            return operation(*args, **kwargs)

    variant.__name__ = name
    variant.__qualname__ = name
    variant.__doc__ = f"``{base}`` with the soft delete filter {mode.value}."
    return variant


def synthesize_relationship_variant(
    relationship: RelationshipDescriptor, modifier: VariantModifier, name: str
) -> Callable[..., Any]:
    """Fetch the related record(s) one hop, ignoring the target's own filter.

    The relationship accessor itself is bypassed: it would run as a
    relationship load, which always applies the target's default filter.
    """
    mode = modifier.scope_mode

    def variant(instance: Any, session: Any = None) -> Any:
        session = session or object_session(instance)
        if session is None:
            raise DetachedInstanceError(instance)

        attribute = getattr(type(instance), relationship.name)
        stmt = select(relationship.target_type).where(with_parent(instance, attribute))
        with ExclusiveScope(relationship.target_type, mode=mode):
            related = list(session.scalars(stmt).all())

        if relationship.uselist:
            return related
        return related[0] if related else None

    variant.__name__ = name
    variant.__qualname__ = name
    return variant


class OperationHandler:
    """One link of a :class:`HandlerChain`."""

    def resolve(self, owner: Any, name: str) -> Optional[Callable[..., Any]]:
        """Return a callable for ``name`` or None when this handler passes."""
        raise NotImplementedError


class OperationVariantHandler(OperationHandler):
    """Resolves ``<operation><suffix>`` names on a registered class."""

    def __init__(self, registration: "Registration"):
        self.registration = registration

    def resolve(self, owner: Any, name: str) -> Optional[Callable[..., Any]]:
        if not isinstance(owner, type):
            return None
        parsed = parse_variant_name(name)
        if parsed is None:
            return None
        base, modifier = parsed
        if base in STATE_CHANGING_OPERATIONS:
            return None
        if not callable(getattr(owner, base, None)):
            return None

        fn = self.registration.variants.get_or_create(
            (owner, base, modifier),
            lambda: synthesize_operation_variant(base, modifier, name),
        )
        return types.MethodType(fn, owner)


class RelationshipVariantHandler(OperationHandler):
    """Resolves ``<relationship><suffix>`` names on instances."""

    def __init__(self, registration: "Registration", registry: "PolicyRegistry"):
        self.registration = registration
        self.registry = registry

    def resolve(self, owner: Any, name: str) -> Optional[Callable[..., Any]]:
        if isinstance(owner, type):
            return None
        parsed = parse_variant_name(name)
        if parsed is None:
            return None
        base, modifier = parsed

        relationship = self.registration.relationship(base)
        if relationship is None:
            return None
        if modifier is VariantModifier.DELETED_ONLY and not self.registry.is_registered(
            relationship.target_type
        ):
            return None

        fn = self.registration.relationship_variants.get_or_create(
            (type(owner), base, modifier),
            lambda: synthesize_relationship_variant(relationship, modifier, name),
        )
        return types.MethodType(fn, owner)


class FallbackHandler:
    """Terminal link: the lookup that existed before registration."""

    def __init__(self, previous: Optional[Callable[[Any, str], Any]] = None):
        self.previous = previous

    def __call__(self, owner: Any, name: str) -> Any:
        if self.previous is not None:
            return self.previous(owner, name)
        owner_name = owner.__name__ if isinstance(owner, type) else type(owner).__name__
        raise AttributeError(f"'{owner_name}' object has no attribute '{name}'")


class HandlerChain:
    """Ordered handlers followed by a fallback."""

    def __init__(self, handlers: Sequence[OperationHandler], fallback: FallbackHandler):
        self.handlers = list(handlers)
        self.fallback = fallback

    def dispatch(self, owner: Any, name: str) -> Any:
        if not name.startswith("_"):
            for handler in self.handlers:
                resolved = handler.resolve(owner, name)
                if resolved is not None:
                    return resolved
        return self.fallback(owner, name)


def build_class_chain(registration: "Registration") -> HandlerChain:
    return HandlerChain([OperationVariantHandler(registration)], FallbackHandler())


def install_instance_dispatch(
    registration: "Registration", registry: "PolicyRegistry"
) -> HandlerChain:
    """Compose the class's ``__getattr__`` with the relationship variants."""
    cls = registration.entity_type
    chain = HandlerChain(
        [RelationshipVariantHandler(registration, registry)],
        FallbackHandler(getattr(cls, "__getattr__", None)),
    )

    def __getattr__(self: Any, name: str) -> Any:
        return chain.dispatch(self, name)

    cls.__getattr__ = __getattr__  # type: ignore[attr-defined]
    return chain


def dispatch(
    owner: Any, name: str, registry: Optional["PolicyRegistry"] = None
) -> Any:
    """
    Resolve ``name`` on a registered class or instance through its chain.

    Example:
        >>> dispatch(Android, "count_including_deleted")(session)
        >>> dispatch(r2d2, "owner_including_deleted")()
    """
    from .registry import default_registry

    entity_type = owner if isinstance(owner, type) else type(owner)
    if registry is None:
        registry = default_registry
    registration = registry.require(entity_type)
    if owner is entity_type:
        chain = registration.class_chain
    else:
        chain = registration.instance_chain
    return chain.dispatch(owner, name)  # type: ignore[union-attr]


class VariantNamespace:
    """Attribute namespace resolving variant names for one owner."""

    def __init__(self, owner: Any):
        self._owner = owner

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return dispatch(self._owner, name)

    def __repr__(self) -> str:
        return f"<VariantNamespace of {self._owner!r}>"


class VariantAccessor:
    """Descriptor exposing ``Model.variants`` and ``instance.variants``."""

    def __get__(self, instance: Any, owner: type) -> VariantNamespace:
        return VariantNamespace(owner if instance is None else instance)
