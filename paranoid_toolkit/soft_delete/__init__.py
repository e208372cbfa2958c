"""
Soft Delete Module - reversible deletion through a tombstone column.

Registered types are filtered out of ordinary reads once destroyed, can be
read explicitly through ``_including_deleted`` / ``_deleted_only`` variants,
and can be restored together with the records that depend on them.
"""

from .destroy import DestroyController
from .exceptions import (
    CascadeFailure,
    DetachedInstanceError,
    InvalidPolicy,
    NotConfigured,
    NotFound,
    ParanoidError,
)
from .gate import PRELOAD_OPTION, ScopedQueryGate, install_query_gate
from .hooks import (
    AFTER_DESTROY,
    AFTER_RESTORE,
    BEFORE_DESTROY,
    BEFORE_RESTORE,
    listen,
    listens_for,
)
from .mixins import DeletedAtMixin, ParanoidMixin
from .models import (
    DestroyState,
    RelationshipDescriptor,
    RelationshipDirection,
    RestoreOptions,
    ScopePolicy,
    current_timestamp,
)
from .registry import (
    PolicyRegistry,
    Registration,
    configure,
    default_registry,
    paranoid,
)
from .relationships import PARANOID_DEPENDENT_KEY, reflect_relationships
from .restore import RestoreController
from .scope import (
    ExclusiveScope,
    ScopeMode,
    current_mode,
    deleted_only_scope,
    exclusive_scope,
    suspension_depth,
    without_default_scope,
)
from .services import ParanoidService
from .variants import VariantModifier, dispatch, parse_variant_name

__all__ = [
    # Registration
    "configure",
    "paranoid",
    "PolicyRegistry",
    "Registration",
    "default_registry",
    # Mixins
    "ParanoidMixin",
    "DeletedAtMixin",
    # Controllers and services
    "DestroyController",
    "RestoreController",
    "ParanoidService",
    # Scope
    "ExclusiveScope",
    "ScopeMode",
    "exclusive_scope",
    "deleted_only_scope",
    "without_default_scope",
    "current_mode",
    "suspension_depth",
    # Query gate
    "ScopedQueryGate",
    "install_query_gate",
    "PRELOAD_OPTION",
    # Hooks
    "listen",
    "listens_for",
    "BEFORE_DESTROY",
    "AFTER_DESTROY",
    "BEFORE_RESTORE",
    "AFTER_RESTORE",
    # Variants
    "VariantModifier",
    "dispatch",
    "parse_variant_name",
    # Models
    "ScopePolicy",
    "RestoreOptions",
    "RelationshipDescriptor",
    "RelationshipDirection",
    "DestroyState",
    "current_timestamp",
    "reflect_relationships",
    "PARANOID_DEPENDENT_KEY",
    # Exceptions
    "ParanoidError",
    "NotConfigured",
    "InvalidPolicy",
    "NotFound",
    "CascadeFailure",
    "DetachedInstanceError",
]
