"""Exceptions for soft delete operations."""

from typing import Any, List, Optional, Tuple


class ParanoidError(Exception):
    """Base exception for soft delete operations."""

    def __init__(
        self,
        message: str,
        entity_type: Optional[type] = None,
        entity_id: Optional[Any] = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class NotConfigured(ParanoidError):
    """Raised when an entity type was never registered with a scope policy."""

    def __init__(self, entity_type: type):
        super().__init__(
            f"{entity_type.__name__} is not configured for soft delete; "
            "register it with configure() or @paranoid first",
            entity_type=entity_type,
        )


class InvalidPolicy(ParanoidError):
    """Raised when a scope policy is inconsistent or conflicts with a prior one."""


class NotFound(ParanoidError):
    """Raised when the target row does not exist under the applicable scope."""

    def __init__(self, entity_type: type, entity_id: Any):
        super().__init__(
            f"{entity_type.__name__} with id {entity_id!r} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class DetachedInstanceError(ParanoidError):
    """Raised when an instance operation needs a session and has none."""

    def __init__(self, instance: Any):
        super().__init__(
            f"{type(instance).__name__} instance is not attached to a session",
            entity_type=type(instance),
        )


class CascadeFailure(ParanoidError):
    """Raised when one or more branches of a cascading restore failed.

    ``failures`` holds ``(relationship_name, related_id, exception)`` tuples in
    the order they happened. Rows restored before the failure stay restored.
    """

    def __init__(
        self,
        entity_type: type,
        entity_id: Any,
        failures: List[Tuple[str, Any, BaseException]],
    ):
        self.failures = failures
        summary = ", ".join(
            f"{name}[{related_id!r}]: {exc}" for name, related_id, exc in failures
        )
        super().__init__(
            f"Cascading restore of {entity_type.__name__} {entity_id!r} failed "
            f"({len(failures)} branch(es)): {summary}",
            entity_type=entity_type,
            entity_id=entity_id,
        )
