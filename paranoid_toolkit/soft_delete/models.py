"""
Data models for soft delete operations.

These models define the per-entity scope policy, the options accepted by a
restore, and the relationship descriptors the cascade logic works from.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from sqlalchemy import inspect, or_
from sqlalchemy.sql.elements import ColumnElement

from ..config import get_config


def current_timestamp() -> datetime:
    """Default destroyed-value provider: now, in the configured timezone."""
    return datetime.now(get_config().tzinfo())


class DestroyState(str, Enum):
    """Lifecycle state implied by the tombstone field of a record."""

    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"
    HARD_DELETED = "hard_deleted"


class RelationshipDirection(str, Enum):
    """Which side of a relationship an entity is on."""

    OWNS = "owns"  # one-to-many / one-to-one, the foreign key is on the target
    BELONGS_TO = "belongs_to"  # many-to-one, the foreign key is local
    ASSOCIATED = "associated"  # many-to-many through a secondary table


class ScopePolicy(BaseModel):
    """Immutable soft delete configuration of one entity type.

    ``destroyed_value`` may be a literal or a zero-argument callable; a
    callable is evaluated once per destroy and never cached.

    Example:
        >>> ScopePolicy(tombstone_field="deleted_at", destroyed_value=current_timestamp)
        >>> ScopePolicy(tombstone_field="alive", destroyed_value=False,
        ...             not_destroyed_value=True)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    tombstone_field: str = Field(..., description="Attribute holding delete state")
    destroyed_value: Any = Field(
        current_timestamp, description="Value or provider written on destroy"
    )
    not_destroyed_value: Any = Field(
        None, description="Sentinel meaning active", validate_default=True
    )

    @field_validator("tombstone_field")
    @classmethod
    def validate_tombstone_field(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"Tombstone field {v!r} is not a valid attribute name")
        return v

    @field_validator("not_destroyed_value")
    @classmethod
    def validate_distinguishable(cls, v: Any, info: ValidationInfo) -> Any:
        """A literal destroyed value must differ from the active sentinel."""
        destroyed = info.data.get("destroyed_value")
        if not callable(destroyed) and destroyed == v:
            raise ValueError(
                "destroyed_value and not_destroyed_value must be distinguishable"
            )
        return v

    @property
    def has_provider(self) -> bool:
        return callable(self.destroyed_value)

    def resolve_destroyed_value(self) -> Any:
        """Return the value to write on destroy, calling the provider if any."""
        if callable(self.destroyed_value):
            return self.destroyed_value()
        return self.destroyed_value

    def column(self, entity: Any) -> Any:
        return getattr(entity, self.tombstone_field)

    def active_criterion(self, entity: Any) -> ColumnElement[bool]:
        """SQL criterion matching active rows of ``entity``."""
        column = self.column(entity)
        if self.not_destroyed_value is None:
            return column.is_(None)
        return column == self.not_destroyed_value

    def destroyed_criterion(self, entity: Any) -> ColumnElement[bool]:
        """SQL criterion matching soft-deleted rows; the exact complement."""
        column = self.column(entity)
        if self.not_destroyed_value is None:
            return column.is_not(None)
        return or_(column != self.not_destroyed_value, column.is_(None))

    def is_active_value(self, value: Any) -> bool:
        if self.not_destroyed_value is None:
            return value is None
        return bool(value == self.not_destroyed_value)

    def state_of(self, instance: Any) -> DestroyState:
        """Return the lifecycle state of a mapped instance."""
        state = inspect(instance)
        if state.was_deleted:
            return DestroyState.HARD_DELETED
        if self.is_active_value(getattr(instance, self.tombstone_field)):
            return DestroyState.ACTIVE
        return DestroyState.SOFT_DELETED

    def describe(self) -> Dict[str, Any]:
        """Printable summary of the policy."""
        destroyed: Union[str, Any] = self.destroyed_value
        if callable(destroyed):
            destroyed = f"<provider {getattr(destroyed, '__name__', repr(destroyed))}>"
        return {
            "tombstone_field": self.tombstone_field,
            "destroyed_value": destroyed,
            "not_destroyed_value": self.not_destroyed_value,
        }


class RelationshipDescriptor(BaseModel):
    """Read-only view of one declared relationship, as the cascade sees it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    direction: RelationshipDirection
    uselist: bool
    dependent_on_destroy: bool
    target_type: Any
    key: Tuple[str, ...] = ()

    @property
    def restores_by_default(self) -> bool:
        """Owned dependents come back with their owner; parents never do."""
        return (
            self.direction == RelationshipDirection.OWNS and self.dependent_on_destroy
        )

    @property
    def cascades_destroy(self) -> bool:
        return (
            self.direction == RelationshipDirection.OWNS and self.dependent_on_destroy
        )


class RestoreOptions(BaseModel):
    """Options controlling how far a restore cascades.

    ``include`` names relationships that are always restored, whatever their
    direction. Naming any turns the default dependent cascade off unless
    ``include_destroyed_dependents`` is passed as True explicitly.
    """

    model_config = ConfigDict(frozen=True)

    include: List[str] = Field(
        default_factory=list, description="Relationships restored unconditionally"
    )
    include_destroyed_dependents: Optional[bool] = Field(
        None, description="Restore owned dependents; defaults to True without include"
    )

    @field_validator("include", mode="before")
    @classmethod
    def validate_include(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    @property
    def cascades_dependents(self) -> bool:
        if self.include_destroyed_dependents is not None:
            return self.include_destroyed_dependents
        return not self.include

    def should_restore(self, relationship: RelationshipDescriptor) -> bool:
        """Explicit inclusion wins; the default only covers owned dependents."""
        if relationship.name in self.include:
            return True
        return self.cascades_dependents and relationship.restores_by_default

    @classmethod
    def coerce(
        cls, options: Union["RestoreOptions", Dict[str, Any], None]
    ) -> "RestoreOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(options)


ProviderOrValue = Union[Callable[[], Any], Any]
