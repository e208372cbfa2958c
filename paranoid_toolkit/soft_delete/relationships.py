"""Reflection of SQLAlchemy relationships into cascade descriptors."""

from typing import Any, List

from sqlalchemy import inspect
from sqlalchemy.orm import RelationshipProperty

from .models import RelationshipDescriptor, RelationshipDirection

# relationship(..., info={PARANOID_DEPENDENT_KEY: True}) overrides the
# dependent-on-destroy flag derived from the relationship's cascade setting
PARANOID_DEPENDENT_KEY = "paranoid_dependent"

_DIRECTIONS = {
    "ONETOMANY": RelationshipDirection.OWNS,
    "MANYTOONE": RelationshipDirection.BELONGS_TO,
    "MANYTOMANY": RelationshipDirection.ASSOCIATED,
}


def describe_relationship(rel: RelationshipProperty[Any]) -> RelationshipDescriptor:
    """Build the descriptor of a single mapped relationship."""
    info = getattr(rel, "info", {}) or {}
    if PARANOID_DEPENDENT_KEY in info:
        dependent = bool(info[PARANOID_DEPENDENT_KEY])
    else:
        dependent = bool(rel.cascade and rel.cascade.delete)

    return RelationshipDescriptor(
        name=rel.key,
        direction=_DIRECTIONS[rel.direction.name],
        uselist=bool(rel.uselist),
        dependent_on_destroy=dependent,
        target_type=rel.mapper.class_,
        key=tuple(column.key for column in rel.local_columns),
    )


def reflect_relationships(entity_type: type) -> List[RelationshipDescriptor]:
    """List the relationships declared on ``entity_type``, in mapper order."""
    mapper = inspect(entity_type)
    return [describe_relationship(rel) for rel in mapper.relationships]
