"""
Paranoid Toolkit - soft delete policies for SQLAlchemy models.

Instead of removing a row, destroying a record writes a tombstone value into a
configurable column. Ordinary reads then skip it, explicit variants can still
see it, and a restore brings it back together with its dependent records.

Quick Start
-----------
>>> from paranoid_toolkit import ParanoidMixin, paranoid
>>>
>>> @paranoid()
... class Android(Base, ParanoidMixin):
...     __tablename__ = "androids"
...     id = Column(Integer, primary_key=True)
...     name = Column(String(50))
...     deleted_at = Column(DateTime)
>>>
>>> r2d2.destroy()
>>> Android.count(session)
1
>>> Android.variants.count_including_deleted(session)
2
>>> r2d2.restore()

Configuration
-------------
Process-wide settings live in :class:`ParanoidConfig` and can be loaded from
``PARANOID_*`` environment variables or a JSON/YAML file.

License
-------
MIT License - See LICENSE file for details.
"""

__version__ = "1.0.0"

from .config import ParanoidConfig, get_config, set_config
from .soft_delete import (
    CascadeFailure,
    DeletedAtMixin,
    ExclusiveScope,
    InvalidPolicy,
    NotConfigured,
    NotFound,
    ParanoidError,
    ParanoidMixin,
    ParanoidService,
    RestoreOptions,
    ScopeMode,
    configure,
    listens_for,
    paranoid,
)

__all__ = [
    # Registration
    "configure",
    "paranoid",
    # Model API
    "ParanoidMixin",
    "DeletedAtMixin",
    "ParanoidService",
    "RestoreOptions",
    "ExclusiveScope",
    "ScopeMode",
    "listens_for",
    # Configuration
    "ParanoidConfig",
    "get_config",
    "set_config",
    # Exceptions
    "ParanoidError",
    "NotConfigured",
    "InvalidPolicy",
    "NotFound",
    "CascadeFailure",
]
