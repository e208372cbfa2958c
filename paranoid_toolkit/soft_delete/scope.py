"""
Exclusive scope: a re-entrant suspension of the default soft delete filter.

The state lives in a ``ContextVar`` so each thread and each asyncio task sees
its own stack of frames. Entering a scope pushes frames; leaving resets the
variable to the token taken on entry, so an inner scope can never drop an
outer one early and an exception can never leave a caller unfiltered.
"""

import functools
from contextvars import ContextVar, Token
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class ScopeMode(str, Enum):
    """How the gate treats an entity type inside an exclusive scope."""

    UNFILTERED = "unfiltered"  # every state is visible
    DELETED_ONLY = "deleted_only"  # only soft-deleted rows are visible


@dataclass(frozen=True)
class ScopeFrame:
    """One suspension entry; ``entity_type`` None covers every type.

    Frames match along the class hierarchy in both directions: the filter
    of a registered base is also the filter of its mapped subclasses.
    """

    entity_type: Optional[type]
    mode: ScopeMode

    def covers(self, entity_type: type) -> bool:
        if self.entity_type is None:
            return True
        return issubclass(self.entity_type, entity_type) or issubclass(
            entity_type, self.entity_type
        )


_frames: ContextVar[Tuple[ScopeFrame, ...]] = ContextVar(
    "paranoid_scope_frames", default=()
)


class ExclusiveScope:
    """Scoped guard suspending the default filter for some entity types.

    Example:
        >>> with ExclusiveScope(Android):
        ...     Android.count(session)   # every row, whatever its state
        >>> with ExclusiveScope(Android, mode=ScopeMode.DELETED_ONLY):
        ...     Android.count(session)   # soft-deleted rows only
    """

    def __init__(self, *entity_types: type, mode: ScopeMode = ScopeMode.UNFILTERED):
        self.entity_types: Tuple[Optional[type], ...] = entity_types or (None,)
        self.mode = ScopeMode(mode)
        self._token: Optional[Token[Tuple[ScopeFrame, ...]]] = None

    def enter(self) -> "ExclusiveScope":
        if self._token is not None:
            raise RuntimeError("ExclusiveScope is already active")
        frames = tuple(ScopeFrame(t, self.mode) for t in self.entity_types)
        self._token = _frames.set(_frames.get() + frames)
        return self

    def exit(self) -> None:
        if self._token is None:
            raise RuntimeError("ExclusiveScope is not active")
        token, self._token = self._token, None
        _frames.reset(token)

    def __enter__(self) -> "ExclusiveScope":
        return self.enter()

    def __exit__(self, *exc_info: Any) -> None:
        self.exit()


def exclusive_scope(
    *entity_types: type, mode: ScopeMode = ScopeMode.UNFILTERED
) -> ExclusiveScope:
    """Return a guard suspending the default filter for ``entity_types``.

    With no types, the suspension applies to every registered type.
    """
    return ExclusiveScope(*entity_types, mode=mode)


def deleted_only_scope(*entity_types: type) -> ExclusiveScope:
    return ExclusiveScope(*entity_types, mode=ScopeMode.DELETED_ONLY)


def current_mode(entity_type: type) -> Optional[ScopeMode]:
    """Mode of the innermost frame covering ``entity_type``, None if unscoped."""
    for frame in reversed(_frames.get()):
        if frame.covers(entity_type):
            return frame.mode
    return None


def suspension_depth(entity_type: Optional[type] = None) -> int:
    """Number of active frames covering ``entity_type`` (all frames if None)."""
    frames = _frames.get()
    if entity_type is None:
        return len(frames)
    return sum(1 for frame in frames if frame.covers(entity_type))


def is_suspended(entity_type: type) -> bool:
    return current_mode(entity_type) is not None


def without_default_scope(*entity_types: type) -> Callable[[F], F]:
    """Decorator running the wrapped callable inside an exclusive scope."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with ExclusiveScope(*entity_types):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
