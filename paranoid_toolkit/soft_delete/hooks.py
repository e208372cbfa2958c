"""
Lifecycle hooks for destroy and restore.

SQLAlchemy has no destroy/restore events, so hooks are collected here from two
sources, in order: a method of the event's name defined on the model class,
then listeners registered with :func:`listen` or :func:`listens_for`.

A ``before_*`` hook returning exactly ``False`` aborts the transition.
Exceptions raised by ``after_*`` hooks propagate to the caller.
"""

import functools
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

if TYPE_CHECKING:
    from .registry import PolicyRegistry

BEFORE_DESTROY = "before_destroy"
AFTER_DESTROY = "after_destroy"
BEFORE_RESTORE = "before_restore"
AFTER_RESTORE = "after_restore"

EVENTS = (BEFORE_DESTROY, AFTER_DESTROY, BEFORE_RESTORE, AFTER_RESTORE)

Hook = Callable[[Any], Any]


class HookDispatcher:
    """Holds the listeners of one entity type and runs hooks for an instance."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Hook]] = {event: [] for event in EVENTS}

    def listen(self, event: str, fn: Hook) -> None:
        self._check_event(event)
        if fn not in self._listeners[event]:
            self._listeners[event].append(fn)

    def remove(self, event: str, fn: Hook) -> None:
        self._check_event(event)
        self._listeners[event].remove(fn)

    def listeners(self, event: str) -> List[Hook]:
        self._check_event(event)
        return list(self._listeners[event])

    def run_before(self, event: str, instance: Any) -> bool:
        """Run ``before_*`` hooks; False as soon as one of them refuses."""
        for hook in self._hooks(event, instance):
            if hook() is False:
                return False
        return True

    def run_after(self, event: str, instance: Any) -> None:
        for hook in self._hooks(event, instance):
            hook()

    def _hooks(self, event: str, instance: Any) -> Iterator[Callable[[], Any]]:
        self._check_event(event)
        # Looked up on the class so an instance-level __getattr__ never answers
        method = getattr(type(instance), event, None)
        if callable(method):
            yield functools.partial(method, instance)
        for fn in list(self._listeners[event]):
            yield functools.partial(fn, instance)

    @staticmethod
    def _check_event(event: str) -> None:
        if event not in EVENTS:
            raise ValueError(
                f"Unknown hook event {event!r}; expected one of {', '.join(EVENTS)}"
            )


def listen(
    entity_type: type,
    event: str,
    fn: Hook,
    registry: Optional["PolicyRegistry"] = None,
) -> None:
    """Register ``fn`` for ``event`` on a configured entity type."""
    from .registry import default_registry

    if registry is None:
        registry = default_registry
    registry.require(entity_type).hooks.listen(event, fn)


def listens_for(
    entity_type: type, event: str, registry: Optional["PolicyRegistry"] = None
) -> Callable[[Hook], Hook]:
    """
    Decorator form of :func:`listen`.

    Example:
        >>> @listens_for(Android, "after_destroy")
        ... def notify(android):
        ...     outbox.append(android.name)
    """

    def decorator(fn: Hook) -> Hook:
        listen(entity_type, event, fn, registry=registry)
        return fn

    return decorator
