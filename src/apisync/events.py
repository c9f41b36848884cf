"""Event dispatching for sync extension points and operator signals.

This module provides:
- SyncEvents: Names of every extension point the engine dispatches
- Event payloads (push params, pull veto, query alteration, signals)
- EventDispatcher: Synchronous subscriber registry
- LoggerSubscriber: Routes error/warning/notice signals to logging

Subscribers run in registration order. A subscriber may mutate the
payload (e.g. push params) or veto an action (pull, delete).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apisync.entities import Entity
    from apisync.mapping.models import Mapping
    from apisync.remote.query import SelectQuery
    from apisync.remote.result import ODataObject
    from apisync.store.models import MappedObject

logger = logging.getLogger(__name__)


class SyncEvents(str, Enum):
    """Extension points dispatched by the engine."""

    PUSH_ALLOWED = "push_allowed"
    PUSH_MAPPING_OBJECT = "push_mapping_object"
    PUSH_PARAMS = "push_params"
    PUSH_SUCCESS = "push_success"
    PUSH_FAIL = "push_fail"
    PULL_QUERY = "pull_query"
    PULL_PREPULL = "pull_prepull"
    PULL_ENTITY_VALUE = "pull_entity_value"
    PULL_PRESAVE = "pull_presave"
    DELETE_ALLOWED = "delete_allowed"
    ERROR = "error"
    WARNING = "warning"
    NOTICE = "notice"


# Signal severity, lower is more severe
SIGNAL_LEVELS = {
    SyncEvents.ERROR: 0,
    SyncEvents.WARNING: 1,
    SyncEvents.NOTICE: 2,
}


class PushParams:
    """Outbound field values for one push, mutable by subscribers."""

    def __init__(self, mapping: Mapping, entity: Entity, params: dict[str, Any] | None = None) -> None:
        self.mapping = mapping
        self.entity = entity
        self._params: dict[str, Any] = dict(params or {})

    def get_params(self) -> dict[str, Any]:
        return dict(self._params)

    def get_param(self, key: str) -> Any:
        return self._params.get(key)

    def has_param(self, key: str) -> bool:
        return key in self._params

    def set_param(self, key: str, value: Any) -> None:
        self._params[key] = value

    def unset_param(self, key: str) -> None:
        self._params.pop(key, None)


@dataclass
class SignalEvent:
    """Operator-visible error, warning or notice.

    Attributes:
        message: Message with %-style placeholders.
        args: Values substituted into the message.
        exception: Exception that caused the signal, if any.
    """

    message: str
    args: tuple[Any, ...] = ()
    exception: BaseException | None = None

    def render(self) -> str:
        """Return the message with its arguments applied."""
        return self.message % self.args if self.args else self.message


@dataclass
class PushAllowedEvent:
    """Dispatched before an entity change is pushed or enqueued."""

    entity: Entity
    mapping: Mapping
    op: str
    allowed: bool = True

    def disallow_push(self) -> None:
        self.allowed = False


@dataclass
class PushOpEvent:
    """Dispatched with the mapped object about to be pushed."""

    mapped_object: MappedObject
    mapping: Mapping
    op: str


@dataclass
class PushParamsEvent:
    """Dispatched with the push payload before and after transmission."""

    mapped_object: MappedObject
    params: PushParams


@dataclass
class PullEvent:
    """Dispatched before a remote record is applied to a local entity."""

    mapped_object: MappedObject
    entity: Entity
    record: ODataObject
    op: str
    allowed: bool = True

    def disallow_pull(self) -> None:
        self.allowed = False


@dataclass
class EntityValueEvent:
    """Dispatched after a field plugin computed a pulled value."""

    value: Any
    field_name: str
    entity: Entity
    mapping: Mapping
    record: ODataObject


@dataclass
class QueryEvent:
    """Dispatched with a pull query before execution."""

    mapping: Mapping
    query: SelectQuery


@dataclass
class DeleteAllowedEvent:
    """Dispatched before an orphaned local entity is deleted."""

    mapped_object: MappedObject
    entity: Entity | None
    allowed: bool = True

    def disallow_delete(self) -> None:
        self.allowed = False


Subscriber = Callable[[Any], None]


@dataclass
class EventDispatcher:
    """Synchronous event dispatcher."""

    _subscribers: dict[SyncEvents, list[Subscriber]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def subscribe(self, name: SyncEvents, callback: Subscriber) -> None:
        """Register a callback for an event name."""
        self._subscribers[SyncEvents(name)].append(callback)

    def unsubscribe(self, name: SyncEvents, callback: Subscriber) -> None:
        """Remove a previously registered callback."""
        callbacks = self._subscribers.get(SyncEvents(name), [])
        if callback in callbacks:
            callbacks.remove(callback)

    def dispatch(self, name: SyncEvents, event: Any) -> Any:
        """Call every subscriber for name with event.

        Returns:
            The event, possibly mutated by subscribers.
        """
        for callback in list(self._subscribers.get(SyncEvents(name), [])):
            callback(event)
        return event

    def error(self, message: str, *args: Any, exception: BaseException | None = None) -> None:
        """Dispatch an error signal."""
        self.dispatch(SyncEvents.ERROR, SignalEvent(message, args, exception))

    def warning(self, message: str, *args: Any, exception: BaseException | None = None) -> None:
        """Dispatch a warning signal."""
        self.dispatch(SyncEvents.WARNING, SignalEvent(message, args, exception))

    def notice(self, message: str, *args: Any, exception: BaseException | None = None) -> None:
        """Dispatch a notice signal."""
        self.dispatch(SyncEvents.NOTICE, SignalEvent(message, args, exception))


class LoggerSubscriber:
    """Writes error, warning and notice signals to the apisync logger.

    Signals less severe than the configured level are dropped.
    """

    def __init__(self, log_level: str = "notice") -> None:
        self._threshold = SIGNAL_LEVELS.get(log_level, SIGNAL_LEVELS[SyncEvents.NOTICE])

    def register(self, dispatcher: EventDispatcher) -> None:
        """Subscribe to every signal event of dispatcher."""
        dispatcher.subscribe(SyncEvents.ERROR, self.on_error)
        dispatcher.subscribe(SyncEvents.WARNING, self.on_warning)
        dispatcher.subscribe(SyncEvents.NOTICE, self.on_notice)

    def _enabled(self, name: SyncEvents) -> bool:
        return SIGNAL_LEVELS[name] <= self._threshold

    def on_error(self, event: SignalEvent) -> None:
        if self._enabled(SyncEvents.ERROR):
            logger.error(event.render(), exc_info=event.exception)

    def on_warning(self, event: SignalEvent) -> None:
        if self._enabled(SyncEvents.WARNING):
            logger.warning(event.render(), exc_info=event.exception)

    def on_notice(self, event: SignalEvent) -> None:
        if self._enabled(SyncEvents.NOTICE):
            logger.info(event.render())
