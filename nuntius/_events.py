"""Distribution of contract log entries to registered event watchers."""

import inspect
import itertools
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import NewType

from ethereum_rpc import LogEntry

from ._contract_abi import ContractABI, Event, FieldValues

logger = logging.getLogger(__name__)


RegistrationId = NewType("RegistrationId", int)
"""An identifier of a watcher registration, unique within an :py:class:`EventRouter`."""


@dataclass(frozen=True, eq=False)
class DecodedEvent:
    """
    An event decoded from a log entry.

    Compared and hashed by identity, so it can be collected in sets or used as a key.
    All the watchers of one dispatch receive the same object.
    """

    event: Event
    """The ABI entry of the event."""

    log_entry: LogEntry
    """The raw log entry."""

    fields: FieldValues
    """The decoded event fields."""

    @property
    def name(self) -> str:
        """The event name."""
        return self.event.name


Watcher = Callable[[DecodedEvent], None | Awaitable[None]]
"""A callback receiving decoded events. Can be a regular or an async function."""


class WatcherFailed(Exception):
    """
    Raised (as a part of :py:class:`DispatchFailed`) for a watcher that raised an exception.
    The original exception is available as ``__cause__``.
    """

    event_name: str
    """The name of the event being dispatched."""

    registration_id: RegistrationId
    """The registration of the failed watcher."""

    error: Exception
    """The exception raised by the watcher."""

    def __init__(self, event_name: str, registration_id: RegistrationId, error: Exception):
        super().__init__(f"Watcher {registration_id} of `{event_name}` failed: {error!r}")
        self.event_name = event_name
        self.registration_id = registration_id
        self.error = error
        self.__cause__ = error


class DispatchFailed(ExceptionGroup[WatcherFailed]):
    """
    Raised by :py:meth:`EventRouter.dispatch` after all the watchers have been called,
    if any of them failed.
    """


class EventRouter:
    """
    A registry of event watchers for a single contract.

    :py:meth:`watch` and :py:meth:`unwatch` are safe to call from other threads
    and from within a watcher.
    """

    def __init__(self, abi: ContractABI):
        self._abi = abi
        self._watchers: dict[str, dict[RegistrationId, Watcher]] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()

    def watch(self, event_name: str, callback: Watcher) -> RegistrationId:
        """
        Registers a callback for the event with the given name.
        Raises :py:class:`UnknownMember` if the contract has no such event.
        """
        event = self._abi.resolve_event(event_name)
        with self._lock:
            registration_id = RegistrationId(next(self._ids))
            self._watchers.setdefault(event.name, {})[registration_id] = callback
        logger.debug("Registered watcher %s for `%s`", registration_id, event.name)
        return registration_id

    def unwatch(self, event_name: str, registration_id: RegistrationId) -> None:
        """Removes a registration. Does nothing if it is not present."""
        with self._lock:
            watchers = self._watchers.get(event_name)
            if watchers is None or watchers.pop(registration_id, None) is None:
                return
            if not watchers:
                del self._watchers[event_name]
        logger.debug("Removed watcher %s for `%s`", registration_id, event_name)

    def watchers(self, event_name: str) -> tuple[RegistrationId, ...]:
        """Returns the active registrations for the event, in the order they were made."""
        with self._lock:
            return tuple(self._watchers.get(event_name, {}))

    async def dispatch(self, log_entry: LogEntry) -> None:
        """
        Decodes the log entry and passes it to the watchers of the corresponding event.

        Log entries without topics are ignored.
        Raises :py:class:`UnknownMember` if the first topic does not belong to a contract event,
        :py:class:`EncodingError` if the entry cannot be decoded,
        and :py:class:`DispatchFailed` if any watcher raised an exception.

        The watchers registered at the moment of the call are notified,
        regardless of any registrations made or removed while they run.
        """
        if not log_entry.topics:
            logger.debug("Ignoring a log entry without topics")
            return

        event = self._abi.resolve_event_by_topic(log_entry.topics[0])

        with self._lock:
            watchers = list(self._watchers.get(event.name, {}).items())

        if not watchers:
            logger.debug("No watchers for `%s`", event.name)
            return

        decoded = DecodedEvent(event, log_entry, event.decode_log_entry(log_entry))

        failures = []
        for registration_id, callback in watchers:
            try:
                result = callback(decoded)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                failures.append(WatcherFailed(event.name, registration_id, exc))

        if failures:
            raise DispatchFailed(
                f"{len(failures)} of {len(watchers)} watcher(s) of `{event.name}` failed", failures
            )
