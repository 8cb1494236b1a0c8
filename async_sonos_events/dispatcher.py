# -*- coding: utf-8 -*-
"""Event dispatcher module."""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Set

from async_sonos_events.const import (
    CallbackType,
    ErrorCallbackType,
    EventEndpoint,
    PropertyState,
    ServiceEventCallbackType,
    SubscriptionId,
)

_LOGGER = logging.getLogger(__name__)


class EventDispatcher:
    """
    Publish point for service events and errors.

    Callbacks are called inline, in registration order. When a callback
    returns an awaitable it is scheduled as a task, tasks are created in
    the order the events are dispatched.
    """

    def __init__(self) -> None:
        """Initialize."""
        self._service_event_callbacks: List[ServiceEventCallbackType] = []
        self._error_callbacks: List[ErrorCallbackType] = []
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def add_service_event_callback(
        self, callback: ServiceEventCallbackType
    ) -> Callable[[], None]:
        """Add a callback for service events, returns a callable to remove it."""
        self._service_event_callbacks.append(callback)
        return lambda: self._remove(self._service_event_callbacks, callback)

    def add_error_callback(self, callback: ErrorCallbackType) -> Callable[[], None]:
        """Add a callback for errors, returns a callable to remove it."""
        self._error_callbacks.append(callback)
        return lambda: self._remove(self._error_callbacks, callback)

    @staticmethod
    def _remove(callbacks: List[Any], callback: CallbackType) -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    def service_event(
        self, endpoint: EventEndpoint, sid: SubscriptionId, state: PropertyState
    ) -> None:
        """Dispatch changed state of a subscription."""
        _LOGGER.debug(
            "Dispatching service event for SID: %s, endpoint: %s", sid, endpoint
        )
        for callback in list(self._service_event_callbacks):
            self._call(callback, endpoint, sid, state)

    def error(
        self,
        err: Exception,
        endpoint: Optional[EventEndpoint] = None,
        sid: Optional[SubscriptionId] = None,
    ) -> None:
        """Dispatch an error, related to endpoint/sid."""
        _LOGGER.debug(
            "Dispatching error for SID: %s, endpoint: %s: %r", sid, endpoint, err
        )
        if not self._error_callbacks:
            _LOGGER.warning(
                "Unhandled error for SID: %s, endpoint: %s: %s", sid, endpoint, err
            )
        for callback in list(self._error_callbacks):
            self._call(callback, err, endpoint, sid)

    def _call(self, callback: CallbackType, *args: Any) -> None:
        try:
            result = callback(*args)  # type: ignore
        except Exception:  # pylint: disable=broad-except
            _LOGGER.exception("Error in event callback %s", callback)
            return

        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exception = task.exception()
        if exception is not None:
            _LOGGER.error("Error in event callback task: %r", exception)

    async def async_drain(self) -> None:
        """Wait for all scheduled callback tasks to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
