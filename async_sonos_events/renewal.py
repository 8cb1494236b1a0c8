# -*- coding: utf-8 -*-
"""Renewal of subscriptions before their lease expires."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Set

from async_sonos_events.client import SubscriptionClient
from async_sonos_events.const import RENEW_INTERVAL, EventEndpoint, SubscriptionId
from async_sonos_events.dispatcher import EventDispatcher
from async_sonos_events.exceptions import (
    RemotePreconditionFailed,
    SonosEventError,
)
from async_sonos_events.registry import Subscription, SubscriptionRegistry

_LOGGER = logging.getLogger(__name__)


class RenewalScheduler:
    """
    Periodically renews subscriptions which are due.

    A device which responds with 412 Precondition Failed has lost the
    subscription, most likely because it restarted. The subscription is then
    recreated through resubscribe, which performs a fresh SUBSCRIBE for the
    same endpoint and registers the new SID.
    """

    def __init__(
        self,
        client: SubscriptionClient,
        registry: SubscriptionRegistry,
        dispatcher: EventDispatcher,
        resubscribe: Callable[[EventEndpoint], Awaitable[SubscriptionId]],
        interval: float = RENEW_INTERVAL,
    ) -> None:
        """Initialize."""
        # pylint: disable=too-many-arguments
        self._client = client
        self._registry = registry
        self._dispatcher = dispatcher
        self._resubscribe = resubscribe
        self._interval = interval
        self._task: Optional["asyncio.Task[None]"] = None
        self._in_flight: Set[SubscriptionId] = set()
        self._renewals: Set["asyncio.Task[None]"] = set()

    @property
    def is_running(self) -> bool:
        """Test if the renewal loop is running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the renewal loop."""
        if self.is_running:
            return

        _LOGGER.debug("Starting renewal loop, interval: %fs", self._interval)
        self._task = asyncio.ensure_future(self._renew_loop())

    async def async_stop(self) -> None:
        """Stop the renewal loop, cancelling any renewals in progress."""
        if self._task:
            _LOGGER.debug("Stopping renewal loop")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        renewals = list(self._renewals)
        for renewal in renewals:
            renewal.cancel()
        if renewals:
            await asyncio.gather(*renewals, return_exceptions=True)

    async def _renew_loop(self) -> None:
        """Start renewals of due subscriptions, every interval."""
        while True:
            await asyncio.sleep(self._interval)
            self.start_due_renewals()

    def start_due_renewals(
        self, now: Optional[float] = None
    ) -> List["asyncio.Task[None]"]:
        """
        Start a renewal task for every due subscription.

        Subscriptions with a renewal in progress are skipped, a slow renewal
        never holds back the renewal of other subscriptions.
        """
        if now is None:
            now = time.monotonic()

        due = [
            subscription
            for subscription in self._registry.due(now)
            if subscription.sid not in self._in_flight
        ]
        if due:
            _LOGGER.debug("Renewing %d subscription(s)", len(due))

        renewals = []
        for subscription in due:
            self._in_flight.add(subscription.sid)
            renewal = asyncio.ensure_future(self._async_renew(subscription))
            self._renewals.add(renewal)
            renewal.add_done_callback(self._renewal_done)
            renewals.append(renewal)
        return renewals

    async def async_renew_due(self, now: Optional[float] = None) -> None:
        """Renew all subscriptions which are due and wait for the renewals."""
        renewals = self.start_due_renewals(now)
        if renewals:
            await asyncio.gather(*renewals, return_exceptions=True)

    def _renewal_done(self, renewal: "asyncio.Task[Any]") -> None:
        self._renewals.discard(renewal)
        if renewal.cancelled():
            return
        exception = renewal.exception()
        if exception is not None:
            _LOGGER.error("Unexpected error during renewal: %r", exception)

    async def _async_renew(self, subscription: Subscription) -> None:
        """Renew a single subscription, errors go to the dispatcher."""
        sid = subscription.sid
        endpoint = subscription.endpoint
        try:
            try:
                lease_seconds = await self._client.async_renew(endpoint, sid)
            except RemotePreconditionFailed:
                _LOGGER.info(
                    "Device lost subscription %s for %s, resubscribing", sid, endpoint
                )
                await self._async_resubscribe(subscription)
                return
            except SonosEventError as err:
                _LOGGER.warning("Failed renewing %s for %s: %s", sid, endpoint, err)
                self._dispatcher.error(err, endpoint, sid)
                return

            async with self._registry.lock:
                self._registry.renewed(sid, lease_seconds)
        finally:
            self._in_flight.discard(sid)

    async def _async_resubscribe(self, subscription: Subscription) -> None:
        """Replace a subscription the device no longer knows with a new one."""
        stale_sid = subscription.sid
        endpoint = subscription.endpoint

        async with self._registry.lock:
            removed = self._registry.remove(stale_sid)
        if removed is None:
            _LOGGER.debug("SID %s was unsubscribed, not resubscribing", stale_sid)
            return

        try:
            new_sid = await self._resubscribe(endpoint)
        except SonosEventError as err:
            _LOGGER.warning("Failed resubscribing to %s: %s", endpoint, err)
            self._dispatcher.error(err, endpoint, stale_sid)
            return

        _LOGGER.debug("Resubscribed to %s, new SID: %s", endpoint, new_sid)

    def __repr__(self) -> str:
        """Return the representation."""
        return f"<{type(self).__name__}(running={self.is_running})>"
