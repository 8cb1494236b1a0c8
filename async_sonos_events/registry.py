# -*- coding: utf-8 -*-
"""In-memory registry of active subscriptions."""

import logging
import time
from asyncio import Lock
from typing import Dict, List, Mapping, Optional

from async_sonos_events.const import EventEndpoint, PropertyState, SubscriptionId
from async_sonos_events.utils import renewal_deadline

_LOGGER = logging.getLogger(__name__)


class Subscription:
    """
    Subscription.

    Client-side record of one lease granted by the device.
    """

    def __init__(
        self, sid: SubscriptionId, endpoint: EventEndpoint, expires_at: float
    ) -> None:
        """Initialize."""
        self.sid = sid
        self.endpoint = endpoint
        self.expires_at = expires_at
        self.state: Dict[str, str] = {}

    def is_due(self, now: float) -> bool:
        """Test if the lease needs renewal at now."""
        return self.expires_at <= now

    def __repr__(self) -> str:
        """Return the representation."""
        return f"<{type(self).__name__}({self.sid}, {self.endpoint})>"


class SubscriptionRegistry:
    """
    Table of subscriptions, keyed by SID.

    All mutations are expected to be performed while holding `lock`. Reads
    from the event loop thread without awaiting in between are safe without it.
    """

    def __init__(self) -> None:
        """Initialize."""
        self.lock = Lock()
        self._subscriptions: Dict[SubscriptionId, Subscription] = {}

    def __len__(self) -> int:
        """Get number of subscriptions."""
        return len(self._subscriptions)

    def __contains__(self, sid: object) -> bool:
        """Test if a subscription with sid is registered."""
        return sid in self._subscriptions

    @property
    def subscriptions(self) -> Mapping[SubscriptionId, Subscription]:
        """Get a copy of all subscriptions."""
        return dict(self._subscriptions)

    def get(self, sid: SubscriptionId) -> Optional[Subscription]:
        """Get the subscription for sid."""
        return self._subscriptions.get(sid)

    def sid_for_endpoint(self, endpoint: EventEndpoint) -> Optional[SubscriptionId]:
        """Get the SID currently subscribed to endpoint."""
        for sid, subscription in self._subscriptions.items():
            if subscription.endpoint == endpoint:
                return sid

        return None

    def add(
        self,
        sid: SubscriptionId,
        endpoint: EventEndpoint,
        lease_seconds: int,
        now: Optional[float] = None,
    ) -> Subscription:
        """Register a new subscription, replacing any for the same SID."""
        subscription = Subscription(sid, endpoint, renewal_deadline(lease_seconds, now))
        if sid in self._subscriptions:
            _LOGGER.debug("Replacing existing subscription for SID: %s", sid)
        self._subscriptions[sid] = subscription
        return subscription

    def remove(self, sid: SubscriptionId) -> Optional[Subscription]:
        """Remove the subscription for sid, if any."""
        return self._subscriptions.pop(sid, None)

    def clear(self) -> List[Subscription]:
        """Remove all subscriptions."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        return subscriptions

    def renewed(
        self, sid: SubscriptionId, lease_seconds: int, now: Optional[float] = None
    ) -> Optional[Subscription]:
        """Move the renewal deadline of sid forward, if it still exists."""
        subscription = self._subscriptions.get(sid)
        if subscription is None:
            _LOGGER.debug("Renewed SID %s is no longer registered", sid)
            return None

        subscription.expires_at = renewal_deadline(lease_seconds, now)
        return subscription

    def merge_state(
        self, sid: SubscriptionId, changes: Mapping[str, str]
    ) -> Optional[PropertyState]:
        """
        Merge changed properties into the accumulated state of sid.

        :return: Snapshot of the accumulated state, or None if sid is unknown.
        """
        subscription = self._subscriptions.get(sid)
        if subscription is None:
            return None

        subscription.state.update(changes)
        return dict(subscription.state)

    def due(self, now: Optional[float] = None) -> List[Subscription]:
        """Get all subscriptions which need renewal."""
        if now is None:
            now = time.monotonic()
        return [
            subscription
            for subscription in self._subscriptions.values()
            if subscription.is_due(now)
        ]
