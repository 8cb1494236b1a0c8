# -*- coding: utf-8 -*-
"""Sonos UPnP event subscription module."""

from async_sonos_events.client import SubscriptionClient  # noqa: F401
from async_sonos_events.client import UpnpRequester  # noqa: F401
from async_sonos_events.dispatcher import EventDispatcher  # noqa: F401
from async_sonos_events.event_listener import SonosEventListener  # noqa: F401
from async_sonos_events.exceptions import SonosEventError  # noqa: F401
from async_sonos_events.registry import Subscription  # noqa: F401
from async_sonos_events.registry import SubscriptionRegistry  # noqa: F401
from async_sonos_events.renewal import RenewalScheduler  # noqa: F401
