# -*- coding: utf-8 -*-
"""Sonos event listener module."""

import asyncio
import logging
from collections import OrderedDict
from http import HTTPStatus
from typing import Any, List, Mapping, Optional, Tuple, Union

from async_sonos_events.aiohttp import AiohttpNotifyServer, AiohttpRequester
from async_sonos_events.client import SubscriptionClient, UpnpRequester
from async_sonos_events.config import (
    CONF_DEVICE_PORT,
    CONF_HOST,
    CONF_INTERFACE,
    CONF_PORT,
    CONF_TIMEOUT,
    validate_config,
)
from async_sonos_events.const import (
    CALLBACK_URL_FMT,
    NOTIFY_BACKLOG_SIZE,
    RENEW_INTERVAL,
    EventEndpoint,
    SubscriptionId,
)
from async_sonos_events.dispatcher import EventDispatcher
from async_sonos_events.exceptions import (
    AlreadyListening,
    DecodeError,
    NotListening,
    SubscriptionNotFound,
)
from async_sonos_events.registry import Subscription, SubscriptionRegistry
from async_sonos_events.renewal import RenewalScheduler
from async_sonos_events.utils import (
    CaseInsensitiveDict,
    decode_property_set,
    get_interface_ip,
)

_LOGGER = logging.getLogger(__name__)

NotifyRequest = Tuple[Mapping[str, str], Union[str, bytes]]


class SonosEventListener:
    """
    Receives events from one device.

    Owns the notify server, the registry of subscriptions and the renewal
    loop. Subscriptions can only be added or removed while listening.

    Consumers register on `dispatcher` for service events and errors:
    - service events are called with (endpoint, sid, accumulated state),
    - errors are called with (error, endpoint, sid).
    """

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        device_host: str,
        config: Mapping[str, Any],
        requester: Optional[UpnpRequester] = None,
        renew_interval: float = RENEW_INTERVAL,
    ) -> None:
        """Initialize.

        config is validated against LISTENER_CONFIG_SCHEMA, `interface` is
            required and determines the address in the callback URL.
        requester defaults to an AiohttpRequester using the configured
            timeout.

        :raise ConfigError: Invalid configuration.
        """
        self._config = validate_config(config)
        self._device_host = device_host
        self._requester = requester or AiohttpRequester(self._config[CONF_TIMEOUT])

        self._callback_host: Optional[str] = None
        self._backlog: "OrderedDict[SubscriptionId, List[NotifyRequest]]" = (
            OrderedDict()
        )

        self.registry = SubscriptionRegistry()
        self.dispatcher = EventDispatcher()
        self._client = SubscriptionClient(
            self._requester,
            device_host,
            lambda: self.callback_url,
            self._config[CONF_DEVICE_PORT],
        )
        self._notify_server = AiohttpNotifyServer(
            self.async_handle_notify,
            self._config[CONF_HOST],
            self._config[CONF_PORT],
        )
        self._scheduler = RenewalScheduler(
            self._client,
            self.registry,
            self.dispatcher,
            self.async_subscribe,
            renew_interval,
        )

    @property
    def device_host(self) -> str:
        """Get the host of the device."""
        return self._device_host

    @property
    def is_listening(self) -> bool:
        """Test if the listener is started."""
        return self._notify_server.is_serving

    @property
    def listen_port(self) -> int:
        """Get the port the notify server listens on."""
        return self._notify_server.listen_port

    @property
    def callback_url(self) -> str:
        """Return callback URL on which we are callable."""
        if not self.is_listening or not self._callback_host:
            raise NotListening("Listener is not started")
        return CALLBACK_URL_FMT.format(host=self._callback_host, port=self.listen_port)

    @property
    def subscriptions(self) -> Mapping[SubscriptionId, Subscription]:
        """Get all current subscriptions."""
        return self.registry.subscriptions

    def sid_for_endpoint(self, endpoint: EventEndpoint) -> Optional[SubscriptionId]:
        """Get the SID subscribed to endpoint."""
        return self.registry.sid_for_endpoint(endpoint)

    async def async_start(self) -> int:
        """
        Start the notify server and the renewal loop.

        :return: Port the notify server is listening on.
        :raise AlreadyListening: Listener is already started.
        :raise UnknownInterfaceError: Configured interface has no IPv4 address.
        :raise ServerOSError: Could not bind the notify server.
        """
        if self.is_listening:
            raise AlreadyListening("Listener is already listening")

        self._callback_host = get_interface_ip(
            self._config[CONF_INTERFACE], self._device_host
        )
        port = await self._notify_server.async_start_server()
        self._scheduler.start()

        _LOGGER.debug(
            "Listening for events of %s on %s", self._device_host, self.callback_url
        )
        return port

    async def async_stop(self, unsubscribe: bool = True) -> None:
        """
        Stop the renewal loop and the notify server.

        :param unsubscribe: Cancel all subscriptions at the device first.
        """
        await self._scheduler.async_stop()

        if unsubscribe and self.is_listening:
            await self.async_unsubscribe_all()

        await self._notify_server.async_stop_server()

        async with self.registry.lock:
            self.registry.clear()
        self._backlog.clear()
        self._callback_host = None

    async def async_subscribe(self, endpoint: EventEndpoint) -> SubscriptionId:
        """
        Subscribe to an event endpoint of the device.

        :return: SID of the new subscription
        :raise NotListening: Listener is not started.
        :raise RemoteRejected: Device rejected the subscription.
        :raise TransportError: Device might be offline.
        """
        if not self.is_listening:
            raise NotListening(
                "Service endpoints can only be added after the listener is started"
            )

        sid, lease_seconds = await self._client.async_subscribe(endpoint)

        async with self.registry.lock:
            self.registry.add(sid, endpoint, lease_seconds)

        # Replay, in order, NOTIFYs which arrived before the SUBSCRIBE response
        for headers, body in self._backlog.pop(sid, []):
            _LOGGER.debug("Re-playing backlogged NOTIFY for SID: %s", sid)
            await self.async_handle_notify(headers, body)

        return sid

    async def async_unsubscribe(self, sid: SubscriptionId) -> bool:
        """
        Unsubscribe a subscription.

        :raise NotListening: Listener is not started.
        :raise SubscriptionNotFound: sid is not a current subscription.
        :raise RemoteRejected: Device rejected the request.
        :raise TransportError: Device might be offline.
        """
        if not self.is_listening:
            raise NotListening(
                "Service endpoints can only be modified after the listener is started"
            )

        # Remove registration before potential device errors
        async with self.registry.lock:
            subscription = self.registry.remove(sid)
        if subscription is None:
            raise SubscriptionNotFound(sid)

        return await self._client.async_unsubscribe(subscription.endpoint, sid)

    async def async_unsubscribe_all(self) -> None:
        """Unsubscribe all subscriptions, ignoring errors."""
        sids = list(self.registry.subscriptions)
        results = await asyncio.gather(
            *(self.async_unsubscribe(sid) for sid in sids),
            return_exceptions=True,
        )
        for sid, result in zip(sids, results):
            if isinstance(result, Exception):
                _LOGGER.debug("Failed unsubscribing %s: %s", sid, result)

    async def async_handle_notify(
        self, headers: Mapping[str, str], body: Union[str, bytes]
    ) -> HTTPStatus:
        """
        Handle a NOTIFY request.

        Every request is acknowledged with 200, problems with the request are
        only logged or reported to the error callbacks.
        """
        headers = CaseInsensitiveDict(headers)
        sid: Optional[SubscriptionId] = headers.get("SID")
        if not sid:
            _LOGGER.debug("Ignoring NOTIFY without SID")
            return HTTPStatus.OK

        subscription = self.registry.get(sid)
        if subscription is None:
            # Some devices send the initial event before the SUBSCRIBE response
            _LOGGER.debug("Storing NOTIFY in backlog for SID: %s", sid)
            self._store_backlog(sid, headers, body)
            return HTTPStatus.OK

        endpoint = subscription.endpoint
        try:
            changes = decode_property_set(body)
        except DecodeError as err:
            _LOGGER.debug("Failed decoding NOTIFY for SID: %s: %s", sid, err)
            self.dispatcher.error(err, endpoint, sid)
            return HTTPStatus.OK

        async with self.registry.lock:
            state = self.registry.merge_state(sid, changes)
            if state is None:
                _LOGGER.debug("SID %s was removed while handling NOTIFY", sid)
                return HTTPStatus.OK
            self.dispatcher.service_event(endpoint, sid, state)

        return HTTPStatus.OK

    def _store_backlog(
        self, sid: SubscriptionId, headers: Mapping[str, str], body: Union[str, bytes]
    ) -> None:
        """Keep a NOTIFY for an unknown SID, at most NOTIFY_BACKLOG_SIZE per SID."""
        requests = self._backlog.setdefault(sid, [])
        requests.append((headers, body))
        del requests[:-NOTIFY_BACKLOG_SIZE]

        while len(self._backlog) > NOTIFY_BACKLOG_SIZE:
            self._backlog.popitem(last=False)

    async def __aenter__(self) -> "SonosEventListener":
        """Start listening, as async context manager."""
        await self.async_start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        """Stop listening, as async context manager."""
        await self.async_stop()

    def __repr__(self) -> str:
        """Return the representation."""
        return f"<{type(self).__name__}({self._device_host})>"
