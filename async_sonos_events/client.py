# -*- coding: utf-8 -*-
"""Remote subscription client module."""

import logging
from abc import ABC
from http import HTTPStatus
from typing import Callable, Mapping, Optional, Tuple

from async_sonos_events.const import (
    DEFAULT_DEVICE_PORT,
    EventEndpoint,
    NT_UPNP_EVENT,
    SUBSCRIPTION_TIMEOUT,
    SubscriptionId,
)
from async_sonos_events.exceptions import (
    RemotePreconditionFailed,
    RemoteRejected,
    RenewalFailed,
    SidError,
    TransportError,
)
from async_sonos_events.utils import CaseInsensitiveDict, parse_lease_seconds

_LOGGER = logging.getLogger(__name__)


class UpnpRequester(ABC):
    """
    Abstract base class used for performing async HTTP requests.

    Implement method async_http_request() in your concrete class.
    """

    # pylint: disable=too-few-public-methods

    async def async_http_request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[str] = None,
    ) -> Tuple[int, Mapping[str, str], str]:
        """
        Do a HTTP request.

        :param method HTTP Method
        :param url URL to call
        :param headers Headers to send
        :param body Body to send

        :return status code, headers, body
        :raise TransportError (or subclass): Error while performing request.
        """
        raise NotImplementedError()


class SubscriptionClient:
    """
    Performs the GENA lease requests against the event endpoints of one device.

    callback_url is called for every SUBSCRIBE, such that the URL reflects
    the port the notify server is actually listening on.
    """

    def __init__(
        self,
        requester: UpnpRequester,
        device_host: str,
        callback_url: Callable[[], str],
        device_port: int = DEFAULT_DEVICE_PORT,
    ) -> None:
        """Initialize."""
        self._requester = requester
        self._device_host = device_host
        self._device_port = device_port
        self._callback_url = callback_url

    @property
    def device_host(self) -> str:
        """Get the host of the device."""
        return self._device_host

    def event_url(self, endpoint: EventEndpoint) -> str:
        """Get the URL of an event endpoint of the device."""
        return f"http://{self._device_host}:{self._device_port}{endpoint}"

    async def async_subscribe(
        self, endpoint: EventEndpoint
    ) -> Tuple[SubscriptionId, int]:
        """
        Subscribe to an event endpoint.

        :param endpoint: Event endpoint on the device
        :return: SID (subscription ID), lease duration in seconds
        :raise RemoteRejected: Device did not respond with HTTP 200
        :raise SidError: No SID received for subscription
        :raise TransportError: Device might be offline.
        """
        callback_url = self._callback_url()
        _LOGGER.debug("Subscribing to: %s, callback URL: %s", endpoint, callback_url)

        headers = {
            "CALLBACK": f"<{callback_url}>",
            "NT": NT_UPNP_EVENT,
            "Timeout": SUBSCRIPTION_TIMEOUT,
        }
        response_status, response_headers, _ = await self._requester.async_http_request(
            "SUBSCRIBE", self.event_url(endpoint), headers
        )
        response_headers = CaseInsensitiveDict(response_headers)

        if response_status != HTTPStatus.OK:
            _LOGGER.debug("Did not receive 200, but %s", response_status)
            raise RemoteRejected(status=response_status, headers=response_headers)

        sid: Optional[SubscriptionId] = response_headers.get("sid")
        if not sid:
            _LOGGER.debug("No SID received, aborting subscribe")
            raise SidError(headers=response_headers)

        lease_seconds = parse_lease_seconds(response_headers.get("timeout"))
        _LOGGER.debug("Got SID: %s, lease: %ds", sid, lease_seconds)
        return sid, lease_seconds

    async def async_renew(self, endpoint: EventEndpoint, sid: SubscriptionId) -> int:
        """
        Renew an existing subscription.

        :param endpoint: Event endpoint the subscription belongs to
        :param sid: SID of the subscription
        :return: lease duration in seconds
        :raise RemotePreconditionFailed: Device does not know the SID, it
            probably restarted.
        :raise RenewalFailed: Any other failure, including transport errors.
        """
        _LOGGER.debug("Renewing SID: %s, endpoint: %s", sid, endpoint)

        headers = {
            "SID": sid,
            "Timeout": SUBSCRIPTION_TIMEOUT,
        }
        try:
            (
                response_status,
                response_headers,
                _,
            ) = await self._requester.async_http_request(
                "SUBSCRIBE", self.event_url(endpoint), headers
            )
        except TransportError as err:
            _LOGGER.debug("Renewal of %s failed: %s", sid, err)
            raise RenewalFailed(status=None, message=str(err)) from err
        response_headers = CaseInsensitiveDict(response_headers)

        if response_status == HTTPStatus.PRECONDITION_FAILED:
            _LOGGER.debug("Device does not recognize SID: %s", sid)
            raise RemotePreconditionFailed(headers=response_headers)

        if response_status != HTTPStatus.OK:
            _LOGGER.debug("Did not receive 200, but %s", response_status)
            raise RenewalFailed(status=response_status, headers=response_headers)

        lease_seconds = parse_lease_seconds(response_headers.get("timeout"))
        _LOGGER.debug("Renewed SID: %s, lease: %ds", sid, lease_seconds)
        return lease_seconds

    async def async_unsubscribe(
        self, endpoint: EventEndpoint, sid: SubscriptionId
    ) -> bool:
        """
        Cancel a subscription.

        :raise RemoteRejected: Device did not respond with HTTP 200
        :raise TransportError: Device might be offline.
        """
        _LOGGER.debug("Unsubscribing SID: %s, endpoint: %s", sid, endpoint)

        headers = {
            "SID": sid,
        }
        response_status, response_headers, _ = await self._requester.async_http_request(
            "UNSUBSCRIBE", self.event_url(endpoint), headers
        )

        if response_status != HTTPStatus.OK:
            _LOGGER.debug("Did not receive 200, but %s", response_status)
            raise RemoteRejected(status=response_status, headers=response_headers)

        return True
