# -*- coding: utf-8 -*-
"""Exceptions raised by async_sonos_events."""

import asyncio
from typing import Any, Optional
from xml.etree import ElementTree as ET

import aiohttp

# pylint: disable=too-many-ancestors


class SonosEventError(Exception):
    """SonosEventError."""


class TransportError(SonosEventError, aiohttp.ClientError):
    """Error occurred while communicating with the device."""


class ConnectionTimeoutError(TransportError, asyncio.TimeoutError):
    """Timeout while communicating with the device."""


class ServerOSError(TransportError, OSError):
    """System-related error when starting the local notify server."""


class ResponseError(SonosEventError):
    """Unexpected HTTP status returned by the device."""

    def __init__(
        self,
        status: Optional[int],
        headers: Optional[aiohttp.typedefs.LooseHeaders] = None,
        message: Optional[str] = None,
    ) -> None:
        """Initialize."""
        super().__init__(message or f"Did not receive HTTP 200 but {status}")
        self.status = status
        self.headers = headers


class RemoteRejected(ResponseError):
    """Device rejected a SUBSCRIBE or UNSUBSCRIBE request."""


class SidError(RemoteRejected):
    """Missing Subscription Identifier from response."""

    def __init__(
        self, headers: Optional[aiohttp.typedefs.LooseHeaders] = None
    ) -> None:
        """Initialize."""
        super().__init__(200, headers, "No SID received in SUBSCRIBE response")


class RemotePreconditionFailed(ResponseError):
    """Device does not know the SID anymore, most likely it restarted."""

    def __init__(
        self, headers: Optional[aiohttp.typedefs.LooseHeaders] = None
    ) -> None:
        """Initialize."""
        super().__init__(412, headers, "Device does not recognize subscription")


class RenewalFailed(ResponseError):
    """Renewal of a subscription failed for any other reason."""


class DecodeError(SonosEventError, ET.ParseError):
    """Notification body is not a valid property set."""

    def __init__(self, message: str, orig_err: Optional[ET.ParseError] = None) -> None:
        """Initialize, optionally from an original ParseError."""
        super().__init__(message)
        self.code = orig_err.code if orig_err is not None else None
        self.position = orig_err.position if orig_err is not None else None


class NotListening(SonosEventError):
    """Subscriptions can only be modified after the listener is started."""


class AlreadyListening(SonosEventError):
    """Listener is already listening."""


class SubscriptionNotFound(SonosEventError, KeyError):
    """No subscription is registered with this SID."""

    def __init__(self, sid: Any) -> None:
        """Initialize."""
        super().__init__(f"Subscription with sid {sid} is not registered")
        self.sid = sid

    def __str__(self) -> str:
        """Str, without the KeyError quoting."""
        return str(self.args[0])


class UnknownInterfaceError(SonosEventError, ValueError):
    """Network interface has no usable IPv4 address."""


class ConfigError(SonosEventError, ValueError):
    """Invalid listener configuration."""
