# -*- coding: utf-8 -*-
"""Utils for async_sonos_events."""

import logging
import socket
import time
from collections.abc import Mapping as abcMapping
from collections.abc import MutableMapping as abcMutableMapping
from ipaddress import IPv4Address
from typing import Any, Dict, Generator, Optional, Union
from xml.etree import ElementTree as ET

import defusedxml.ElementTree as DET
import psutil
from defusedxml import DefusedXmlException

from async_sonos_events.const import (
    DEFAULT_LEASE_SECONDS,
    NS,
    RENEW_MARGIN,
    RENEW_MAX_DELAY,
    RENEW_MIN_DELAY,
)
from async_sonos_events.exceptions import DecodeError, UnknownInterfaceError

_LOGGER = logging.getLogger(__name__)

EXTERNAL_IP = "1.1.1.1"
PUBLIC_INTERFACE = "public"


class CaseInsensitiveDict(abcMutableMapping):
    """Case insensitive dict."""

    def __init__(self, data: Optional[abcMapping] = None, **kwargs: Any) -> None:
        """Initialize."""
        self._data: Dict[str, Any] = {**(data or {}), **kwargs}
        self._case_map: Dict[str, Any] = {k.lower(): k for k in self._data}

    def as_dict(self) -> Dict[str, Any]:
        """Return the underlying dict without iterating."""
        return self._data

    def as_lower_dict(self) -> Dict[str, Any]:
        """Return the underlying dict in lowercase."""
        return {k.lower(): v for k, v in self._data.items()}

    def __setitem__(self, key: str, value: Any) -> None:
        """Set item."""
        lower_key = key.lower()
        if self._case_map.get(lower_key, key) != key:
            # Case changed
            del self._data[self._case_map[lower_key]]
        self._data[key] = value
        self._case_map[lower_key] = key

    def __getitem__(self, key: str) -> Any:
        """Get item."""
        return self._data[self._case_map[key.lower()]]

    def __delitem__(self, key: str) -> None:
        """Del item."""
        lower_key = key.lower()
        del self._data[self._case_map[lower_key]]
        del self._case_map[lower_key]

    def __len__(self) -> int:
        """Get length."""
        return len(self._data)

    def __iter__(self) -> Generator[str, None, None]:
        """Get iterator."""
        return (key for key in self._data.keys())

    def __repr__(self) -> str:
        """Repr."""
        return repr(self._data)

    def __eq__(self, other: Any) -> bool:
        """Compare for equality."""
        if isinstance(other, CaseInsensitiveDict):
            return self.as_lower_dict() == other.as_lower_dict()

        if isinstance(other, abcMapping):
            return self.as_lower_dict() == {
                key.lower(): value for key, value in other.items()
            }

        return NotImplemented

    def __hash__(self) -> int:
        """Get hash."""
        return hash(tuple(sorted(self._data.items())))


def parse_lease_seconds(timeout: Optional[str]) -> int:
    """
    Parse the lease duration from a TIMEOUT response header.

    The header has the form `Second-<n>`. An absent, infinite or otherwise
    unparsable value results in the default lease of 3600 seconds, a
    negative value in an expired lease.
    """
    if not timeout:
        return DEFAULT_LEASE_SECONDS

    value = timeout.strip()
    if value.lower().startswith("second-"):
        value = value[7:]  # len("Second-") == 7

    try:
        seconds = int(value)
    except ValueError:
        return DEFAULT_LEASE_SECONDS

    return max(seconds, 0)


def renewal_delay(lease_seconds: int) -> int:
    """Seconds until a lease of lease_seconds should be renewed."""
    delay = lease_seconds - RENEW_MARGIN
    return max(RENEW_MIN_DELAY, min(delay, RENEW_MAX_DELAY))


def renewal_deadline(lease_seconds: int, now: Optional[float] = None) -> float:
    """Monotonic instant at which a lease of lease_seconds should be renewed."""
    if now is None:
        now = time.monotonic()
    return now + renewal_delay(lease_seconds)


def decode_property_set(body: Union[str, bytes]) -> Dict[str, str]:
    """
    Decode the body of a NOTIFY request.

    Returns the properties in the order they are found in the property set,
    later occurrences of a property overwriting earlier ones.

    Raw bodies are decoded as UTF-8.

    :raise DecodeError: Body is not a valid property set.
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"NOTIFY body is not UTF-8: {err}") from err

    stripped_body = body.rstrip(" \t\r\n\0")
    if not stripped_body:
        raise DecodeError("Empty NOTIFY body")

    try:
        el_root = DET.fromstring(stripped_body)
    except ET.ParseError as err:
        raise DecodeError(f"Invalid NOTIFY body: {err}", err) from err
    except DefusedXmlException as err:
        raise DecodeError(f"Refused NOTIFY body: {err}") from err

    if el_root.tag != f"{{{NS['event']}}}propertyset":
        raise DecodeError(f"Invalid document root: {el_root.tag}")

    changes: Dict[str, str] = {}
    for el_property in el_root.findall("./event:property", NS):
        for el_state_var in el_property:
            name = el_state_var.tag
            value = el_state_var.text or ""
            changes[name] = value

    return changes


def get_local_ip(target_host: Optional[str] = None) -> str:
    """Try to get the local IP of this machine, used to talk to target_host."""
    target_addr = (target_host or EXTERNAL_IP, 0)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # Connecting using SOCK_DGRAM doesn't cause any network activity.
        sock.connect(target_addr)
        local_ip: str = sock.getsockname()[0]
        return local_ip
    finally:
        sock.close()


def get_interface_ip(interface: str, target_host: Optional[str] = None) -> str:
    """
    Resolve the IPv4 address of interface.

    interface is either an IPv4 address, a network interface name (e.g. eth0)
    or `public`, meaning the address of the route towards target_host.

    :raise UnknownInterfaceError: No IPv4 address found for interface.
    """
    try:
        return str(IPv4Address(interface))
    except ValueError:
        pass

    if interface == PUBLIC_INTERFACE:
        try:
            return get_local_ip(target_host)
        except OSError as err:
            raise UnknownInterfaceError(
                f"Cannot determine local address towards {target_host}: {err}"
            ) from err

    addresses = psutil.net_if_addrs().get(interface)
    if not addresses:
        raise UnknownInterfaceError(f"Unknown network interface: {interface}")

    for address in addresses:
        if address.family == socket.AF_INET:
            _LOGGER.debug("Interface %s has address %s", interface, address.address)
            return str(address.address)

    raise UnknownInterfaceError(f"No IPv4 address on network interface: {interface}")
