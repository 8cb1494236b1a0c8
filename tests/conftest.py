# -*- coding: utf-8 -*-
"""Fixtures and test helpers for async_sonos_events."""

import asyncio
from collections import deque
from copy import deepcopy
from typing import (
    Any,
    Deque,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    cast,
)

from async_sonos_events.client import UpnpRequester
from async_sonos_events.const import (
    AVTRANSPORT_EVENT,
    RENDERING_CONTROL_EVENT,
    ZONE_GROUP_TOPOLOGY_EVENT,
)

DEVICE_HOST = "sonos"
AVT_URL = f"http://sonos:1400{AVTRANSPORT_EVENT}"
RC_URL = f"http://sonos:1400{RENDERING_CONTROL_EVENT}"
ZGT_URL = f"http://sonos:1400{ZONE_GROUP_TOPOLOGY_EVENT}"

TEST_CONFIG = {
    "interface": "192.168.1.2",
    "host": "127.0.0.1",
}


class UpnpTestRequester(UpnpRequester):
    """Test requester."""

    # pylint: disable=too-few-public-methods

    def __init__(
        self,
        response_map: Mapping[Tuple[str, str], Tuple[int, Mapping[str, str], str]],
    ) -> None:
        """Class initializer."""
        self.response_map: MutableMapping[
            Tuple[str, str],
            Tuple[int, MutableMapping[str, str], str],
        ] = deepcopy(cast(MutableMapping, response_map))
        self.exceptions: Deque[Optional[Exception]] = deque()
        self.requests: List[Tuple[str, str, Mapping[str, str], Optional[str]]] = []

    async def async_http_request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[str] = None,
    ) -> Tuple[int, Mapping, str]:
        """Do a HTTP request."""
        self.requests.append((method, url, dict(headers or {}), body))
        await asyncio.sleep(0.01)

        if self.exceptions:
            exception = self.exceptions.popleft()
            if exception is not None:
                raise exception

        key = (method, url)
        if key not in self.response_map:
            raise KeyError(f"Request not in response map: {key}")

        return self.response_map[key]

    def requests_for(self, method: str, url: str) -> List[Mapping[str, str]]:
        """Get the headers of all requests done with method to url."""
        return [
            headers
            for req_method, req_url, headers, _ in self.requests
            if req_method == method and req_url == url
        ]


RESPONSE_MAP: Mapping[Tuple[str, str], Tuple[int, Mapping[str, str], str]] = {
    ("SUBSCRIBE", AVT_URL): (
        200,
        {"sid": "uuid:RINCON_000E58A0_sub0000000001", "timeout": "Second-3600"},
        "",
    ),
    ("UNSUBSCRIBE", AVT_URL): (200, {}, ""),
    ("SUBSCRIBE", RC_URL): (
        200,
        {"sid": "uuid:RINCON_000E58A0_sub0000000002", "timeout": "Second-120"},
        "",
    ),
    ("UNSUBSCRIBE", RC_URL): (200, {}, ""),
    ("SUBSCRIBE", ZGT_URL): (
        200,
        {"SID": "uuid:RINCON_000E58A0_sub0000000003", "TIMEOUT": "Second-20"},
        "",
    ),
    ("UNSUBSCRIBE", ZGT_URL): (200, {}, ""),
}


def property_set(**properties: Any) -> str:
    """Create a NOTIFY body containing properties."""
    elements = "".join(
        f"<e:property><{name}>{value}</{name}></e:property>"
        for name, value in properties.items()
    )
    return (
        '<?xml version="1.0"?>'
        '<e:propertyset xmlns:e="urn:schemas-upnp-org:event-1-0">'
        f"{elements}"
        "</e:propertyset>"
    )


def notify_headers(sid: str) -> Mapping[str, str]:
    """Create headers of a NOTIFY request for sid."""
    return {
        "NT": "upnp:event",
        "NTS": "upnp:propchange",
        "SID": sid,
        "SEQ": "0",
    }
