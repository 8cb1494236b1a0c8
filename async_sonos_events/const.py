# -*- coding: utf-8 -*-
"""Constants module."""

from typing import Any, Awaitable, Callable, Mapping, Optional, Union

NS = {
    "event": "urn:schemas-upnp-org:event-1-0",
}

SubscriptionId = str
EventEndpoint = str
PropertyState = Mapping[str, str]

ServiceEventCallbackType = Callable[
    [EventEndpoint, SubscriptionId, PropertyState], Optional[Awaitable[Any]]
]
ErrorCallbackType = Callable[
    [Exception, Optional[EventEndpoint], Optional[SubscriptionId]],
    Optional[Awaitable[Any]],
]
CallbackType = Union[ServiceEventCallbackType, ErrorCallbackType]

DEFAULT_DEVICE_PORT = 1400
DEFAULT_REQUEST_TIMEOUT = 5

# GENA wire values
NOTIFY_PATH = "/notify"
CALLBACK_URL_FMT = "http://{host}:{port}" + NOTIFY_PATH
NT_UPNP_EVENT = "upnp:event"
SUBSCRIPTION_TIMEOUT = "Second-3600"
DEFAULT_LEASE_SECONDS = 3600

# Renewal window
RENEW_INTERVAL = 1.0
RENEW_MARGIN = 15
RENEW_MIN_DELAY = 15
RENEW_MAX_DELAY = 300

# Unknown SIDs remembered for replay after a late SUBSCRIBE response
NOTIFY_BACKLOG_SIZE = 16

# Well-known event endpoints
AVTRANSPORT_EVENT = "/MediaRenderer/AVTransport/Event"
RENDERING_CONTROL_EVENT = "/MediaRenderer/RenderingControl/Event"
GROUP_RENDERING_CONTROL_EVENT = "/MediaRenderer/GroupRenderingControl/Event"
RENDERER_CONNECTION_MANAGER_EVENT = "/MediaRenderer/ConnectionManager/Event"
CONTENT_DIRECTORY_EVENT = "/MediaServer/ContentDirectory/Event"
SERVER_CONNECTION_MANAGER_EVENT = "/MediaServer/ConnectionManager/Event"
ALARM_CLOCK_EVENT = "/AlarmClock/Event"
AUDIO_IN_EVENT = "/AudioIn/Event"
DEVICE_PROPERTIES_EVENT = "/DeviceProperties/Event"
GROUP_MANAGEMENT_EVENT = "/GroupManagement/Event"
MUSIC_SERVICES_EVENT = "/MusicServices/Event"
SYSTEM_PROPERTIES_EVENT = "/SystemProperties/Event"
ZONE_GROUP_TOPOLOGY_EVENT = "/ZoneGroupTopology/Event"

EVENT_ENDPOINTS: Mapping[str, EventEndpoint] = {
    "AVTransport": AVTRANSPORT_EVENT,
    "RenderingControl": RENDERING_CONTROL_EVENT,
    "GroupRenderingControl": GROUP_RENDERING_CONTROL_EVENT,
    "ConnectionManager": RENDERER_CONNECTION_MANAGER_EVENT,
    "ContentDirectory": CONTENT_DIRECTORY_EVENT,
    "AlarmClock": ALARM_CLOCK_EVENT,
    "AudioIn": AUDIO_IN_EVENT,
    "DeviceProperties": DEVICE_PROPERTIES_EVENT,
    "GroupManagement": GROUP_MANAGEMENT_EVENT,
    "MusicServices": MUSIC_SERVICES_EVENT,
    "SystemProperties": SYSTEM_PROPERTIES_EVENT,
    "ZoneGroupTopology": ZONE_GROUP_TOPOLOGY_EVENT,
}
