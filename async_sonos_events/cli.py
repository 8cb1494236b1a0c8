# -*- coding: utf-8 -*-
"""CLI Sonos event listener module."""
# pylint: disable=invalid-name

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from async_sonos_events.const import (
    DEFAULT_DEVICE_PORT,
    EVENT_ENDPOINTS,
    EventEndpoint,
    PropertyState,
    SubscriptionId,
)
from async_sonos_events.event_listener import SonosEventListener
from async_sonos_events.exceptions import SonosEventError

logging.basicConfig()
_LOGGER = logging.getLogger("sonos-events")
_LOGGER.setLevel(logging.ERROR)
_LOGGER_LIB = logging.getLogger("async_sonos_events")
_LOGGER_LIB.setLevel(logging.ERROR)
_LOGGER_TRAFFIC = logging.getLogger("async_sonos_events.traffic")
_LOGGER_TRAFFIC.setLevel(logging.ERROR)


parser = argparse.ArgumentParser(description="sonos-events")
parser.add_argument("--debug", action="store_true", help="Show debug messages")
parser.add_argument("--debug-traffic", action="store_true", help="Show network traffic")
parser.add_argument(
    "--pprint", action="store_true", help="Pretty-print (indent) JSON output"
)
parser.add_argument("--timeout", type=int, help="Timeout for connection", default=5)
parser.add_argument(
    "--iso8601", action="store_true", help="Print timestamp in ISO8601 format"
)
subparsers = parser.add_subparsers(title="Command", dest="command")
subparsers.required = True

subparser = subparsers.add_parser("subscribe", help="Subscribe to event endpoints")
subparser.add_argument("device", help="Host of the device, e.g., 192.168.0.20")
subparser.add_argument(
    "endpoint",
    nargs="+",
    help="event endpoint path or service name, e.g., AVTransport, or * for all",
)
subparser.add_argument(
    "--device-port", type=int, default=DEFAULT_DEVICE_PORT, help="Port of the device"
)
subparser.add_argument(
    "--interface",
    default="public",
    help="interface name or ip for the callback URL, e.g., eth0 or 192.168.0.10",
)
subparser.add_argument("--bind", help="ip[:port], e.g., 192.168.0.10:8090")
subparsers.add_parser("endpoints", help="List well-known event endpoints")

args: Any = None
pprint_indent: Optional[int] = None


def get_timestamp() -> Union[str, float]:
    """Timestamp depending on configuration."""
    if args.iso8601:
        return datetime.now().isoformat(" ")
    return time.time()


def resolve_endpoints(names: Sequence[str]) -> List[EventEndpoint]:
    """Resolve service names or paths to event endpoints."""
    if "*" in names:
        return list(EVENT_ENDPOINTS.values())

    endpoints = []
    for name in names:
        if name.startswith("/"):
            endpoints.append(name)
        elif name in EVENT_ENDPOINTS:
            endpoints.append(EVENT_ENDPOINTS[name])
        else:
            print("Unknown endpoint: %s" % (name,))
            print("Known endpoints:\n%s" % ("\n".join(sorted(EVENT_ENDPOINTS)),))
            sys.exit(1)
    return endpoints


def on_service_event(
    endpoint: EventEndpoint, sid: SubscriptionId, state: PropertyState
) -> None:
    """Handle a service event."""
    _LOGGER.debug("State change for %s (%s)", endpoint, sid)
    obj = {
        "timestamp": get_timestamp(),
        "endpoint": endpoint,
        "sid": sid,
        "state": dict(state),
    }
    print(json.dumps(obj, indent=pprint_indent))


def on_error(
    err: Exception, endpoint: Optional[EventEndpoint], sid: Optional[SubscriptionId]
) -> None:
    """Handle an error."""
    obj = {
        "timestamp": get_timestamp(),
        "endpoint": endpoint,
        "sid": sid,
        "error": str(err),
    }
    print(json.dumps(obj, indent=pprint_indent))


async def subscribe(subscribe_args: Any) -> None:
    """Subscribe to event endpoints and output updates."""
    config = {
        "interface": subscribe_args.interface,
        "timeout": args.timeout,
        "device_port": subscribe_args.device_port,
    }
    if subscribe_args.bind:
        host, _, port = subscribe_args.bind.partition(":")
        config["host"] = host
        if port:
            config["port"] = int(port)

    endpoints = resolve_endpoints(subscribe_args.endpoint)

    listener = SonosEventListener(subscribe_args.device, config)
    listener.dispatcher.add_service_event_callback(on_service_event)
    listener.dispatcher.add_error_callback(on_error)

    async with listener:
        _LOGGER.debug("Listening on: %s", listener.callback_url)
        for endpoint in endpoints:
            try:
                sid = await listener.async_subscribe(endpoint)
            except SonosEventError as err:
                print("Failed subscribing to %s: %s" % (endpoint, err))
                continue
            _LOGGER.debug("Subscribed to %s with SID: %s", endpoint, sid)

        # keep the webservice running, renewal happens in the background
        while True:
            await asyncio.sleep(120)


async def async_main() -> None:
    """Async main."""
    if args.debug:
        _LOGGER.setLevel(logging.DEBUG)
        _LOGGER_LIB.setLevel(logging.DEBUG)
        _LOGGER_TRAFFIC.setLevel(logging.INFO)
    if args.debug_traffic:
        _LOGGER_TRAFFIC.setLevel(logging.DEBUG)

    if args.command == "subscribe":
        await subscribe(args)
    elif args.command == "endpoints":
        for name, endpoint in sorted(EVENT_ENDPOINTS.items()):
            print("%s\t%s" % (name, endpoint))


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Parse arguments and run the main program."""
    global args, pprint_indent  # pylint: disable=global-statement

    args = parser.parse_args(argv)
    pprint_indent = 4 if args.pprint else None

    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        _LOGGER.debug("KeyboardInterrupt")


if __name__ == "__main__":
    main()
