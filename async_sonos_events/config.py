# -*- coding: utf-8 -*-
"""Listener configuration."""

from typing import Any, Mapping

import voluptuous as vol

from async_sonos_events.const import DEFAULT_DEVICE_PORT, DEFAULT_REQUEST_TIMEOUT
from async_sonos_events.exceptions import ConfigError

CONF_INTERFACE = "interface"
CONF_PORT = "port"
CONF_HOST = "host"
CONF_TIMEOUT = "timeout"
CONF_DEVICE_PORT = "device_port"

_PORT = vol.All(vol.Coerce(int), vol.Range(min=0, max=65535))

LISTENER_CONFIG_SCHEMA = vol.Schema(
    {
        # IPv4 address, interface name or "public"; used for the callback URL
        vol.Required(CONF_INTERFACE): vol.All(str, vol.Length(min=1)),
        # 0 binds an ephemeral port
        vol.Optional(CONF_PORT, default=0): _PORT,
        # Address to bind on, None binds all addresses
        vol.Optional(CONF_HOST, default=None): vol.Any(None, str),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_REQUEST_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(CONF_DEVICE_PORT, default=DEFAULT_DEVICE_PORT): vol.All(
            _PORT, vol.Range(min=1)
        ),
    }
)


def validate_config(config: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Validate and complete a listener configuration.

    :raise ConfigError: Configuration is invalid.
    """
    try:
        validated: Mapping[str, Any] = LISTENER_CONFIG_SCHEMA(dict(config))
    except vol.Invalid as err:
        raise ConfigError(f"Invalid listener configuration: {err}") from err
    return validated
