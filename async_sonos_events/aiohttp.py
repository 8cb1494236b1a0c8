# -*- coding: utf-8 -*-
"""aiohttp requester and notify server module."""

import asyncio
import logging
from asyncio.events import AbstractServer
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import aiohttp
import aiohttp.web
import async_timeout

from async_sonos_events.client import UpnpRequester
from async_sonos_events.const import DEFAULT_REQUEST_TIMEOUT, NOTIFY_PATH
from async_sonos_events.exceptions import (
    ConnectionTimeoutError,
    ServerOSError,
    TransportError,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER_TRAFFIC_UPNP = logging.getLogger("async_sonos_events.traffic.upnp")

SESSION_REQUEST_ATTEMPTS = 2

NotifyHandlerType = Callable[[Mapping[str, str], bytes], Awaitable[HTTPStatus]]


def _format_headers(headers: Mapping[str, str]) -> str:
    return "\n".join([key + ": " + value for key, value in headers.items()])


class AiohttpRequester(UpnpRequester):
    """Standard AiohttpRequester, creates a session per request."""

    # pylint: disable=too-few-public-methods

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize."""
        self._timeout = timeout
        self._http_headers = http_headers or {}

    async def async_http_request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[str] = None,
    ) -> Tuple[int, Mapping[str, str], str]:
        """Do a HTTP request."""
        try:
            async with aiohttp.ClientSession() as session:
                return await _async_session_request(
                    session,
                    self._timeout,
                    method,
                    url,
                    {**self._http_headers, **(headers or {})},
                    body,
                )
        except aiohttp.ServerDisconnectedError as err:
            raise TransportError(str(err)) from err


class AiohttpSessionRequester(UpnpRequester):
    """
    Standard AiohttpSessionRequester.

    With pluggable session.
    """

    # pylint: disable=too-few-public-methods

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize."""
        self._session = session
        self._timeout = timeout
        self._http_headers = http_headers or {}

    async def async_http_request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[str] = None,
    ) -> Tuple[int, Mapping[str, str], str]:
        """
        Do a HTTP request.

        Devices close idle keep-alive connections of the session at any time,
        a request failing with ServerDisconnectedError is sent once more.
        """
        request_headers = {**self._http_headers, **(headers or {})}
        disconnect_error: Optional[aiohttp.ServerDisconnectedError] = None
        for _ in range(SESSION_REQUEST_ATTEMPTS):
            try:
                return await _async_session_request(
                    self._session, self._timeout, method, url, request_headers, body
                )
            except aiohttp.ServerDisconnectedError as err:
                _LOGGER.debug("%r during %s %s", err, method, url)
                disconnect_error = err

        raise TransportError(str(disconnect_error)) from disconnect_error


async def _async_session_request(
    session: aiohttp.ClientSession,
    timeout: float,
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: Optional[str],
) -> Tuple[int, Mapping[str, str], str]:
    """Do a HTTP request using session, mapping aiohttp errors."""
    # pylint: disable=too-many-arguments
    _LOGGER_TRAFFIC_UPNP.debug(
        "Sending request:\n%s %s\n%s\n%s\n",
        method,
        url,
        _format_headers(headers),
        body or "",
    )

    try:
        async with async_timeout.timeout(timeout):
            async with session.request(
                method, url, headers=headers, data=body
            ) as response:
                status = response.status
                resp_headers: Mapping = response.headers or {}
                resp_body = await response.read()

                _LOGGER_TRAFFIC_UPNP.debug(
                    "Got response:\n%s\n%s\n\n%s",
                    status,
                    _format_headers(resp_headers),
                    resp_body,
                )

                resp_body_text = await response.text()
    except asyncio.TimeoutError as err:
        raise ConnectionTimeoutError(str(err)) from err
    except aiohttp.ServerDisconnectedError:
        raise
    except aiohttp.ClientError as err:
        raise TransportError(str(err)) from err
    except UnicodeDecodeError as err:
        raise TransportError(str(err)) from err

    return status, resp_headers, resp_body_text


class AiohttpNotifyServer:
    """AIO HTTP Server to handle incoming NOTIFY requests."""

    def __init__(
        self,
        notify_handler: NotifyHandlerType,
        listen_host: Optional[str] = None,
        listen_port: int = 0,
        shutdown_timeout: float = 10,
    ) -> None:
        """Initialize."""
        self._notify_handler = notify_handler
        self._listen_host = listen_host
        self._listen_port = listen_port
        self._shutdown_timeout = shutdown_timeout

        self._aiohttp_server: Optional[aiohttp.web.Server] = None
        self._server: Optional[AbstractServer] = None

    @property
    def listen_host(self) -> Optional[str]:
        """Get the host the server is bound to."""
        return self._listen_host

    @property
    def listen_port(self) -> int:
        """Get the port the server is listening on, known after starting."""
        return self._listen_port

    @property
    def is_serving(self) -> bool:
        """Test if the server is started."""
        return self._server is not None

    async def async_start_server(self) -> int:
        """
        Start the HTTP server.

        :return: Port the server is listening on.
        :raise ServerOSError: Could not bind the socket.
        """
        loop = asyncio.get_running_loop()
        self._aiohttp_server = aiohttp.web.Server(self._handle_request)
        try:
            self._server = await loop.create_server(
                self._aiohttp_server, self._listen_host, self._listen_port
            )
        except OSError as err:
            _LOGGER.error(
                "Failed to create HTTP server at %s:%d: %s",
                self._listen_host,
                self._listen_port,
                err,
            )
            self._aiohttp_server = None
            raise ServerOSError(err.errno, err.strerror) from err

        if self._server.sockets:
            self._listen_port = self._server.sockets[0].getsockname()[1]
        else:
            _LOGGER.warning("No listening sockets for AiohttpNotifyServer")

        _LOGGER.debug("Notify server listening on port %d", self._listen_port)
        return self._listen_port

    async def async_stop_server(self) -> None:
        """Stop the HTTP server, in-flight requests are allowed to finish."""
        if self._server:
            self._server.close()

        if self._aiohttp_server:
            await self._aiohttp_server.shutdown(self._shutdown_timeout)
            self._aiohttp_server = None

        if self._server:
            await self._server.wait_closed()
            self._server = None

    async def _handle_request(self, request: Any) -> aiohttp.web.Response:
        """Handle incoming requests."""
        _LOGGER.debug("Received request: %s", request)

        if request.method != "NOTIFY":
            _LOGGER.debug("Not notify")
            return aiohttp.web.Response(status=HTTPStatus.METHOD_NOT_ALLOWED)

        if request.path.lower() != NOTIFY_PATH:
            _LOGGER.debug("Unknown path: %s", request.path)
            return aiohttp.web.Response(status=HTTPStatus.NOT_FOUND)

        headers = request.headers
        # decoding is up to the handler, which reports malformed bodies
        body = await request.read()
        _LOGGER_TRAFFIC_UPNP.debug(
            "Incoming request:\nNOTIFY\n%s\n\n%s",
            _format_headers(headers),
            body,
        )

        status = await self._notify_handler(headers, body)
        _LOGGER.debug("NOTIFY response status: %s", status)
        _LOGGER_TRAFFIC_UPNP.debug("Sending response: %s", status)

        return aiohttp.web.Response(status=status)
