# -*- coding: utf-8 -*-
"""Unit tests for the event listener."""
# pylint: disable=protected-access

import time
from typing import Any, List, Tuple

import aiohttp
import pytest

from async_sonos_events.const import (
    AVTRANSPORT_EVENT,
    RENDERING_CONTROL_EVENT,
    ZONE_GROUP_TOPOLOGY_EVENT,
)
from async_sonos_events.event_listener import SonosEventListener
from async_sonos_events.exceptions import (
    AlreadyListening,
    ConfigError,
    DecodeError,
    NotListening,
    RemoteRejected,
    SubscriptionNotFound,
)

from .conftest import (
    AVT_URL,
    DEVICE_HOST,
    RC_URL,
    RESPONSE_MAP,
    TEST_CONFIG,
    UpnpTestRequester,
    notify_headers,
    property_set,
)

AVT_SID = "uuid:RINCON_000E58A0_sub0000000001"


class EventRecorder:
    """Records service events and errors of a listener."""

    def __init__(self, listener: SonosEventListener) -> None:
        """Initialize."""
        self.events: List[Tuple[str, str, Any]] = []
        self.errors: List[Tuple[Exception, Any, Any]] = []
        listener.dispatcher.add_service_event_callback(
            lambda endpoint, sid, state: self.events.append((endpoint, sid, state))
        )
        listener.dispatcher.add_error_callback(
            lambda err, endpoint, sid: self.errors.append((err, endpoint, sid))
        )


def create_listener() -> Tuple[SonosEventListener, UpnpTestRequester]:
    """Create a listener for the test device."""
    requester = UpnpTestRequester(RESPONSE_MAP)
    listener = SonosEventListener(DEVICE_HOST, TEST_CONFIG, requester)
    return listener, requester


def test_config_requires_interface() -> None:
    """Test the interface is a required configuration input."""
    requester = UpnpTestRequester(RESPONSE_MAP)
    with pytest.raises(ConfigError):
        SonosEventListener(DEVICE_HOST, {}, requester)

    with pytest.raises(ConfigError):
        SonosEventListener(DEVICE_HOST, {"interface": "eth0", "port": 70000}, requester)


@pytest.mark.asyncio
async def test_not_listening() -> None:
    """Test modifying subscriptions before listening fails immediately."""
    listener, requester = create_listener()
    assert not listener.is_listening

    with pytest.raises(NotListening):
        await listener.async_subscribe(AVTRANSPORT_EVENT)

    with pytest.raises(NotListening):
        await listener.async_unsubscribe(AVT_SID)

    with pytest.raises(NotListening):
        listener.callback_url  # pylint: disable=pointless-statement

    assert requester.requests == []


@pytest.mark.asyncio
async def test_start_stop() -> None:
    """Test starting binds an ephemeral port and stopping releases it."""
    listener, _ = create_listener()

    port = await listener.async_start()
    assert port > 0
    assert listener.is_listening
    assert listener.listen_port == port
    assert listener.callback_url == f"http://192.168.1.2:{port}/notify"

    with pytest.raises(AlreadyListening):
        await listener.async_start()

    await listener.async_stop()
    assert not listener.is_listening

    # port is released, a new listener can bind it
    other_listener = SonosEventListener(
        DEVICE_HOST, {**TEST_CONFIG, "port": port}, UpnpTestRequester(RESPONSE_MAP)
    )
    assert await other_listener.async_start() == port
    await other_listener.async_stop()


@pytest.mark.asyncio
async def test_subscribe() -> None:
    """Test subscribing registers the SID with the clamped renewal deadline."""
    listener, requester = create_listener()
    requester.response_map[("SUBSCRIBE", AVT_URL)] = (
        200,
        {"sid": "uuid-1", "timeout": "Second-120"},
        "",
    )

    async with listener:
        now = time.monotonic()
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert sid == "uuid-1"

        subscription = listener.subscriptions["uuid-1"]
        assert subscription.endpoint == AVTRANSPORT_EVENT
        assert subscription.expires_at == pytest.approx(now + 105, abs=1)
        assert listener.sid_for_endpoint(AVTRANSPORT_EVENT) == "uuid-1"

        headers = requester.requests_for("SUBSCRIBE", AVT_URL)[0]
        callback_url = f"http://192.168.1.2:{listener.listen_port}/notify"
        assert headers["CALLBACK"] == f"<{callback_url}>"


@pytest.mark.asyncio
async def test_subscribe_rejected() -> None:
    """Test a rejected subscription is not registered."""
    listener, requester = create_listener()
    requester.response_map[("SUBSCRIBE", AVT_URL)] = (500, {}, "")

    async with listener:
        with pytest.raises(RemoteRejected):
            await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert listener.subscriptions == {}


@pytest.mark.asyncio
async def test_notify_merges_state() -> None:
    """Test partial notifications are merged and dispatched in order."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)

        status = await listener.async_handle_notify(
            notify_headers(sid), property_set(TransportState="PLAYING")
        )
        assert status == 200
        status = await listener.async_handle_notify(
            notify_headers(sid), property_set(TransportState="PAUSED", Volume=10)
        )
        assert status == 200

        assert listener.subscriptions[sid].state == {
            "TransportState": "PAUSED",
            "Volume": "10",
        }
        assert recorder.events == [
            (AVTRANSPORT_EVENT, sid, {"TransportState": "PLAYING"}),
            (AVTRANSPORT_EVENT, sid, {"TransportState": "PAUSED", "Volume": "10"}),
        ]
        assert recorder.errors == []


@pytest.mark.asyncio
async def test_notify_unknown_sid() -> None:
    """Test a NOTIFY for an unknown SID is acknowledged and ignored."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)

        status = await listener.async_handle_notify(
            notify_headers("uuid:unknown"), property_set(Volume=10)
        )
        assert status == 200
        assert recorder.events == []
        assert list(listener.subscriptions) == [sid]
        assert listener.subscriptions[sid].state == {}


@pytest.mark.asyncio
async def test_notify_without_sid() -> None:
    """Test a NOTIFY without SID header is acknowledged and ignored."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        await listener.async_subscribe(AVTRANSPORT_EVENT)
        status = await listener.async_handle_notify(
            {"NT": "upnp:event"}, property_set(Volume=10)
        )
        assert status == 200
        assert recorder.events == []
        assert recorder.errors == []


@pytest.mark.asyncio
async def test_notify_decode_error() -> None:
    """Test a malformed NOTIFY body is reported, the exchange still succeeds."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)

        status = await listener.async_handle_notify(notify_headers(sid), "<e:prop")
        assert status == 200
        assert recorder.events == []
        assert len(recorder.errors) == 1
        err, endpoint, error_sid = recorder.errors[0]
        assert isinstance(err, DecodeError)
        assert (endpoint, error_sid) == (AVTRANSPORT_EVENT, sid)


@pytest.mark.asyncio
async def test_notify_before_subscribe_response() -> None:
    """Test a NOTIFY arriving before the SUBSCRIBE response is replayed."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        await listener.async_handle_notify(
            notify_headers(AVT_SID), property_set(TransportState="STOPPED")
        )
        assert recorder.events == []

        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert sid == AVT_SID
        assert recorder.events == [
            (AVTRANSPORT_EVENT, sid, {"TransportState": "STOPPED"}),
        ]


@pytest.mark.asyncio
async def test_notify_before_subscribe_response_keeps_all() -> None:
    """Test all NOTIFYs arriving before the SUBSCRIBE response are replayed."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        # initial event with the full state, followed by a change
        await listener.async_handle_notify(
            notify_headers(AVT_SID),
            property_set(TransportState="PLAYING", CurrentPlayMode="NORMAL"),
        )
        await listener.async_handle_notify(
            notify_headers(AVT_SID), property_set(TransportState="PAUSED")
        )
        assert recorder.events == []

        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert listener.subscriptions[sid].state == {
            "TransportState": "PAUSED",
            "CurrentPlayMode": "NORMAL",
        }
        assert recorder.events == [
            (
                AVTRANSPORT_EVENT,
                sid,
                {"TransportState": "PLAYING", "CurrentPlayMode": "NORMAL"},
            ),
            (
                AVTRANSPORT_EVENT,
                sid,
                {"TransportState": "PAUSED", "CurrentPlayMode": "NORMAL"},
            ),
        ]

        # replayed once
        await listener.async_unsubscribe(sid)
        await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert len(recorder.events) == 2


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    """Test unsubscribing removes the subscription."""
    listener, requester = create_listener()

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        assert await listener.async_unsubscribe(sid) is True
        assert listener.subscriptions == {}
        assert requester.requests_for("UNSUBSCRIBE", AVT_URL) == [{"SID": sid}]


@pytest.mark.asyncio
async def test_unsubscribe_unknown() -> None:
    """Test unsubscribing an unknown SID fails without a request."""
    listener, requester = create_listener()

    async with listener:
        with pytest.raises(SubscriptionNotFound):
            await listener.async_unsubscribe("uuid:unknown")
        assert requester.requests == []


@pytest.mark.asyncio
async def test_unsubscribe_rejected() -> None:
    """Test a rejected unsubscribe still removes the local subscription."""
    listener, requester = create_listener()
    requester.response_map[("UNSUBSCRIBE", AVT_URL)] = (412, {}, "")

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        with pytest.raises(RemoteRejected):
            await listener.async_unsubscribe(sid)
        assert listener.subscriptions == {}


@pytest.mark.asyncio
async def test_stop_unsubscribes_all() -> None:
    """Test stopping unsubscribes all subscriptions, ignoring failures."""
    listener, requester = create_listener()
    requester.response_map[("UNSUBSCRIBE", RC_URL)] = (500, {}, "")

    await listener.async_start()
    await listener.async_subscribe(AVTRANSPORT_EVENT)
    await listener.async_subscribe(RENDERING_CONTROL_EVENT)
    await listener.async_subscribe(ZONE_GROUP_TOPOLOGY_EVENT)
    await listener.async_stop()

    assert listener.subscriptions == {}
    unsubscribed = {
        url for method, url, _, _ in requester.requests if method == "UNSUBSCRIBE"
    }
    assert AVT_URL in unsubscribed
    assert RC_URL in unsubscribed


@pytest.mark.asyncio
async def test_stop_without_unsubscribe() -> None:
    """Test stopping without unsubscribing does not contact the device."""
    listener, requester = create_listener()

    await listener.async_start()
    await listener.async_subscribe(AVTRANSPORT_EVENT)
    await listener.async_stop(unsubscribe=False)

    assert listener.subscriptions == {}
    assert requester.requests_for("UNSUBSCRIBE", AVT_URL) == []


@pytest.mark.asyncio
async def test_device_restart_resubscribes() -> None:
    """Test a 412 on renewal leaves exactly one subscription under a new SID."""
    listener, requester = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        old_sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        responses = [
            (412, {}, ""),
            (200, {"sid": "uuid:new", "timeout": "Second-3600"}, ""),
        ]
        original_request = requester.async_http_request

        async def async_http_request(
            method: str, url: str, headers: Any = None, body: Any = None
        ) -> Any:
            if method == "SUBSCRIBE" and responses:
                requester.requests.append((method, url, dict(headers or {}), body))
                return responses.pop(0)
            return await original_request(method, url, headers, body)

        requester.async_http_request = async_http_request  # type: ignore

        await listener._scheduler.async_renew_due(time.monotonic() + 3600)

        assert list(listener.subscriptions) == ["uuid:new"]
        assert listener.sid_for_endpoint(AVTRANSPORT_EVENT) == "uuid:new"
        assert old_sid not in listener.subscriptions
        assert recorder.errors == []

        # the new SID receives events
        await listener.async_handle_notify(
            notify_headers("uuid:new"), property_set(TransportState="PLAYING")
        )
        assert recorder.events == [
            (AVTRANSPORT_EVENT, "uuid:new", {"TransportState": "PLAYING"}),
        ]


@pytest.mark.asyncio
async def test_notify_over_http() -> None:
    """Test NOTIFY requests are received by the notify server."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        base_url = f"http://127.0.0.1:{listener.listen_port}"

        async with aiohttp.ClientSession() as session:
            async with session.request(
                "NOTIFY",
                base_url + "/notify",
                headers=notify_headers(sid),
                data=property_set(TransportState="PLAYING"),
            ) as response:
                assert response.status == 200
                assert await response.text() == ""

            async with session.request(
                "NOTIFY",
                base_url + "/NOTIFY",
                headers=notify_headers(sid),
                data=property_set(TransportState="PAUSED", Volume=10),
            ) as response:
                assert response.status == 200

            async with session.request(
                "NOTIFY",
                base_url + "/notify",
                headers=notify_headers("uuid:unknown"),
                data=property_set(Volume=99),
            ) as response:
                assert response.status == 200

            async with session.get(base_url + "/notify") as response:
                assert response.status == 405

            async with session.request(
                "NOTIFY", base_url + "/other", headers=notify_headers(sid), data=""
            ) as response:
                assert response.status == 404

        assert recorder.events == [
            (AVTRANSPORT_EVENT, sid, {"TransportState": "PLAYING"}),
            (AVTRANSPORT_EVENT, sid, {"TransportState": "PAUSED", "Volume": "10"}),
        ]


@pytest.mark.asyncio
async def test_notify_over_http_invalid_encoding() -> None:
    """Test a NOTIFY body which is not UTF-8 is reported, the exchange succeeds."""
    listener, _ = create_listener()
    recorder = EventRecorder(listener)

    async with listener:
        sid = await listener.async_subscribe(AVTRANSPORT_EVENT)
        url = f"http://127.0.0.1:{listener.listen_port}/notify"

        async with aiohttp.ClientSession() as session:
            async with session.request(
                "NOTIFY",
                url,
                headers=notify_headers(sid),
                data=b"<e:propertyset \xff\xfe>",
            ) as response:
                assert response.status == 200

        assert recorder.events == []
        assert len(recorder.errors) == 1
        err, endpoint, error_sid = recorder.errors[0]
        assert isinstance(err, DecodeError)
        assert (endpoint, error_sid) == (AVTRANSPORT_EVENT, sid)
        assert listener.subscriptions[sid].state == {}
