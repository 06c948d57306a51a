import asyncio
import contextlib
import struct

import pytest

from vincenzo.tracker import AnnounceMsg, Tracker, TrackerCtx
from vincenzo.tracker_protocol import (
    AnnounceRequest,
    AnnounceResponse,
    ConnectRequest,
    ConnectResponse,
    Event,
    TrackerError,
    TrackerResponseError,
)

INFO_HASH = bytes(range(20))
CONNECTION_ID = 0x1234


class _FakeTracker(asyncio.DatagramProtocol):
    def __init__(self, peers=b"", bad_transaction=False):
        self.peers = peers
        self.bad_transaction = bad_transaction
        self.requests = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        if len(data) == ConnectRequest.LENGTH:
            req, _ = ConnectRequest.deserialize(data)
            self.requests.append(req)
            tid = req.transaction_id ^ 1 if self.bad_transaction else req.transaction_id
            reply = ConnectResponse(0, tid, CONNECTION_ID).serialize()
            self.transport.sendto(reply, addr)
        elif len(data) == AnnounceRequest.LENGTH:
            req, _ = AnnounceRequest.deserialize(data)
            self.requests.append(req)
            header = struct.pack(">IIIII", 1, req.transaction_id, 1800, 3, 7)
            self.transport.sendto(header + self.peers, addr)


@contextlib.asynccontextmanager
async def serve(**kwargs):
    loop = asyncio.get_running_loop()
    proto = _FakeTracker(**kwargs)
    transport, _ = await loop.create_datagram_endpoint(
        lambda: proto, local_addr=("127.0.0.1", 0)
    )
    try:
        yield proto, transport.get_extra_info("sockname")[1]
    finally:
        transport.close()


def test_peer_ids_prefixed_with_vcz():
    for _ in range(10):
        peer_id = Tracker.gen_peer_id()
        assert peer_id.startswith(b"vcz")
        assert len(peer_id) == 20


def test_tracker_ctx_defaults():
    ctx = TrackerCtx()
    assert ctx.tx is None
    assert ctx.connection_id is None
    assert ctx.tracker_addr == ""
    assert ctx.local_peer_addr == ("0.0.0.0", 0)
    assert ctx.peer_id[:3] == b"vcz"


def test_tracker_default_ctx_uses_its_queue():
    tracker = Tracker()
    assert tracker.ctx.tx is tracker.rx
    assert tracker.local_addr == ("0.0.0.0", 0)


def test_parse_compact_peer_list_ipv4():
    buf = bytes([10, 0, 0, 1, 0x1A, 0xE1, 192, 168, 1, 2, 0, 80])
    assert Tracker.parse_compact_peer_list(buf, False) == [
        ("10.0.0.1", 6881),
        ("192.168.1.2", 80),
    ]


def test_parse_compact_peer_list_ipv6():
    buf = bytes(15) + b"\x01" + b"\x1a\xe1"
    assert Tracker.parse_compact_peer_list(buf, True) == [("::1", 6881)]


def test_parse_compact_peer_list_empty():
    assert Tracker.parse_compact_peer_list(b"", False) == []


def test_parse_compact_peer_list_bad_length():
    with pytest.raises(TrackerError):
        Tracker.parse_compact_peer_list(bytes(7), False)


@pytest.mark.asyncio
async def test_connect_no_hosts():
    with pytest.raises(TrackerError):
        await Tracker.connect(["not-an-address"])


@pytest.mark.asyncio
async def test_new_udp_socket_invalid_address():
    with pytest.raises(TrackerError):
        await Tracker.new_udp_socket("missing-port")


@pytest.mark.asyncio
async def test_connect_sets_connection_id():
    async with serve() as (server, port):
        tracker = await Tracker.connect([f"127.0.0.1:{port}"])
    assert tracker.ctx.connection_id == CONNECTION_ID
    assert tracker.ctx.tracker_addr == f"127.0.0.1:{port}"
    assert tracker.peer_addr == ("127.0.0.1", port)
    assert len(server.requests) == 1
    assert server.requests[0].protocol_id == ConnectRequest.MAGIC


@pytest.mark.asyncio
async def test_connect_skips_bad_tracker():
    async with serve() as (_, port):
        tracker = await Tracker.connect(["bogus", ("127.0.0.1", port)])
    assert tracker.ctx.connection_id == CONNECTION_ID
    assert tracker.ctx.tracker_addr == f"127.0.0.1:{port}"


@pytest.mark.asyncio
async def test_connect_rejects_wrong_transaction():
    async with serve(bad_transaction=True) as (_, port):
        with pytest.raises(TrackerError):
            await Tracker.connect([f"127.0.0.1:{port}"])


@pytest.mark.asyncio
async def test_announce_exchange_without_connection_id():
    with pytest.raises(TrackerError):
        await Tracker().announce_exchange(INFO_HASH, None)


@pytest.mark.asyncio
async def test_announce_exchange_returns_peers():
    peers = bytes([10, 0, 0, 1, 0x1A, 0xE1, 10, 0, 0, 2, 0x1A, 0xE2])
    async with serve(peers=peers) as (server, port):
        tracker = await Tracker.connect([f"127.0.0.1:{port}"])
        response, found = await tracker.announce_exchange(
            INFO_HASH, ("127.0.0.1", 51413)
        )
    assert isinstance(response, AnnounceResponse)
    assert (response.interval, response.leechers, response.seeders) == (1800, 3, 7)
    assert found == [("10.0.0.1", 6881), ("10.0.0.2", 6882)]
    assert tracker.ctx.local_peer_addr == ("0.0.0.0", 51413)
    announce = server.requests[-1]
    assert announce.event == Event.STARTED
    assert announce.port == 51413
    assert announce.connection_id == CONNECTION_ID
    assert announce.info_hash == INFO_HASH
    assert announce.peer_id == tracker.ctx.peer_id


@pytest.mark.asyncio
async def test_announce_msg_sends_counters():
    async with serve() as (server, port):
        tracker = await Tracker.connect([f"127.0.0.1:{port}"])
        response = await tracker.announce_msg(Event.COMPLETED, INFO_HASH, 100, 50, 0)
    assert response.to_stats().seeders == 7
    announce = server.requests[-1]
    assert announce.event == Event.COMPLETED
    assert (announce.downloaded, announce.uploaded, announce.left) == (100, 50, 0)
    assert announce.port == tracker.local_addr[1]


@pytest.mark.asyncio
async def test_run_answers_until_stopped():
    async with serve() as (server, port):
        tracker = await Tracker.connect([f"127.0.0.1:{port}"])
        loop = asyncio.get_running_loop()
        first = loop.create_future()
        last = loop.create_future()
        await tracker.rx.put(AnnounceMsg(Event.NONE, INFO_HASH, 1, 2, 3, first))
        await tracker.rx.put(AnnounceMsg(Event.STOPPED, INFO_HASH, 4, 5, 0, last))
        result = await asyncio.wait_for(tracker.run(), 10)
    assert result is None
    assert first.result().interval == 1800
    assert last.result().leechers == 3
    events = [req.event for req in server.requests[1:]]
    assert events == [Event.NONE, Event.STOPPED]


@pytest.mark.asyncio
async def test_run_reports_errors_to_recipient():
    async with serve() as (_, port):
        tracker = await Tracker.connect([f"127.0.0.1:{port}"])
    tracker.ANNOUNCE_TIMEOUT = 0.05
    # The server is gone, so the announce gets no reply.
    recipient = asyncio.get_running_loop().create_future()
    await tracker.rx.put(AnnounceMsg(Event.STOPPED, INFO_HASH, 0, 0, 0, recipient))
    await asyncio.wait_for(tracker.run(), 10)
    with pytest.raises(TrackerError):
        recipient.result()


@pytest.mark.asyncio
async def test_connect_response_error_is_tracker_error():
    async with serve(bad_transaction=True) as (_, port):
        sock = await Tracker.new_udp_socket(("127.0.0.1", port))
        tracker = Tracker(local_addr=sock.local_addr, peer_addr=sock.peer_addr)
        async with sock:
            with pytest.raises(TrackerResponseError):
                await tracker._connect_exchange(sock)
    assert tracker.ctx.connection_id is None