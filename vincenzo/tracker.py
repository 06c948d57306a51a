"""A UDP tracker client: connect, announce and serve announce requests."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import secrets
from dataclasses import dataclass, field
from typing import Union

from vincenzo.tracker_protocol import (
    Action,
    AnnounceRequest,
    AnnounceResponse,
    ConnectRequest,
    ConnectResponse,
    Event,
    TrackerError,
    TrackerResponseError,
)

log = logging.getLogger(__name__)

Address = tuple[str, int]
TrackerAddress = Union[str, Address]

_ANY_ADDR: Address = ("0.0.0.0", 0)
_U32_MAX = 0xFFFFFFFF


def _parse_addr(addr: TrackerAddress) -> Address:
    """Turn "host:port" or (host, port) into a (host, port) tuple."""
    if isinstance(addr, tuple):
        host, port = addr[0], addr[1]
        return str(host), int(port)
    host, sep, port = str(addr).rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid address {addr!r}")
    return host.strip("[]"), int(port)


def _format_addr(addr: TrackerAddress) -> str:
    if isinstance(addr, tuple):
        host, port = addr[0], addr[1]
        return f"[{host}]:{port}" if ":" in str(host) else f"{host}:{port}"
    return str(addr)


class _DatagramProtocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes | Exception] = asyncio.Queue()
        self.closed = asyncio.get_running_loop().create_future()

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if not self.closed.done():
            self.closed.set_result(None)


class _UdpSocket:
    """A connected UDP socket with awaitable receives."""

    def __init__(
        self, transport: asyncio.DatagramTransport, protocol: _DatagramProtocol
    ) -> None:
        self._transport = transport
        self._protocol = protocol

    @classmethod
    async def open(cls, local: Address, remote: Address) -> _UdpSocket:
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _DatagramProtocol, local_addr=local, remote_addr=remote
        )
        return cls(transport, protocol)

    @property
    def local_addr(self) -> Address:
        sockname = self._transport.get_extra_info("sockname")
        return sockname[0], sockname[1]

    @property
    def peer_addr(self) -> Address:
        peername = self._transport.get_extra_info("peername")
        return peername[0], peername[1]

    def send(self, data: bytes) -> None:
        self._transport.sendto(data)

    async def recv(self, timeout: float) -> bytes:
        item = await asyncio.wait_for(self._protocol.queue.get(), timeout)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self._transport.close()
        await self._protocol.closed

    async def __aenter__(self) -> _UdpSocket:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def _exchange(sock: _UdpSocket, payload: bytes, timeout: float) -> bytes:
    """Send `payload` up to three times, returning the first reply or b""."""
    for attempt in range(3):
        log.debug("sending request number %d", attempt)
        sock.send(payload)
        try:
            return await sock.recv(timeout)
        except asyncio.TimeoutError:
            log.warning("tracker did not answer within %s seconds", timeout)
        except OSError as exc:
            log.debug("error receiving from tracker: %s", exc)
    return b""


def _gen_peer_id() -> bytes:
    return b"vcz" + secrets.token_bytes(17)


@dataclass
class TrackerCtx:
    """What other parts of the client need to know about a tracker."""

    tx: asyncio.Queue | None = None
    peer_id: bytes = field(default_factory=_gen_peer_id)
    tracker_addr: str = ""
    local_peer_addr: Address = _ANY_ADDR
    connection_id: int | None = None


@dataclass
class AnnounceMsg:
    """A request for the tracker task to announce; the outcome goes to `recipient`."""

    event: Event
    info_hash: bytes
    downloaded: int
    uploaded: int
    left: int
    recipient: asyncio.Future | None = None


class Tracker:
    """A connection to one UDP tracker."""

    ANNOUNCE_RES_BUF_LEN = 8192
    CONNECT_TIMEOUT = 5.0
    ANNOUNCE_TIMEOUT = 3.0

    def __init__(
        self,
        ctx: TrackerCtx | None = None,
        local_addr: Address = _ANY_ADDR,
        peer_addr: Address = _ANY_ADDR,
    ) -> None:
        self.rx: asyncio.Queue[AnnounceMsg] = asyncio.Queue()
        self.ctx = ctx if ctx is not None else TrackerCtx()
        self.ctx.tx = self.rx
        self.local_addr = local_addr
        self.peer_addr = peer_addr

    @classmethod
    async def connect(cls, trackers: list[TrackerAddress]) -> Tracker:
        """Connect to the first tracker in `trackers` that answers a connect request."""
        log.debug("trying to connect to %d trackers", len(trackers))
        for tracker_addr in trackers:
            try:
                sock = await cls.new_udp_socket(tracker_addr)
            except TrackerError:
                log.debug("could not connect to tracker %r", tracker_addr)
                continue
            tracker = cls(
                TrackerCtx(tracker_addr=_format_addr(tracker_addr)),
                local_addr=sock.local_addr,
                peer_addr=sock.peer_addr,
            )
            try:
                async with sock:
                    await tracker._connect_exchange(sock)
            except (TrackerError, OSError) as exc:
                log.debug("tracker %r rejected the connection: %s", tracker_addr, exc)
                continue
            log.debug("connected to tracker %s", tracker.ctx.tracker_addr)
            return tracker
        log.error("Could not connect to any tracker, all trackers rejected the connection.")
        raise TrackerError("could not connect to any tracker")

    async def _connect_exchange(self, sock: _UdpSocket) -> None:
        request = ConnectRequest()
        data = await _exchange(sock, request.serialize(), self.CONNECT_TIMEOUT)
        if not data:
            raise TrackerResponseError("tracker did not answer the connect request")
        length = ConnectResponse.LENGTH
        response, _ = ConnectResponse.deserialize(data[:length].ljust(length, b"\0"))
        if (
            response.transaction_id != request.transaction_id
            or response.action != request.action
        ):
            log.error("response is not valid %r", response)
            raise TrackerResponseError("connect response does not match the request")
        self.ctx.connection_id = response.connection_id

    async def announce_exchange(
        self, info_hash: bytes, listen: Address | None = None
    ) -> tuple[AnnounceResponse, list[Address]]:
        """Announce that the download started; return the response and the peers."""
        connection_id = self.ctx.connection_id
        if connection_id is None:
            raise TrackerError("no connection id, connect to the tracker first")

        local_peer_addr: Address = ("0.0.0.0", listen[1] if listen else 0)
        request = AnnounceRequest.new(
            connection_id,
            info_hash,
            self.ctx.peer_id,
            0,
            local_peer_addr[1],
            Event.STARTED,
        )
        self.ctx.local_peer_addr = local_peer_addr

        async with await _UdpSocket.open(self.local_addr, self.peer_addr) as sock:
            data = await _exchange(sock, request.serialize(), self.ANNOUNCE_TIMEOUT)
            is_ipv6 = ":" in sock.peer_addr[0]

        if not data:
            raise TrackerResponseError("tracker did not answer the announce request")
        response, payload = AnnounceResponse.deserialize(data[: self.ANNOUNCE_RES_BUF_LEN])
        if (
            response.transaction_id != request.transaction_id
            or response.action != request.action
        ):
            raise TrackerResponseError("announce response does not match the request")
        return response, self.parse_compact_peer_list(payload, is_ipv6)

    @staticmethod
    async def new_udp_socket(addr: TrackerAddress) -> _UdpSocket:
        """Bind a UDP socket on any local address and connect it to `addr`."""
        try:
            remote = _parse_addr(addr)
        except ValueError as exc:
            raise TrackerError(f"invalid tracker address {addr!r}") from exc
        try:
            return await _UdpSocket.open(_ANY_ADDR, remote)
        except OSError as exc:
            raise TrackerError(f"could not connect a socket to {addr!r}") from exc

    @staticmethod
    def parse_compact_peer_list(buf: bytes, is_ipv6: bool) -> list[Address]:
        """Decode compact peers: 4 or 16 address bytes then a big-endian port each."""
        stride = 18 if is_ipv6 else 6
        if len(buf) % stride:
            raise TrackerError(
                f"compact peer list of {len(buf)} bytes is not a multiple of {stride}"
            )
        peers = []
        for start in range(0, len(buf), stride):
            chunk = bytes(buf[start : start + stride])
            ip = ipaddress.ip_address(chunk[:-2])
            port = int.from_bytes(chunk[-2:], "big")
            peers.append((str(ip), port))
        log.debug("ips of peers addrs %r", peers)
        return peers

    async def announce_msg(
        self,
        event: Event,
        info_hash: bytes,
        downloaded: int,
        uploaded: int,
        left: int,
    ) -> AnnounceResponse:
        """Send one announce with the given counters and return the response."""
        log.debug("announcing %s to tracker", Event(event).name)
        request = AnnounceRequest(
            connection_id=self.ctx.connection_id or 0,
            action=int(Action.ANNOUNCE),
            transaction_id=secrets.randbits(32),
            info_hash=bytes(info_hash),
            peer_id=self.ctx.peer_id,
            downloaded=downloaded,
            left=left,
            uploaded=uploaded,
            event=int(event),
            ip_address=0,
            num_want=_U32_MAX,
            port=self.local_addr[1],
        )
        async with await _UdpSocket.open(self.local_addr, self.peer_addr) as sock:
            data = await _exchange(sock, request.serialize(), self.ANNOUNCE_TIMEOUT)
        response, _ = AnnounceResponse.deserialize(data[: self.ANNOUNCE_RES_BUF_LEN])
        return response

    async def run(self) -> None:
        """Serve announce messages from the queue until a STOPPED announce."""
        log.debug("running tracker")
        while True:
            msg = await self.rx.get()
            outcome: AnnounceResponse | Exception
            try:
                outcome = await self.announce_msg(
                    msg.event, msg.info_hash, msg.downloaded, msg.uploaded, msg.left
                )
            except (TrackerError, OSError) as exc:
                outcome = exc
            recipient = msg.recipient
            if recipient is not None and not recipient.done():
                if isinstance(outcome, Exception):
                    recipient.set_exception(outcome)
                else:
                    recipient.set_result(outcome)
            if msg.event == Event.STOPPED:
                return

    @staticmethod
    def gen_peer_id() -> bytes:
        """A random 20-byte peer id prefixed with "vcz"."""
        return _gen_peer_id()