"""Wire messages of the UDP tracker protocol: connect and announce."""

from __future__ import annotations

import random
import struct
from dataclasses import dataclass, field
from enum import IntEnum

from vincenzo.status import Stats

_U32_MAX = 0xFFFFFFFF
_U64_MAX = 0xFFFFFFFFFFFFFFFF


def _random_u32() -> int:
    return random.getrandbits(32)


class TrackerError(Exception):
    """Base class of errors raised while talking to a tracker."""


class TrackerResponseError(TrackerError):
    """The tracker sent a response that is not valid."""


class TrackerResponseLengthError(TrackerError):
    """The tracker sent a message of the wrong length."""


class Action(IntEnum):
    """The action field of tracker messages."""

    CONNECT = 0
    ANNOUNCE = 1
    SCRAPE = 2
    UNSUPPORTED = 0xFFFF

    @classmethod
    def from_code(cls, code: int) -> Action:
        """Map a wire code to an action; unknown codes are UNSUPPORTED."""
        try:
            return cls(code)
        except ValueError:
            return cls.UNSUPPORTED


class Event(IntEnum):
    """The event field of announce requests."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3

    @classmethod
    def from_code(cls, code: int) -> Event:
        """Map a wire code to an event; unknown codes are NONE."""
        try:
            return cls(code)
        except ValueError:
            return cls.NONE


@dataclass
class ConnectRequest:
    """The first message sent to a tracker, asking for a connection id."""

    MAGIC = 0x41727101980
    LENGTH = 16
    _FORMAT = struct.Struct(">QII")

    protocol_id: int = MAGIC
    action: int = int(Action.CONNECT)
    transaction_id: int = field(default_factory=_random_u32)

    def serialize(self) -> bytes:
        """Return the 16 wire bytes; the protocol id is always the magic value."""
        return self._FORMAT.pack(self.MAGIC, self.action, self.transaction_id)

    @classmethod
    def deserialize(cls, buf: bytes) -> tuple[ConnectRequest, bytes]:
        """Parse a request; return it with the bytes that follow it."""
        if len(buf) != cls.LENGTH:
            raise TrackerResponseError(
                f"connect request must be {cls.LENGTH} bytes, got {len(buf)}"
            )
        protocol_id, action, transaction_id = cls._FORMAT.unpack_from(buf)
        return cls(protocol_id, action, transaction_id), bytes(buf[cls.LENGTH :])


@dataclass
class ConnectResponse:
    """The tracker's answer to a connect request."""

    LENGTH = 16
    _FORMAT = struct.Struct(">IIQ")

    action: int
    transaction_id: int
    connection_id: int

    def serialize(self) -> bytes:
        """Return the 16 wire bytes."""
        return self._FORMAT.pack(self.action, self.transaction_id, self.connection_id)

    @classmethod
    def deserialize(cls, buf: bytes) -> tuple[ConnectResponse, bytes]:
        """Parse a response; return it with the bytes that follow it."""
        if len(buf) != cls.LENGTH:
            raise TrackerResponseError(
                f"connect response must be {cls.LENGTH} bytes, got {len(buf)}"
            )
        action, transaction_id, connection_id = cls._FORMAT.unpack_from(buf)
        return cls(action, transaction_id, connection_id), bytes(buf[cls.LENGTH :])


@dataclass
class AnnounceRequest:
    """An announce sent to a tracker once a connection id is known."""

    LENGTH = 98
    _FORMAT = struct.Struct(">QII20s20sQQQQIIH")

    connection_id: int
    action: int
    transaction_id: int
    info_hash: bytes
    peer_id: bytes
    downloaded: int
    left: int
    uploaded: int
    event: int
    ip_address: int
    num_want: int
    port: int

    @classmethod
    def new(
        cls,
        connection_id: int,
        info_hash: bytes,
        peer_id: bytes,
        ip_address: int,
        port: int,
        event: Event,
    ) -> AnnounceRequest:
        """Build a fresh announce; the ip address is always sent as 0."""
        del ip_address
        return cls(
            connection_id=connection_id,
            action=int(Action.ANNOUNCE),
            transaction_id=_random_u32(),
            info_hash=bytes(info_hash),
            peer_id=bytes(peer_id),
            downloaded=0,
            left=_U64_MAX,
            uploaded=0,
            event=int(event),
            ip_address=0,
            num_want=_U32_MAX,
            port=port,
        )

    def serialize(self) -> bytes:
        """Return the 98 wire bytes."""
        if len(self.info_hash) != 20 or len(self.peer_id) != 20:
            raise ValueError("info_hash and peer_id must be 20 bytes each")
        return self._FORMAT.pack(
            self.connection_id,
            self.action,
            self.transaction_id,
            self.info_hash,
            self.peer_id,
            self.downloaded,
            self.left,
            self.uploaded,
            self.event,
            self.ip_address,
            self.num_want,
            self.port,
        )

    @classmethod
    def deserialize(cls, buf: bytes) -> tuple[AnnounceRequest, bytes]:
        """Parse a request; return it with the bytes that follow it."""
        if len(buf) != cls.LENGTH:
            raise TrackerResponseLengthError(
                f"announce request must be {cls.LENGTH} bytes, got {len(buf)}"
            )
        return cls(*cls._FORMAT.unpack_from(buf)), bytes(buf[cls.LENGTH :])


@dataclass
class AnnounceResponse:
    """The tracker's answer to an announce; compact peers follow it on the wire."""

    LENGTH = 20
    _FORMAT = struct.Struct(">IIIII")

    action: int
    transaction_id: int
    interval: int
    leechers: int
    seeders: int

    @classmethod
    def deserialize(cls, buf: bytes) -> tuple[AnnounceResponse, bytes]:
        """Parse the header; return it with the peer bytes that follow it."""
        if len(buf) < cls.LENGTH:
            raise TrackerResponseLengthError(
                f"announce response needs at least {cls.LENGTH} bytes, got {len(buf)}"
            )
        return cls(*cls._FORMAT.unpack_from(buf)), bytes(buf[cls.LENGTH :])

    def to_stats(self) -> Stats:
        """The swarm statistics carried by this response."""
        return Stats(interval=self.interval, leechers=self.leechers, seeders=self.seeders)