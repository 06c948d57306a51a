"""Messages of the peer wire protocol and the codecs that frame them."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

from vincenzo.blocks import PSTR, Block, BlockInfo

_U32_MAX = 0xFFFFFFFF
_LENGTH_PREFIX = struct.Struct(">I")
_HANDSHAKE_LEN = 1 + len(PSTR) + 8 + 20 + 20


class MessageId(IntEnum):
    """The id byte that follows the length prefix of every message but KeepAlive."""

    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8
    EXTENDED = 20


class Message:
    """Base class of the messages exchanged after the handshake."""

    __slots__ = ()


@dataclass(frozen=True)
class KeepAlive(Message):
    """Keeps an idle connection open."""


@dataclass(frozen=True)
class Choke(Message):
    """The sender will not serve requests."""


@dataclass(frozen=True)
class Unchoke(Message):
    """The sender will serve requests."""


@dataclass(frozen=True)
class Interested(Message):
    """The sender wants pieces the receiver has."""


@dataclass(frozen=True)
class NotInterested(Message):
    """The sender wants nothing the receiver has."""


@dataclass(frozen=True)
class Have(Message):
    """The sender has finished downloading a piece."""

    piece: int


@dataclass(frozen=True)
class BitfieldMessage(Message):
    """The pieces the sender has, one bit per piece, most significant bit first."""

    bitfield: bytes


@dataclass(frozen=True)
class Request(Message):
    """Asks for a block."""

    block_info: BlockInfo


@dataclass(frozen=True)
class Piece(Message):
    """Carries a block of data."""

    block: Block


@dataclass(frozen=True)
class Cancel(Message):
    """Withdraws an earlier request."""

    block_info: BlockInfo


@dataclass(frozen=True)
class Extended(Message):
    """A message of the extension protocol: an extension id and its payload."""

    ext_id: int
    payload: bytes = b""


def _frame(msg_id: MessageId, body: bytes = b"") -> bytes:
    return _LENGTH_PREFIX.pack(1 + len(body)) + bytes([msg_id]) + body


_MIN_BODY = {
    MessageId.HAVE: 4,
    MessageId.REQUEST: 12,
    MessageId.PIECE: 8,
    MessageId.CANCEL: 12,
    MessageId.EXTENDED: 1,
}


class PeerCodec:
    """Encodes messages to length-prefixed frames and decodes them back."""

    def encode(self, message: Message) -> bytes:
        """Return the wire bytes of `message`."""
        match message:
            case KeepAlive():
                return _LENGTH_PREFIX.pack(0)
            case BitfieldMessage(bitfield):
                return _frame(MessageId.BITFIELD, bytes(bitfield))
            case Choke():
                return _frame(MessageId.CHOKE)
            case Unchoke():
                return _frame(MessageId.UNCHOKE)
            case Interested():
                return _frame(MessageId.INTERESTED)
            case NotInterested():
                return _frame(MessageId.NOT_INTERESTED)
            case Have(piece):
                if not 0 <= piece <= _U32_MAX:
                    raise ValueError(f"piece index {piece} does not fit in 32 bits")
                return _frame(MessageId.HAVE, struct.pack(">I", piece))
            case Request(block_info):
                return _frame(MessageId.REQUEST, block_info.encode())
            case Piece(block):
                return _frame(MessageId.PIECE, block.encode())
            case Cancel(block_info):
                return _frame(MessageId.CANCEL, block_info.encode())
            case Extended(ext_id, payload):
                if not 0 <= ext_id <= 0xFF:
                    raise ValueError(f"extension id {ext_id} does not fit in a byte")
                return _frame(MessageId.EXTENDED, bytes([ext_id]) + bytes(payload))
        raise TypeError(f"cannot encode {message!r}")

    def decode(self, buf: bytearray) -> Message | None:
        """Take one whole message off the front of `buf`.

        Returns None, leaving `buf` untouched, while the message is incomplete.
        Raises ValueError on an unknown id or a frame too short for its id.
        """
        if len(buf) < 4:
            return None
        (msg_len,) = _LENGTH_PREFIX.unpack_from(buf)
        if len(buf) < 4 + msg_len:
            return None
        frame = bytes(buf[4 : 4 + msg_len])
        del buf[: 4 + msg_len]
        if msg_len == 0:
            return KeepAlive()

        try:
            msg_id = MessageId(frame[0])
        except ValueError:
            raise ValueError(f"unknown message id {frame[0]}") from None
        body = frame[1:]
        needed = _MIN_BODY.get(msg_id, 0)
        if len(body) < needed:
            raise ValueError(
                f"{msg_id.name} message needs {needed} payload bytes, got {len(body)}"
            )

        match msg_id:
            case MessageId.CHOKE:
                return Choke()
            case MessageId.UNCHOKE:
                return Unchoke()
            case MessageId.INTERESTED:
                return Interested()
            case MessageId.NOT_INTERESTED:
                return NotInterested()
            case MessageId.HAVE:
                (piece,) = struct.unpack_from(">I", body)
                return Have(piece)
            case MessageId.BITFIELD:
                return BitfieldMessage(body)
            case MessageId.REQUEST:
                return Request(BlockInfo(*struct.unpack_from(">III", body)))
            case MessageId.PIECE:
                index, begin = struct.unpack_from(">II", body)
                return Piece(Block(index=index, begin=begin, block=body[8:]))
            case MessageId.CANCEL:
                return Cancel(BlockInfo(*struct.unpack_from(">III", body)))
            case MessageId.EXTENDED:
                return Extended(body[0], body[1:])
        raise ValueError(f"unknown message id {msg_id}")


def _default_reserved() -> bytes:
    reserved = bytearray(8)
    # bit 44 from the left: we support the extension protocol
    reserved[5] |= 0x10
    return bytes(reserved)


def supports_extension_protocol(reserved: bytes) -> bool:
    """Whether the reserved bytes of a handshake announce the extension protocol."""
    return len(reserved) > 5 and bool(reserved[5] & 0x10)


@dataclass(frozen=True)
class Handshake:
    """The first message of a connection, sent once by each side."""

    info_hash: bytes
    peer_id: bytes
    reserved: bytes = field(default_factory=_default_reserved)
    pstr: bytes = PSTR
    pstr_len: int = len(PSTR)

    def serialize(self) -> bytes:
        """Return the 68 wire bytes."""
        if len(self.pstr) != 19 or len(self.reserved) != 8:
            raise ValueError("pstr must be 19 bytes and reserved 8 bytes")
        if len(self.info_hash) != 20 or len(self.peer_id) != 20:
            raise ValueError("info_hash and peer_id must be 20 bytes each")
        if not 0 <= self.pstr_len <= 0xFF:
            raise ValueError(f"pstr_len {self.pstr_len} does not fit in a byte")
        return (
            bytes([self.pstr_len])
            + bytes(self.pstr)
            + bytes(self.reserved)
            + bytes(self.info_hash)
            + bytes(self.peer_id)
        )

    @classmethod
    def deserialize(cls, buf: bytes) -> Handshake:
        """Parse a handshake from the first 68 bytes of `buf`."""
        if len(buf) < _HANDSHAKE_LEN:
            raise ValueError(
                f"handshake needs {_HANDSHAKE_LEN} bytes, got {len(buf)}"
            )
        buf = bytes(buf)
        return cls(
            pstr_len=buf[0],
            pstr=buf[1:20],
            reserved=buf[20:28],
            info_hash=buf[28:48],
            peer_id=buf[48:68],
        )

    def validate(self, target: Handshake) -> bool:
        """Whether `target` is an acceptable reply to this handshake."""
        return (
            len(target.peer_id) == 20
            and self.info_hash == target.info_hash
            and target.pstr_len == 19
            and target.pstr == PSTR
        )


class HandshakeCodec:
    """Encodes and decodes handshakes, which precede all other messages."""

    def encode(self, handshake: Handshake) -> bytes:
        """Return the wire bytes of `handshake`."""
        return (
            bytes([len(handshake.pstr)])
            + bytes(handshake.pstr)
            + bytes(handshake.reserved)
            + bytes(handshake.info_hash)
            + bytes(handshake.peer_id)
        )

    def decode(self, buf: bytearray) -> Handshake | None:
        """Take a handshake off the front of `buf`, or return None if incomplete.

        Raises ValueError when the protocol string length is not 19.
        """
        if not buf:
            return None
        if buf[0] != len(PSTR):
            raise ValueError('Handshake must have the string "BitTorrent protocol"')
        if len(buf) < _HANDSHAKE_LEN:
            return None
        frame = bytes(buf[:_HANDSHAKE_LEN])
        del buf[:_HANDSHAKE_LEN]
        return Handshake(
            pstr=frame[1:20],
            pstr_len=19,
            reserved=frame[20:28],
            info_hash=frame[28:48],
            peer_id=frame[48:68],
        )