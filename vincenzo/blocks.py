"""Blocks and block requests of the peer wire protocol."""

from __future__ import annotations

import struct
from dataclasses import dataclass

BLOCK_LEN = 16384
"""The block length most clients support; the last block of a piece may be shorter."""

PSTR = b"BitTorrent protocol"
"""The protocol string sent in every handshake."""

_U32_MAX = 0xFFFFFFFF


def _check_u32(name: str, value: int) -> None:
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{name} {value} does not fit in an unsigned 32-bit integer")


@dataclass(frozen=True, order=True)
class Block:
    """A chunk of data of a piece, as carried by a Piece message."""

    index: int
    begin: int
    block: bytes = b""

    def encode(self) -> bytes:
        """Return the wire form: index, begin, then the data."""
        _check_u32("index", self.index)
        _check_u32("begin", self.begin)
        return struct.pack(">II", self.index, self.begin) + bytes(self.block)

    def is_valid(self) -> bool:
        """Whether the block is no larger than BLOCK_LEN."""
        return len(self.block) <= BLOCK_LEN and self.begin <= BLOCK_LEN


@dataclass(frozen=True, order=True)
class BlockInfo:
    """Describes a block to request or cancel."""

    index: int = 0
    begin: int = 0
    length: int = BLOCK_LEN

    @classmethod
    def from_block(cls, block: Block) -> BlockInfo:
        """The request that corresponds to a received block."""
        return cls(index=block.index, begin=block.begin, length=len(block.block))

    def encode(self) -> bytes:
        """Return the wire form: index, begin and length as big-endian u32."""
        _check_u32("index", self.index)
        _check_u32("begin", self.begin)
        _check_u32("length", self.length)
        return struct.pack(">III", self.index, self.begin, self.length)

    def is_valid(self) -> bool:
        """Whether the requested length is positive and no larger than BLOCK_LEN."""
        return 0 < self.length <= BLOCK_LEN and self.begin <= BLOCK_LEN