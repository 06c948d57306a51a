# vincenzo

Building blocks for a BitTorrent client in plain Python, using only the
standard library.

## What it provides

- `vincenzo.blocks`: `Block` (piece index, offset, data) and `BlockInfo`
  (piece index, offset, `length`, defaulting to `BLOCK_LEN` = 16384). Both
  have `encode()`, returning big-endian wire bytes, and `is_valid()`.
  `BlockInfo.from_block(block)` gives the request matching a received block.
  `PSTR` is the handshake protocol string `b"BitTorrent protocol"`.
- `vincenzo.messages`: the peer wire protocol.
  - `Handshake` with `serialize()` (68 bytes), `deserialize(buf)` and
    `validate(target)`; by default its reserved bytes announce support for
    the extension protocol. `supports_extension_protocol(reserved)` reads
    that bit.
  - `HandshakeCodec` and `PeerCodec`, whose `encode(message)` returns bytes
    and whose `decode(buf)` takes one whole message off the front of a
    `bytearray`, or returns `None` and leaves it untouched while the message
    is incomplete. `PeerCodec.decode` raises `ValueError` on an unknown
    message id or a frame too short for its id; `HandshakeCodec.decode`
    raises `ValueError` when the protocol string length is not 19.
  - Message classes `KeepAlive`, `Choke`, `Unchoke`, `Interested`,
    `NotInterested`, `Have`, `BitfieldMessage`, `Request`, `Piece`,
    `Cancel` and `Extended`, and the `MessageId` codes.
- `vincenzo.tracker_protocol`: UDP tracker packets `ConnectRequest`,
  `ConnectResponse`, `AnnounceRequest` and `AnnounceResponse`, the `Action`
  and `Event` codes, and the errors `TrackerError`,
  `TrackerResponseError` and `TrackerResponseLengthError`.
  `AnnounceResponse.to_stats()` returns a `Stats`.
- `vincenzo.tracker`: an asyncio UDP tracker client.
  - `await Tracker.connect(trackers)` tries each `"host:port"` or
    `(host, port)` in turn and returns the first tracker that answers the
    connect request, or raises `TrackerError`.
  - `await tracker.announce_exchange(info_hash, listen)` announces the
    `STARTED` event and returns the `AnnounceResponse` and a list of peer
    `(host, port)` tuples.
  - `await tracker.announce_msg(event, info_hash, downloaded, uploaded, left)`
    sends one announce and returns the response.
  - `await tracker.run()` serves `AnnounceMsg` items put on `tracker.rx`
    (also `tracker.ctx.tx`), setting each result or error on the message's
    `recipient` future, and returns after a `STOPPED` announce.
  - `Tracker.parse_compact_peer_list(buf, is_ipv6)` decodes compact peer
    lists; `Tracker.gen_peer_id()` returns a random 20-byte id starting
    with `b"vcz"`.
- `vincenzo.progress`: `MetadataAssembler` collects metadata pieces in any
  order; `add_piece(total, index, data)` returns the joined metadata once
  `total` bytes are held and its SHA-1 matches the expected hex hash, and
  raises `MetadataHashMismatch` when it does not. `TorrentProgress` counts
  bytes downloaded and uploaded, switches to seeding when the download is
  complete, toggles pause, computes the per-second download rate with
  `tick()` and builds a `TorrentState` with `snapshot(name, stats, info_hash)`.
- `vincenzo.status`: `TorrentStatus` (with `label()` and `from_label()`,
  which maps unknown labels to `ERROR`), `Stats` and `TorrentState`.
- `vincenzo.utils`: `to_human_readable(n)` formats a byte count, for example
  `"28.78 MiB"`.

## What it does not do

There is no command to run and no complete client: the package does not
open TCP connections to peers, run peer sessions, choose pieces, or read and
write torrent data on disk. It supplies the messages, the tracker client and
the bookkeeping such a client is built from.

## Install

```
pip install .
```

## Examples

Encoding and decoding peer messages:

```python
from vincenzo.blocks import BlockInfo
from vincenzo.messages import PeerCodec, Request

codec = PeerCodec()
wire = codec.encode(Request(BlockInfo(index=0, begin=0, length=16384)))
buf = bytearray(wire)
message = codec.decode(buf)   # Request(...); buf is now empty
```

Building a handshake:

```python
from vincenzo.messages import Handshake, supports_extension_protocol

hs = Handshake(info_hash=bytes(20), peer_id=b"vcz" + bytes(17))
data = hs.serialize()          # 68 bytes
assert supports_extension_protocol(hs.reserved)
```

Formatting sizes:

```python
from vincenzo.utils import to_human_readable

to_human_readable(30_178_876)  # "28.78 MiB"
```

## Running the tests

```
pip install .[test]
pytest
```