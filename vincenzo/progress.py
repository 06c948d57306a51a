"""Bookkeeping of a torrent: metadata assembly, transfer counters and status."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace

from vincenzo.status import Stats, TorrentState, TorrentStatus


class MetadataHashMismatch(Exception):
    """The assembled metadata does not hash to the expected info hash."""


class MetadataAssembler:
    """Collects metadata pieces, which may arrive in any order."""

    def __init__(self, expected_hash: str) -> None:
        self.expected_hash = expected_hash
        self.pieces: dict[int, bytes] = {}

    def add_piece(self, total: int, index: int, data: bytes) -> bytes | None:
        """Store a piece; once `total` bytes are held, verify and return the metadata.

        Returns None while pieces are still missing. Raises
        MetadataHashMismatch when the complete metadata has the wrong hash.
        """
        self.pieces[index] = bytes(data)
        if sum(len(piece) for piece in self.pieces.values()) < total:
            return None
        metadata = b"".join(self.pieces[key] for key in sorted(self.pieces))
        digest = hashlib.sha1(metadata).hexdigest()
        if digest.upper() != self.expected_hash.upper():
            raise MetadataHashMismatch(
                f"metadata hash {digest} does not match {self.expected_hash}"
            )
        return metadata

    def get_piece(self, index: int) -> bytes | None:
        """The piece held at `index`, or None."""
        return self.pieces.get(index)


@dataclass
class TorrentProgress:
    """Transfer counters and status of one torrent."""

    size: int = 0
    downloaded: int = 0
    uploaded: int = 0
    last_second_downloaded: int = 0
    download_rate: int = 0
    status: TorrentStatus = field(default=TorrentStatus.CONNECTING_TRACKERS)

    def increment_downloaded(self, n: int) -> bool:
        """Count downloaded bytes; return True, and start seeding, once complete."""
        self.downloaded += n
        complete = self.downloaded >= self.size
        if complete:
            self.status = TorrentStatus.SEEDING
        return complete

    def increment_uploaded(self, n: int) -> None:
        """Count uploaded bytes."""
        self.uploaded += n

    def toggle_pause(self) -> bool:
        """Pause or resume; return False when the current status cannot be toggled."""
        if self.status not in (
            TorrentStatus.DOWNLOADING,
            TorrentStatus.SEEDING,
            TorrentStatus.PAUSED,
        ):
            return False
        if self.status is TorrentStatus.PAUSED:
            self.status = (
                TorrentStatus.SEEDING
                if self.downloaded >= self.size
                else TorrentStatus.DOWNLOADING
            )
        else:
            self.status = TorrentStatus.PAUSED
        return True

    def tick(self) -> int:
        """Called once a second: update and return the download rate in bytes."""
        self.download_rate = self.downloaded - self.last_second_downloaded
        self.last_second_downloaded = self.downloaded
        return self.download_rate

    def snapshot(self, name: str, stats: Stats, info_hash: bytes) -> TorrentState:
        """The state of the torrent as presented to the user."""
        return TorrentState(
            name=name,
            stats=replace(stats),
            status=self.status,
            downloaded=self.downloaded,
            download_rate=self.download_rate,
            uploaded=self.uploaded,
            size=self.size,
            info_hash=bytes(info_hash),
        )