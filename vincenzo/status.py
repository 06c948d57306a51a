"""Torrent status, tracker statistics and the state shown to the user."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TorrentStatus(Enum):
    """Lifecycle of a torrent; each value is its display label."""

    CONNECTING_TRACKERS = "Connecting to trackers"
    DOWNLOADING_METAINFO = "Downloading metainfo"
    DOWNLOADING = "Downloading"
    SEEDING = "Seeding"
    PAUSED = "Paused"
    ERROR = "Error"

    def label(self) -> str:
        """The human readable label of this status."""
        return self.value

    @classmethod
    def from_label(cls, value: str) -> TorrentStatus:
        """Parse a label; anything unknown becomes ERROR."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR

    def __str__(self) -> str:
        return self.value


@dataclass
class Stats:
    """Swarm statistics reported by a tracker on announce."""

    interval: int = 0
    leechers: int = 0
    seeders: int = 0


@dataclass
class TorrentState:
    """A snapshot of a torrent used to present it to the user."""

    name: str = ""
    stats: Stats = field(default_factory=Stats)
    status: TorrentStatus = TorrentStatus.CONNECTING_TRACKERS
    downloaded: int = 0
    download_rate: int = 0
    uploaded: int = 0
    size: int = 0
    info_hash: bytes = bytes(20)