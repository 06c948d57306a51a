"""BitTorrent peer wire messages, UDP tracker client and torrent progress tracking."""

__version__ = "0.1.0"