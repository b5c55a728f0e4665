"""Bitswap CIDs, wire format, wantlists, messages, connection tracking and a virtual network."""

__version__ = "0.1.0"

__all__ = [
    "cid",
    "pb",
    "wantlist",
    "message",
    "connections",
    "options",
    "generators",
    "virtual",
]