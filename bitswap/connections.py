"""Track peer connections and report connect and disconnect events once per peer."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Hashable, Protocol, runtime_checkable


@runtime_checkable
class ConnectionListener(Protocol):
    """Receives notice when a peer becomes reachable or unreachable."""

    def peer_connected(self, p: Hashable) -> None: ...

    def peer_disconnected(self, p: Hashable) -> None: ...


@dataclass
class _ConnState:
    refs: int = 0
    responsive: bool = True


class ConnectEventManager:
    """Counts connections per peer and tells the listener about transitions.

    A peer is reported connected when its first connection opens while it is
    responsive, and disconnected when its last connection closes or when it
    is marked unresponsive.  A message from an unresponsive peer makes it
    responsive again.
    """

    def __init__(self, listener: ConnectionListener) -> None:
        self._listener = listener
        self._lock = threading.Lock()
        self._conns: dict[Hashable, _ConnState] = {}

    def connected(self, p: Hashable) -> None:
        with self._lock:
            state = self._conns.setdefault(p, _ConnState())
            state.refs += 1
            if state.refs == 1 and state.responsive:
                self._listener.peer_connected(p)

    def disconnected(self, p: Hashable) -> None:
        with self._lock:
            state = self._conns.get(p)
            if state is None:
                return
            state.refs -= 1
            if state.refs == 0:
                if state.responsive:
                    self._listener.peer_disconnected(p)
                del self._conns[p]

    def mark_unresponsive(self, p: Hashable) -> None:
        with self._lock:
            state = self._conns.get(p)
            if state is None or not state.responsive:
                return
            state.responsive = False
            self._listener.peer_disconnected(p)

    def on_message(self, p: Hashable) -> None:
        with self._lock:
            state = self._conns.get(p)
            if state is None or state.responsive:
                return
            state.responsive = True
            self._listener.peer_connected(p)