"""A simulated network that passes bitswap messages between peers in process."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass
from operator import attrgetter
from typing import Hashable, Iterator

from .cid import Cid
from .generators import Delay
from .message import BitSwapMessage
from .options import (
    PROTOCOL_BITSWAP_NO_VERS,
    PROTOCOL_BITSWAP_ONE_ONE,
    PROTOCOL_BITSWAP_ONE_ZERO,
    MessageSenderOpts,
    Receiver,
    Settings,
    Stats,
)

_OLD_PROTOCOLS = frozenset(
    {PROTOCOL_BITSWAP_NO_VERS, PROTOCOL_BITSWAP_ONE_ZERO, PROTOCOL_BITSWAP_ONE_ONE}
)
_POLL_INTERVAL = 0.1


class RateLimiter:
    """Token bucket returning how long sending some bytes must be delayed."""

    def __init__(self, bandwidth: float) -> None:
        self._bandwidth = bandwidth
        self._allowance = 0.0
        self._max_allowance = bandwidth
        self._last_update = time.monotonic()
        self._lock = threading.Lock()
        self.count = 0
        self.duration = 0.0

    def limit(self, size: int) -> float:
        """Delay in seconds before size bytes may be sent."""
        with self._lock:
            if self._bandwidth == 0:
                return 0.0
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now
            self._allowance = min(
                self._allowance + elapsed * self._bandwidth, self._max_allowance
            )
            self._allowance -= size
            if self._allowance >= 0:
                return 0.0
            delay = -self._allowance / self._bandwidth
            self.count += 1
            self.duration += delay
            return delay


class RoutingServer:
    """In-memory record of which peers provide which cids."""

    def __init__(self) -> None:
        self._providers: dict[Cid, dict[Hashable, None]] = {}
        self._lock = threading.Lock()

    def client(self, peer: Hashable) -> RoutingClient:
        return RoutingClient(self, peer)

    def _announce(self, c: Cid, peer: Hashable) -> None:
        with self._lock:
            self._providers.setdefault(c, {})[peer] = None

    def _providers_of(self, c: Cid) -> list[Hashable]:
        with self._lock:
            return list(self._providers.get(c, {}))


class RoutingClient:
    """A peer's view of a RoutingServer."""

    def __init__(self, server: RoutingServer, peer: Hashable) -> None:
        self._server = server
        self.peer = peer

    def provide(self, c: Cid) -> None:
        """Announce that this peer provides c."""
        self._server._announce(c, self.peer)

    def find_providers(self, c: Cid, max_count: int) -> Iterator[Hashable]:
        """Yield peers providing c, at most max_count of them when it is positive."""
        providers = self._server._providers_of(c)
        if max_count > 0:
            providers = providers[:max_count]
        yield from providers


@dataclass
class _Envelope:
    sender: Hashable
    message: BitSwapMessage
    should_send: float


class _ReceiverQueue:
    """Delivers queued messages in order of their due time."""

    def __init__(self, client: NetworkClient) -> None:
        self.client = client
        self._queue: list[_Envelope] = []
        self._active = False
        self._lock = threading.Lock()

    def enqueue(self, envelope: _Envelope) -> None:
        with self._lock:
            self._queue.append(envelope)
            if self._active:
                return
            self._active = True
        threading.Thread(target=self._process, daemon=True).start()

    def _process(self) -> None:
        try:
            while True:
                with self._lock:
                    self._queue.sort(key=attrgetter("should_send"))
                    if not self._queue:
                        self._active = False
                        return
                    head = self._queue[0]
                    ready = head.should_send - time.monotonic() < _POLL_INTERVAL
                    if ready:
                        self._queue.pop(0)
                if ready:
                    remaining = head.should_send - time.monotonic()
                    if remaining > 0:
                        time.sleep(remaining)
                    self.client._deliver(head.sender, head.message)
                else:
                    time.sleep(_POLL_INTERVAL)
        except BaseException:
            with self._lock:
                self._active = False
            raise


class VirtualNetwork:
    """A fake network that simulates latency and, optionally, bandwidth."""

    def __init__(
        self,
        routing_server: RoutingServer,
        delay: Delay,
        rate_limit_generator=None,
    ) -> None:
        self._lock = threading.Lock()
        self._latencies: dict[Hashable, dict[Hashable, float]] = {}
        self._rate_limiters: dict[Hashable, dict[Hashable, RateLimiter]] = {}
        self._clients: dict[Hashable, _ReceiverQueue] = {}
        self._routing_server = routing_server
        self._delay = delay
        self._rate_limit_generator = rate_limit_generator
        self._conns: set[tuple] = set()

    @property
    def is_rate_limited(self) -> bool:
        return self._rate_limit_generator is not None

    def adapter(self, peer: Hashable, *args) -> NetworkClient:
        """Join peer to the network; args are options applied to its settings."""
        settings = Settings()
        for opt in args:
            opt(settings)
        with self._lock:
            client = NetworkClient(
                peer,
                self,
                self._routing_server.client(peer),
                list(settings.supported_protocols),
            )
            self._clients[peer] = _ReceiverQueue(client)
        return client

    def has_peer(self, p: Hashable) -> bool:
        with self._lock:
            return p in self._clients

    def send_message(
        self, sender: Hashable, to: Hashable, message: BitSwapMessage
    ) -> None:
        """Queue a copy of message for delivery to peer to."""
        message = message.clone()
        with self._lock:
            latencies = self._latencies.setdefault(sender, {})
            latency = latencies.get(to)
            if latency is None:
                latency = self._delay.next_wait_time()
                latencies[to] = latency

            bandwidth_delay = 0.0
            if self._rate_limit_generator is not None:
                limiters = self._rate_limiters.setdefault(sender, {})
                limiter = limiters.get(to)
                if limiter is None:
                    limiter = RateLimiter(self._rate_limit_generator.next_rate_limit())
                    limiters[to] = limiter
                bandwidth_delay = limiter.limit(message.to_proto_v1().size())

            queue = self._clients.get(to)
            if queue is None:
                raise LookupError("cannot locate peer on network")
            queue.enqueue(
                _Envelope(sender, message, time.monotonic() + latency + bandwidth_delay)
            )

    def _client(self, p: Hashable) -> NetworkClient:
        queue = self._clients.get(p)
        if queue is None:
            raise LookupError("no such peer in network")
        return queue.client


def rate_limited_virtual_network(
    routing_server: RoutingServer, delay: Delay, rate_limit_generator
) -> VirtualNetwork:
    """A virtual network whose links are limited in bandwidth."""
    return VirtualNetwork(routing_server, delay, rate_limit_generator)


def _tag_for_peers(a: Hashable, b: Hashable) -> tuple:
    return (a, b) if str(a) < str(b) else (b, a)


class NetworkClient:
    """One peer's endpoint on a VirtualNetwork."""

    def __init__(
        self,
        local: Hashable,
        network: VirtualNetwork,
        routing: RoutingClient,
        supported_protocols: list[str],
    ) -> None:
        self.local = local
        self.network = network
        self.routing = routing
        self.supported_protocols = supported_protocols
        self._receiver: Receiver | None = None
        self._stats_lock = threading.Lock()
        self._sent = 0
        self._recvd = 0

    @property
    def receiver(self) -> Receiver:
        if self._receiver is None:
            raise RuntimeError(f"peer {self.local!r} has no receiver set")
        return self._receiver

    def _deliver(self, sender: Hashable, message: BitSwapMessage) -> None:
        with self._stats_lock:
            self._recvd += 1
        self.receiver.receive_message(sender, message)

    def send_message(self, to: Hashable, message: BitSwapMessage) -> None:
        self.network.send_message(self.local, to, message)
        with self._stats_lock:
            self._sent += 1

    def stats(self) -> Stats:
        with self._stats_lock:
            return Stats(messages_sent=self._sent, messages_recvd=self._recvd)

    def latency(self, p: Hashable) -> float:
        """Latency in seconds of the link to p; 0 if nothing was sent yet."""
        with self.network._lock:
            return self.network._latencies.get(self.local, {}).get(p, 0.0)

    def ping(self, p: Hashable) -> float:
        """Round-trip time to p in seconds."""
        return self.latency(p)

    def find_providers(self, c: Cid, max_count: int) -> Iterator[Hashable]:
        yield from self.routing.find_providers(c, max_count)

    def new_message_sender(
        self, p: Hashable, opts: MessageSenderOpts | None
    ) -> MessagePasser:
        return MessagePasser(self, p)

    def provide(self, c: Cid) -> None:
        self.routing.provide(c)

    def set_delegate(self, receiver: Receiver) -> None:
        self._receiver = receiver

    def connect_to(self, p: Hashable) -> None:
        """Connect to p, telling both sides; connecting twice does nothing."""
        with self.network._lock:
            other = self.network._client(p)
            tag = _tag_for_peers(self.local, p)
            if tag in self.network._conns:
                return
            self.network._conns.add(tag)
        other.receiver.peer_connected(self.local)
        self.receiver.peer_connected(p)

    def disconnect_from(self, p: Hashable) -> None:
        """Disconnect from p, telling both sides; does nothing if not connected."""
        with self.network._lock:
            other = self.network._client(p)
            tag = _tag_for_peers(self.local, p)
            if tag not in self.network._conns:
                return
            self.network._conns.discard(tag)
        other.receiver.peer_disconnected(self.local)
        self.receiver.peer_disconnected(p)


class MessagePasser:
    """Message sender that hands messages straight to the virtual network."""

    def __init__(self, client: NetworkClient, target: Hashable) -> None:
        self.client = client
        self.target = target
        self.local = client.local

    def send_msg(self, message: BitSwapMessage) -> None:
        self.client.send_message(self.target, message)

    def close(self) -> None:
        return None

    def reset(self) -> None:
        return None

    def supports_have(self) -> bool:
        """Whether the target speaks a protocol newer than bitswap 1.1.0."""
        with self.client.network._lock:
            target = self.client.network._client(self.target)
        return any(p not in _OLD_PROTOCOLS for p in target.supported_protocols)


_ = itertools  # keeps the import list stable for typing helpers