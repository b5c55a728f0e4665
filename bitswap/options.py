"""Protocol identifiers, network settings and the interfaces of the bitswap network."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable, Protocol, runtime_checkable

PROTOCOL_BITSWAP_NO_VERS = "/ipfs/bitswap"
PROTOCOL_BITSWAP_ONE_ZERO = "/ipfs/bitswap/1.0.0"
PROTOCOL_BITSWAP_ONE_ONE = "/ipfs/bitswap/1.1.0"
PROTOCOL_BITSWAP = "/ipfs/bitswap/1.2.0"

DEFAULT_PROTOCOLS = (
    PROTOCOL_BITSWAP,
    PROTOCOL_BITSWAP_ONE_ONE,
    PROTOCOL_BITSWAP_ONE_ZERO,
    PROTOCOL_BITSWAP_NO_VERS,
)

SEND_MESSAGE_TIMEOUT = 10 * 60.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_SEND_ERROR_BACKOFF = 0.1

_OLD_PROTOCOLS = (
    PROTOCOL_BITSWAP_ONE_ONE,
    PROTOCOL_BITSWAP_ONE_ZERO,
    PROTOCOL_BITSWAP_NO_VERS,
)


@dataclass
class Settings:
    """Protocol prefix and the protocols a network endpoint speaks."""

    protocol_prefix: str = ""
    supported_protocols: list[str] = field(
        default_factory=lambda: list(DEFAULT_PROTOCOLS)
    )


NetOpt = Callable[[Settings], None]


def prefix(value: str) -> NetOpt:
    """Option that sets the prefix put in front of every protocol id."""

    def apply(settings: Settings) -> None:
        settings.protocol_prefix = value

    return apply


def supported_protocols(protos: list[str]) -> NetOpt:
    """Option that replaces the list of supported protocols."""

    def apply(settings: Settings) -> None:
        settings.supported_protocols = list(protos)

    return apply


def process_settings(*args: NetOpt) -> Settings:
    """Apply the options to default settings and prefix each protocol."""
    settings = Settings()
    for opt in args:
        opt(settings)
    settings.supported_protocols = [
        settings.protocol_prefix + proto for proto in settings.supported_protocols
    ]
    return settings


def supports_have(proto: str, protocol_prefix: str = "") -> bool:
    """Whether a peer speaking proto understands HAVE / DONT_HAVE."""
    return proto not in {protocol_prefix + old for old in _OLD_PROTOCOLS}


@dataclass(frozen=True)
class Stats:
    """Counts of bitswap messages sent and received by a network endpoint."""

    messages_sent: int = 0
    messages_recvd: int = 0


@dataclass(frozen=True)
class MessageSenderOpts:
    """Retry and timeout settings of a message sender; times in seconds, 0 means default."""

    max_retries: int = 0
    send_timeout: float = 0.0
    send_error_backoff: float = 0.0

    def with_defaults(self) -> MessageSenderOpts:
        """A copy with every unset value replaced by its default."""
        return replace(
            self,
            max_retries=self.max_retries or DEFAULT_MAX_RETRIES,
            send_timeout=self.send_timeout or SEND_MESSAGE_TIMEOUT,
            send_error_backoff=self.send_error_backoff or DEFAULT_SEND_ERROR_BACKOFF,
        )


@runtime_checkable
class Receiver(Protocol):
    """Handles messages, errors and peer events coming from the network."""

    def receive_message(self, sender: Hashable, incoming: Any) -> None: ...

    def receive_error(self, error: Exception) -> None: ...

    def peer_connected(self, p: Hashable) -> None: ...

    def peer_disconnected(self, p: Hashable) -> None: ...


@runtime_checkable
class MessageSender(Protocol):
    """Sends a series of messages to one peer."""

    def send_msg(self, message: Any) -> None: ...

    def close(self) -> None: ...

    def reset(self) -> None: ...

    def supports_have(self) -> bool: ...