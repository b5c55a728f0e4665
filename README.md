# bitswap

A pure-Python library for the Bitswap block-exchange protocol: content
identifiers, the protobuf wire format, wantlists, messages, connection
tracking, and an in-process virtual network for simulations and tests. It
needs nothing beyond the standard library.

## Modules

- `bitswap.cid`: `Cid` (version 0 and version 1), `Prefix` and `Block`.
  `sha256_multihash`, `new_cid_v0`, `new_cid_v1`, `cast_cid` (from bytes),
  `decode_cid` (from a base58 `Qm...` string or a multibase `z`, `b`/`B` or
  `f`/`F` string), `prefix_from_bytes`, `new_block` and `new_block_with_cid`.
  `Prefix.sum` hashes data with identity, SHA-1, SHA-2 (256/512) or SHA-3
  (224/256/384/512). Malformed input raises `CidError`.
- `bitswap.pb`: the protobuf wire format. It has `ProtoEntry`, `ProtoWantlist`,
  `ProtoBlock`, `ProtoBlockPresence` and `ProtoMessage`, each with `marshal` and
  `size` where the wire needs them, and `unmarshal_message`. `WantType` and
  `BlockPresenceType` are enums. Bad data raises `DecodeError`.
- `bitswap.wantlist`: a `Wantlist` of `Entry` values keyed by CID. A want-have
  never replaces an existing want, and `remove_type` with a want-have keeps a
  want-block. It also has `absorb`, `new_ref_entry`, and `sort_entries`, which
  sorts with the highest priority first.
- `bitswap.message`: `BitSwapMessage` holds wantlist entries (`MessageEntry`),
  blocks and block presences (`BlockPresence`). `to_proto_v0` and
  `to_proto_v1` give the protobuf form, and `to_net_v0` and `to_net_v1` write
  it varint-framed to a binary stream. `from_net` reads one framed message back
  and raises `EOFError` at the end of the stream. `from_proto`,
  `max_entry_size` and `block_presence_size` are also here.
- `bitswap.connections`: `ConnectEventManager` counts connections per peer. It
  tells a `ConnectionListener` when a peer becomes connected or disconnected
  and tracks whether the peer is responsive.
- `bitswap.options`: the protocol ids (`PROTOCOL_BITSWAP` and the older ones),
  `Settings` with the `prefix` and `supported_protocols` options, and
  `process_settings`. `supports_have` tells whether a protocol understands
  HAVE / DONT_HAVE. `MessageSenderOpts.with_defaults` fills in unset values.
  `Stats` holds message counters. `Receiver` and `MessageSender` describe the
  interfaces of a network endpoint.
- `bitswap.generators`: `Delay`, `fixed_delay`, `InternetLatencyDelayGenerator`,
  `FixedRateLimitGenerator` and `VariableRateLimitGenerator`. All times are in
  seconds and all rates in bytes per second.
- `bitswap.virtual`: `VirtualNetwork`, `rate_limited_virtual_network`,
  `NetworkClient`, `MessagePasser`, `RateLimiter`, `RoutingServer` and
  `RoutingClient`. Messages are copied and delivered on a background thread,
  in order of their due time. Sending to an unknown peer raises `LookupError`.

## Install

```
pip install .
```

Tests:

```
pip install ".[test]"
pytest
```

## Examples

Encode a message and read it back:

```python
import io

from bitswap.cid import new_block
from bitswap.message import BitSwapMessage, from_net
from bitswap.pb import WantType

wanted = new_block(b"hello")
msg = BitSwapMessage(True)
msg.add_entry(wanted.cid, 1, WantType.BLOCK, True)
msg.add_block(new_block(b"payload"))

buf = io.BytesIO()
msg.to_net_v1(buf)
buf.seek(0)
copy = from_net(buf)
assert copy.full
assert [e.cid for e in copy.wantlist()] == [wanted.cid]
```

Keep a wantlist:

```python
from bitswap.cid import new_block
from bitswap.pb import WantType
from bitswap.wantlist import Wantlist, sort_entries

wl = Wantlist()
wl.add(new_block(b"a").cid, 3, WantType.BLOCK)
wl.add(new_block(b"b").cid, 5, WantType.HAVE)
entries = wl.entries()
sort_entries(entries)  # highest priority first
```

Pass a message between two peers on a virtual network:

```python
import threading

from bitswap.cid import new_block
from bitswap.generators import fixed_delay
from bitswap.message import BitSwapMessage
from bitswap.virtual import RoutingServer, VirtualNetwork


class Inbox:
    def __init__(self):
        self.got = threading.Event()
        self.last = None

    def receive_message(self, sender, incoming):
        self.last = (sender, incoming)
        self.got.set()

    def receive_error(self, error):
        pass

    def peer_connected(self, p):
        pass

    def peer_disconnected(self, p):
        pass


net = VirtualNetwork(RoutingServer(), fixed_delay(0.01))
alice = net.adapter("alice")
bob = net.adapter("bob")
alice.set_delegate(Inbox())
inbox = Inbox()
bob.set_delegate(inbox)
alice.connect_to("bob")

msg = BitSwapMessage(False)
msg.add_block(new_block(b"data"))
alice.send_message("bob", msg)
inbox.got.wait(1)
assert inbox.last[0] == "alice"
assert alice.stats().messages_sent == 1
```

## What it does not do

There is no real network transport. The package has no streams, hosts or
sockets, and messages travel between peers only through the in-process
`VirtualNetwork`. There is no block store, session or decision engine either,
so it does not fetch or serve blocks by itself. It builds, encodes and decodes
messages and wantlists, tracks connection events, and simulates delivery.