import io

import pytest

from bitswap.cid import new_block, new_cid_v0, sha256_multihash
from bitswap.message import (
    BitSwapMessage,
    BlockPresence,
    MessageEntry,
    block_presence_size,
    from_net,
    from_proto,
    max_entry_size,
)
from bitswap.pb import (
    BlockPresenceType,
    DecodeError,
    ProtoEntry,
    ProtoMessage,
    ProtoWantlist,
    WantType,
)


def mk_fake_cid(s):
    return new_cid_v0(sha256_multihash(s.encode()))


def test_append_wanted():
    c = mk_fake_cid("foo")
    m = BitSwapMessage(True)
    m.add_entry(c, 1, WantType.BLOCK, True)
    entries = m.to_proto_v0().wantlist.entries
    assert [e.block for e in entries] == [c]


def test_new_message_from_proto():
    c = mk_fake_cid("a_key")
    proto = ProtoMessage(wantlist=ProtoWantlist(entries=[ProtoEntry(block=c)]))
    m = from_proto(proto)
    assert [e.cid for e in m.wantlist()] == [c]
    entries = m.to_proto_v0().wantlist.entries
    assert [e.block for e in entries] == [c]


def test_append_block():
    strs = ["", "", "Celeritas", "Incendia"]
    m = BitSwapMessage(True)
    for s in strs:
        m.add_block(new_block(s.encode()))
    blocks = m.to_proto_v0().blocks
    assert len(blocks) == 3
    for data in blocks:
        assert data.decode() in strs


def test_wantlist():
    keys = [mk_fake_cid(s) for s in ("foo", "bar", "baz", "bat")]
    m = BitSwapMessage(True)
    for k in keys:
        m.add_entry(k, 1, WantType.BLOCK, True)
    exported = m.wantlist()
    assert len(exported) == 4
    for e in exported:
        assert e.cid in keys


def test_copy_proto_by_value():
    c = mk_fake_cid("foo")
    m = BitSwapMessage(True)
    before = m.to_proto_v0()
    m.add_entry(c, 1, WantType.BLOCK, True)
    assert [e.block for e in before.wantlist.entries] == []
    after = m.to_proto_v0()
    assert [e.block for e in after.wantlist.entries] == [c]


def test_to_net_from_net_preserves_wantlist():
    original = BitSwapMessage(True)
    for s in "MBDTF":
        original.add_entry(mk_fake_cid(s), 1, WantType.BLOCK, True)
    buf = io.BytesIO()
    original.to_net_v1(buf)
    buf.seek(0)
    copied = from_net(buf)
    assert copied.full
    keys = {e.cid for e in copied.wantlist()}
    for e in original.wantlist():
        assert e.cid in keys


def test_to_and_from_net_message():
    original = BitSwapMessage(True)
    for s in "WEFM":
        original.add_block(new_block(s.encode()))
    buf = io.BytesIO()
    original.to_net_v1(buf)
    buf.seek(0)
    m2 = from_net(buf)
    keys = {b.cid for b in m2.blocks()}
    assert keys == {b.cid for b in original.blocks()}


def test_to_net_v0_roundtrip_blocks():
    original = BitSwapMessage(False)
    original.add_block(new_block(b"hello"))
    buf = io.BytesIO()
    original.to_net_v0(buf)
    buf.seek(0)
    m2 = from_net(buf)
    assert [b.data for b in m2.blocks()] == [b"hello"]
    assert not m2.full


def test_v1_roundtrip_presences_and_pending_bytes():
    m = BitSwapMessage(False)
    have = mk_fake_cid("h")
    dont = mk_fake_cid("d")
    m.add_have(have)
    m.add_dont_have(dont)
    m.pending_bytes = 1234
    buf = io.BytesIO()
    m.to_net_v1(buf)
    buf.seek(0)
    m2 = from_net(buf)
    assert m2.haves() == [have]
    assert m2.dont_haves() == [dont]
    assert m2.pending_bytes == 1234


def test_duplicates():
    b = new_block(b"foo")
    msg = BitSwapMessage(True)
    msg.add_entry(b.cid, 1, WantType.BLOCK, True)
    msg.add_entry(b.cid, 1, WantType.BLOCK, True)
    assert len(msg.wantlist()) == 1

    msg.add_block(b)
    msg.add_block(b)
    assert len(msg.blocks()) == 1

    b2 = new_block(b"bar")
    msg.add_block_presence(b2.cid, BlockPresenceType.HAVE)
    msg.add_block_presence(b2.cid, BlockPresenceType.HAVE)
    assert len(msg.haves()) == 1


def test_block_presences():
    b1 = new_block(b"foo")
    b2 = new_block(b"bar")
    msg = BitSwapMessage(True)

    msg.add_block_presence(b1.cid, BlockPresenceType.HAVE)
    msg.add_block_presence(b2.cid, BlockPresenceType.DONT_HAVE)
    assert msg.haves() == [b1.cid]
    assert msg.dont_haves() == [b2.cid]
    assert BlockPresence(b1.cid, BlockPresenceType.HAVE) in msg.block_presences()

    msg.add_block(b1)
    assert msg.haves() == []
    msg.add_block(b2)
    assert msg.dont_haves() == []

    msg.add_block_presence(b1.cid, BlockPresenceType.HAVE)
    assert msg.haves() == []
    msg.add_block_presence(b2.cid, BlockPresenceType.DONT_HAVE)
    assert msg.dont_haves() == []


def test_add_wantlist_entry():
    b = new_block(b"foo")
    msg = BitSwapMessage(True)

    msg.add_entry(b.cid, 1, WantType.HAVE, False)
    msg.add_entry(b.cid, 2, WantType.BLOCK, True)
    entries = msg.wantlist()
    assert len(entries) == 1
    e = entries[0]
    assert e.want_type == WantType.BLOCK
    assert e.send_dont_have is True
    assert e.priority == 1

    msg.add_entry(b.cid, 2, WantType.BLOCK, True)
    assert msg.wantlist()[0].priority == 2

    msg.add_entry(b.cid, 3, WantType.HAVE, False)
    e = msg.wantlist()[0]
    assert e.want_type == WantType.BLOCK
    assert e.send_dont_have is True
    assert e.priority == 2

    msg.cancel(b.cid)
    assert msg.wantlist()[0].cancel

    msg.add_entry(b.cid, 10, WantType.BLOCK, True)
    assert msg.wantlist()[0].cancel


def test_entry_size():
    c = new_block(b"some block").cid
    e = MessageEntry(
        cid=c, priority=10, want_type=WantType.HAVE, send_dont_have=True, cancel=False
    )
    assert e.size() == e.to_pb().size()
    assert e.size() == len(e.to_pb().marshal())


def test_add_entry_returns_size_only_for_new_entries():
    c = mk_fake_cid("x")
    msg = BitSwapMessage(False)
    first = msg.add_entry(c, 1, WantType.BLOCK, False)
    assert first == msg.wantlist()[0].size()
    assert first > 0
    assert msg.add_entry(c, 2, WantType.BLOCK, False) == 0
    assert msg.cancel(c) == 0


def test_max_entry_size_bounds_entries():
    c = mk_fake_cid("y")
    entry = MessageEntry(c, 100, WantType.BLOCK, cancel=False, send_dont_have=False)
    assert max_entry_size() > entry.size()


def test_size_counts_blocks_presences_and_wants():
    msg = BitSwapMessage(False)
    assert msg.size() == 0
    msg.add_block(new_block(b"abc"))
    assert msg.size() == 3
    c = mk_fake_cid("p")
    msg.add_have(c)
    assert msg.size() == 3 + block_presence_size(c)


def test_remove_empty_and_reset():
    msg = BitSwapMessage(False)
    assert msg.empty()
    c = mk_fake_cid("r")
    msg.add_entry(c, 1, WantType.BLOCK, False)
    assert not msg.empty()
    msg.remove(c)
    assert msg.empty()

    msg.add_block(new_block(b"z"))
    msg.pending_bytes = 7
    msg.reset(True)
    assert msg.empty()
    assert msg.full
    assert msg.pending_bytes == 0


def test_clone_is_independent():
    msg = BitSwapMessage(True)
    c = mk_fake_cid("c")
    msg.add_entry(c, 1, WantType.HAVE, False)
    msg.pending_bytes = 5
    copy = msg.clone()
    msg.add_block(new_block(b"only-original"))
    assert copy.blocks() == []
    assert copy.pending_bytes == 5
    assert copy.full
    assert [e.cid for e in copy.wantlist()] == [c]


def test_loggable():
    msg = BitSwapMessage(False)
    b = new_block(b"log")
    msg.add_block(b)
    info = msg.loggable()
    assert info["blocks"] == [str(b.cid)]
    assert info["wants"] == []


def test_from_proto_missing_cid():
    proto = ProtoMessage(wantlist=ProtoWantlist(entries=[ProtoEntry(block=None)]))
    with pytest.raises(DecodeError):
        from_proto(proto)


def test_from_net_empty_stream():
    with pytest.raises(EOFError):
        from_net(io.BytesIO(b""))


def test_from_net_truncated_body():
    with pytest.raises(EOFError):
        from_net(io.BytesIO(b"\x05ab"))


def test_from_net_too_large():
    with pytest.raises(DecodeError):
        from_net(io.BytesIO(b"\x80\x80\x80\x04"))