import pytest

from tinyagents.crdt.core import MergeError
from tinyagents.crdt.gcounter import GCounter
from tinyagents.crdt.pncounter import PNCounter


def test_inc_dec():
    c = PNCounter("nodeA")
    c.inc(10)
    c.dec(3)
    assert c.value() == 7


def test_value_can_be_negative():
    c = PNCounter("nodeA")
    c.dec(4)
    assert c.value() == -4


def test_merge_converges():
    a = PNCounter("nodeA")
    b = PNCounter("nodeB")
    a.inc(10)
    b.inc(5)
    a.dec(2)
    b.dec(1)
    a.merge(b)
    b.merge(a)
    assert a.value() == b.value()
    assert a.value() == 12


def test_merge_idempotent():
    a = PNCounter("nodeA")
    b = PNCounter("nodeB")
    b.inc(3)
    a.merge(b)
    a.merge(b)
    assert a.value() == 3


def test_commutative():
    a = PNCounter("nodeA")
    b = PNCounter("nodeB")
    a.inc(8)
    b.dec(3)
    a.merge(b)
    b.merge(a)
    assert a.value() == b.value() == 5


def test_restore_round_trip():
    c = PNCounter("nodeA")
    c.inc(20)
    c.dec(7)
    got = PNCounter("")
    got.restore(c.snapshot())
    assert got.value() == c.value() == 13
    assert got.node == "nodeA"


def test_snapshot_format():
    c = PNCounter("nodeA")
    c.inc(2)
    c.dec(1)
    assert c.snapshot() == (
        b'{"node":"nodeA","positive":{"nodeA":2},"negative":{"nodeA":1}}'
    )


def test_restore_invalid_json_raises():
    with pytest.raises(ValueError):
        PNCounter("a").restore(b"[1, 2]")


def test_merge_none_error():
    with pytest.raises(MergeError):
        PNCounter("nodeA").merge(None)


def test_merge_type_mismatch():
    with pytest.raises(MergeError):
        PNCounter("nodeA").merge(GCounter("nodeB"))