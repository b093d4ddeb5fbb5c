import json
import time

import pytest

from tinyagents.crdt.core import HybridClock, HybridTimestamp, MergeError
from tinyagents.crdt.gcounter import GCounter
from tinyagents.crdt.lww import LWWRegister


def _restored(node, value, wall, logical):
    reg = LWWRegister(node, HybridClock(), None)
    reg.restore(
        json.dumps(
            {
                "node": node,
                "value": value,
                "ts": {"wall": wall, "logical": logical, "node": node},
            }
        )
    )
    return reg


def test_last_write_wins():
    clk = HybridClock()
    r = LWWRegister("nodeA", clk, "initial")
    r.set("first")
    time.sleep(0.000001)
    r.set("second")
    assert r.get() == "second"


def test_initial_value_returned_before_any_write():
    r = LWWRegister("nodeA", HybridClock(), "initial")
    assert r.get() == "initial"
    assert r.timestamp() == HybridTimestamp()


def test_concurrent_tie_break_by_node():
    clk_a = HybridClock()
    clk_b = HybridClock()
    clk_a.observe(HybridTimestamp(wall=2_000_000_000, logical=5, node="nodeA"))
    clk_b.observe(HybridTimestamp(wall=2_000_000_000, logical=5, node="nodeZ"))

    ra = LWWRegister("nodeA", clk_a, "valueA")
    rb = LWWRegister("nodeZ", clk_b, "valueZ")
    ra.set("valueA")
    rb.set("valueZ")

    ra.merge(rb)
    assert ra.get() == "valueZ"


def test_equal_wall_and_logical_higher_node_wins_both_directions():
    ra = _restored("nodeA", "valueA", 1000, 6)
    rb = _restored("nodeZ", "valueZ", 1000, 6)

    ra.merge(rb)
    assert ra.get() == "valueZ"
    rb.merge(ra)
    assert rb.get() == "valueZ"
    assert ra.timestamp() == rb.timestamp()


def test_round_trip():
    r = LWWRegister("nodeA", HybridClock(), 0)
    r.set(99)
    snap = r.snapshot()

    got = LWWRegister("", HybridClock(), 0)
    got.restore(snap)
    assert got.get() == 99
    assert got.get() == r.get()
    assert got.timestamp() == r.timestamp()
    assert got.node == "nodeA"


def test_snapshot_wire_shape():
    r = _restored("nodeA", "hello", 42, 3)
    wire = json.loads(r.snapshot())
    assert wire == {
        "node": "nodeA",
        "value": "hello",
        "ts": {"wall": 42, "logical": 3, "node": "nodeA"},
    }


def test_merge_none_raises():
    r = LWWRegister("nodeA", HybridClock(), "v")
    with pytest.raises(MergeError):
        r.merge(None)


def test_merge_type_mismatch_raises():
    r = LWWRegister("nodeA", HybridClock(), "v")
    with pytest.raises(MergeError):
        r.merge(GCounter("nodeB"))


def test_merge_keeps_higher_timestamp():
    ra = LWWRegister("nodeA", HybridClock(), "")
    rb = LWWRegister("nodeB", HybridClock(), "")
    ra.set("old")
    time.sleep(0.002)
    rb.set("new")
    ra.merge(rb)
    assert ra.get() == "new"


def test_merge_ignores_older_write():
    ra = _restored("nodeA", "newer", 500, 0)
    rb = _restored("nodeB", "older", 100, 0)
    ra.merge(rb)
    assert ra.get() == "newer"
    assert ra.timestamp().wall == 500


def test_merge_advances_local_clock():
    clk = HybridClock()
    local = LWWRegister("nodeA", clk, "")
    future_wall = time.time_ns() + 10 * 3600 * 10**9
    remote = _restored("nodeB", "remote", future_wall, 4)

    local.merge(remote)
    assert local.get() == "remote"
    local.set("mine")
    assert local.get() == "mine"
    assert local.timestamp().after(remote.timestamp())


def test_restore_without_value_raises():
    r = LWWRegister("nodeA", HybridClock(), "v")
    with pytest.raises(ValueError):
        r.restore(b'{"node":"nodeA","ts":{"wall":1,"logical":0,"node":"nodeA"}}')


def test_restore_invalid_json_raises():
    r = LWWRegister("nodeA", HybridClock(), "v")
    with pytest.raises(ValueError):
        r.restore(b"not json")