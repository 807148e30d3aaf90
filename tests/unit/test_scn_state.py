"""Unit tests for SCN state tracking."""

import threading

import pytest

from relaysnap.metrics.state import SCNMap, SCNUpdatePolicy, SnapshotState


# ---------------------------------------------------------------------------
# SCNMap
# ---------------------------------------------------------------------------


def test_scn_map_put_and_get():
    scns = SCNMap()
    assert scns.put("p1", 100) is True
    assert scns.get("p1") == 100
    assert scns.get("missing") is None


def test_scn_map_last_write_wins_accepts_regression():
    """Default policy stores out-of-order values as-is."""
    scns = SCNMap()
    scns.put("p1", 100)
    assert scns.put("p1", 42) is True
    assert scns.get("p1") == 42


def test_scn_map_monotonic_ignores_regression():
    scns = SCNMap(policy=SCNUpdatePolicy.MONOTONIC)
    scns.put("p1", 100)
    assert scns.put("p1", 42) is False
    assert scns.get("p1") == 100
    assert scns.put("p1", 100) is True
    assert scns.put("p1", 101) is True
    assert scns.get("p1") == 101


def test_scn_map_snapshot_is_a_copy():
    scns = SCNMap(stripes=4)
    for i in range(20):
        scns.put(f"k{i}", i)
    snap = scns.snapshot()
    assert snap == {f"k{i}": i for i in range(20)}
    assert len(scns) == 20

    snap["k0"] = -1
    scns.put("k1", 999)
    assert scns.get("k0") == 0
    assert snap["k1"] == 1


def test_scn_map_single_stripe():
    scns = SCNMap(stripes=1)
    scns.put("a", 1)
    scns.put("b", 2)
    assert scns.snapshot() == {"a": 1, "b": 2}


def test_scn_map_rejects_zero_stripes():
    with pytest.raises(ValueError, match="stripes"):
        SCNMap(stripes=0)


def test_policy_from_config_value():
    assert SCNUpdatePolicy("monotonic") is SCNUpdatePolicy.MONOTONIC
    assert SCNUpdatePolicy.LAST_WRITE_WINS.accepts(5, 1) is True
    assert SCNUpdatePolicy.MONOTONIC.accepts(None, 1) is True


# ---------------------------------------------------------------------------
# SnapshotState
# ---------------------------------------------------------------------------


def test_state_producer_and_client_maps_are_separate():
    state = SnapshotState()
    state.record_producer_scn("x", 1)
    state.record_client_scn("x", 2)
    assert state.snapshot_producers() == {"x": 1}
    assert state.snapshot_clients() == {"x": 2}
    assert state.lookup_client_scn("x") == 2


def test_state_lookup_unknown_client_is_none():
    assert SnapshotState().lookup_client_scn("never-reported") is None


def test_state_policy_applies_to_both_maps():
    state = SnapshotState(policy=SCNUpdatePolicy.MONOTONIC)
    state.record_producer_scn("p", 10)
    state.record_client_scn("c", 10)
    assert state.record_producer_scn("p", 9) is False
    assert state.record_client_scn("c", 9) is False
    assert state.snapshot_producers() == {"p": 10}
    assert state.lookup_client_scn("c") == 10


def test_concurrent_writers_distinct_keys_no_lost_updates():
    """N threads writing N distinct keys all land in the snapshot."""
    state = SnapshotState(stripes=8)
    n_threads = 32
    writes_per_thread = 200
    barrier = threading.Barrier(n_threads)

    def writer(idx: int) -> None:
        barrier.wait()
        for scn in range(writes_per_thread):
            state.record_producer_scn(f"producer-{idx}", scn)
            state.record_client_scn(f"client-{idx}", scn)

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    producers = state.snapshot_producers()
    assert len(producers) == n_threads
    assert all(v == writes_per_thread - 1 for v in producers.values())
    assert len(state.snapshot_clients()) == n_threads


def test_snapshot_while_writing_never_raises():
    """Reader copying during heavy writes sees a consistent dict each time."""
    state = SnapshotState(stripes=4)
    stop = threading.Event()
    errors = []

    def writer(idx: int) -> None:
        scn = 0
        while not stop.is_set():
            state.record_producer_scn(f"p{idx}-{scn % 50}", scn)
            scn += 1

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    try:
        for _ in range(200):
            try:
                snap = state.snapshot_producers()
                assert all(isinstance(v, int) for v in snap.values())
            except Exception as exc:  # pragma: no cover - failure path
                errors.append(exc)
    finally:
        stop.set()
        for t in threads:
            t.join()

    assert errors == []
