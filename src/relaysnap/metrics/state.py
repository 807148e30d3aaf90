"""Producer and client SCN tracking.

Both maps are written by arbitrary relay threads and read once per tick by
the snapshot encoder. Each map is lock-striped: a key always lands on the
same stripe, so writers to unrelated keys rarely contend and the encoder
only ever holds one stripe lock at a time while copying.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_STRIPES = 16


class SCNUpdatePolicy(str, Enum):
    """How a record call treats a value lower than the one stored."""

    LAST_WRITE_WINS = "last_write_wins"
    MONOTONIC = "monotonic"

    def accepts(self, current: Optional[int], new: int) -> bool:
        if self is SCNUpdatePolicy.MONOTONIC and current is not None:
            return new >= current
        return True


class SCNMap:
    """Thread-safe str -> int map with per-stripe locking."""

    def __init__(
        self,
        stripes: int = DEFAULT_STRIPES,
        policy: SCNUpdatePolicy = SCNUpdatePolicy.LAST_WRITE_WINS,
    ):
        if stripes < 1:
            raise ValueError(f"stripes must be >= 1, got {stripes}")
        self.policy = policy
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._shards: list[dict[str, int]] = [{} for _ in range(stripes)]

    def _index(self, key: str) -> int:
        return hash(key) % len(self._shards)

    def put(self, key: str, scn: int) -> bool:
        """Store scn for key if the policy accepts it. Returns True if stored."""
        idx = self._index(key)
        with self._locks[idx]:
            shard = self._shards[idx]
            current = shard.get(key)
            if not self.policy.accepts(current, scn):
                stored = False
            else:
                shard[key] = scn
                stored = True
        if not stored:
            logger.debug("scn_regression_ignored", key=key, current=current, rejected=scn)
        return stored

    def get(self, key: str) -> Optional[int]:
        idx = self._index(key)
        with self._locks[idx]:
            return self._shards[idx].get(key)

    def snapshot(self) -> dict[str, int]:
        """Copy all entries, one stripe at a time."""
        result: dict[str, int] = {}
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                result.update(shard)
        return result

    def __len__(self) -> int:
        total = 0
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                total += len(shard)
        return total


class SnapshotState:
    """Per-producer and per-client sequence markers for the relay.

    Instances are created by the hosting relay and injected into both the
    write side (relay threads) and the SnapshotEncoder.
    """

    def __init__(
        self,
        policy: SCNUpdatePolicy = SCNUpdatePolicy.LAST_WRITE_WINS,
        stripes: int = DEFAULT_STRIPES,
    ):
        self.policy = policy
        self._producers = SCNMap(stripes=stripes, policy=policy)
        self._clients = SCNMap(stripes=stripes, policy=policy)

    def record_producer_scn(self, producer: str, scn: int) -> bool:
        """Update the SCN generated by a producer.

        Args:
            producer: Producer identifier
            scn: Latest SCN generated by the producer

        Returns:
            True if stored, False if rejected by the update policy.
        """
        return self._producers.put(producer, scn)

    def record_client_scn(self, client: str, scn: int) -> bool:
        """Update the SCN requested by a client.

        Args:
            client: Client (peer) identifier
            scn: Latest SCN requested by the client

        Returns:
            True if stored, False if rejected by the update policy.
        """
        return self._clients.put(client, scn)

    def snapshot_producers(self) -> dict[str, int]:
        """Return a copy of every producer SCN seen so far."""
        return self._producers.snapshot()

    def snapshot_clients(self) -> dict[str, int]:
        """Return a copy of every client SCN, connected or not."""
        return self._clients.snapshot()

    def lookup_client_scn(self, client: str) -> Optional[int]:
        """Return the client's last SCN, or None if it never reported one."""
        return self._clients.get(client)
