"""relaysnap - periodic JSON metrics snapshots for a replication relay."""

from .metrics import SCNUpdatePolicy, SnapshotEncoder, SnapshotPublisher, SnapshotState

__all__ = ["SCNUpdatePolicy", "SnapshotEncoder", "SnapshotPublisher", "SnapshotState"]

__version__ = "0.1.0"
