# Relay metrics snapshot - SCN state, background encoder and read facade

from .encoder import SnapshotEncoder, to_structured
from .models import (
    DocumentSlot,
    EncodeKind,
    EncodeResult,
    EncoderStats,
    RelayStatsSource,
)
from .publisher import SnapshotPublisher
from .state import SCNMap, SCNUpdatePolicy, SnapshotState

__all__ = [
    "SnapshotEncoder",
    "to_structured",
    "DocumentSlot",
    "EncodeKind",
    "EncodeResult",
    "EncoderStats",
    "RelayStatsSource",
    "SnapshotPublisher",
    "SCNMap",
    "SCNUpdatePolicy",
    "SnapshotState",
]
