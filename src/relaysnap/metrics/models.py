"""Snapshot data models and the published-document slot.

The encoder writes one document per tick into a DocumentSlot; the
SnapshotPublisher facade (and any HTTP layer on top of it) only reads it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Protocol, runtime_checkable


@runtime_checkable
class RelayStatsSource(Protocol):
    """What the encoder needs from the relay. Owned by the relay."""

    def get_peers(self) -> Iterable[str]: ...

    def get_http_total_stats(self) -> Any: ...

    def get_inbound_total_stats(self) -> Any: ...

    def get_outbound_total_stats(self) -> Any: ...


class EncodeKind(str, Enum):
    """Outcome of one encode step."""

    SUCCESS = "success"
    FALLBACK = "fallback"  # snapshot failed, exception document published
    DEGRADED = "degraded"  # exception document failed too, "" published


@dataclass(frozen=True)
class EncodeResult:
    """Document produced by a single tick, successful or not."""

    kind: EncodeKind
    document: str
    error_class: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is EncodeKind.SUCCESS


@dataclass
class EncoderStats:
    """Tick bookkeeping exposed for diagnostics."""

    ticks: int = 0
    failures: int = 0
    last_tick_at: Optional[float] = None  # Unix epoch seconds
    last_duration_ms: Optional[float] = None
    last_kind: Optional[EncodeKind] = None


class DocumentSlot:
    """Single published JSON document, swapped wholesale on every tick."""

    def __init__(self, initial: str = ""):
        self._lock = threading.Lock()
        self._document = initial

    def get(self) -> str:
        with self._lock:
            return self._document

    def publish(self, document: str) -> None:
        with self._lock:
            self._document = document
