"""Background encoder for relay metrics snapshots.

Runs as an asyncio background task, building one JSON snapshot per tick from
the relay's connected peers and totals plus the recorded SCNs, and swapping
it into the shared DocumentSlot.

Design principles:
- Independent failure domain: a failed tick publishes an exception document
  and the schedule carries on
- Non-blocking for writers: SCN maps are copied stripe by stripe, never held
  across serialization
- Off-loop: each tick runs in a worker thread via asyncio.to_thread
- Fixed rate: first tick immediately, then every interval_seconds
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from typing import Any, Callable, Optional

import structlog

from .models import (
    DocumentSlot,
    EncodeKind,
    EncodeResult,
    EncoderStats,
    RelayStatsSource,
)
from .state import SnapshotState

logger = structlog.get_logger(__name__)

DEFAULT_REFRESH_INTERVAL = 1
DEFAULT_SLOW_TICK_THRESHOLD_MS = 100


def to_structured(value: Any) -> Any:
    """json.dumps ``default`` hook for relay totals objects.

    Raises:
        TypeError: If the value has no structured representation
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if hasattr(value, "__dict__") and not isinstance(value, type) and not callable(value):
        return _public_fields(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _public_fields(value: Any) -> dict[str, Any]:
    """Public instance attributes plus public property values."""
    fields = {k: v for k, v in vars(value).items() if not k.startswith("_")}
    for name in dir(type(value)):
        if not name.startswith("_") and isinstance(getattr(type(value), name, None), property):
            fields[name] = getattr(value, name)
    return fields


def dumps(payload: Any) -> str:
    return json.dumps(payload, default=to_structured, sort_keys=True, allow_nan=False)


class SnapshotEncoder:
    """Periodically JSON-encodes relay statistics for producers and clients."""

    def __init__(
        self,
        relay: RelayStatsSource,
        state: SnapshotState,
        slot: Optional[DocumentSlot] = None,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL,
        slow_tick_threshold_ms: int = DEFAULT_SLOW_TICK_THRESHOLD_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.relay = relay
        self.state = state
        self.slot = slot if slot is not None else DocumentSlot()
        self.interval_seconds = interval_seconds
        self.slow_tick_threshold_ms = slow_tick_threshold_ms
        self.stats = EncoderStats()
        self._clock = clock
        self._running = False
        self._ticking = False
        self._task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def collect(self) -> dict[str, Any]:
        """Assemble the snapshot structure from relay and SCN state."""
        # Only clients the relay currently knows about; a connected peer
        # that never reported an SCN is kept with a null value.
        peers = set(self.relay.get_peers())
        clients = {peer: self.state.lookup_client_scn(peer) for peer in peers}

        return {
            "producer": self.state.snapshot_producers(),
            "client": clients,
            "http": self.relay.get_http_total_stats(),
            "inbound": self.relay.get_inbound_total_stats(),
            "outbound": self.relay.get_outbound_total_stats(),
        }

    def encode(self) -> EncodeResult:
        """Build this tick's document. Never raises."""
        try:
            document = dumps(self.collect())
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "snapshot_encode_failed",
                error_class=type(exc).__name__,
                exc_info=exc,
            )
            return self._encode_exception(exc)
        return EncodeResult(kind=EncodeKind.SUCCESS, document=document)

    def _encode_exception(self, exc: Exception) -> EncodeResult:
        """Alternate document describing an encode failure."""
        error_class = type(exc).__name__
        try:
            message = str(exc) or None
            document = dumps({"status": "exception", "class": error_class, "message": message})
        except Exception as fallback_exc:  # noqa: BLE001
            logger.error(
                "snapshot_fallback_encode_failed",
                error_class=error_class,
                fallback_error_class=type(fallback_exc).__name__,
            )
            return EncodeResult(kind=EncodeKind.DEGRADED, document="", error_class=error_class)
        return EncodeResult(
            kind=EncodeKind.FALLBACK,
            document=document,
            error_class=error_class,
            error_message=message,
        )

    def tick(self) -> EncodeResult:
        """Run one encode cycle and publish its result."""
        start_ns = time.perf_counter_ns()
        result = self.encode()
        self.slot.publish(result.document)

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self.stats.ticks += 1
        if not result.ok:
            self.stats.failures += 1
        self.stats.last_tick_at = time.time()
        self.stats.last_duration_ms = round(duration_ms, 3)
        self.stats.last_kind = result.kind

        if duration_ms > self.slow_tick_threshold_ms:
            logger.warning(
                "snapshot_tick_slow",
                duration_ms=round(duration_ms, 1),
                threshold_ms=self.slow_tick_threshold_ms,
                kind=result.kind.value,
            )
        else:
            logger.debug(
                "snapshot_tick_complete",
                duration_ms=round(duration_ms, 1),
                kind=result.kind.value,
                size=len(result.document),
            )
        return result

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the tick loop in a background task."""
        if self.running:
            return
        self._running = True
        self._spawn_task()
        logger.info("snapshot_encoder_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop scheduling further ticks."""
        self._running = False
        if self._restart_task:
            self._restart_task.cancel()
            self._restart_task = None
        if self._task:
            # An in-flight tick finishes and publishes; only a sleeping loop is cancelled.
            if not self._ticking:
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                # Crash is already logged by done callback; stop should still complete.
                pass
            self._task = None
        logger.info("snapshot_encoder_stopped", ticks=self.stats.ticks, failures=self.stats.failures)

    async def __aenter__(self) -> "SnapshotEncoder":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def _spawn_task(self) -> None:
        self._task = asyncio.create_task(self._run(), name="snapshot-encoder")
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if not self._running:
            return
        if task.cancelled():
            logger.warning("snapshot_encoder_cancelled_unexpectedly")
        else:
            exc = task.exception()
            if exc is not None:
                logger.error("snapshot_encoder_crashed", error=str(exc))
            else:
                logger.warning("snapshot_encoder_exited_unexpectedly")

        if self._restart_task and not self._restart_task.done():
            return
        self._restart_task = asyncio.create_task(self._restart_after_delay())

    async def _restart_after_delay(self) -> None:
        await asyncio.sleep(self.interval_seconds)
        if self._running and (self._task is None or self._task.done()):
            self._spawn_task()
            logger.info("snapshot_encoder_restarted")

    async def _run(self) -> None:
        next_at = self._clock()
        while self._running:
            self._ticking = True
            try:
                await asyncio.to_thread(self.tick)
            except Exception as exc:  # noqa: BLE001
                logger.error("snapshot_tick_failed", error=str(exc), exc_info=True)
            finally:
                self._ticking = False
            if not self._running:
                break

            next_at += self.interval_seconds
            delay = next_at - self._clock()
            if delay < 0:
                # Overran one or more periods; resync instead of bursting.
                logger.warning("snapshot_ticks_skipped", behind_seconds=round(-delay, 3))
                next_at = self._clock()
                delay = 0
            await asyncio.sleep(delay)
