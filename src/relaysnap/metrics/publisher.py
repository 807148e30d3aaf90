"""Public facade over the relay metrics snapshot."""

from __future__ import annotations

import math
from typing import Any, Optional

import structlog

from ..config.manager import ConfigManager
from .encoder import DEFAULT_REFRESH_INTERVAL, SnapshotEncoder
from .models import DocumentSlot, EncoderStats, RelayStatsSource
from .state import SCNUpdatePolicy, SnapshotState

logger = structlog.get_logger(__name__)


class SnapshotPublisher:
    """Exposes the last published snapshot and the SCN write API.

    Readers (e.g. an HTTP controller) call current_document() and use
    refresh_interval_seconds() for cache/poll headers. Relay threads call
    record_producer_scn() / record_client_scn().
    """

    def __init__(self, state: SnapshotState, encoder: SnapshotEncoder):
        self._state = state
        self._encoder = encoder
        self._slot: DocumentSlot = encoder.slot

    @classmethod
    def create(
        cls,
        relay: RelayStatsSource,
        refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL,
        policy: SCNUpdatePolicy = SCNUpdatePolicy.LAST_WRITE_WINS,
        state: Optional[SnapshotState] = None,
    ) -> "SnapshotPublisher":
        """Wire state, slot and encoder for a relay with explicit settings."""
        state = state if state is not None else SnapshotState(policy=policy)
        encoder = SnapshotEncoder(relay, state, interval_seconds=refresh_interval_seconds)
        return cls(state, encoder)

    @classmethod
    def from_config(cls, relay: RelayStatsSource, config: ConfigManager) -> "SnapshotPublisher":
        """Wire a publisher from loaded configuration.

        The slow tick threshold follows later updates of
        metrics.slow_tick_threshold_ms.
        """
        state = SnapshotState(
            policy=SCNUpdatePolicy(config.get("scn.update_policy")),
            stripes=config.get("scn.stripes"),
        )
        encoder = SnapshotEncoder(
            relay,
            state,
            interval_seconds=config.get("metrics.refresh_interval_seconds"),
            slow_tick_threshold_ms=config.get("metrics.slow_tick_threshold_ms"),
        )
        publisher = cls(state, encoder)
        config.subscribe(publisher._on_config_update)
        logger.info(
            "snapshot_publisher_configured",
            interval_seconds=encoder.interval_seconds,
            policy=state.policy.value,
        )
        return publisher

    def _on_config_update(self, key: str, value: Any) -> None:
        if key == "metrics.slow_tick_threshold_ms":
            self._encoder.slow_tick_threshold_ms = value

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def current_document(self) -> str:
        """Last published JSON, or "" before the first tick completes."""
        return self._slot.get()

    def refresh_interval_seconds(self) -> int:
        """Configured refresh cadence, also used by callers for caching.

        Sub-second intervals round up so callers never see 0.
        """
        return math.ceil(self._encoder.interval_seconds)

    @property
    def stats(self) -> EncoderStats:
        return self._encoder.stats

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def record_producer_scn(self, producer: str, scn: int) -> bool:
        return self._state.record_producer_scn(producer, scn)

    def record_client_scn(self, client: str, scn: int) -> bool:
        return self._state.record_client_scn(client, scn)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._encoder.start()

    async def stop(self) -> None:
        await self._encoder.stop()

    async def __aenter__(self) -> "SnapshotPublisher":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
