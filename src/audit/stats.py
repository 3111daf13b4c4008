"""In-memory delivery counters exposed on ``GET /stats``."""

from __future__ import annotations

from collections import Counter


class DeliveryStats:
    """Counts relay and send outcomes since process start.

    Every inbound relay is an at-most-once delivery attempt; these counters
    make lost deliveries observable without persisting anything.
    """

    def __init__(self) -> None:
        self._relay: Counter[str] = Counter()
        self._send: Counter[str] = Counter()

    def record_relay(self, outcome: str) -> None:
        self._relay[outcome] += 1

    def record_send(self, outcome: str) -> None:
        self._send[outcome] += 1

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {"relay": dict(self._relay), "send": dict(self._send)}
