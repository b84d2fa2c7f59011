from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LoyaltySnapshot:
    transitions: Dict[str, int]
    ledger: Dict[str, Dict[str, int]]
    refusals: Dict[str, int]
    reconciliation: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "transitions": dict(self.transitions),
            "ledger": {key: dict(value) for key, value in self.ledger.items()},
            "refusals": dict(self.refusals),
            "reconciliation": dict(self.reconciliation),
        }


class LoyaltyObservabilityStore:
    """Collect points-ledger telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transitions: Dict[str, int] = defaultdict(int)
        self._ledger_entries: Dict[str, int] = defaultdict(int)
        self._ledger_points: Dict[str, int] = defaultdict(int)
        self._refusals: Dict[str, int] = defaultdict(int)
        self._reconciliation: Dict[str, int] = defaultdict(int)

    def record_transition(self, kind: str, from_status: str, to_status: str) -> None:
        with self._lock:
            self._transitions[f"{kind}:{from_status}->{to_status}"] += 1

    def record_ledger_entry(self, source_type: str, points: int) -> None:
        with self._lock:
            self._ledger_entries[source_type] += 1
            self._ledger_points[source_type] += points

    def record_refusal(self, kind: str, error: str) -> None:
        with self._lock:
            self._refusals[f"{kind}:{error}"] += 1

    def record_reconciliation(self, *, checked: int, drifted: int, repaired: int) -> None:
        with self._lock:
            self._reconciliation["runs"] += 1
            self._reconciliation["checked"] += checked
            self._reconciliation["drifted"] += drifted
            self._reconciliation["repaired"] += repaired

    def snapshot(self) -> LoyaltySnapshot:
        with self._lock:
            transitions = dict(self._transitions)
            ledger = {
                "entries": dict(self._ledger_entries),
                "points": dict(self._ledger_points),
            }
            refusals = dict(self._refusals)
            reconciliation = dict(self._reconciliation)
        return LoyaltySnapshot(
            transitions=transitions,
            ledger=ledger,
            refusals=refusals,
            reconciliation=reconciliation,
        )

    def reset(self) -> None:
        with self._lock:
            self._transitions.clear()
            self._ledger_entries.clear()
            self._ledger_points.clear()
            self._refusals.clear()
            self._reconciliation.clear()


_STORE = LoyaltyObservabilityStore()


def get_loyalty_store() -> LoyaltyObservabilityStore:
    return _STORE


__all__ = ["get_loyalty_store", "LoyaltyObservabilityStore", "LoyaltySnapshot"]
