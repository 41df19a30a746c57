"""Hit/miss accounting for the content cache.

Counters are kept per logical operation so that a sync run and a
background index warm never pollute each other's hit ratio.
"""

from __future__ import annotations

import threading
from enum import Enum


class Operation(str, Enum):
    """Logical operation a cache lookup is attributed to."""

    SYNC = "sync"
    COMPARE = "compare"
    INDEX = "index"


class CacheStats:
    """Thread-safe per-operation counters (hits, misses, puts)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[Operation, dict[str, int]] = {
            op: {"hits": 0, "misses": 0, "puts": 0} for op in Operation
        }

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_hit(self, operation: Operation) -> None:
        self._bump(operation, "hits")

    def record_miss(self, operation: Operation) -> None:
        self._bump(operation, "misses")

    def record_put(self, operation: Operation) -> None:
        self._bump(operation, "puts")

    def reset(self, operation: Operation | None = None) -> None:
        """Zero the counters of *operation*, or of every operation."""
        with self._lock:
            targets = [operation] if operation else list(Operation)
            for op in targets:
                self._counts[Operation(op)] = {
                    "hits": 0,
                    "misses": 0,
                    "puts": 0,
                }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def hits(self, operation: Operation | None = None) -> int:
        return self._total(operation, "hits")

    def misses(self, operation: Operation | None = None) -> int:
        return self._total(operation, "misses")

    def puts(self, operation: Operation | None = None) -> int:
        return self._total(operation, "puts")

    def hit_ratio(self, operation: Operation | None = None) -> float:
        """Fraction of lookups that hit, ``0.0`` when nothing was looked up."""
        hits = self.hits(operation)
        total = hits + self.misses(operation)
        if total == 0:
            return 0.0
        return hits / total

    def to_dict(self) -> dict:
        """Return totals plus a per-operation breakdown."""
        with self._lock:
            snapshot = {op: dict(c) for op, c in self._counts.items()}
        per_op = {}
        for op, counts in snapshot.items():
            total = counts["hits"] + counts["misses"]
            per_op[op.value] = {
                **counts,
                "hit_ratio": counts["hits"] / total if total else 0.0,
            }
        return {
            "hits": self.hits(),
            "misses": self.misses(),
            "puts": self.puts(),
            "hit_ratio": self.hit_ratio(),
            "operations": per_op,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _bump(self, operation: Operation, field: str) -> None:
        with self._lock:
            self._counts[Operation(operation)][field] += 1

    def _total(self, operation: Operation | None, field: str) -> int:
        with self._lock:
            if operation is not None:
                return self._counts[Operation(operation)][field]
            return sum(c[field] for c in self._counts.values())
