"""Search criteria and the shared store the controller and the gate both use.

The store is written from two independent contexts (the content-change
callback and the controller's poll timer), so every mutation replaces a whole
value under one lock. Readers only ever see complete criteria sets.
"""

import threading
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger


@dataclass(frozen=True)
class Criteria:
    """Targets a search is looking for. Unset fields are vacuously satisfied."""

    min_price: Optional[int] = None
    zone: Optional[str] = None
    min_start_hour: Optional[int] = None
    max_duration_hours: Optional[int] = None

    def __post_init__(self):
        if self.min_price is not None and self.min_price <= 0:
            raise ValueError("min_price must be a positive integer")
        if self.zone is not None:
            zone = str(self.zone).strip()
            object.__setattr__(self, "zone", zone or None)

    def is_empty(self) -> bool:
        return (
            self.min_price is None
            and self.zone is None
            and self.min_start_hour is None
            and self.max_duration_hours is None
        )

    def summary(self, currency_marker: str = "$") -> str:
        """Human-readable summary, e.g. ``price >= $25, zone 3``."""
        parts: List[str] = []
        if self.min_price is not None:
            parts.append(f"price >= {currency_marker}{self.min_price}")
        if self.zone is not None:
            parts.append(f"zone {self.zone}")
        if self.min_start_hour is not None:
            parts.append(f"start >= {self.min_start_hour}h")
        if self.max_duration_hours is not None:
            parts.append(f"duration <= {self.max_duration_hours}h")
        return ", ".join(parts) if parts else "any offer"


@dataclass(frozen=True)
class MatchFlags:
    """Which criteria the most recent pass found satisfied."""

    price_found: bool = False
    zone_matched: bool = False
    start_time_matched: bool = False
    duration_matched: bool = False


@dataclass(frozen=True)
class CriteriaSnapshot:
    """Consistent view of the store at one instant."""

    criteria: Optional[Criteria]
    flags: MatchFlags
    generation: int
    claimed: bool


class CriteriaStore:
    """Exclusive owner of the active criteria and their per-run matched flags."""

    def __init__(self):
        self._lock = threading.Lock()
        self._criteria: Optional[Criteria] = None
        self._flags = MatchFlags()
        self._generation = 0
        self._claimed = False

    # ── Reads ────────────────────────────────────────────────────────────

    def snapshot(self) -> CriteriaSnapshot:
        with self._lock:
            return CriteriaSnapshot(self._criteria, self._flags, self._generation, self._claimed)

    def get(self) -> Optional[Criteria]:
        with self._lock:
            return self._criteria

    @property
    def flags(self) -> MatchFlags:
        with self._lock:
            return self._flags

    @property
    def claimed(self) -> bool:
        """True once a pass matched and activated the claim control."""
        with self._lock:
            return self._claimed

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return self._criteria is None

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._criteria is not None and self._generation == generation

    # ── Writes ───────────────────────────────────────────────────────────

    def set(self, criteria: Criteria) -> int:
        """Replace the active criteria; returns the new generation."""
        with self._lock:
            self._criteria = criteria
            self._flags = MatchFlags()
            self._claimed = False
            self._generation += 1
            generation = self._generation
        logger.debug(f"[CriteriaStore] Criteria set (gen {generation}): {criteria.summary()}")
        return generation

    def clear(self) -> Optional[Criteria]:
        """Drop the active criteria; returns what was active."""
        with self._lock:
            previous = self._criteria
            self._criteria = None
            self._flags = MatchFlags()
            self._generation += 1
        if previous is not None:
            logger.debug(f"[CriteriaStore] Criteria cleared: {previous.summary()}")
        return previous

    def record_flags(self, generation: int, flags: MatchFlags) -> bool:
        """Store the flags of a pass, unless the criteria changed meanwhile."""
        with self._lock:
            if self._criteria is None or generation != self._generation:
                return False
            self._flags = flags
            return True

    def complete(self, generation: int) -> Optional[Criteria]:
        """Mark the search claimed and clear criteria in one step.

        Returns the criteria that were satisfied, or None when they had been
        replaced or cleared since ``generation`` was read.
        """
        with self._lock:
            if self._criteria is None or generation != self._generation:
                return None
            satisfied = self._criteria
            self._criteria = None
            self._claimed = True
            self._generation += 1
        logger.info(f"[CriteriaStore] Search completed: {satisfied.summary()}")
        return satisfied
