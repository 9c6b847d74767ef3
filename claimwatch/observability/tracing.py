"""Observability & Tracing — Prometheus metrics for the watcher.

Counts passes, claim attempts, rejected events and finished searches, and
times each pass.
"""

import time
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

try:
    from prometheus_client import Counter, Histogram

    PASS_COUNTER = Counter(
        "claimwatch_passes_total",
        "Matcher passes run by the event gate",
        ["outcome"],
    )
    PASS_DURATION = Histogram(
        "claimwatch_pass_duration_seconds",
        "Duration of one matcher pass including the claim attempt",
        buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    )
    CLAIM_COUNTER = Counter(
        "claimwatch_claim_attempts_total",
        "Claim control activations",
        ["result"],
    )
    REJECTED_EVENTS = Counter(
        "claimwatch_rejected_events_total",
        "Content-change events dropped by the event gate",
        ["reason"],
    )
    SEARCH_COUNTER = Counter(
        "claimwatch_searches_total",
        "Searches by terminal state",
        ["state"],
    )
    _PROMETHEUS_AVAILABLE = True
except ImportError:
    _PROMETHEUS_AVAILABLE = False
    logger.info(
        "[Tracing] prometheus_client not installed — metrics disabled"
    )


def record_pass(outcome: str):
    """Count a pass as ``match``, ``no_match``, ``claimed``, ``stale`` or ``error``."""
    if _PROMETHEUS_AVAILABLE:
        PASS_COUNTER.labels(outcome=outcome).inc()


def record_claim(success: bool):
    if _PROMETHEUS_AVAILABLE:
        CLAIM_COUNTER.labels(result="success" if success else "failure").inc()


def record_rejected(reason: str):
    if _PROMETHEUS_AVAILABLE:
        REJECTED_EVENTS.labels(reason=reason).inc()


def record_search(state: str):
    if _PROMETHEUS_AVAILABLE:
        SEARCH_COUNTER.labels(state=state).inc()


@contextmanager
def timed_pass() -> Iterator[None]:
    """Observe the duration of the enclosed pass."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if _PROMETHEUS_AVAILABLE:
            PASS_DURATION.observe(elapsed)
        logger.debug(f"[Tracing] Pass took {elapsed * 1000:.1f}ms")
