"""
backend/metrics.py

Lightweight thread-safe counters for the evaluation pipeline.
No external dependencies — uses Python's threading.Lock.

Usage:
    from axmonitor.backend.metrics import METRICS
    METRICS.alerts_created.inc()
    print(METRICS.as_dict())
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class Metrics:
    """Singleton holding all pipeline counters (summed across environments)."""

    def __init__(self) -> None:
        # --- Evaluation cycle ---
        self.cycles_run: Counter = Counter()
        self.cycles_skipped: Counter = Counter()
        """Cycles skipped because the snapshot source failed or a maintenance window was active."""

        self.snapshot_failures: Counter = Counter()
        self.rules_fired: Counter = Counter()

        # --- Correlation ---
        self.alerts_created: Counter = Counter()
        self.alerts_suppressed: Counter = Counter()
        """Firings folded into an existing Active alert inside the re-fire window."""

        self.incidents_opened: Counter = Counter()

        # --- Escalation ---
        self.escalations_dispatched: Counter = Counter()
        self.escalations_failed: Counter = Counter()

        # --- Remediation ---
        self.remediations_succeeded: Counter = Counter()
        self.remediations_failed: Counter = Counter()
        self.remediations_skipped: Counter = Counter()

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            name: attr.value
            for name, attr in vars(self).items()
            if isinstance(attr, Counter)
        }

    def reset_all(self) -> None:
        """Reset every counter to zero (useful in tests)."""
        for attr in vars(self).values():
            if isinstance(attr, Counter):
                attr.reset()


# Module-level singleton, import from here everywhere
METRICS = Metrics()
