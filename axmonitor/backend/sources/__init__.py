"""sources/__init__.py"""
from .actions import DryRunActionExecutor, HttpActionExecutor
from .metrics import HttpMetricSource, SnapshotUnavailable, StaticMetricSource

__all__ = [
    "HttpMetricSource",
    "StaticMetricSource",
    "SnapshotUnavailable",
    "HttpActionExecutor",
    "DryRunActionExecutor",
]
