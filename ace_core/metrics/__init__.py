"""
Metrics Module: process-wide diagnostics.

Components call get_metrics() rather than owning a collector, so a workflow,
its sessions and the position estimator all report into one place:

    from ace_core.metrics import get_metrics

    get_metrics().increment_drop('session_not_recording')

Tests call reset_metrics() to start from a clean collector.
"""

from typing import Optional

from .counters import DROP_REASONS, CounterSnapshot, MetricsCollector

_collector: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Shared collector, created on first use."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector


def reset_metrics():
    """Replace the shared collector with a fresh one."""
    global _collector
    _collector = MetricsCollector()


__all__ = ['DROP_REASONS', 'CounterSnapshot', 'MetricsCollector', 'get_metrics', 'reset_metrics']
