"""
Unit tests for metrics module.

Tests cover:
- Counter increment (single-threaded and multi-threaded)
- Drop reason tracking, including unknown reasons
- Histogram recording and statistics
- Snapshot and reset functionality
- Summary output
"""

import logging
import threading
import time

import pytest

from ace_core.metrics import CounterSnapshot, MetricsCollector, get_metrics, reset_metrics


class TestMetricsCollectorBasic:
    """Tests for basic metrics collector functionality."""

    def test_initialization(self):
        collector = MetricsCollector()

        # Standard counters start at 0 and are present in snapshots
        assert collector.get_counter('observations_ingested') == 0
        assert 'calibrations_succeeded' in collector.snapshot().counters
        assert collector.get_counter('unknown_counter') == 0

    def test_increment_counter(self):
        collector = MetricsCollector()

        collector.increment('observations_ingested')
        collector.increment('observations_ingested', 5)

        assert collector.get_counter('observations_ingested') == 6

    def test_increment_drop_with_known_reason(self):
        collector = MetricsCollector()

        collector.increment_drop('low_quality')

        assert collector.get_counter('items_dropped') == 1
        assert collector.get_drop_count('low_quality') == 1
        assert collector.snapshot().drop_reasons['low_quality'] == 1

    def test_increment_drop_unknown_reason_warns(self, caplog):
        collector = MetricsCollector()

        with caplog.at_level(logging.WARNING, logger='ace_core.metrics.counters'):
            collector.increment_drop('cosmic_rays')

        assert 'cosmic_rays' in caplog.text
        # Still counted
        assert collector.get_counter('items_dropped') == 1
        assert collector.get_drop_count('cosmic_rays') == 1

    def test_multiple_drop_reasons(self):
        collector = MetricsCollector()

        collector.increment_drop('low_quality', 3)
        collector.increment_drop('nlos', 5)
        collector.increment_drop('session_not_recording', 2)

        snapshot = collector.snapshot()
        assert snapshot.drop_reasons['nlos'] == 5
        assert snapshot.total_dropped() == 10


class TestHistograms:
    """Tests for histogram functionality."""

    def test_record_histogram(self):
        collector = MetricsCollector()

        for value in (0.12, 0.30, 0.18):
            collector.record_histogram('calibration_rmse_m', value)

        stats = collector.get_histogram_stats('calibration_rmse_m')
        assert stats['count'] == 3
        assert stats['mean'] == pytest.approx(0.2)
        assert stats['min'] == 0.12
        assert stats['max'] == 0.30

    def test_histogram_empty(self):
        assert MetricsCollector().get_histogram_stats('nonexistent') is None

    def test_histogram_percentiles(self):
        collector = MetricsCollector()
        for i in range(100):
            collector.record_histogram('test', float(i))

        stats = collector.get_histogram_stats('test')

        assert 49 < stats['median'] < 51
        assert 94 < stats['p95'] < 96

    def test_single_sample_p95(self):
        collector = MetricsCollector()
        collector.record_histogram('test', 3.5)

        assert collector.get_histogram_stats('test')['p95'] == 3.5

    def test_histogram_max_samples_bounded(self):
        collector = MetricsCollector()
        for i in range(5000):
            collector.record_histogram('test', float(i), max_samples=1000)

        assert len(collector.snapshot().histograms['test']) <= 1000


class TestSnapshotAndReset:
    """Tests for snapshot and reset functionality."""

    def test_snapshot_creates_copy(self):
        collector = MetricsCollector()

        collector.increment('sessions_started', 10)
        snapshot1 = collector.snapshot()
        collector.increment('sessions_started', 5)
        snapshot2 = collector.snapshot()

        assert isinstance(snapshot1, CounterSnapshot)
        assert snapshot1.counters['sessions_started'] == 10
        assert snapshot2.counters['sessions_started'] == 15

    def test_snapshot_drop_rate(self):
        collector = MetricsCollector()
        collector.increment_drop('low_quality', 5)
        collector.increment_drop('nlos', 3)

        snapshot = collector.snapshot()

        assert snapshot.drop_rate(100) == pytest.approx(8.0)
        assert snapshot.drop_rate(0) == 0.0

    def test_reset_clears_and_reinitializes(self):
        collector = MetricsCollector()
        collector.increment('sessions_started', 100)
        collector.increment_drop('nlos', 5)
        collector.record_histogram('calibration_rmse_m', 0.1)

        collector.reset()

        snapshot = collector.snapshot()
        assert snapshot.counters['sessions_started'] == 0
        assert snapshot.total_dropped() == 0
        assert not snapshot.histograms
        assert 'nlos' in snapshot.drop_reasons


class TestThreadSafety:
    """Tests for thread-safe operations."""

    def test_concurrent_increment(self):
        collector = MetricsCollector()

        def worker():
            for _ in range(1000):
                collector.increment('observations_ingested')

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert collector.get_counter('observations_ingested') == 10000

    def test_concurrent_drop_reasons(self):
        collector = MetricsCollector()

        def worker(reason: str):
            for _ in range(200):
                collector.increment_drop(reason)

        threads = [
            threading.Thread(target=worker, args=(reason,))
            for reason in ['low_quality', 'nlos', 'unknown_session']
            for _ in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = collector.snapshot()
        assert snapshot.drop_reasons['low_quality'] == 1000
        assert snapshot.drop_reasons['unknown_session'] == 1000


class TestGlobalSingleton:
    """Tests for global metrics singleton."""

    def test_get_metrics_returns_same_instance(self):
        assert get_metrics() is get_metrics()

    def test_reset_metrics_creates_new_instance(self):
        metrics1 = get_metrics()
        metrics1.increment('test_counter', 100)

        reset_metrics()

        assert get_metrics() is not metrics1
        assert get_metrics().get_counter('test_counter') == 0


class TestDropReasonCodes:
    """Tests for standard drop reason codes."""

    def test_standard_reasons_defined(self):
        for reason in ['low_quality', 'nlos', 'outside_acceptance_radius',
                       'session_not_recording', 'unknown_session', 'invalid_range',
                       'collinear_anchors', 'insufficient_points', 'persistence_failed']:
            assert reason in MetricsCollector.DROP_REASONS

    def test_drop_reasons_initialized_to_zero(self):
        snapshot = MetricsCollector().snapshot()

        for reason in MetricsCollector.DROP_REASONS:
            assert snapshot.drop_reasons[reason] == 0


class TestSummary:
    """Tests for summary output and uptime."""

    def test_summary_lines(self):
        collector = MetricsCollector()
        collector.increment('observations_ingested', 100)
        collector.increment_drop('nlos', 5)
        collector.record_histogram('calibration_rmse_m', 0.05)

        text = "\n".join(collector.summary_lines())

        assert 'METRICS SUMMARY' in text
        assert 'observations_ingested' in text
        assert 'DROP REASONS' in text
        assert 'calibration_rmse_m' in text

    def test_summary_without_drops(self):
        text = "\n".join(MetricsCollector().summary_lines())
        assert 'DROP REASONS' not in text

    def test_uptime_increases(self):
        collector = MetricsCollector()

        uptime1 = collector.get_uptime()
        time.sleep(0.05)

        assert collector.get_uptime() > uptime1
