import pytest

from gesture_trainer.monitoring import LatencyTracker


def test_empty_tracker():
    tracker = LatencyTracker(target_ms=50)
    stats = tracker.get_current_stats()
    assert stats['sample_count'] == 0
    assert stats['compliance_rate'] == 1.0
    assert tracker.is_within_target()
    assert tracker.get_latest()['total_ms'] == 0.0


def test_record_and_stats():
    tracker = LatencyTracker(target_ms=50)
    assert tracker.record(10.0, 20.0)['within_target'] is True
    assert tracker.record(30.0, 40.0)['within_target'] is False

    stats = tracker.get_current_stats()
    assert stats['sample_count'] == 2
    assert stats['mean_total_ms'] == pytest.approx(50.0)
    assert stats['max_total_ms'] == pytest.approx(70.0)
    assert stats['compliance_rate'] == 0.5
    assert not tracker.is_within_target()

    breakdown = tracker.get_breakdown_stats()
    assert breakdown['feature_extraction']['mean'] == pytest.approx(20.0)
    assert breakdown['inference']['max'] == pytest.approx(40.0)


def test_history_is_bounded():
    tracker = LatencyTracker(history_size=3)
    for value in range(10):
        tracker.record(float(value), 0.0)
    assert tracker.get_current_stats()['sample_count'] == 3
    assert tracker.get_current_stats()['min_total_ms'] == 7.0


def test_reset():
    tracker = LatencyTracker()
    tracker.record(1.0, 1.0)
    tracker.reset()
    assert tracker.get_current_stats()['sample_count'] == 0
