import threading
from concurrent.futures import ThreadPoolExecutor

from attempt_tracker import AttemptTracker


def test_new_block_has_zero_stats(attempts):
    stats = attempts.get_stats("b1")
    assert (stats.total_attempts, stats.correct_attempts) == (0, 0)
    assert stats.accuracy_percentage == 0


def test_only_correct_attempts_bump_correct(attempts):
    attempts.record_attempt("b1", True)
    attempts.record_attempt("b1", False)
    attempts.record_attempt("b1", False)
    stats = attempts.get_stats("b1")
    assert stats.total_attempts == 3
    assert stats.correct_attempts == 1
    assert stats.accuracy_percentage == 33.33


def test_counters_persist(tmp_path):
    AttemptTracker(str(tmp_path)).record_attempt("b1", True)
    assert AttemptTracker(str(tmp_path)).get_stats("b1").correct_attempts == 1


def test_concurrent_attempts_are_not_lost(attempts):
    barrier = threading.Barrier(10)

    def submit():
        barrier.wait()
        attempts.record_attempt("b1", True)

    with ThreadPoolExecutor(max_workers=10) as pool:
        for future in [pool.submit(submit) for _ in range(10)]:
            future.result()

    stats = attempts.get_stats("b1")
    assert stats.total_attempts == 10
    assert stats.correct_attempts == 10
    assert stats.accuracy_percentage == 100


def test_blocks_are_counted_separately(attempts):
    attempts.record_attempt("b1", True)
    attempts.record_attempt("b2", False)
    assert attempts.get_stats("b1").total_attempts == 1
    assert attempts.get_stats("b2").correct_attempts == 0


def test_delete_stats(attempts):
    attempts.record_attempt("b1", True)
    attempts.delete_stats("b1")
    assert not attempts.has_stats("b1")
    assert attempts.get_stats("b1").total_attempts == 0


def test_delete_stats_releases_block_lock(attempts):
    attempts.record_attempt("b1", True)
    assert "b1" in attempts._locks
    attempts.delete_stats("b1")
    assert "b1" not in attempts._locks
