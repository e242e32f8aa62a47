import threading

from progress import InstallPhase, ProgressSnapshot, ProgressTracker


def test_fresh_tracker_is_idle():
    tracker = ProgressTracker()
    assert not tracker.busy
    assert tracker.snapshot() == ProgressSnapshot()


def test_try_begin_claims_the_slot_once():
    tracker = ProgressTracker()
    assert tracker.try_begin()
    assert tracker.busy
    assert tracker.snapshot().phase is InstallPhase.CLEANING
    assert not tracker.try_begin()


def test_rejected_begin_leaves_counters_alone():
    tracker = ProgressTracker()
    tracker.try_begin()
    tracker.begin_cleaning(3)
    tracker.record_cleaned("a.dat")
    before = tracker.snapshot()

    assert not tracker.try_begin()
    assert tracker.snapshot() == before


def test_finish_keeps_counters_and_next_begin_resets():
    tracker = ProgressTracker()
    tracker.try_begin()
    tracker.begin_installing(2)
    tracker.record_installed("Roads/Highways")
    tracker.finish()

    snap = tracker.snapshot()
    assert snap.phase is InstallPhase.IDLE
    assert snap.installed_count == 1

    assert tracker.try_begin()
    assert tracker.snapshot().installed_count == 0
    assert tracker.snapshot().files_copied == ()


def test_skipped_counts_incomplete_leaves():
    tracker = ProgressTracker()
    tracker.begin_installing(3)
    tracker.record_installed("A")
    tracker.record_installed("B", completed=False)
    tracker.record_installed("C", completed=False)

    snap = tracker.snapshot()
    assert snap.phase is InstallPhase.INSTALLING
    assert snap.installed_count == 3
    assert snap.files_copied == ("A",)
    assert snap.files_skipped == 2


def test_snapshot_to_dict():
    tracker = ProgressTracker()
    tracker.begin_cleaning(1)
    tracker.record_cleaned("old.dat")
    assert tracker.snapshot().to_dict() == {
        "cleaning_count": 1,
        "cleaning_max": 1,
        "installed_count": 0,
        "installed_max": 0,
        "files_cleaned": ["old.dat"],
        "files_copied": [],
        "phase": "cleaning",
    }


def test_snapshot_is_a_copy():
    tracker = ProgressTracker()
    snap = tracker.snapshot()
    tracker.record_cleaned("x")
    assert snap.files_cleaned == ()


def test_concurrent_updates_are_not_lost():
    tracker = ProgressTracker()
    tracker.begin_installing(400)

    def worker():
        for i in range(100):
            tracker.record_installed(f"f{i}")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    snap = tracker.snapshot()
    assert snap.installed_count == 400
    assert len(snap.files_copied) == 400


def test_only_one_concurrent_begin_wins():
    tracker = ProgressTracker()
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(tracker.try_begin())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1
