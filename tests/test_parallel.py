import math

import pytest
from joblib import delayed

from racetune import parallel
from racetune.parallel import worker_pool


def test_pool_runs_jobs_in_order():
    with worker_pool(2) as pool:
        out = pool(delayed(math.sqrt)(x) for x in [1.0, 4.0, 9.0, 16.0])
    assert out == [1.0, 2.0, 3.0, 4.0]


def test_pool_is_reusable_within_scope():
    with worker_pool(2) as pool:
        first = pool(delayed(abs)(x) for x in [-1, -2])
        second = pool(delayed(abs)(x) for x in [-3, -4])
    assert first == [1, 2]
    assert second == [3, 4]


def test_pool_released_after_scope(monkeypatch):
    released = []
    monkeypatch.setattr(parallel, "release_workers", lambda n: released.append(n))
    with worker_pool(3) as pool:
        pool(delayed(abs)(x) for x in [-1])
    assert released == [3]


def test_pool_released_when_a_job_raises(monkeypatch):
    released = []
    monkeypatch.setattr(parallel, "release_workers", lambda n: released.append(n))
    with pytest.raises(ZeroDivisionError):
        with worker_pool(2) as pool:
            pool(delayed(divmod)(x, 0) for x in [1, 2])
    assert released == [2]


def test_serial_pool_needs_no_release(monkeypatch):
    released = []
    monkeypatch.setattr(parallel, "release_workers", lambda n: released.append(n))
    with worker_pool(1) as pool:
        assert pool(delayed(abs)(x) for x in [-5]) == [5]
    assert released == []


def test_release_failure_only_warns(monkeypatch):
    def _broken(max_workers=None):
        raise OSError("executor gone")
    monkeypatch.setattr(parallel, "get_reusable_executor", _broken)
    with pytest.warns(RuntimeWarning, match="not released cleanly"):
        assert parallel.release_workers(2) is False


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        with worker_pool(0):
            pass
