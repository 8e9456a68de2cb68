# Scoped worker pool for the tuning passes

import warnings
from contextlib import contextmanager

from joblib import Parallel
from joblib.externals.loky import get_reusable_executor


def release_workers(n_workers):
    """Shut down the loky worker processes left behind by a Parallel call."""
    try:
        get_reusable_executor(max_workers=n_workers).shutdown(wait=True)
    except Exception as e:
        warnings.warn(f"Worker pool was not released cleanly: {e}", RuntimeWarning)
        return False
    return True


@contextmanager
def worker_pool(n_workers, backend='loky'):
    """
    Acquire a bounded pool for one tuning pass and release it on exit.

    Usage:
      with worker_pool(3) as parallel:
          results = parallel(delayed(fn)(x) for x in xs)
    """
    if n_workers < 1:
        raise ValueError(f"n_workers must be >= 1, got {n_workers}")
    parallel = Parallel(n_jobs=n_workers, backend=backend)
    try:
        with parallel:
            yield parallel
    finally:
        if backend == 'loky' and n_workers > 1:
            release_workers(n_workers)
