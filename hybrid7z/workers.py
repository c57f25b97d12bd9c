import os
from typing import Optional

_worker_cap: Optional[int] = None


def set_worker_cap(cap: Optional[int]) -> None:
    global _worker_cap
    if cap is None:
        _worker_cap = None
        return
    _worker_cap = max(1, int(cap))


def _apply_worker_cap(count: int) -> int:
    count = max(1, count)
    if _worker_cap is None:
        return count
    return min(count, _worker_cap)


def partition_worker_count(pairs: int) -> int:
    return _apply_worker_cap(min(max(1, pairs), (os.cpu_count() or 1) * 2))


def pattern_worker_count(patterns: int) -> int:
    return _apply_worker_cap(min(max(1, patterns), os.cpu_count() or 1))


def parallel_lane_worker_count(targets: int) -> int:
    return _apply_worker_cap(targets)
