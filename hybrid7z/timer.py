import logging
import time
from dataclasses import dataclass
from typing import Optional

from .i18n import _


@dataclass
class TimingStats:
    total_time: float = 0.0
    partition_time: float = 0.0
    parallel_lane_time: float = 0.0
    sequential_lane_time: float = 0.0
    total_targets: int = 0
    invocations: int = 0
    failed_invocations: int = 0

    @property
    def work_duration(self) -> float:
        return self.parallel_lane_time + self.sequential_lane_time

    @property
    def avg_time_per_target(self) -> float:
        return self.total_time / self.total_targets if self.total_targets else 0.0

    def print_summary(self, *, min_percent: float = 0.5) -> None:
        logging.info("")
        logging.info(_("Performance summary"))
        logging.info(_("  elapsed total : %.3fs"), self.total_time)

        if self._should_show_span(self.partition_time, min_percent):
            logging.info(_("  partitioning  : %.3fs (%s)"), self.partition_time, self._percent(self.partition_time))
        if self._should_show_span(self.parallel_lane_time, min_percent):
            logging.info(_("  parallel lane : %.3fs (%s)"), self.parallel_lane_time, self._percent(self.parallel_lane_time))
        if self._should_show_span(self.sequential_lane_time, min_percent):
            logging.info(_("  exclusive lane: %.3fs (%s)"), self.sequential_lane_time, self._percent(self.sequential_lane_time))

        if self.total_targets:
            logging.info(_("  targets       : %d"), self.total_targets)
            logging.info(_("  avg per target: %.3fs"), self.avg_time_per_target)
        if self.invocations:
            logging.info(_("  invocations   : %d"), self.invocations)
        if self.failed_invocations:
            logging.info(_("    failed      : %d"), self.failed_invocations)

    def _percent(self, span: float) -> str:
        return f"{(span / self.total_time) * 100:.1f}%" if self.total_time else "0.0%"

    def _should_show_span(self, span: float, min_percent: float) -> bool:
        if span <= 0 or self.total_time <= 0:
            return False
        return (span / self.total_time) * 100.0 >= float(min_percent)


class PerformanceMonitor:
    def __init__(self) -> None:
        self.stats = TimingStats()
        self._operation_start: Optional[float] = None

    def start_operation(self) -> None:
        self._operation_start = time.perf_counter()

    def end_operation(self) -> None:
        if self._operation_start is not None:
            self.stats.total_time = time.perf_counter() - self._operation_start

    def time_partition(self) -> "SectionTimer":
        return SectionTimer(self, 'partition_time')

    def time_parallel_lane(self) -> "SectionTimer":
        return SectionTimer(self, 'parallel_lane_time')

    def time_sequential_lane(self) -> "SectionTimer":
        return SectionTimer(self, 'sequential_lane_time')

    def print_summary(self) -> None:
        self.stats.print_summary()


class SectionTimer:
    def __init__(self, monitor: PerformanceMonitor, stat_name: str) -> None:
        self.monitor = monitor
        self.stat_name = stat_name
        self.start_time: Optional[float] = None
        self.elapsed: float = 0.0

    def __enter__(self) -> "SectionTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.start_time is None:
            return False
        self.elapsed = time.perf_counter() - self.start_time
        current_value = getattr(self.monitor.stats, self.stat_name)
        setattr(self.monitor.stats, self.stat_name, current_value + self.elapsed)
        return False
