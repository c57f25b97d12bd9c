import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from .archiver import ArchiverInvoker
from .config import Hybrid7zConfig, global_exclusion_file
from .filters import FilterCatalog, FilterPartitioner, PartitionOutcome
from .i18n import _
from .models import Target
from .scheduler import Invoker, PhaseScheduler
from .stats import ResultAggregator
from .timer import PerformanceMonitor


@dataclass
class RunSummary:
    failed: bool
    partition: PartitionOutcome
    aggregator: ResultAggregator
    monitor: PerformanceMonitor
    deleted_filter_lists: int = 0


def compress_targets(
    targets: Sequence[Target],
    config: Hybrid7zConfig,
    *,
    filter_folder: str,
    log_folder: str,
    invoker: Optional[Invoker] = None,
) -> RunSummary:
    # The archiver runs with a different working directory per target, so every
    # path handed to it must be absolute.
    filter_folder = os.path.abspath(filter_folder)
    log_folder = os.path.abspath(log_folder)

    monitor = PerformanceMonitor()
    monitor.start_operation()
    monitor.stats.total_targets = len(targets)

    phases = config.build_phases()
    patterns = FilterCatalog(filter_folder).load_all(phases)

    with monitor.time_partition() as section:
        partition = FilterPartitioner(filter_folder, patterns).partition(targets, phases)
    logging.info(_("Phase filter rebuilding finished in %dms"), int(section.elapsed * 1000))

    exclusion = global_exclusion_file(filter_folder)
    if exclusion:
        logging.info(_("Using global exclusion list: %s"), exclusion)

    aggregator = ResultAggregator()
    scheduler = PhaseScheduler(
        phases,
        invoker or ArchiverInvoker(log_folder, config.archiver_parameters),
        password_format=config.password_parameter,
        global_exclusions=[exclusion] if exclusion else [],
        observer=aggregator.record,
        monitor=monitor,
    )
    failed = scheduler.run(targets, partition)

    monitor.stats.invocations = aggregator.invocations
    monitor.stats.failed_invocations = aggregator.failed_invocations
    monitor.end_operation()

    deleted = 0
    if not failed and config.delete_filter_cache:
        deleted = partition.table.delete_artifacts()
        logging.debug("Deleted %d generated filter list(s)", deleted)

    return RunSummary(failed, partition, aggregator, monitor, deleted)
