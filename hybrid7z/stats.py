import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .filters.partitioner import iter_files
from .i18n import _
from .models import Target
from .scheduler import InvocationRecord

SIZE_SUFFIXES = ("bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")
SIZE_SUFFIXES_BINARY = ("bytes", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB")


def _scaled_size(value: int, decimal_places: int, suffixes: Sequence[str], base: int) -> str:
    if value < 0:
        return "-" + _scaled_size(-value, decimal_places, suffixes, base)

    adjusted = float(value)
    magnitude = 0
    while adjusted >= base and magnitude < len(suffixes) - 1:
        adjusted /= base
        magnitude += 1

    if round(adjusted, decimal_places) >= 1000 and magnitude < len(suffixes) - 1:
        adjusted /= base
        magnitude += 1

    return f"{adjusted:,.{decimal_places}f} {suffixes[magnitude]}"


def format_size(value: int, decimal_places: int = 1) -> str:
    return (
        f"({_scaled_size(value, decimal_places, SIZE_SUFFIXES, 1000)}"
        f" / {_scaled_size(value, decimal_places, SIZE_SUFFIXES_BINARY, 1024)})"
    )


def directory_size(path: str) -> int:
    total = 0
    for file_path in iter_files(path):
        try:
            total += os.stat(file_path).st_size
        except OSError:
            continue
    return total


@dataclass
class PhaseCounters:
    invoked: int = 0
    failed: int = 0


@dataclass
class CompressionRatio:
    name: str
    original_size: int
    compressed_size: int

    @property
    def percent(self) -> int:
        return self.compressed_size * 100 // self.original_size if self.original_size > 0 else 0

    @property
    def saved(self) -> int:
        return self.original_size - self.compressed_size


@dataclass
class ResultAggregator:
    """Folds per-invocation outcomes into one run-level result.

    Sizes are measured once per target and kept for the lifetime of the run.
    """

    records: List[InvocationRecord] = field(default_factory=list)
    phases: Dict[str, PhaseCounters] = field(default_factory=dict)
    ratios: Dict[str, CompressionRatio] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, record: InvocationRecord) -> None:
        with self._lock:
            self.records.append(record)
            counters = self.phases.setdefault(record.phase, PhaseCounters())
            counters.invoked += 1
            if record.failed:
                counters.failed += 1

    @property
    def failed(self) -> bool:
        return any(record.failed for record in self.records)

    @property
    def invocations(self) -> int:
        return len(self.records)

    @property
    def failed_invocations(self) -> int:
        return sum(1 for record in self.records if record.failed)

    def failures(self) -> List[InvocationRecord]:
        return [record for record in self.records if record.failed]

    def measure(self, target: Target) -> CompressionRatio:
        cached = self.ratios.get(target.source_path)
        if cached is not None:
            return cached

        archive = target.archive_path()
        compressed = os.path.getsize(archive) if os.path.isfile(archive) else 0
        ratio = CompressionRatio(target.name, directory_size(target.source_path), compressed)
        self.ratios[target.source_path] = ratio
        return ratio

    def overall(self, targets: Sequence[Target]) -> CompressionRatio:
        measured = [self.measure(target) for target in targets]
        return CompressionRatio(
            _("(Overall)"),
            sum(ratio.original_size for ratio in measured),
            sum(ratio.compressed_size for ratio in measured),
        )


def print_compression_ratio(ratio: CompressionRatio, label: Optional[str] = None) -> None:
    name = label or f'"{ratio.name}":'
    logging.info(
        _("DONE: %s %s -> %s (%d%% compressed)"),
        name,
        format_size(ratio.original_size),
        format_size(ratio.compressed_size),
        ratio.percent,
    )
    if ratio.saved > 0:
        logging.info(_("DONE: - %s Saved %s"), name, format_size(ratio.saved))
    else:
        logging.warning(_("DONE: - %s Wasted %s"), name, format_size(-ratio.saved))


def print_compression_summary(aggregator: ResultAggregator, targets: Sequence[Target]) -> None:
    logging.info(_("\nCompression Summary"))
    logging.info("-------------------")

    for phase_name, counters in aggregator.phases.items():
        if counters.failed:
            logging.info(_("Phase %s: %d invocation(s), %d failed"), phase_name, counters.invoked, counters.failed)
        else:
            logging.info(_("Phase %s: %d invocation(s)"), phase_name, counters.invoked)

    for target in targets:
        print_compression_ratio(aggregator.measure(target))
    if len(targets) > 1:
        overall = aggregator.overall(targets)
        print_compression_ratio(overall, overall.name)

    failures = aggregator.failures()
    if failures:
        logging.info(_("\nErrors encountered:"))
        for record in failures:
            logging.error(_("%s (%s): exit code %d"), record.phase, record.target, record.exit_code)
