import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from .archiver import LAUNCH_FAILED, describe_exit_code
from .filters.partitioner import PartitionOutcome
from .i18n import _
from .models import Phase, Target
from .timer import PerformanceMonitor
from .workers import parallel_lane_worker_count


class Invoker(Protocol):
    def run(self, phase: Phase, target: Target, extra_args: Sequence[str]) -> int: ...


@dataclass(frozen=True)
class InvocationRecord:
    phase: str
    target: Target
    exit_code: int

    @property
    def failed(self) -> bool:
        return self.exit_code != 0


class PhaseScheduler:
    """Executes every (phase, target) archiver invocation after partitioning.

    Parallel-lane phases run first, one invocation per target, all targets at
    once. Exclusive-lane phases then run one target at a time, each target's
    phases strictly in declared order.
    """

    def __init__(
        self,
        phases: Sequence[Phase],
        invoker: Invoker,
        *,
        password_format: str = "-p{password}",
        global_exclusions: Sequence[str] = (),
        observer: Optional[Callable[[InvocationRecord], None]] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        self.invoker = invoker
        self.password_format = password_format
        self.global_exclusions = tuple(global_exclusions)
        self.observer = observer
        self.monitor = monitor
        self.parallel_phases = [phase for phase in phases if phase.parallel]
        self.sequential_phases = [phase for phase in phases if not phase.parallel]

    def build_arguments(self, phase: Phase, target: Target, partition: PartitionOutcome) -> Optional[list[str]]:
        arguments = [f"-xr@{path}" for path in self.global_exclusions]
        password = target.password_argument(self.password_format)
        if password:
            arguments.append(password)

        if phase.terminal:
            if not partition.is_terminal_eligible(target):
                logging.warning(_("Terminal phase (%s) skip: %s"), phase.name, target)
                return None
            exclusions = [f"-xr@{path}" for path in partition.table.artifacts_for(target)]
            source = target.name if target.include_root else "*"
            return [*arguments, "-r", *exclusions, "--", target.archive_path(), source]

        filter_path = partition.table.get(target, phase.name)
        if not filter_path:
            return None
        return [*arguments, f"-ir@{filter_path}", "--", target.archive_path()]

    def dispatch(
        self,
        phase: Phase,
        target: Target,
        partition: PartitionOutcome,
        index_prefix: str = "",
    ) -> Optional[bool]:
        arguments = self.build_arguments(phase, target, partition)
        if arguments is None:
            return None

        mode = _("Parallel") if phase.parallel else _("Sequential")
        logging.info(_("%s[%s] %s phase: %s"), f"{index_prefix} " if index_prefix else "", mode, phase.name, target.name)
        try:
            exit_code = self.invoker.run(phase, target, arguments)
        except Exception:
            logging.exception(_("Exception during archiver execution: phase=%s, target=%s"), phase.name, target)
            exit_code = LAUNCH_FAILED

        record = InvocationRecord(phase.name, target, exit_code)
        if record.failed:
            logging.warning(
                _("Archiver exited with non-zero exit code %d (%s): phase=%s, target=%s"),
                exit_code,
                describe_exit_code(exit_code),
                phase.name,
                target,
            )
        if self.observer:
            self.observer(record)
        return record.failed

    def run(self, targets: Sequence[Target], partition: PartitionOutcome) -> bool:
        targets = list(targets)
        error = False

        with self._timed("parallel"):
            for phase in self.parallel_phases:
                error = self.run_parallel_phase(phase, targets, partition) or error

        with self._timed("sequential"):
            total = len(targets)
            for position, target in enumerate(targets, start=1):
                error = self.run_sequential_phases(target, partition, f"[{position}/{total}]") or error

        return error

    def run_parallel_phase(self, phase: Phase, targets: Sequence[Target], partition: PartitionOutcome) -> bool:
        if not targets:
            return False

        logging.debug("+++ Phase parallel execution: %s", phase.name)
        error = False
        with ThreadPoolExecutor(max_workers=parallel_lane_worker_count(len(targets))) as executor:
            futures = [executor.submit(self.dispatch, phase, target, partition) for target in targets]
            for future in as_completed(futures):
                if future.result():
                    error = True

        if error:
            logging.error(_("Error during parallel execution of phase: %s"), phase.name)
        logging.debug("--- Phase parallel execution: %s", phase.name)
        return error

    def run_sequential_phases(self, target: Target, partition: PartitionOutcome, index_prefix: str = "") -> bool:
        error = False
        for phase in self.sequential_phases:
            if self.dispatch(phase, target, partition, index_prefix):
                logging.error(_("%s Error compressing %s - %s phase"), index_prefix, target, phase.name)
                error = True
        return error

    def _timed(self, lane: str):
        if self.monitor is None:
            return nullcontext()
        if lane == "parallel":
            return self.monitor.time_parallel_lane()
        return self.monitor.time_sequential_lane()
