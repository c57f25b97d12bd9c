import fnmatch
import logging
import os
import re
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from ..errors import PartitionMatchError
from ..i18n import _
from ..models import Phase, Target
from ..workers import partition_worker_count, pattern_worker_count

FILTER_LIST_SUFFIX = ".lst"

_SEPARATORS = re.compile(r"[\\/]+")


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.abspath(path)).casefold()


def iter_files(root: str, *, strict: bool = False) -> Iterator[str]:
    """Walk ``root`` without following directory links.

    Unreadable subdirectories are logged and skipped. ``strict`` only covers
    ``root`` itself: when set, failing to list it raises ``OSError``.
    """
    stack = [root]

    while stack:
        current_dir = stack.pop()

        try:
            with os.scandir(current_dir) as it:
                entries = list(it)
        except OSError as exc:
            if strict and current_dir == root:
                raise
            logging.warning(_("Cannot list directory %s: %s"), current_dir, exc)
            continue

        dirs = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                dirs.append(entry.path)
            elif entry.is_file(follow_symlinks=False):
                yield entry.path
            elif entry.is_symlink() and not entry.is_dir():
                # file links and dangling links are archived as entries of their own
                yield entry.path

        stack.extend(reversed(dirs))


def split_pattern(pattern: str) -> tuple[str, str]:
    parts = [part for part in _SEPARATORS.split(pattern) if part]
    if not parts:
        return "", ""
    return os.path.join(*parts[:-1]) if len(parts) > 1 else "", parts[-1]


class AvailableFileSet:
    """Files of one target that no non-terminal phase has claimed yet.

    Only ever shrinks. The lock covers a whole removal batch so concurrent
    pattern workers never interleave their read-then-remove sequences.
    """

    def __init__(self, paths: Iterable[str]) -> None:
        self._paths = {normalize_path(path) for path in paths}
        self._lock = threading.Lock()

    def remove_all(self, paths: Iterable[str]) -> int:
        normalized = [normalize_path(path) for path in paths]
        with self._lock:
            before = len(self._paths)
            self._paths.difference_update(normalized)
            return before - len(self._paths)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return normalize_path(path) in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __bool__(self) -> bool:
        return len(self) > 0


class PartitionTable:
    """Generated filter-list paths keyed by (target, phase); each key is written once."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], tuple[int, str]] = {}
        self._lock = threading.Lock()

    def record(self, target: Target, phase: Phase, path: str) -> None:
        key = (target.source_path, phase.name)
        with self._lock:
            if key in self._entries:
                raise ValueError(f"Filter list already recorded for {phase.name} / {target}")
            self._entries[key] = (phase.index, path)

    def get(self, target: Target, phase_name: str) -> Optional[str]:
        entry = self._entries.get((target.source_path, phase_name))
        return entry[1] if entry else None

    def artifacts_for(self, target: Target) -> list[str]:
        found = [
            (index, path)
            for (source, _phase), (index, path) in self._entries.items()
            if source == target.source_path
        ]
        return [path for _index, path in sorted(found)]

    def all_artifacts(self) -> list[str]:
        return [path for _index, path in self._entries.values()]

    def delete_artifacts(self) -> int:
        paths = self.all_artifacts()
        if not paths:
            return 0

        def _delete(path: str) -> bool:
            try:
                os.remove(path)
            except FileNotFoundError:
                return False
            except OSError as exc:
                logging.warning(_("Cannot delete filter list %s: %s"), path, exc)
                return False
            logging.debug("Deleted filter list: %s", path)
            return True

        with ThreadPoolExecutor(max_workers=min(len(paths), 8)) as executor:
            return sum(executor.map(_delete, paths))

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class PartitionOutcome:
    table: PartitionTable
    terminal_eligible: frozenset[str]

    def is_terminal_eligible(self, target: Target) -> bool:
        return target.source_path in self.terminal_eligible


def _artifact_prefixes(targets: Sequence[Target]) -> dict[str, str]:
    counts = Counter(target.name.casefold() for target in targets)
    prefixes = {}
    for position, target in enumerate(targets):
        if counts[target.name.casefold()] > 1:
            prefixes[target.source_path] = f"{target.name}-{position}."
        else:
            prefixes[target.source_path] = f"{target.name}."
    return prefixes


class FilterPartitioner:
    def __init__(self, filter_folder: str, patterns: Mapping[str, Sequence[str]]) -> None:
        self.filter_folder = filter_folder
        self.patterns = patterns

    def partition(self, targets: Sequence[Target], phases: Sequence[Phase]) -> PartitionOutcome:
        table = PartitionTable()
        if not targets:
            return PartitionOutcome(table, frozenset())

        logging.debug("+++ Phase filter rebuilding")
        with ThreadPoolExecutor(max_workers=partition_worker_count(len(targets))) as executor:
            available = dict(
                zip(
                    (target.source_path for target in targets),
                    executor.map(self.scan_target, targets),
                )
            )

        prefixes = _artifact_prefixes(targets)
        pairs = [(phase, target) for phase in phases if not phase.terminal for target in targets]
        if pairs:
            with ThreadPoolExecutor(max_workers=partition_worker_count(len(pairs))) as executor:
                futures = [
                    executor.submit(
                        self.partition_pair,
                        phase,
                        target,
                        available[target.source_path],
                        table,
                        prefixes[target.source_path],
                    )
                    for phase, target in pairs
                ]
                for future in as_completed(futures):
                    future.result()

        eligible = set()
        for target in targets:
            remaining = len(available[target.source_path])
            if remaining:
                eligible.add(target.source_path)
                logging.info(_("%d file(s) of %s left for the terminal phase"), remaining, target.name)
            else:
                logging.info(_("Every file of %s was claimed by a phase filter"), target.name)
        logging.debug("--- Phase filter rebuilding")
        return PartitionOutcome(table, frozenset(eligible))

    def scan_target(self, target: Target) -> AvailableFileSet:
        files = AvailableFileSet(iter_files(target.source_path))
        logging.debug("Found %d file(s) in %s", len(files), target.source_path)
        return files

    def match_pattern(self, target: Target, pattern: str) -> list[str]:
        subdirectory, name_pattern = split_pattern(pattern)
        if not name_pattern:
            return []

        root = target.source_path
        if subdirectory:
            root = os.path.join(target.source_path, subdirectory)
            if not os.path.isdir(root):
                logging.debug("Filter %s skipped, no %s under %s", pattern, subdirectory, target)
                return []

        matcher = name_pattern.casefold()
        try:
            return [
                path
                for path in iter_files(root, strict=True)
                if fnmatch.fnmatchcase(os.path.basename(path).casefold(), matcher)
            ]
        except (OSError, ValueError) as exc:
            raise PartitionMatchError(pattern, target.source_path, exc) from exc

    def partition_pair(
        self,
        phase: Phase,
        target: Target,
        available: AvailableFileSet,
        table: PartitionTable,
        prefix: Optional[str] = None,
    ) -> Optional[str]:
        patterns = list(self.patterns.get(phase.name, ()))
        if phase.terminal or not patterns:
            return None

        logging.debug("Phase %s filter rebuild: %s", phase.name, target.name)
        claims: list[Optional[str]] = [None] * len(patterns)

        def _claim(index: int, pattern: str) -> None:
            try:
                matches = self.match_pattern(target, pattern)
            except PartitionMatchError as exc:
                logging.error("%s", exc)
                return
            if not matches:
                return

            logging.info(_("Found files for filter: filter=%s, phase=%s, target=%s"), pattern, phase.name, target.name)
            claims[index] = os.path.join(target.name, pattern) if target.include_root else pattern
            available.remove_all(matches)

        with ThreadPoolExecutor(max_workers=pattern_worker_count(len(patterns))) as executor:
            list(executor.map(_claim, range(len(patterns)), patterns))

        lines = [claim for claim in claims if claim is not None]
        if not lines:
            return None

        file_prefix = prefix if prefix is not None else f"{target.name}."
        path = os.path.join(self.filter_folder, f"{file_prefix}{phase.name}{FILTER_LIST_SUFFIX}")
        try:
            os.makedirs(self.filter_folder, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as handle:
                handle.write("\n".join(lines) + "\n")
        except OSError as exc:
            logging.error(_("Cannot write filter list %s: %s"), path, exc)
            return None

        table.record(target, phase, path)
        return path
