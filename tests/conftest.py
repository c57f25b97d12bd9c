"""Shared fixtures: throwaway directory trees, phase factories and a fake archiver."""

import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pytest

from hybrid7z.models import ConcurrencyClass, Phase, Target
from hybrid7z.workers import set_worker_cap


@pytest.fixture(autouse=True)
def reset_worker_cap():
    yield
    set_worker_cap(None)


def make_tree(root: Path, files: dict) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def make_phase(name: str, index: int, *, parallel: bool, terminal: bool = False, executable: str = "7z", parameters: str = "") -> Phase:
    concurrency = ConcurrencyClass.EMBARRASSINGLY_PARALLEL if parallel else ConcurrencyClass.EXCLUSIVE_RESOURCE
    return Phase(name, index, terminal, concurrency, executable, parameters)


def write_filters(folder: Path, patterns: dict) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    for phase_name, lines in patterns.items():
        (folder / f"{phase_name}.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return folder


class RecordingInvoker:
    def __init__(
        self,
        exit_codes: Optional[dict] = None,
        delay: float = 0.0,
        hook: Optional[Callable[[Phase, Target], None]] = None,
    ) -> None:
        self.exit_codes = exit_codes or {}
        self.delay = delay
        self.hook = hook
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def run(self, phase, target, extra_args):
        started = time.monotonic()
        if self.hook:
            self.hook(phase, target)
        if self.delay:
            time.sleep(self.delay)
        finished = time.monotonic()
        with self._lock:
            self.calls.append(
                {
                    "phase": phase.name,
                    "target": target.name,
                    "args": list(extra_args),
                    "start": started,
                    "end": finished,
                }
            )
        return self.exit_codes.get((phase.name, target.name), 0)

    def pairs(self) -> list[tuple[str, str]]:
        return [(call["phase"], call["target"]) for call in self.calls]

    def args_for(self, phase_name: str, target_name: str) -> list[str]:
        for call in self.calls:
            if call["phase"] == phase_name and call["target"] == target_name:
                return call["args"]
        raise KeyError((phase_name, target_name))


@pytest.fixture
def standard_phases() -> list[Phase]:
    return [
        make_phase("PPMd", 0, parallel=True),
        make_phase("Copy", 1, parallel=True),
        make_phase("LZMA2", 2, parallel=False, terminal=True),
    ]


@pytest.fixture
def sample_target(tmp_path: Path) -> Target:
    root = make_tree(tmp_path / "data", {"a.txt": "alpha", "b.bin": b"\x00\x01", "c.exe": b"MZ"})
    return Target(str(root))
