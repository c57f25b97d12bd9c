import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

ARCHIVE_SUFFIX = ".7z"


class ConcurrencyClass(Enum):
    # One archiver per target, all targets at once
    EMBARRASSINGLY_PARALLEL = "parallel"
    # Archiver spawns many threads itself; one target at a time
    EXCLUSIVE_RESOURCE = "exclusive"


def trim_trailing_separators(path: str) -> str:
    trimmed = path.rstrip("\\/")
    return trimmed or path


def trim_leading_separators(path: str) -> str:
    return path.lstrip("\\/")


@dataclass(frozen=True)
class Target:
    source_path: str
    include_root: bool = False
    destination: Optional[str] = None
    password: Optional[str] = None

    @property
    def name(self) -> str:
        return os.path.basename(trim_trailing_separators(self.source_path))

    @property
    def parent(self) -> str:
        return os.path.dirname(trim_trailing_separators(self.source_path))

    @property
    def working_directory(self) -> str:
        # Decides whether the target folder itself is recorded inside the archive
        return self.parent if self.include_root else self.source_path

    def archive_path(self) -> str:
        if self.destination:
            if os.path.isabs(self.destination):
                return self.destination
            return os.path.normpath(os.path.join(self.parent, self.destination))
        return os.path.join(self.parent, self.name + ARCHIVE_SUFFIX)

    def password_argument(self, parameter_format: str) -> Optional[str]:
        if self.password is None:
            return None
        return parameter_format.format(password=self.password)

    def __str__(self) -> str:
        return self.source_path


@dataclass(frozen=True)
class Phase:
    name: str
    index: int
    terminal: bool
    concurrency: ConcurrencyClass
    executable: str
    parameters: str = ""

    @property
    def parallel(self) -> bool:
        return self.concurrency is ConcurrencyClass.EMBARRASSINGLY_PARALLEL
