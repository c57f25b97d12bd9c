from typing import Optional


class Hybrid7zError(Exception):
    pass


class ConfigLoadError(Hybrid7zError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PatternFileError(Hybrid7zError):
    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        message = f"Cannot read phase filter file {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.path = path


class PartitionMatchError(Hybrid7zError):
    def __init__(self, pattern: str, target: str, cause: BaseException) -> None:
        super().__init__(f"Failed to match filter {pattern!r} under {target}: {cause}")
        self.pattern = pattern
        self.target = target


class ArchiverLaunchError(Hybrid7zError):
    def __init__(self, executable: str, cause: BaseException) -> None:
        super().__init__(f"Failed to start archiver {executable!r}: {cause}")
        self.executable = executable


# Describes a non-zero exit; logged, never raised.
class ArchiverExitError(Hybrid7zError):
    def __init__(self, phase: str, target: str, exit_code: int, description: str) -> None:
        super().__init__(
            f"Archiver exited with code {exit_code} ({description}) during phase {phase} for {target}"
        )
        self.phase = phase
        self.target = target
        self.exit_code = exit_code
        self.description = description
