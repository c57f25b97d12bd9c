import logging
import os
import shlex
import subprocess
import threading
from datetime import datetime
from typing import IO, Optional, Sequence

from .errors import ArchiverExitError, ArchiverLaunchError
from .i18n import _
from .models import Phase, Target

LAUNCH_FAILED = -1

STDOUT_LOG_NAME = "{timestamp:%Y-%m-%d_%H-%M-%S-%f}-{pid}_{phase}({target})-STDOUT.log"
STDERR_LOG_NAME = "{timestamp:%Y-%m-%d_%H-%M-%S-%f}-{pid}_{phase}({target})-STDERR.log"

EXIT_CODE_DESCRIPTIONS = {
    1: "Non-fatal warning(s)",
    2: "Fatal error",
    7: "Command-line error",
    8: "Not enough memory for operation",
    255: "User stopped the process",
}


def describe_exit_code(exit_code: int) -> str:
    if exit_code == 0:
        return "No error"
    if exit_code == LAUNCH_FAILED:
        return "Archiver could not be started"
    return EXIT_CODE_DESCRIPTIONS.get(exit_code, "Unknown error")


def split_parameters(parameters: str, posix: Optional[bool] = None) -> list[str]:
    """Split a parameter string into arguments.

    On Windows backslashes are path separators, so the string is split
    without POSIX escapes and only whole-token quotes are removed.
    """
    if not parameters:
        return []
    if posix is None:
        posix = os.name != "nt"
    tokens = shlex.split(parameters, posix=posix)
    if posix:
        return tokens
    return [
        token[1:-1] if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'" else token
        for token in tokens
    ]


class ArchiverInvoker:
    """Runs one archiver subprocess for one (phase, target) pair.

    Standard output and standard error are drained concurrently into memory and
    flushed to per-invocation log files once the process exits.
    """

    def __init__(self, log_folder: str, global_parameters: str = "") -> None:
        self.log_folder = log_folder
        self.global_parameters = global_parameters

    def build_command(self, phase: Phase, extra_args: Sequence[str]) -> list[str]:
        return [
            phase.executable,
            *split_parameters(self.global_parameters),
            *split_parameters(phase.parameters),
            *extra_args,
        ]

    def _spawn(self, command: list[str], cwd: str) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise ArchiverLaunchError(command[0], exc) from exc

    def run(self, phase: Phase, target: Target, extra_args: Sequence[str]) -> int:
        command = self.build_command(phase, extra_args)
        cwd = target.working_directory
        started = datetime.now()

        logging.debug(
            "Running archiver %s with working directory %s with arguments %s",
            command[0],
            cwd,
            command[1:],
        )

        try:
            process = self._spawn(command, cwd)
        except ArchiverLaunchError as exc:
            logging.error(_("[%s] %s: %s"), phase.name, target.name, exc)
            return LAUNCH_FAILED

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        readers = [
            threading.Thread(target=_drain, args=(process.stdout, stdout_lines, "STDOUT"), daemon=True),
            threading.Thread(target=_drain, args=(process.stderr, stderr_lines, "STDERR"), daemon=True),
        ]
        for reader in readers:
            reader.start()

        exit_code = process.wait()
        for reader in readers:
            reader.join()

        fields = {"timestamp": started, "pid": process.pid, "phase": phase.name, "target": target.name}
        try:
            self.write_stream_log(STDOUT_LOG_NAME.format(**fields), stdout_lines, "STDOUT")
            self.write_stream_log(STDERR_LOG_NAME.format(**fields), stderr_lines, "STDERR")
        except OSError as exc:
            logging.error(_("Exception during writing archiver log files: %s"), exc)

        if exit_code != 0:
            error = ArchiverExitError(phase.name, target.source_path, exit_code, describe_exit_code(exit_code))
            logging.warning("%s", error)
        return exit_code

    def write_stream_log(self, file_name: str, lines: list[str], display_name: str) -> Optional[str]:
        if not lines:
            return None

        os.makedirs(self.log_folder, exist_ok=True)
        path = os.path.join(self.log_folder, file_name)
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.writelines(lines)
        logging.debug("[%s] %s", display_name, path)
        return path


def _drain(stream: Optional[IO[str]], buffer: list[str], label: str) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            if not line.rstrip("\r\n"):
                continue
            buffer.append(line if line.endswith("\n") else line + "\n")
            logging.debug("[%s] %s", label, line.rstrip("\r\n"))
