import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from ..errors import PatternFileError
from ..i18n import _
from ..models import Phase, trim_leading_separators

PATTERN_FILE_SUFFIX = ".txt"
COMMENT_MARKER = "//"


def parse_pattern_lines(lines: Iterable[str]) -> list[str]:
    patterns: list[str] = []
    for line in lines:
        content = line.split(COMMENT_MARKER, 1)[0]
        if not content.strip():
            continue
        pattern = trim_leading_separators(content.strip())
        if pattern:
            patterns.append(pattern)
    return patterns


class FilterCatalog:
    """Per-phase glob patterns read from ``<filter_folder>/<phase>.txt``.

    A missing or unreadable pattern file is not fatal: the phase simply claims
    nothing explicitly, which leaves its files to the terminal phase.
    """

    def __init__(self, filter_folder: str) -> None:
        self.filter_folder = filter_folder

    def pattern_file(self, phase_name: str) -> str:
        return os.path.join(self.filter_folder, phase_name + PATTERN_FILE_SUFFIX)

    def _read(self, path: str) -> list[str]:
        try:
            with open(path, "r", encoding="utf-8-sig") as handle:
                return parse_pattern_lines(handle)
        except (OSError, UnicodeDecodeError) as exc:
            raise PatternFileError(path, exc) from exc

    def load(self, phase_name: str) -> list[str]:
        path = self.pattern_file(phase_name)
        if not os.path.isfile(path):
            logging.warning(_("Phase filter file not found: %s"), path)
            return []

        try:
            patterns = self._read(path)
        except PatternFileError as exc:
            logging.warning("%s", exc)
            return []

        logging.info(_("Parsed %d filter(s) for phase %s from %s"), len(patterns), phase_name, path)
        for pattern in patterns:
            logging.debug("  [%s] %s", phase_name, pattern)
        return patterns

    def load_all(self, phases: Iterable[Phase]) -> dict[str, list[str]]:
        names = [phase.name for phase in phases if not phase.terminal]
        if not names:
            return {}

        with ThreadPoolExecutor(max_workers=len(names)) as executor:
            loaded = list(executor.map(self.load, names))
        return dict(zip(names, loaded))
