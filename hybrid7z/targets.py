import logging
import os
from typing import Iterable, Optional

from .i18n import _
from .models import Target

SPEC_SEPARATOR = "|"


def _field(parts: list[str], index: int, strip: bool = True) -> Optional[str]:
    if len(parts) <= index:
        return None
    value = parts[index].strip() if strip else parts[index]
    return value or None


def parse_target_spec(spec: str, include_root: bool) -> Optional[Target]:
    # <source>|<destination>|<password>
    parts = spec.split(SPEC_SEPARATOR, 2)
    source = (_field(parts, 0) or "").strip('"')
    if not source:
        return None

    if os.path.isdir(source):
        path = os.path.abspath(source)
        if os.path.dirname(path) == path:
            logging.warning(_("Filesystem roots cannot be archived: %s"), path)
            return None
        logging.info(_("Found source directory: %s"), path)
        return Target(path, include_root, _field(parts, 1), _field(parts, 2, strip=False))
    if os.path.exists(source):
        logging.warning(_("Files are not supported (only directories are supported): %s"), source)
    else:
        logging.warning(_("Filesystem entry does not exist: %s"), source)
    return None


def parse_target_specs(specs: Iterable[str], include_root: bool) -> list[Target]:
    logging.debug("+++ Querying targets")
    targets: list[Target] = []
    seen: set[str] = set()
    for spec in specs:
        target = parse_target_spec(spec, include_root)
        if target is None:
            continue
        key = os.path.normcase(target.source_path)
        if key in seen:
            logging.warning(_("Duplicate target ignored: %s"), target.source_path)
            continue
        seen.add(key)
        targets.append(target)
    logging.debug("--- Querying targets")
    return targets


def read_batch_file(path: str) -> list[str]:
    with open(path, "r", encoding="utf-8-sig") as handle:
        return [line.strip() for line in handle if line.strip()]
