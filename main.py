import argparse
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from textwrap import dedent
from typing import Optional, Sequence

from colorama import Fore, Style, init

from hybrid7z import (
    ConfigLoadError,
    compress_targets,
    load_config_with_fallback,
    parse_target_specs,
    print_compression_summary,
    read_batch_file,
    set_worker_cap,
)
from hybrid7z.config import (
    DEFAULT_CONFIG_FILE_NAME,
    DEFAULT_FILTER_FOLDER,
    DEFAULT_LOG_FILE_NAME,
    resolve_path,
)
from hybrid7z.console import display_banner, prompt_exit
from hybrid7z.i18n import _, app_root, load_translations

VERSION = "0.11.0"

LOG_FILE_MAX_BYTES = 256 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def setup_logging(verbosity: int, log_file: Optional[str] = None) -> None:
    debug_enabled = verbosity >= 2

    class _Formatter(logging.Formatter):
        def __init__(self, debug: bool) -> None:
            super().__init__()
            self._debug = debug

        def format(self, record: logging.LogRecord) -> str:
            if record.levelno == logging.DEBUG:
                if self._debug:
                    return f"DEBUG: {record.getMessage()}"
                return ""
            if record.levelno == logging.INFO:
                return record.getMessage()
            color = Fore.RED if record.levelno >= logging.ERROR else Fore.YELLOW
            return color + f"{record.levelname}: {record.getMessage()}" + Style.RESET_ALL

    handler = logging.StreamHandler()
    handler.setFormatter(_Formatter(debug_enabled))
    handler.setLevel(logging.DEBUG if debug_enabled else logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    if log_file:
        try:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        except OSError as exc:
            logging.warning("Logger file creation failure: %s", exc)
            return
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(threadName)s %(message)s")
        )
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)


def _detect_language_override(argv: Sequence[str]) -> Optional[str]:
    for i, arg in enumerate(argv):
        if arg in ("--language", "-l") and i + 1 < len(argv):
            return argv[i + 1]
        if arg.startswith("--language="):
            return arg.split("=", 1)[1]
    return None


def build_parser() -> argparse.ArgumentParser:
    description = dedent(
        _("""
        Hybrid7z archives every target folder through an ordered list of 7-Zip
        phases. Each phase claims the files matching its filter list, and the
        last phase picks up whatever is left.
        """)
    ).strip()

    epilog = dedent(
        """
        Examples:
          python main.py D:\\Games\\Foo                     Archive one folder
          python main.py "D:\\Foo|E:\\Foo.7z|secret"         Custom destination and password
          python main.py -b batch.txt -y                  Batch file, no final pause

        Batch file lines use the same format: <source>|<destination>|<password>
        """
    ).rstrip()

    parser = argparse.ArgumentParser(
        prog="hybrid7z",
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "targets",
        nargs="*",
        help=_("Target directories, or <source>|<destination>|<password> triples"),
    )
    parser.add_argument(
        "-b",
        "--batch",
        dest="batch_file",
        help=_("Read additional targets from a batch file, one per line"),
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_file",
        help=_("Configuration file (default: {name} next to the program)").format(name=DEFAULT_CONFIG_FILE_NAME),
    )
    parser.add_argument(
        "--log-dir",
        dest="log_folder",
        help=_("Folder for archiver output logs (created if missing)"),
    )
    parser.add_argument(
        "--filter-dir",
        dest="filter_folder",
        help=_("Folder holding the phase filter lists (default: {name})").format(name=DEFAULT_FILTER_FOLDER),
    )
    parser.add_argument(
        "-y",
        "--no-pause",
        action="store_true",
        help=_("Skip all pause points"),
    )
    parser.add_argument(
        "-s",
        "--single-worker",
        action="store_true",
        help=_("Throttle partitioning and parallel phases to a single worker"),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help=_("Increase logging verbosity"),
    )
    parser.add_argument(
        "-l",
        "--language",
        help=_("Force a specific language (e.g., 'en', 'ko')"),
    )
    return parser


def _collect_target_specs(args: argparse.Namespace) -> list[str]:
    specs = list(args.targets)
    if args.batch_file:
        try:
            specs.extend(read_batch_file(args.batch_file))
        except OSError as exc:
            logging.error(_("Cannot read batch file %s: %s"), args.batch_file, exc)
    return specs


def run(args: argparse.Namespace, base_dir: str) -> int:
    config_path = args.config_file or os.path.join(base_dir, DEFAULT_CONFIG_FILE_NAME)
    config = load_config_with_fallback(config_path)

    log_folder = args.log_folder or resolve_path(config.log_folder, base_dir)
    filter_folder = args.filter_folder or os.path.join(base_dir, DEFAULT_FILTER_FOLDER)

    targets = parse_target_specs(_collect_target_specs(args), config.include_root_folder)
    if not targets:
        logging.error(_("No target supplied."))
        return 1

    summary = compress_targets(
        targets,
        config,
        filter_folder=filter_folder,
        log_folder=log_folder,
    )
    print_compression_summary(summary.aggregator, targets)
    summary.monitor.print_summary()

    if summary.failed:
        logging.warning(_("At least one error/warning occurred during the progress."))
        return 1

    logging.info(_("DONE: All files are successfully processed without any error(s)."))
    return 0


def main() -> None:
    override_lang = _detect_language_override(sys.argv[1:])
    load_translations(override_lang)

    init(autoreset=True)
    display_banner(VERSION)

    args = build_parser().parse_args(sys.argv[1:])

    base_dir = app_root()
    setup_logging(args.verbose, os.path.join(base_dir, DEFAULT_LOG_FILE_NAME))
    logging.debug("Hybrid7z v%s started on %s", VERSION, datetime.now().isoformat(timespec="seconds"))

    set_worker_cap(1 if args.single_worker else None)

    try:
        status = run(args, base_dir)
    except ConfigLoadError as exc:
        logging.critical(_("Configuration could not be loaded: %s"), exc)
        status = 1
    except KeyboardInterrupt:
        print(Fore.CYAN + _("\nOperation cancelled by user.") + Style.RESET_ALL)
        sys.exit(130)
    except Exception:
        logging.critical(_("Unhandled exception caught! Please report to the author."), exc_info=True)
        status = 1

    logging.shutdown()
    prompt_exit(args.no_pause)
    sys.exit(status)


if __name__ == "__main__":
    main()
