import argparse
import logging
import sys
from pathlib import Path

from core import DesktopFile, DesktopFileError, default_application_paths
from execline import ExecError

logger = logging.getLogger(__name__)

DESKTOP_SUFFIXES = (".desktop", ".directory")


def iter_desktop_files(directories):
    for directory in directories:
        base = Path(directory)
        if not base.is_dir():
            logger.debug("Skipping missing directory %s", base)
            continue
        for path in sorted(base.rglob("*")):
            if path.is_file() and path.suffix in DESKTOP_SUFFIXES:
                yield path


def check_desktop_file(path):
    desktop_file = DesktopFile.from_file(path)
    if desktop_file.exec_value():
        desktop_file.expand_exec()
    for action in desktop_file.by_action():
        if action.exec_value():
            action.expand_exec()
    return desktop_file


def scan_directories(directories, verbose=False, report=None):
    if report is None:
        report = sys.stderr
    checked = 0
    failures = 0
    for path in iter_desktop_files(directories):
        if verbose:
            print(path)
        checked += 1
        try:
            check_desktop_file(path)
        except DesktopFileError as exc:
            failures += 1
            if exc.line_number:
                print(f"Error reading {path}: at {exc.line_number}: {exc}", file=report)
            else:
                print(f"Error reading {path}: {exc}", file=report)
        except ExecError as exc:
            failures += 1
            print(f"Error while expanding Exec value of {path}: {exc}", file=report)
        except OSError as exc:
            failures += 1
            print(f"Error reading {path}: {exc}", file=report)
    logger.info("Checked %d desktop files, %d failed", checked, failures)
    return checked, failures


def build_parser():
    parser = argparse.ArgumentParser(
        description="Parse every desktop entry under the given directories and expand its Exec value."
    )
    parser.add_argument("directories", nargs="*", help="Directories to scan (default: application directories)")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print name of each examined desktop file to standard output",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    directories = args.directories or default_application_paths()
    print(f"Using directories: {', '.join(directories)}")
    _, failures = scan_directories(directories, args.verbose)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
