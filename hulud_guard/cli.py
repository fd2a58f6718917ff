"""Argument parsing, logging setup and error handling shared by both commands."""
import argparse
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .catalog import IocCatalog, load_catalog
from .console import C_RED, paint, set_color, color_wanted
from .errors import HuludGuardError
from .findings import ScanResult
from .matcher import scan
from .probes import process_snapshot
from .report import build_result
from .walker import DEFAULT_MAX_DEPTH

LOGGER = logging.getLogger("hulud_guard")

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Project root to scan (default: current directory)",
    )
    parser.add_argument(
        "--home",
        default=None,
        help="Home directory to inspect (default: the current user's home)",
    )
    parser.add_argument(
        "--catalog",
        default=None,
        help="IoC catalog JSON file (default: $HULUD_GUARD_CATALOG or the bundled catalog)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f"Maximum directory depth to descend (default: {DEFAULT_MAX_DEPTH})",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colors (also honoured via NO_COLOR)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug details (skipped directories, malformed manifests) to stderr",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def prepare(args) -> IocCatalog:
    """Apply output settings and load the catalog."""
    setup_logging(args.verbose)
    set_color(color_wanted(args.no_color))
    if args.max_depth < 1:
        raise HuludGuardError("--max-depth must be at least 1")
    return load_catalog(args.catalog)


def resolve_roots(args):
    root = Path(args.root).resolve()
    if not root.is_dir():
        raise HuludGuardError(f"Root path does not exist: {root}")
    home = Path(args.home).expanduser().resolve() if args.home else Path.home()
    return root, home


def run_scan(catalog: IocCatalog, root: Path, home: Path, max_depth: int = DEFAULT_MAX_DEPTH) -> ScanResult:
    """One detection pass: probes, matcher and severity, frozen into a result."""
    findings = scan(
        catalog,
        project_root=root,
        home_dir=home,
        process_list=process_snapshot(),
        environ=os.environ,
        max_depth=max_depth,
    )
    return build_result(findings, catalog.version, project_root=root, home_dir=home)


def guarded(main_fn):
    """Run ``main_fn`` and turn failures into a diagnostic and exit status."""
    try:
        return main_fn()
    except KeyboardInterrupt:
        print("\n[!] Interrupted", file=sys.stderr)
        return 130
    except HuludGuardError as exc:
        print(paint(f"[!] {exc}", C_RED), file=sys.stderr)
        return 1
    except Exception as exc:
        LOGGER.debug("Unhandled error", exc_info=True)
        print(paint(f"[!] ERROR: {exc}", C_RED), file=sys.stderr)
        return 1
