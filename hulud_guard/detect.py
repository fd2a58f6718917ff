"""Detect-only pass: scan, classify and write a report. Never modifies anything."""
import argparse
import json
import logging
import time

from .cli import add_common_arguments, guarded, prepare, resolve_roots, run_scan
from .console import (
    C_BLUE,
    C_BOLD,
    C_CYAN,
    C_DIM,
    C_GREEN,
    C_RED,
    C_YELLOW,
    box,
    item,
    paint,
    rule,
    section_header,
)
from .findings import (
    CredentialExposure,
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    RunningProcess,
    ScanIncomplete,
    ScanResult,
    Severity,
)
from .report import DEFAULT_REPORT_NAME, to_dict, write_report

LOGGER = logging.getLogger(__name__)

SEVERITY_COLORS = {
    Severity.NONE: C_GREEN,
    Severity.LOW: C_CYAN,
    Severity.MEDIUM: C_YELLOW,
    Severity.HIGH: C_YELLOW,
    Severity.CRITICAL: C_RED,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hulud-detect",
        description="Scan this host for Shai-Hulud v2 indicators of compromise (read-only).",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON instead of the human-readable summary",
    )
    parser.add_argument(
        "--report",
        default=DEFAULT_REPORT_NAME,
        help=f"Where to write the JSON report (default: ./{DEFAULT_REPORT_NAME})",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Do not write a report file",
    )
    parser.add_argument(
        "--fail-on",
        type=Severity.parse,
        default=None,
        metavar="SEVERITY",
        help="Exit with status 2 when severity reaches this level (low, medium, high, critical)",
    )
    return parser


def print_findings(result: ScanResult):
    files = result.of_type(MaliciousFile)
    print(section_header("Malicious Files"))
    for f in files:
        print(item(f.path, "✗", C_RED))
    if not files:
        print(item("No malicious files detected", "✓", C_GREEN))

    dirs = result.of_type(MaliciousDirectory)
    print(section_header("Malicious Directories"))
    for d in dirs:
        print(item(d.path, "✗", C_RED))
    if not dirs:
        print(item("No malicious directories detected", "✓", C_GREEN))

    packages = result.of_type(InfectedPackage)
    print(section_header("NPM Packages"))
    print(paint(f"  Scanning: {result.project_root}", C_BLUE))
    for pkg in packages:
        label = f"{pkg.package_name}@{pkg.version}" if pkg.version else pkg.package_name
        if pkg.script_confirmed:
            print(item(f"INFECTED: {label}", "✗", C_RED))
            print(paint(f"    Script: {pkg.script}", C_YELLOW))
        else:
            print(item(f"SUSPICIOUS: {label}", "⚠", C_YELLOW))
        if pkg.files:
            print(paint(f"    Files: {', '.join(pkg.files)}", C_YELLOW))
        print(paint(f"    {pkg.manifest_path}", C_DIM))
    if not packages:
        print(item("No suspicious packages detected", "✓", C_GREEN))

    processes = result.of_type(RunningProcess)
    print(section_header("Malicious Processes"))
    for p in processes:
        print(item(f"{p.pattern} process is running", "✗", C_RED))
    for incomplete in result.of_type(ScanIncomplete):
        print(item(f"Unable to scan {incomplete.probe}: {incomplete.detail}", "⚠", C_YELLOW))
    if not processes and not result.of_type(ScanIncomplete):
        print(item("No malicious processes detected", "✓", C_GREEN))

    creds = result.of_type(CredentialExposure)
    print(section_header("Credential Exposure"))
    if creds:
        print(paint("  ⚠ Credentials detected (potential targets):", C_YELLOW))
        for c in creds:
            print(item(c.description, "•", C_YELLOW, indent=4))
        if result.severity is Severity.CRITICAL:
            print(item("CRITICAL: Credentials may have been compromised!", "✗", C_RED))
    else:
        print(item("No obvious credential exposure", "✓", C_GREEN))

    print(section_header("GitHub Exfiltration Repository Check"))
    print(paint('  Manual: Search GitHub for "Sha1-Hulud: The Second Coming."', C_CYAN))


def print_summary(result: ScanResult, report_path=None, report_requested=False):
    color = SEVERITY_COLORS[result.severity]
    print()
    if result.severity is Severity.NONE:
        print(box(paint("✓  NO SHAI-HULUD INDICATORS DETECTED", C_BOLD), color))
    elif result.severity is Severity.CRITICAL:
        print(box(paint("☠  SHAI-HULUD DETECTED", C_BOLD), color))
    else:
        print(box(paint("⚠  SUSPICIOUS ACTIVITY FOUND", C_BOLD), color))

    print(f"\n  {paint('Severity:', C_BOLD)} {paint(result.severity.label.upper(), color)}")
    print(f"  {paint('Catalog:', C_DIM)} {result.catalog_version}\n")

    counts = result.counts()
    for label, kind in (
        ("Files", MaliciousFile.kind),
        ("Directories", MaliciousDirectory.kind),
        ("Packages", InfectedPackage.kind),
        ("Processes", RunningProcess.kind),
        ("Credentials", CredentialExposure.kind),
    ):
        count = counts[kind]
        if count:
            print(item(f"{label}: {count}", "✗", C_RED))
        else:
            print(item(f"{label}: {count}", "✓", C_GREEN))
    print()

    if result.severity is Severity.CRITICAL:
        print(paint("  ⚠ SYSTEM INFECTED - Take immediate action", C_RED))
        print(paint("  ⚠ Do NOT revoke tokens before cleanup", C_YELLOW))
        print(paint("  → Run: hulud-cleanup", C_CYAN))
    elif result.severity is not Severity.NONE:
        print(paint("  ⚠ Suspicious activity detected", C_YELLOW))
        print(paint("  → Review the packages above, then run: hulud-cleanup", C_CYAN))
    else:
        print(paint("  This is NOT a guarantee of safety.", C_DIM))

    if report_path is not None:
        print(paint(f"\n  Report: {report_path}", C_BLUE))
    elif report_requested:
        print(paint("\n  Report not written (see warning above)", C_YELLOW))
    print(rule())


def save_report(result: ScanResult, path):
    try:
        return write_report(result, path)
    except OSError as exc:
        LOGGER.warning("Report not written to %s: %s", path, exc.strerror or exc)
        return None


def run(argv=None) -> int:
    args = build_parser().parse_args(argv)
    catalog = prepare(args)
    root, home = resolve_roots(args)

    if not args.json:
        print(rule())
        print(paint("  Shai-Hulud v2 Malware Detector", C_BOLD))
        print(rule())
        print(paint("\n[!] WARNING: Dead man's switch present - do NOT revoke tokens before cleanup", C_YELLOW))
        print(f"[*] Scanning {root} for Shai-Hulud indicators...")

    started = time.monotonic()
    result = run_scan(catalog, root, home, max_depth=args.max_depth)
    duration = time.monotonic() - started

    if args.json:
        print(json.dumps(to_dict(result), indent=2))
    else:
        print_findings(result)
        print(paint(f"\n  Completed in {duration:.2f}s", C_BLUE))

    # Findings are already on screen; a failed write must not hide them
    report_path = None
    if not args.no_report:
        report_path = save_report(result, args.report)

    if not args.json:
        print_summary(result, report_path, report_requested=not args.no_report)

    if args.fail_on is not None and result.severity >= args.fail_on:
        return 2
    return 0


def main(argv=None) -> int:
    return guarded(lambda: run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
