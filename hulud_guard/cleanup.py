"""Guided cleanup: re-scan, then remediate step by step with confirmations."""
import argparse

from .cli import add_common_arguments, guarded, prepare, resolve_roots, run_scan
from .console import C_BOLD, C_CYAN, C_GREEN, C_RED, C_YELLOW, ConsoleOperator, item, paint, rule
from .probes import DEFAULT_INSTALLER
from .remediation import Outcome, RemediationSequencer

SAFETY_WARNINGS = (
    "This cleanup process is designed to prevent the dead man's switch",
    "DO NOT manually revoke tokens until cleanup is complete",
    "DO NOT delete exfiltration repos until cleanup is complete",
    "Follow all steps in order",
)

OUTCOME_MARKS = {
    Outcome.SUCCESS: ("✓", C_GREEN),
    Outcome.SKIPPED: ("-", C_YELLOW),
    Outcome.PARTIAL_FAILURE: ("⚠", C_YELLOW),
    Outcome.FAILED: ("✗", C_RED),
    Outcome.PENDING: ("?", C_RED),
    Outcome.APPROVED: ("?", C_RED),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hulud-cleanup",
        description="Remove Shai-Hulud v2 artifacts in a safe order, confirming every destructive step.",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--installer",
        default=DEFAULT_INSTALLER,
        help=f'Command used to reinstall dependencies (default: "{DEFAULT_INSTALLER}")',
    )
    return parser


def print_outcomes(steps):
    print()
    print(rule())
    print(paint("  CLEANUP SUMMARY", C_BOLD))
    print(rule())
    print()
    for step in steps:
        mark, color = OUTCOME_MARKS[step.outcome]
        detail = f" ({step.detail})" if step.detail else ""
        print(item(f"Step {step.number}: {step.title}: {step.outcome.value}{detail}", mark, color))


def run(argv=None, operator=None) -> int:
    args = build_parser().parse_args(argv)
    catalog = prepare(args)
    root, home = resolve_roots(args)
    operator = operator or ConsoleOperator()

    print(rule())
    print(paint("  Shai-Hulud v2 Malware Cleanup", C_BOLD))
    print(paint("  Safe Remediation Process", C_CYAN))
    print(rule())
    print(paint("\n[!] SAFETY WARNINGS", C_RED))
    for number, warning in enumerate(SAFETY_WARNINGS, 1):
        print(paint(f"{number}. {warning}", C_YELLOW))
    print()

    if not operator.confirm("Have you read and understood the warnings above?"):
        print(paint("\nCleanup cancelled. Please review the warnings before proceeding.", C_YELLOW))
        return 0

    print(f"[*] Re-scanning {root} before cleanup...")
    result = run_scan(catalog, root, home, max_depth=args.max_depth)
    print(f"[*] Severity: {result.severity.label.upper()}, {len(result.findings)} finding(s)")

    sequencer = RemediationSequencer(
        result,
        catalog,
        operator,
        installer_command=args.installer,
    )
    steps = sequencer.run()
    print_outcomes(steps)

    print()
    if sequencer.complete:
        print(paint("  NEXT STEPS:", C_YELLOW))
        print(item("Malware cleaned", "1. ✓", C_GREEN))
        print(item("Rotate all credentials NOW", "2. →", C_YELLOW))
        print(item("Delete exfiltration repos", "3. →", C_YELLOW))
        print(item("Monitor for unauthorized access", "4. →", C_YELLOW))
        print(paint("\n  ✓ Safe to proceed with credential revocation", C_GREEN))
    else:
        print(paint("  ⚠ Cleanup incomplete - re-run hulud-detect before revoking any credentials", C_RED))
    print(rule())
    return 0


def main(argv=None) -> int:
    return guarded(lambda: run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
