"""Reduce a finding set to one severity level."""
from .findings import (
    CredentialExposure,
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    RunningProcess,
    ScanIncomplete,
    Severity,
)


def finding_severity(finding) -> Severity:
    """Severity contributed by a single finding."""
    if isinstance(finding, (MaliciousFile, MaliciousDirectory, RunningProcess)):
        return Severity.CRITICAL
    if isinstance(finding, InfectedPackage):
        return Severity.CRITICAL if finding.script_confirmed else Severity.HIGH
    if isinstance(finding, (CredentialExposure, ScanIncomplete)):
        # Risk factors only; they never establish an infection on their own
        return Severity.NONE
    raise TypeError(f"unknown finding type: {type(finding).__name__}")


def aggregate(findings) -> Severity:
    """Highest severity wins; an empty set is NONE."""
    return max((finding_severity(f) for f in findings), default=Severity.NONE)
