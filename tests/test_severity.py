"""Tests for severity aggregation."""
import itertools

import pytest

from hulud_guard.findings import (
    CredentialExposure,
    FilesPresent,
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    PreinstallScript,
    RunningProcess,
    ScanIncomplete,
    Severity,
)
from hulud_guard.severity import aggregate

SCRIPT_PACKAGE = InfectedPackage("/p/a/package.json", "a", "1.0.0", (PreinstallScript("node setup_bun.js"),))
FILES_PACKAGE = InfectedPackage("/p/b/package.json", "b", "1.0.0", (FilesPresent(("setup_bun.js",)),))
EXPOSURE = CredentialExposure("credential variable NPM_TOKEN set in environment")
INCOMPLETE = ScanIncomplete("processes", "ps not available")

CRITICAL_TIER = [
    MaliciousFile("/home/u/.truffler-cache/trufflehog"),
    MaliciousDirectory("/home/u/.truffler-cache"),
    RunningProcess("trufflehog"),
    SCRIPT_PACKAGE,
]


def test_empty_is_none():
    assert aggregate([]) is Severity.NONE


@pytest.mark.parametrize("finding", CRITICAL_TIER)
def test_critical_tier(finding):
    assert aggregate([finding]) is Severity.CRITICAL


def test_files_only_package_is_high():
    assert aggregate([FILES_PACKAGE]) is Severity.HIGH


def test_exposure_alone_stays_none():
    assert aggregate([EXPOSURE, INCOMPLETE]) is Severity.NONE


def test_exposure_does_not_lift_high():
    assert aggregate([FILES_PACKAGE, EXPOSURE]) is Severity.HIGH


def test_merged_package_is_critical():
    assert aggregate([SCRIPT_PACKAGE.merged_with(FILES_PACKAGE)]) is Severity.CRITICAL


def test_order_does_not_matter():
    findings = [FILES_PACKAGE, EXPOSURE, RunningProcess("trufflehog")]
    results = {aggregate(p) for p in itertools.permutations(findings)}
    assert results == {Severity.CRITICAL}


@pytest.mark.parametrize("base", [[], [EXPOSURE], [FILES_PACKAGE], [FILES_PACKAGE, INCOMPLETE]])
@pytest.mark.parametrize("extra", CRITICAL_TIER)
def test_adding_critical_never_decreases(base, extra):
    before = aggregate(base)
    after = aggregate(base + [extra])
    assert after >= before
    assert after is Severity.CRITICAL


def test_unknown_finding_rejected():
    with pytest.raises(TypeError):
        aggregate([object()])


def test_severity_parse():
    assert Severity.parse("High") is Severity.HIGH
    with pytest.raises(ValueError):
        Severity.parse("extreme")
