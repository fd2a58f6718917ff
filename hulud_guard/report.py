"""Detection report: assemble a ScanResult and convert it to/from JSON."""
import json
import logging
from pathlib import Path

from .errors import ReportError
from .findings import (
    CredentialExposure,
    FilesPresent,
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    PreinstallScript,
    RunningProcess,
    ScanIncomplete,
    ScanResult,
    Severity,
    utc_now,
)
from .severity import aggregate

LOGGER = logging.getLogger(__name__)

DEFAULT_REPORT_NAME = "detection-report.json"


def build_result(findings, catalog_version: str, project_root="", home_dir="", timestamp=None) -> ScanResult:
    """Freeze the findings of one pass together with their severity."""
    findings = tuple(findings)
    return ScanResult(
        findings=findings,
        severity=aggregate(findings),
        catalog_version=catalog_version,
        timestamp=timestamp or utc_now(),
        project_root=str(project_root),
        home_dir=str(home_dir),
    )


def finding_to_dict(finding) -> dict:
    if isinstance(finding, (MaliciousFile, MaliciousDirectory)):
        return {"type": finding.kind, "path": finding.path}
    if isinstance(finding, InfectedPackage):
        data = {
            "type": finding.kind,
            "manifestPath": finding.manifest_path,
            "packageName": finding.package_name,
            "version": finding.version,
            "reasons": [],
        }
        for reason in finding.reasons:
            if isinstance(reason, PreinstallScript):
                data["reasons"].append({"reason": "preinstall_script", "script": reason.script})
            else:
                data["reasons"].append({"reason": "files_present", "files": list(reason.files)})
        return data
    if isinstance(finding, RunningProcess):
        return {"type": finding.kind, "pattern": finding.pattern}
    if isinstance(finding, CredentialExposure):
        return {"type": finding.kind, "description": finding.description}
    if isinstance(finding, ScanIncomplete):
        return {"type": finding.kind, "probe": finding.probe, "detail": finding.detail}
    raise TypeError(f"unknown finding type: {type(finding).__name__}")


def _package_reason(data: dict):
    if data["reason"] == "preinstall_script":
        return PreinstallScript(data["script"])
    if data["reason"] == "files_present":
        return FilesPresent(tuple(data["files"]))
    raise ReportError(f"unknown package reason: {data['reason']!r}")


def finding_from_dict(data: dict):
    if not isinstance(data, dict):
        raise ReportError(f"finding is not an object: {data!r}")
    kind = data.get("type")
    try:
        if kind == MaliciousFile.kind:
            return MaliciousFile(data["path"])
        if kind == MaliciousDirectory.kind:
            return MaliciousDirectory(data["path"])
        if kind == InfectedPackage.kind:
            return InfectedPackage(
                manifest_path=data["manifestPath"],
                package_name=data["packageName"],
                version=data.get("version", ""),
                reasons=tuple(_package_reason(r) for r in data.get("reasons", [])),
            )
        if kind == RunningProcess.kind:
            return RunningProcess(data["pattern"])
        if kind == CredentialExposure.kind:
            return CredentialExposure(data["description"])
        if kind == ScanIncomplete.kind:
            return ScanIncomplete(data["probe"], data.get("detail", ""))
    except (KeyError, TypeError) as exc:
        raise ReportError(f"malformed {kind} finding: {exc}") from exc
    raise ReportError(f"unknown finding type: {kind!r}")


def to_dict(result: ScanResult) -> dict:
    return {
        "timestamp": result.timestamp,
        "severity": result.severity.label,
        "catalogVersion": result.catalog_version,
        "projectRoot": result.project_root,
        "homeDir": result.home_dir,
        "summary": result.counts(),
        "findings": [finding_to_dict(f) for f in result.findings],
    }


def from_dict(data) -> ScanResult:
    if not isinstance(data, dict):
        raise ReportError("report root must be a JSON object")
    try:
        return ScanResult(
            findings=tuple(finding_from_dict(f) for f in data["findings"]),
            severity=Severity.parse(data["severity"]),
            catalog_version=data["catalogVersion"],
            timestamp=data["timestamp"],
            project_root=data.get("projectRoot", ""),
            home_dir=data.get("homeDir", ""),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ReportError(f"malformed report: {exc}") from exc


def dumps(result: ScanResult) -> str:
    return json.dumps(to_dict(result), indent=2)


def loads(text: str) -> ScanResult:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ReportError(f"report is not valid JSON: {exc}") from exc
    return from_dict(data)


def write_report(result: ScanResult, path) -> Path:
    path = Path(path)
    path.write_text(dumps(result) + "\n", encoding="utf-8")
    LOGGER.debug("Wrote detection report to %s", path)
    return path


def load_report(path) -> ScanResult:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ReportError(f"cannot read report {path}: {exc.strerror or exc}") from exc
    return loads(text)
