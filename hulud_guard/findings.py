"""Typed detection facts and the scan result that owns them."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import ClassVar, Union


class Severity(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, text: str) -> "Severity":
        try:
            return cls[text.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown severity: {text!r}") from None


@dataclass(frozen=True)
class PreinstallScript:
    """The manifest's preinstall script references a malicious payload."""
    script: str


@dataclass(frozen=True)
class FilesPresent:
    """Malicious payload files sit in the package directory."""
    files: tuple


PackageReason = Union[PreinstallScript, FilesPresent]


@dataclass(frozen=True)
class MaliciousFile:
    kind: ClassVar[str] = "malicious_file"
    path: str

    @property
    def key(self):
        return (self.kind, self.path)


@dataclass(frozen=True)
class MaliciousDirectory:
    kind: ClassVar[str] = "malicious_directory"
    path: str

    @property
    def key(self):
        return (self.kind, self.path)


@dataclass(frozen=True)
class InfectedPackage:
    kind: ClassVar[str] = "infected_package"
    manifest_path: str
    package_name: str
    version: str = ""
    reasons: tuple = ()

    @property
    def key(self):
        return (self.kind, self.manifest_path)

    @property
    def script(self):
        for reason in self.reasons:
            if isinstance(reason, PreinstallScript):
                return reason.script
        return None

    @property
    def files(self) -> tuple:
        for reason in self.reasons:
            if isinstance(reason, FilesPresent):
                return reason.files
        return ()

    @property
    def script_confirmed(self) -> bool:
        return self.script is not None

    def merged_with(self, other: "InfectedPackage") -> "InfectedPackage":
        """Combine the reasons of two discoveries for the same manifest."""
        script = self.script if self.script is not None else other.script
        files = tuple(dict.fromkeys(self.files + other.files))
        reasons = []
        if script is not None:
            reasons.append(PreinstallScript(script))
        if files:
            reasons.append(FilesPresent(files))
        return InfectedPackage(
            manifest_path=self.manifest_path,
            package_name=self.package_name or other.package_name,
            version=self.version or other.version,
            reasons=tuple(reasons),
        )


@dataclass(frozen=True)
class RunningProcess:
    kind: ClassVar[str] = "running_process"
    pattern: str

    @property
    def key(self):
        return (self.kind, self.pattern)


@dataclass(frozen=True)
class CredentialExposure:
    kind: ClassVar[str] = "credential_exposure"
    description: str

    @property
    def key(self):
        return (self.kind, self.description)


@dataclass(frozen=True)
class ScanIncomplete:
    """A probe could not run, so its absence of findings proves nothing."""
    kind: ClassVar[str] = "scan_incomplete"
    probe: str
    detail: str = ""

    @property
    def key(self):
        return (self.kind, self.probe)


Finding = Union[
    MaliciousFile,
    MaliciousDirectory,
    InfectedPackage,
    RunningProcess,
    CredentialExposure,
    ScanIncomplete,
]

FINDING_TYPES = (
    MaliciousFile,
    MaliciousDirectory,
    InfectedPackage,
    RunningProcess,
    CredentialExposure,
    ScanIncomplete,
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class ScanResult:
    findings: tuple
    severity: Severity
    catalog_version: str
    timestamp: str = field(default_factory=utc_now)
    project_root: str = ""
    home_dir: str = ""

    def of_type(self, finding_type) -> tuple:
        return tuple(f for f in self.findings if isinstance(f, finding_type))

    def counts(self) -> dict:
        totals = {t.kind: 0 for t in FINDING_TYPES}
        for finding in self.findings:
            totals[finding.kind] += 1
        return totals
