"""Confirmation-gated cleanup sequencer.

The malware wipes the home directory if it loses its GitHub and npm access at
the same time, so cleanup runs as one serial sequence: live processes first
(they can recreate files), then files, directories, infected packages, the
dependency reinstall, and only then the credential rotation guidance.

Every destructive step waits for an explicit operator "yes". Declining skips
that step only. A failing item or step never stops the remaining ones.
"""
import json
import logging
import os
import re
import shutil
import stat
import sys
import time
from dataclasses import dataclass
from enum import Enum

from .catalog import DEPENDENCY_DIR, LOCKFILE_NAME, IocCatalog
from .console import C_CYAN, C_GREEN, C_RED, C_YELLOW, item, paint, section_header
from .findings import (
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    RunningProcess,
    ScanIncomplete,
    ScanResult,
)
from .matcher import malicious_preinstall, payload_files_in
from .probes import DEFAULT_INSTALLER, TerminateResult, run_installer, terminate_by_name

LOGGER = logging.getLogger(__name__)


class StepId(Enum):
    """Remediation steps; declaration order is execution order."""
    TERMINATE_PROCESSES = 1
    DELETE_FILES = 2
    DELETE_DIRECTORIES = 3
    CLEAN_PACKAGES = 4
    REINSTALL_DEPENDENCIES = 5
    ROTATION_GUIDANCE = 6


STEP_ORDER = tuple(StepId)

STEP_TITLES = {
    StepId.TERMINATE_PROCESSES: "Terminating Malicious Processes",
    StepId.DELETE_FILES: "Removing Malicious Files",
    StepId.DELETE_DIRECTORIES: "Removing Malicious Directories",
    StepId.CLEAN_PACKAGES: "Cleaning Infected Packages",
    StepId.REINSTALL_DEPENDENCIES: "Reinstalling Dependencies",
    StepId.ROTATION_GUIDANCE: "Credential Rotation",
}


class Outcome(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SKIPPED = "skipped"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    SUCCESS = "success"


@dataclass
class RemediationStep:
    step_id: StepId
    description: str
    targets: tuple = ()
    requires_confirmation: bool = True
    outcome: Outcome = Outcome.PENDING
    detail: str = ""

    @property
    def number(self) -> int:
        return self.step_id.value

    @property
    def title(self) -> str:
        return STEP_TITLES[self.step_id]


def tally(failed: int, total: int) -> Outcome:
    if failed == 0:
        return Outcome.SUCCESS
    if failed >= total:
        return Outcome.FAILED
    return Outcome.PARTIAL_FAILURE


def _make_writable(func, path, exc):
    # onerror passes an exc_info tuple, onexc the exception itself
    if isinstance(exc, tuple):
        exc = exc[1]
    # Only read-only entries are retried; never chmod through a link
    if func not in (os.unlink, os.rmdir, os.remove):
        raise exc
    mode = os.lstat(path).st_mode
    if stat.S_ISLNK(mode):
        raise exc
    os.chmod(path, stat.S_IMODE(mode) | stat.S_IWRITE)
    func(path)


def force_rmtree(path):
    """Remove a directory tree. A symlink is unlinked, its target left alone."""
    if os.path.islink(path):
        os.unlink(path)
        return
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable)
    else:
        shutil.rmtree(path, onerror=_make_writable)


_INDENT = re.compile(r'^([ \t]+)"', re.MULTILINE)


def detect_indent(text: str):
    """Indentation unit used by a JSON document (default two spaces)."""
    match = _INDENT.search(text)
    if not match:
        return 2
    unit = match.group(1)
    return "\t" if unit.startswith("\t") else len(unit)


class ManifestStatus:
    CLEANED = "cleaned"
    UNCHANGED = "unchanged"
    MISSING = "missing"


def strip_malicious_preinstall(manifest_path, markers) -> str:
    """Remove a malicious ``preinstall`` entry from a manifest on disk.

    The manifest is re-read so edits made since the scan are kept. Other
    scripts and fields stay as they are; an emptied ``scripts`` block is
    dropped. Raises OSError or ValueError when the file cannot be rewritten.
    """
    try:
        with open(manifest_path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError:
        return ManifestStatus.MISSING

    manifest = json.loads(text)
    if not isinstance(manifest, dict) or malicious_preinstall(manifest, markers) is None:
        return ManifestStatus.UNCHANGED

    scripts = manifest["scripts"]
    del scripts["preinstall"]
    if not scripts:
        del manifest["scripts"]

    output = json.dumps(manifest, indent=detect_indent(text), ensure_ascii=False)
    if text.endswith("\n"):
        output += "\n"

    tmp_path = f"{manifest_path}.hulud-tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(output)
        shutil.copymode(manifest_path, tmp_path)
        os.replace(tmp_path, manifest_path)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return ManifestStatus.CLEANED


ROTATION_GUIDANCE = (
    ("GitHub Personal Access Tokens", (
        "https://github.com/settings/tokens",
        "Revoke old tokens and generate new ones",
    )),
    ("npm Authentication Tokens", (
        "https://www.npmjs.com/settings/tokens",
        "Revoke compromised tokens and create new ones",
        "Update .npmrc files with new tokens",
    )),
    ("AWS Credentials", (
        "https://console.aws.amazon.com/iam/home#/security_credentials",
        "Deactivate and delete compromised access keys, then create new ones",
    )),
    ("GCP Credentials", (
        "https://console.cloud.google.com/apis/credentials",
        "Revoke compromised service account keys and create new keys",
    )),
    ("Azure Credentials", (
        "https://portal.azure.com/",
        "Revoke compromised credentials and generate new ones",
    )),
    ("Search for Exfiltration Repositories", (
        'Search GitHub for: "Sha1-Hulud: The Second Coming."',
        "Delete any repositories with this exact description",
        "These are data exfiltration dropboxes",
    )),
)


class RemediationSequencer:
    """Runs the six cleanup steps in their fixed order."""

    def __init__(self, result: ScanResult, catalog: IocCatalog, operator,
                 terminate=terminate_by_name, install=run_installer,
                 installer_command: str = DEFAULT_INSTALLER, settle_delay: float = 2.0,
                 emit=print):
        self.result = result
        self.catalog = catalog
        self.operator = operator
        self.terminate = terminate
        self.install = install
        self.installer_command = installer_command
        self.settle_delay = settle_delay
        self.emit = emit
        self.steps = self.plan()
        self._handlers = {
            StepId.TERMINATE_PROCESSES: self._terminate_processes,
            StepId.DELETE_FILES: self._delete_files,
            StepId.DELETE_DIRECTORIES: self._delete_directories,
            StepId.CLEAN_PACKAGES: self._clean_packages,
            StepId.REINSTALL_DEPENDENCIES: self._reinstall,
            StepId.ROTATION_GUIDANCE: self._rotation_guidance,
        }

    def plan(self) -> list:
        result = self.result
        process_targets = result.of_type(RunningProcess) + tuple(
            f for f in result.of_type(ScanIncomplete) if f.probe == "processes"
        )
        targets = {
            StepId.TERMINATE_PROCESSES: process_targets,
            StepId.DELETE_FILES: result.of_type(MaliciousFile),
            StepId.DELETE_DIRECTORIES: result.of_type(MaliciousDirectory),
            StepId.CLEAN_PACKAGES: result.of_type(InfectedPackage),
        }
        descriptions = {
            StepId.TERMINATE_PROCESSES: "kill payload processes by name",
            StepId.DELETE_FILES: "delete detected payload files",
            StepId.DELETE_DIRECTORIES: "recursively delete detected payload directories",
            StepId.CLEAN_PACKAGES: "strip malicious preinstall scripts and payload files from packages",
            StepId.REINSTALL_DEPENDENCIES: f"remove {DEPENDENCY_DIR} and {LOCKFILE_NAME}, then run {self.installer_command}",
            StepId.ROTATION_GUIDANCE: "show credential rotation instructions",
        }
        return [
            RemediationStep(step_id, descriptions[step_id], targets.get(step_id, ()))
            for step_id in STEP_ORDER
        ]

    def run(self) -> list:
        for step in self.steps:
            self.emit(section_header(f"Step {step.number}: {step.title}"))
            try:
                self._handlers[step.step_id](step)
            except Exception as exc:
                # Reaching the later steps matters more than finishing this one
                LOGGER.error("Step %d (%s) failed: %s", step.number, step.title, exc)
                LOGGER.debug("Step failure traceback", exc_info=True)
                step.outcome = Outcome.FAILED
                step.detail = str(exc)
                self.emit(item(f"Step failed: {exc}", "✗", C_RED))
        return self.steps

    def _gate(self, step: RemediationStep, question: str, skip_message: str) -> bool:
        if self.operator.confirm(question):
            step.outcome = Outcome.APPROVED
            return True
        step.outcome = Outcome.SKIPPED
        step.detail = "declined by operator"
        self.emit(paint(skip_message, C_YELLOW))
        return False

    def _nothing_to_do(self, step: RemediationStep, message: str):
        step.outcome = Outcome.SUCCESS
        step.detail = message
        self.emit(item(message, "✓", C_GREEN))

    def _terminate_processes(self, step: RemediationStep):
        if not step.targets:
            self._nothing_to_do(step, "No malicious processes found")
            return

        for target in step.targets:
            if isinstance(target, RunningProcess):
                self.emit(item(f"{target.pattern} is running", "•", C_YELLOW))
            else:
                self.emit(item(f"Process table was not readable ({target.detail})", "•", C_YELLOW))
        if not self._gate(step, "\nTerminate malicious processes?", "Skipping process termination"):
            return

        patterns = self.catalog.process_patterns
        killed = failed = 0
        for pattern in patterns:
            status = self.terminate(pattern)
            if status == TerminateResult.KILLED:
                killed += 1
                self.emit(item(f"Killed {pattern}", "✓", C_GREEN))
            elif status == TerminateResult.NOT_RUNNING:
                self.emit(item(f"{pattern} not running", "✓", C_GREEN))
            else:
                failed += 1
                self.emit(item(f"Could not terminate {pattern}", "✗", C_RED))

        step.outcome = tally(failed, len(patterns))
        step.detail = f"killed {killed}, failed {failed} of {len(patterns)} pattern(s)"
        if killed and self.settle_delay:
            # Give the system time to reap the killed processes
            time.sleep(self.settle_delay)

    def _delete_files(self, step: RemediationStep):
        if not step.targets:
            self._nothing_to_do(step, "No malicious files found")
            return

        self.emit(paint(f"  Found {len(step.targets)} malicious file(s):", C_YELLOW))
        for target in step.targets:
            self.emit(item(target.path, "•", C_YELLOW, indent=4))
        if not self._gate(step, "\nProceed with file removal?", "Skipping file removal"):
            return

        removed = failed = 0
        for target in step.targets:
            name = os.path.basename(target.path)
            try:
                os.remove(target.path)
            except FileNotFoundError:
                removed += 1
                self.emit(item(f"Already gone: {name}", "✓", C_GREEN))
            except OSError as exc:
                failed += 1
                LOGGER.warning("Failed to remove %s: %s", target.path, exc)
                self.emit(item(f"Failed: {name}", "✗", C_RED))
            else:
                removed += 1
                self.emit(item(f"Removed: {name}", "✓", C_GREEN))

        total = len(step.targets)
        step.outcome = tally(failed, total)
        step.detail = f"removed {removed}/{total} files"
        self.emit(item(f"Removed {removed}/{total} files", "✓" if not failed else "✗", C_GREEN if not failed else C_RED))

    def _delete_directories(self, step: RemediationStep):
        if not step.targets:
            self._nothing_to_do(step, "No malicious directories found")
            return

        self.emit(paint(f"  Found {len(step.targets)} malicious director(ies):", C_YELLOW))
        for target in step.targets:
            self.emit(item(target.path, "•", C_YELLOW, indent=4))
        if not self._gate(step, "\nProceed with directory removal?", "Skipping directory removal"):
            return

        removed = failed = 0
        for target in step.targets:
            name = os.path.basename(target.path)
            if not os.path.lexists(target.path):
                # Removed along with a parent target, or by someone else
                removed += 1
                self.emit(item(f"Already gone: {name}", "✓", C_GREEN))
                continue
            try:
                force_rmtree(target.path)
            except OSError as exc:
                failed += 1
                LOGGER.warning("Failed to remove directory %s: %s", target.path, exc)
                self.emit(item(f"Failed: {name}", "✗", C_RED))
            else:
                removed += 1
                self.emit(item(f"Removed: {name}", "✓", C_GREEN))

        total = len(step.targets)
        step.outcome = tally(failed, total)
        step.detail = f"removed {removed}/{total} directories"

    def _clean_packages(self, step: RemediationStep):
        if not step.targets:
            self._nothing_to_do(step, "No infected packages found")
            return

        self.emit(paint(f"  Found {len(step.targets)} infected package(s):", C_YELLOW))
        for pkg in step.targets:
            self.emit(item(pkg.package_name, "•", C_YELLOW, indent=4))
            if pkg.script is not None:
                self.emit(paint(f"      Script: {pkg.script}", C_YELLOW))
            if pkg.files:
                self.emit(paint(f"      Files: {', '.join(pkg.files)}", C_YELLOW))
        if not self._gate(step, "\nProceed with package cleanup?", "Skipping package cleanup"):
            return

        failed = 0
        for pkg in step.targets:
            if not self._clean_package(pkg):
                failed += 1

        total = len(step.targets)
        step.outcome = tally(failed, total)
        step.detail = f"cleaned {total - failed}/{total} packages"
        self.emit(paint(f'  ⚠ Run "{self.installer_command}" to restore clean dependencies', C_YELLOW))

    def _clean_package(self, pkg: InfectedPackage) -> bool:
        ok = True
        try:
            status = strip_malicious_preinstall(pkg.manifest_path, self.catalog.script_markers)
        except (OSError, ValueError) as exc:
            ok = False
            LOGGER.warning("Failed to rewrite %s: %s", pkg.manifest_path, exc)
            self.emit(item(f"Failed to clean {pkg.package_name}", "✗", C_RED))
        else:
            if status == ManifestStatus.CLEANED:
                self.emit(item(f"Cleaned: {pkg.package_name}", "✓", C_GREEN))
            elif status == ManifestStatus.MISSING:
                self.emit(item(f"Manifest already gone: {pkg.manifest_path}", "✓", C_GREEN))

        # Re-check on disk; files may have appeared or vanished since the scan
        package_dir = os.path.dirname(pkg.manifest_path)
        names = dict.fromkeys(pkg.files + payload_files_in(package_dir, self.catalog.package_files))
        for name in names:
            path = os.path.join(package_dir, name)
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                ok = False
                LOGGER.warning("Failed to remove %s: %s", path, exc)
                self.emit(item(f"Failed: {name}", "✗", C_RED))
            else:
                self.emit(item(f"Removed: {name}", "✓", C_GREEN))
        return ok

    def _reinstall(self, step: RemediationStep):
        self.emit(paint("It is recommended to reinstall all npm dependencies to ensure", C_YELLOW))
        self.emit(paint("all packages are clean and not infected.", C_YELLOW))
        if not self._gate(step, "\nReinstall dependencies now?", "Skipping dependency reinstall"):
            self.emit(paint('Remember to run "npm ci" or "npm install" manually later', C_YELLOW))
            return

        project_root = self.result.project_root or os.getcwd()
        node_modules = os.path.join(project_root, DEPENDENCY_DIR)
        lock_path = os.path.join(project_root, LOCKFILE_NAME)
        try:
            if os.path.isdir(node_modules):
                self.emit(paint(f"  Removing {DEPENDENCY_DIR}...", C_CYAN))
                force_rmtree(node_modules)
            if os.path.lexists(lock_path):
                self.emit(paint(f"  Removing {LOCKFILE_NAME}...", C_CYAN))
                os.remove(lock_path)
        except OSError as exc:
            LOGGER.warning("Could not clear dependencies in %s: %s", project_root, exc)
            self._reinstall_failed(step, f"could not clear dependencies: {exc}")
            return

        self.emit(paint(f"  Running {self.installer_command}...", C_CYAN))
        if self.install(project_root, self.installer_command):
            step.outcome = Outcome.SUCCESS
            step.detail = "dependencies reinstalled"
            self.emit(item("Dependencies reinstalled", "✓", C_GREEN))
        else:
            self._reinstall_failed(step, f"{self.installer_command} failed")

    def _reinstall_failed(self, step: RemediationStep, detail: str):
        step.outcome = Outcome.FAILED
        step.detail = detail
        self.emit(item("Failed to reinstall dependencies", "✗", C_RED))
        self.emit(paint("Please reinstall manually with: npm ci", C_YELLOW))

    def _rotation_guidance(self, step: RemediationStep):
        self.emit(paint("  ⚠ Your credentials may have been compromised!", C_RED))
        self.emit(paint("\n  You must rotate these credentials:\n", C_YELLOW))
        for number, (title, lines) in enumerate(ROTATION_GUIDANCE, 1):
            self.emit(paint(f"{number}. {title}", C_CYAN))
            for line in lines:
                self.emit(paint(f"   → {line}", C_CYAN))
            self.emit("")

        unfinished = [
            s for s in self.steps
            if s.step_id is not StepId.ROTATION_GUIDANCE
            and s.targets
            and s.outcome is not Outcome.SUCCESS
        ]
        if unfinished:
            self.emit(paint("⚠  Cleanup is NOT complete; these steps did not finish:", C_RED))
            for s in unfinished:
                self.emit(item(f"Step {s.number}: {s.title} ({s.outcome.value})", "•", C_RED))
        self.emit(paint("⚠  DO NOT proceed with token revocation until cleanup is complete!", C_RED))
        self.emit(paint("⚠  Revoking tokens prematurely may trigger the dead man's switch!", C_RED))

        self.operator.acknowledge("\nPress Enter to acknowledge these instructions...")
        step.outcome = Outcome.SUCCESS
        step.detail = "acknowledged"

    @property
    def complete(self) -> bool:
        """True when every step that had targets finished successfully."""
        return all(
            s.outcome is Outcome.SUCCESS
            for s in self.steps
            if s.targets or s.step_id is StepId.ROTATION_GUIDANCE
        )
