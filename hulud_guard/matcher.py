"""Turn filesystem, process and environment facts into typed findings."""
import json
import logging
import os

from .catalog import DEPENDENCY_DIR, MANIFEST_NAME, IocCatalog, IocKind, Scope
from .findings import (
    CredentialExposure,
    FilesPresent,
    InfectedPackage,
    MaliciousDirectory,
    MaliciousFile,
    PreinstallScript,
    RunningProcess,
    ScanIncomplete,
)
from .walker import DEFAULT_MAX_DEPTH, find_files

LOGGER = logging.getLogger(__name__)


def _home_path(home_dir, relative: str) -> str:
    return os.path.join(os.fspath(home_dir), *relative.split("/"))


def scan_home_artifacts(catalog: IocCatalog, home_dir):
    """Check fixed home-relative files and directories."""
    hits = []
    for rel in catalog.select(IocKind.FILE, Scope.HOME):
        path = _home_path(home_dir, rel)
        if os.path.lexists(path) and not os.path.isdir(path):
            hits.append(MaliciousFile(path))
    for rel in catalog.select(IocKind.DIRECTORY, Scope.HOME):
        path = _home_path(home_dir, rel)
        if os.path.isdir(path):
            hits.append(MaliciousDirectory(path))
    return hits


def scan_project_files(catalog: IocCatalog, project_root, max_depth: int = DEFAULT_MAX_DEPTH):
    """Search the dependency tree for payload files by name."""
    hits = []
    dependency_root = os.path.join(os.fspath(project_root), DEPENDENCY_DIR)
    for name in catalog.select(IocKind.FILE, Scope.PROJECT):
        for path in find_files(name, dependency_root, max_depth=max_depth):
            hits.append(MaliciousFile(path))
    return hits


def read_manifest(path):
    """Parse a package manifest; None if it is unreadable or not an object."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        LOGGER.debug("Skipping manifest %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        LOGGER.debug("Skipping manifest %s: top level is not an object", path)
        return None
    return data


def malicious_preinstall(manifest: dict, markers) -> str:
    """Return the preinstall script if it references a known payload."""
    scripts = manifest.get("scripts")
    if not isinstance(scripts, dict):
        return None
    preinstall = scripts.get("preinstall")
    if not isinstance(preinstall, str):
        return None
    if any(marker in preinstall for marker in markers):
        return preinstall
    return None


def payload_files_in(package_dir, names) -> tuple:
    """Names of catalog payload files currently present in ``package_dir``."""
    return tuple(
        name for name in names
        if os.path.isfile(os.path.join(os.fspath(package_dir), name))
    )


def check_manifest(catalog: IocCatalog, manifest_path: str):
    """Inspect one manifest; return an InfectedPackage or None."""
    manifest = read_manifest(manifest_path)
    if manifest is None:
        return None

    package_dir = os.path.dirname(manifest_path)
    name = manifest.get("name")
    if not isinstance(name, str) or not name:
        name = os.path.basename(package_dir)
    version = manifest.get("version")
    version = version if isinstance(version, str) else ""

    found = None
    script = malicious_preinstall(manifest, catalog.script_markers)
    if script is not None:
        found = InfectedPackage(manifest_path, name, version, (PreinstallScript(script),))

    files = payload_files_in(package_dir, catalog.package_files)
    if files:
        files_hit = InfectedPackage(manifest_path, name, version, (FilesPresent(files),))
        found = found.merged_with(files_hit) if found else files_hit
    return found


def scan_packages(catalog: IocCatalog, project_root, max_depth: int = DEFAULT_MAX_DEPTH):
    """Check every manifest under the project; one finding per manifest."""
    packages = {}
    for manifest_path in find_files(MANIFEST_NAME, project_root, max_depth=max_depth):
        hit = check_manifest(catalog, manifest_path)
        if hit is None:
            continue
        key = os.path.realpath(manifest_path)
        if key in packages:
            packages[key] = packages[key].merged_with(hit)
        else:
            packages[key] = hit
    return list(packages.values())


def scan_processes(catalog: IocCatalog, process_list):
    """Match catalog process patterns against a process table snapshot."""
    if process_list is None:
        return [ScanIncomplete("processes", "process table could not be read; running payloads were not checked")]

    hits = []
    lowered = [line.lower() for line in process_list]
    for pattern in catalog.process_patterns:
        needle = pattern.lower()
        if any(needle in line for line in lowered):
            hits.append(RunningProcess(pattern))
    return hits


def _npmrc_has_auth(path: str, markers) -> bool:
    try:
        with open(path, encoding="utf-8", errors="ignore") as f:
            content = f.read()
    except OSError:
        return False
    return any(marker in content for marker in markers)


def scan_credentials(catalog: IocCatalog, project_root, home_dir, environ):
    """Describe credential surfaces the payload would harvest.

    Only variable names and file locations are reported, never values.
    """
    hits = []
    for key, value in sorted(environ.items()):
        upper = key.upper()
        if any(fragment.upper() in upper for fragment in catalog.credential_env):
            hits.append(CredentialExposure(f"credential variable {key} set in environment"))
        elif value and any(prefix in value for prefix in catalog.token_prefixes):
            hits.append(CredentialExposure(f"GitHub token pattern in environment variable {key}"))

    for npmrc in (_home_path(home_dir, ".npmrc"), os.path.join(os.fspath(project_root), ".npmrc")):
        if _npmrc_has_auth(npmrc, catalog.npmrc_markers):
            hits.append(CredentialExposure(f"npm credentials in {npmrc}"))

    for rel in catalog.credential_paths:
        path = _home_path(home_dir, rel)
        if os.path.exists(path):
            label = "directory" if os.path.isdir(path) else "file"
            hits.append(CredentialExposure(f"credential {label} exists: {path}"))
    return hits


def _dedupe(findings):
    seen = {}
    for finding in findings:
        seen.setdefault(finding.key, finding)
    return list(seen.values())


def scan(catalog: IocCatalog, project_root, home_dir, process_list, environ=None,
         max_depth: int = DEFAULT_MAX_DEPTH) -> tuple:
    """Run every matcher and return the combined, de-duplicated findings.

    ``process_list`` is a snapshot of process command lines, or None when the
    process table could not be read.
    """
    if environ is None:
        environ = os.environ

    home_hits = scan_home_artifacts(catalog, home_dir)
    project_hits = scan_project_files(catalog, project_root, max_depth)
    packages = scan_packages(catalog, project_root, max_depth)

    # Payload files already reported through their package are not repeated
    covered = {
        os.path.realpath(os.path.join(os.path.dirname(p.manifest_path), name))
        for p in packages
        for name in p.files
    }
    project_hits = [f for f in project_hits if os.path.realpath(f.path) not in covered]

    findings = home_hits + project_hits + packages
    findings += scan_processes(catalog, process_list)
    findings += scan_credentials(catalog, project_root, home_dir, environ)

    findings = _dedupe(findings)
    LOGGER.debug("Matcher produced %d finding(s)", len(findings))
    return tuple(findings)
