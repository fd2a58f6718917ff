"""IoC catalog: known-bad file names, directories, processes and script markers.

The catalog is plain data. It is loaded once per run from a JSON document
(the copy shipped next to this module by default) and injected into the
matcher and the cleanup sequencer.
"""
import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import CatalogError

LOGGER = logging.getLogger(__name__)

DEFAULT_CATALOG = Path(__file__).parent / "iocs.json"
ENV_CATALOG_PATH = "HULUD_GUARD_CATALOG"

DEPENDENCY_DIR = "node_modules"
MANIFEST_NAME = "package.json"
LOCKFILE_NAME = "package-lock.json"


class IocKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    PROCESS = "process"
    SCRIPT = "script"


class Scope(Enum):
    HOME = "home"  # fixed path relative to the home directory
    PROJECT = "project"  # file name searched for under the dependency tree
    PACKAGE = "package"  # file name checked inside each package directory


@dataclass(frozen=True)
class IocEntry:
    kind: IocKind
    value: str
    scope: Scope


@dataclass(frozen=True)
class IocCatalog:
    version: str
    entries: tuple
    credential_paths: tuple = ()
    credential_env: tuple = ()
    token_prefixes: tuple = ()
    npmrc_markers: tuple = ()

    def select(self, kind: IocKind, scope: Scope = None) -> tuple:
        """Return entry values of one kind, optionally limited to one scope."""
        return tuple(
            e.value
            for e in self.entries
            if e.kind is kind and (scope is None or e.scope is scope)
        )

    @property
    def script_markers(self) -> tuple:
        return self.select(IocKind.SCRIPT)

    @property
    def process_patterns(self) -> tuple:
        return self.select(IocKind.PROCESS)

    @property
    def package_files(self) -> tuple:
        return self.select(IocKind.FILE, Scope.PACKAGE)


def _string_list(data: dict, key: str, where: str) -> list:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise CatalogError(f"catalog field '{where}{key}' must be a list of non-empty strings")
    return value


def parse_catalog(data) -> IocCatalog:
    """Build an IocCatalog from the decoded JSON document."""
    if not isinstance(data, dict):
        raise CatalogError("catalog root must be a JSON object")

    version = data.get("version") or data.get("date")
    if not isinstance(version, str) or not version:
        raise CatalogError("catalog is missing its 'version' stamp")

    entries = []
    sections = (
        ("files", IocKind.FILE, (Scope.HOME, Scope.PROJECT, Scope.PACKAGE)),
        ("directories", IocKind.DIRECTORY, (Scope.HOME,)),
    )
    for section, kind, scopes in sections:
        block = data.get(section, {})
        if not isinstance(block, dict):
            raise CatalogError(f"catalog field '{section}' must be an object")
        unknown = set(block) - {s.value for s in scopes}
        if unknown:
            raise CatalogError(f"catalog field '{section}' has unknown scope(s): {', '.join(sorted(unknown))}")
        for scope in scopes:
            for value in _string_list(block, scope.value, f"{section}."):
                entries.append(IocEntry(kind, value, scope))

    # Process patterns and script markers are matched by substring, so they
    # carry no meaningful location scope.
    for value in _string_list(data, "processes", ""):
        entries.append(IocEntry(IocKind.PROCESS, value, Scope.PROJECT))
    for value in _string_list(data, "scripts", ""):
        entries.append(IocEntry(IocKind.SCRIPT, value, Scope.PACKAGE))

    creds = data.get("credentials", {})
    if not isinstance(creds, dict):
        raise CatalogError("catalog field 'credentials' must be an object")

    return IocCatalog(
        version=version,
        entries=tuple(entries),
        credential_paths=tuple(_string_list(creds, "paths", "credentials.")),
        credential_env=tuple(_string_list(creds, "env", "credentials.")),
        token_prefixes=tuple(_string_list(creds, "token_prefixes", "credentials.")),
        npmrc_markers=tuple(_string_list(creds, "npmrc_markers", "credentials.")),
    )


def load_catalog(path=None) -> IocCatalog:
    """Load the catalog from ``path``, $HULUD_GUARD_CATALOG or the bundled copy."""
    if path is None:
        path = os.environ.get(ENV_CATALOG_PATH) or DEFAULT_CATALOG
    path = Path(path)

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogError(f"cannot read IoC catalog {path}: {exc.strerror or exc}") from exc

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise CatalogError(f"IoC catalog {path} is not valid JSON: {exc}") from exc

    catalog = parse_catalog(data)
    LOGGER.debug("Loaded IoC catalog %s (version %s, %d entries)", path, catalog.version, len(catalog.entries))
    return catalog
