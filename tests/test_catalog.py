"""Tests for IoC catalog loading."""
import json

import pytest

from hulud_guard.catalog import ENV_CATALOG_PATH, IocKind, Scope, load_catalog, parse_catalog
from hulud_guard.errors import CatalogError


def test_bundled_catalog_loads(catalog):
    assert catalog.version == "2025-11-24"
    assert "setup_bun.js" in catalog.script_markers
    assert "trufflehog" in catalog.process_patterns
    assert catalog.select(IocKind.DIRECTORY, Scope.HOME) == (".truffler-cache", ".truffler-cache/extract")
    assert catalog.package_files == ("setup_bun.js", "bun_environment.js")


def test_entries_are_immutable(catalog):
    entry = catalog.entries[0]
    with pytest.raises(AttributeError):
        entry.value = "other"


def test_missing_catalog_is_fatal(tmp_path):
    with pytest.raises(CatalogError, match="cannot read"):
        load_catalog(tmp_path / "nope.json")


def test_invalid_json_is_fatal(tmp_path):
    path = tmp_path / "iocs.json"
    path.write_text("{not json")
    with pytest.raises(CatalogError, match="not valid JSON"):
        load_catalog(path)


def test_env_var_selects_catalog(tmp_path, monkeypatch):
    path = tmp_path / "iocs.json"
    path.write_text(json.dumps({"version": "test-1", "processes": ["evil"]}))
    monkeypatch.setenv(ENV_CATALOG_PATH, str(path))

    catalog = load_catalog()

    assert catalog.version == "test-1"
    assert catalog.process_patterns == ("evil",)
    assert catalog.script_markers == ()


@pytest.mark.parametrize("data, message", [
    ([], "must be a JSON object"),
    ({"files": {}}, "version"),
    ({"version": "v", "files": {"home": "x"}}, "files.home"),
    ({"version": "v", "files": {"elsewhere": ["x"]}}, "unknown scope"),
    ({"version": "v", "scripts": [""]}, "scripts"),
    ({"version": "v", "credentials": []}, "credentials"),
])
def test_malformed_catalog_rejected(data, message):
    with pytest.raises(CatalogError, match=message):
        parse_catalog(data)
