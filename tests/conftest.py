"""Shared fixtures: a fake home directory, a project tree and operator doubles."""
import json
import os

import pytest

from hulud_guard.catalog import load_catalog


def write_manifest(package_dir, data, indent=2):
    os.makedirs(package_dir, exist_ok=True)
    path = os.path.join(package_dir, "package.json")
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(data, indent=indent) + "\n")
    return path


def touch(path, content="// payload\n"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


class ScriptedOperator:
    """Answers confirmations from a list; records every question asked."""

    def __init__(self, answers=None, default=True):
        self.answers = list(answers or [])
        self.default = default
        self.questions = []
        self.acknowledged = []

    def confirm(self, question):
        self.questions.append(question)
        if self.answers:
            return self.answers.pop(0)
        return self.default

    def acknowledge(self, message):
        self.acknowledged.append(message)


class FakeTerminator:
    def __init__(self, result="not_running"):
        self.result = result
        self.calls = []

    def __call__(self, pattern):
        self.calls.append(pattern)
        return self.result


class FakeInstaller:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def __call__(self, project_root, command):
        self.calls.append((project_root, command))
        return self.succeed


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def infected_tree(home, project):
    """Home cache binary plus one package with a malicious preinstall and payload."""
    touch(str(home / ".truffler-cache" / "trufflehog"), "binary")
    pkg_dir = project / "node_modules" / "pkgA"
    write_manifest(str(pkg_dir), {
        "name": "pkgA",
        "version": "1.0.1",
        "scripts": {"preinstall": "node setup_bun.js"},
    })
    touch(str(pkg_dir / "setup_bun.js"))
    return home, project
