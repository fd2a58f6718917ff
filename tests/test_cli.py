"""End-to-end tests for the detect and cleanup entry points."""
import json

import pytest

from hulud_guard import __main__ as entry
from hulud_guard import cleanup, cli, detect

from conftest import ScriptedOperator


@pytest.fixture(autouse=True)
def quiet_host(monkeypatch):
    """No live process table and no colour codes in captured output."""
    monkeypatch.setattr(cli, "process_snapshot", lambda: [])
    monkeypatch.setenv("NO_COLOR", "1")


def test_detect_clean_host(home, project, tmp_path, capsys):
    report = tmp_path / "report.json"

    code = detect.main([str(project), "--home", str(home), "--report", str(report)])

    assert code == 0
    assert "NO SHAI-HULUD INDICATORS DETECTED" in capsys.readouterr().out
    data = json.loads(report.read_text())
    assert data["severity"] == "none"
    assert data["findings"] == [] or all(f["type"] == "credential_exposure" for f in data["findings"])


def test_detect_infected_json_output(infected_tree, tmp_path, capsys):
    home, project = infected_tree

    code = detect.main([str(project), "--home", str(home), "--json", "--no-report"])

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["severity"] == "critical"
    types = sorted(f["type"] for f in data["findings"] if f["type"] != "credential_exposure")
    assert types == ["infected_package", "malicious_directory", "malicious_file"]


def test_detect_fail_on_threshold(infected_tree):
    home, project = infected_tree
    args = [str(project), "--home", str(home), "--no-report"]

    assert detect.main(args + ["--fail-on", "high"]) == 2
    assert detect.main(args + ["--fail-on", "critical"]) == 2


def test_detect_does_not_modify_tree(infected_tree):
    home, project = infected_tree

    detect.main([str(project), "--home", str(home), "--no-report"])

    assert (home / ".truffler-cache" / "trufflehog").exists()
    assert "preinstall" in (project / "node_modules" / "pkgA" / "package.json").read_text()


def test_missing_catalog_exits_nonzero(project, home, tmp_path, capsys):
    code = detect.main([str(project), "--home", str(home), "--catalog", str(tmp_path / "none.json")])

    assert code == 1
    assert "cannot read IoC catalog" in capsys.readouterr().err


def test_missing_root_exits_nonzero(tmp_path, capsys):
    code = detect.main([str(tmp_path / "absent"), "--no-report"])

    assert code == 1
    assert "Root path does not exist" in capsys.readouterr().err


def test_cleanup_cancelled_at_warnings(infected_tree, capsys):
    home, project = infected_tree
    operator = ScriptedOperator(default=False)

    code = cleanup.run([str(project), "--home", str(home)], operator=operator)

    assert code == 0
    assert len(operator.questions) == 1
    assert "Cleanup cancelled" in capsys.readouterr().out
    assert (home / ".truffler-cache" / "trufflehog").exists()


def test_cleanup_declining_every_step_still_shows_guidance(infected_tree, capsys):
    home, project = infected_tree
    operator = ScriptedOperator(answers=[True], default=False)

    code = cleanup.run([str(project), "--home", str(home)], operator=operator)

    out = capsys.readouterr().out
    assert code == 0
    assert "Step 6: Credential Rotation" in out
    assert "Cleanup incomplete" in out
    assert operator.acknowledged


def test_module_entry_dispatches(home, project, capsys):
    assert entry.main(["detect", str(project), "--home", str(home), "--no-report"]) == 0
    assert entry.main(["bogus"]) == 2
    assert "usage" in capsys.readouterr().err


def test_unwritable_report_still_shows_findings(infected_tree, tmp_path, capsys):
    home, project = infected_tree
    report = tmp_path / "nodir" / "report.json"

    code = detect.main([str(project), "--home", str(home), "--report", str(report)])

    out = capsys.readouterr().out
    assert code == 0
    assert "INFECTED: pkgA" in out
    assert "SHAI-HULUD DETECTED" in out
    assert "Report not written" in out
    assert not report.exists()
