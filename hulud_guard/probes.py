"""Host capabilities: process table snapshot, kill by name, package install.

These wrap platform tools with subprocess. Each one reports its own failure
instead of raising, so callers can keep going.
"""
import logging
import os
import shlex
import subprocess

LOGGER = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

# pkill: 0 = signalled, 1 = no process matched
# taskkill: 128 = process not found
_NO_MATCH_CODES = {128} if IS_WINDOWS else {1}


def process_snapshot(timeout: int = 10):
    """Return the command lines of running processes, or None if unavailable."""
    if IS_WINDOWS:
        cmd = ["tasklist", "/FO", "CSV", "/NH"]
    else:
        cmd = ["ps", "-A", "-o", "args="]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
        LOGGER.debug("Process table query %s failed: %s", cmd[0], exc)
        return None

    if result.returncode != 0:
        LOGGER.debug("Process table query %s exited %d: %s", cmd[0], result.returncode, result.stderr.strip())
        return None

    lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if not lines:
        # ps always lists at least itself; an empty table means we saw nothing
        return None
    return lines


class TerminateResult:
    KILLED = "killed"
    NOT_RUNNING = "not_running"
    FAILED = "failed"


def terminate_by_name(pattern: str, timeout: int = 30) -> str:
    """Force-kill every process whose name or command line matches ``pattern``."""
    if IS_WINDOWS:
        image = pattern if pattern.lower().endswith(".exe") else f"{pattern}.exe"
        cmd = ["taskkill", "/F", "/IM", image]
    else:
        cmd = ["pkill", "-9", "-f", pattern]

    try:
        result = subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=timeout)
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
        LOGGER.warning("Could not run %s for %s: %s", cmd[0], pattern, exc)
        return TerminateResult.FAILED

    if result.returncode == 0:
        return TerminateResult.KILLED
    if result.returncode in _NO_MATCH_CODES:
        return TerminateResult.NOT_RUNNING
    LOGGER.warning("%s %s exited with status %d", cmd[0], pattern, result.returncode)
    return TerminateResult.FAILED


DEFAULT_INSTALLER = "npm install"


def run_installer(project_root, command: str = DEFAULT_INSTALLER) -> bool:
    """Run the package manager in ``project_root`` with inherited stdio."""
    argv = shlex.split(command, posix=not IS_WINDOWS)
    try:
        # npm is a .cmd shim on Windows and needs the shell to resolve it
        subprocess.run(argv, cwd=os.fspath(project_root), check=True, shell=IS_WINDOWS)
    except subprocess.CalledProcessError as exc:
        LOGGER.warning("%s exited with status %d", command, exc.returncode)
        return False
    except (FileNotFoundError, OSError) as exc:
        LOGGER.warning("Could not run %s: %s", command, exc)
        return False
    return True
