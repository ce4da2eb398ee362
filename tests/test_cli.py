import sys
import threading

import pytest

from conftest import ListSink
from forge_update import cli
from forge_update.errors import (EXIT_ARTIFACT_MISSING, EXIT_NOTHING, EXIT_REMOTE_RESOLUTION, EXIT_UPDATE,
                                 Outcome)
from forge_update.lifecycle import ServerLifecycle, UpdateCheck
from forge_update.models import VersionBuild
from forge_update.process import start_server


VB = VersionBuild("1.20.1", "47.2.0")


def test_script_version(capsys):
    assert cli.main(["-V"]) == EXIT_NOTHING
    assert "Forge Updater Script" in capsys.readouterr().out


def test_quiet_mode_prints_nothing(tmp_path, capsys):
    assert cli.main([str(tmp_path), "-q", "--validate"]) == EXIT_ARTIFACT_MISSING
    assert capsys.readouterr().out == ""


def test_validate_finds_artifact(tmp_path):
    (tmp_path / "forge-1.20.1-47.2.0.jar").write_bytes(b"jar")

    assert cli.main([str(tmp_path), "-q", "-va"]) == EXIT_NOTHING


def test_server_tree_layout(tmp_path):
    server_files = tmp_path / "servers" / "7" / "serverfiles"
    server_files.mkdir(parents=True)
    (server_files / "forge-1.20.1-47.2.0.jar").write_bytes(b"jar")

    assert cli.main([str(tmp_path), "-q", "-va", "--server-id", "7"]) == EXIT_NOTHING


def test_server_version_report(tmp_path, capsys):
    (tmp_path / "forge-1.20.1-47.2.0.jar").write_bytes(b"jar")

    assert cli.main([str(tmp_path), "-ba", "-sv"]) == EXIT_NOTHING

    out = capsys.readouterr().out
    assert "Version: [1.20.1]" in out
    assert "Build:   [47.2.0]" in out


def test_server_version_without_artifact_is_fatal(tmp_path):
    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path), "-q", "-sv"])
    assert exc.value.code == EXIT_ARTIFACT_MISSING


def test_write_properties(tmp_path):
    assert cli.main([str(tmp_path), "-q", "--write-properties", "--port", "25570"]) == EXIT_NOTHING
    assert "server-port=25570" in (tmp_path / "server.properties").read_text()


def test_up_to_date_skips_update(tmp_path, monkeypatch):
    monkeypatch.setattr(ServerLifecycle, "check", lambda self, stream=None: Outcome.ok(UpdateCheck(None, VB, False)))
    monkeypatch.setattr(ServerLifecycle, "update", lambda *a, **k: pytest.fail("update must not run"))

    assert cli.main([str(tmp_path), "-q"]) == EXIT_NOTHING


def test_available_update_is_installed(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(ServerLifecycle, "check", lambda self, stream=None: Outcome.ok(UpdateCheck(None, VB, True)))
    monkeypatch.setattr(ServerLifecycle, "update", lambda self, **k: calls.append(k) or Outcome.ok("artifact"))

    assert cli.main([str(tmp_path), "-q", "--no-cleanup"]) == EXIT_UPDATE
    assert calls == [{"force": True, "cleanup": False}]


def test_failed_check_exits_with_its_code(tmp_path, monkeypatch):
    monkeypatch.setattr(ServerLifecycle, "check",
                        lambda self, stream=None: Outcome.fail(EXIT_REMOTE_RESOLUTION, "offline"))

    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path), "-q", "-c"])
    assert exc.value.code == EXIT_REMOTE_RESOLUTION


def test_start_without_artifact_is_fatal(tmp_path):
    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path), "-q", "--start"])
    assert exc.value.code == EXIT_ARTIFACT_MISSING


# -----------------------------
# Supervision
# -----------------------------
class TerminalInput:
    """
    Interactive stdin stand-in: hands out the queued lines, then blocks
    until released, then reports end of input.
    """

    def __init__(self, *lines):
        self.lines = [line + "\n" for line in lines]
        self.released = threading.Event()

    def isatty(self):
        return True

    def readline(self):
        if self.lines:
            return self.lines.pop(0)
        self.released.wait()
        return ""


def run_supervise(serv, proc, timeout=15.0):
    result = []
    thread = threading.Thread(target=lambda: result.append(cli.supervise(serv, proc)), daemon=True)
    thread.start()
    thread.join(timeout)
    if thread.is_alive():
        proc.popen.kill()
        thread.join(5)
        pytest.fail("supervise did not return after the server exited")
    return result[0]


def test_supervise_returns_when_server_exits_on_its_own(tmp_path, make_lifecycle, monkeypatch):
    terminal = TerminalInput()
    monkeypatch.setattr(sys, "stdin", terminal)
    proc = start_server(tmp_path, sys.executable, '-c "print(1)"', True, ListSink()).value

    try:
        assert run_supervise(make_lifecycle(), proc) == 0
    finally:
        terminal.released.set()


def test_supervise_end_of_input_stops_server(tmp_path, make_lifecycle, monkeypatch):
    script = tmp_path / "console.py"
    script.write_text("import sys\nfor line in sys.stdin:\n    if line.strip() == 'stop':\n        break\n")
    terminal = TerminalInput()
    terminal.released.set()
    monkeypatch.setattr(sys, "stdin", terminal)
    proc = start_server(tmp_path, sys.executable, f"-u {script.name}", True, ListSink()).value

    assert run_supervise(make_lifecycle(), proc) == 0
