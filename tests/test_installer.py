import os
import stat
import sys
from hashlib import sha256
from urllib.error import URLError

import pytest

from conftest import FakeUrlopen
from forge_update.errors import EXIT_INSTALLER_TIMEOUT, EXIT_INTEGRITY, EXIT_LAUNCH, EXIT_NET_DL
from forge_update.installer import InstallerRunner, parse_checksum
from forge_update.models import VersionBuild
from forge_update.remote import RemoteApi


VB = VersionBuild("1.20.1", "47.2.0")
BODY = b"pretend installer bytes" * 1000


@pytest.fixture
def runner(scheme):
    return InstallerRunner(scheme, RemoteApi())


def test_download_lands_in_server_directory(tmp_path, monkeypatch, runner, scheme):
    url = scheme.installer_url(VB)
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({url: BODY}))

    result = runner.fetch_installer(VB, tmp_path, call=lambda *a: None)

    assert result
    assert result.value == tmp_path / "forge-1.20.1-47.2.0-installer.jar"
    assert result.value.read_bytes() == BODY


def test_download_overwrites_existing_installer(tmp_path, monkeypatch, runner, scheme):
    target = tmp_path / scheme.installer_name(VB)
    target.write_bytes(b"stale")
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({scheme.installer_url(VB): BODY}))

    runner.fetch_installer(VB, tmp_path, call=lambda *a: None)

    assert target.read_bytes() == BODY


def test_matching_checksum_passes(tmp_path, monkeypatch, runner, scheme):
    url = scheme.installer_url(VB)
    digest = sha256(BODY).hexdigest()
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({url: BODY, url + ".sha256": digest.encode()}))

    assert runner.fetch_installer(VB, tmp_path, call=lambda *a: None)


def test_checksum_mismatch_deletes_download(tmp_path, monkeypatch, runner, scheme):
    url = scheme.installer_url(VB)
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({url: BODY, url + ".sha256": b"0" * 64}))

    result = runner.fetch_installer(VB, tmp_path, call=lambda *a: None)

    assert result.code == EXIT_INTEGRITY
    assert not (tmp_path / scheme.installer_name(VB)).exists()


def test_missing_sidecar_skips_check(tmp_path, monkeypatch, runner, scheme):
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({scheme.installer_url(VB): BODY}))

    assert runner.fetch_installer(VB, tmp_path, call=lambda *a: None)


def test_integrity_can_be_disabled(tmp_path, monkeypatch, scheme):
    url = scheme.installer_url(VB)
    fake = FakeUrlopen({url: BODY, url + ".sha256": b"0" * 64})
    monkeypatch.setattr("urllib.request.urlopen", fake)

    result = InstallerRunner(scheme, RemoteApi(), integrity=False).fetch_installer(VB, tmp_path, call=lambda *a: None)

    assert result
    assert fake.requests == [url]


@pytest.mark.parametrize("error", [URLError("connection refused"), ConnectionResetError("reset")])
def test_network_failure_is_download_failed(tmp_path, monkeypatch, runner, scheme, error):
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({scheme.installer_url(VB): error}))

    result = runner.fetch_installer(VB, tmp_path, call=lambda *a: None)

    assert result.code == EXIT_NET_DL
    assert result.name == "DownloadFailed"
    assert not (tmp_path / scheme.installer_name(VB)).exists()


def test_http_status_is_download_failed(tmp_path, monkeypatch, runner):
    monkeypatch.setattr("urllib.request.urlopen", FakeUrlopen({}))

    assert runner.fetch_installer(VB, tmp_path, call=lambda *a: None).code == EXIT_NET_DL


def test_parse_checksum_accepts_hash_and_filename():
    digest = "a" * 64
    assert parse_checksum(f"{digest}  forge-installer.jar\n") == digest
    assert parse_checksum("not a hash") == ""


def test_installer_exit_code_is_not_inspected(tmp_path, runner):
    # Known limitation: a failing installer still reports success here;
    # the orchestrator checks for the produced artifact instead.
    installer = tmp_path / "forge-1.20.1-47.2.0-installer.jar"
    installer.write_bytes(b"not a jar")

    result = runner.run_installer(installer, sys.executable)

    assert result
    assert result.value != 0


def test_installer_launch_failure(tmp_path, runner):
    installer = tmp_path / "forge-1.20.1-47.2.0-installer.jar"
    installer.write_bytes(b"x")

    result = runner.run_installer(installer, str(tmp_path / "no-java-here"))

    assert result.code == EXIT_LAUNCH


@pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shell script as the runtime")
def test_installer_deadline_kills_it(tmp_path, runner):
    java = tmp_path / "java"
    java.write_text("#!/bin/sh\nsleep 30\n")
    java.chmod(java.stat().st_mode | stat.S_IEXEC)
    installer = tmp_path / "forge-1.20.1-47.2.0-installer.jar"
    installer.write_bytes(b"x")

    result = runner.run_installer(installer, str(java), timeout=0.5)

    assert result.code == EXIT_INSTALLER_TIMEOUT
