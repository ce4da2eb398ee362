from __future__ import annotations
import os
import subprocess
from contextlib import closing
from hashlib import sha256
from pathlib import Path
from typing import Callable, Optional
from urllib.error import HTTPError

from .console import error_report, human_readable_size, is_quiet, output, progress_bar
from .errors import EXIT_INSTALLER_TIMEOUT, EXIT_INTEGRITY, EXIT_LAUNCH, EXIT_NET_DL, Outcome
from .models import ArtifactScheme, VersionBuild
from .remote import NETWORK_ERRORS, RemoteApi


def parse_checksum(text: str) -> str:
    """
    Pull the first 64-char hex token out of a checksum sidecar.
    Sidecars come both bare and in 'hash  filename' form.
    Returns '' when no SHA-256 is present.
    """

    for tok in text.replace("\r", " ").replace("\n", " ").split():

        t = tok.strip()

        if len(t) == 64 and all(c in "0123456789abcdefABCDEF" for c in t):

            return t.lower()

    return ""


def file_sha256(path: Path, blocksize: int = 65536) -> str:

    digest = sha256()

    with open(path, "rb") as file:

        for chunk in iter(lambda: file.read(blocksize), b""):

            digest.update(chunk)

    return digest.hexdigest()


class InstallerRunner:
    """
    Download the vendor installer for one release and run it to completion.
    The installer's exit code is reported but never trusted; the caller
    proves success by finding the produced artifact on disk.
    """

    def __init__(self, scheme: Optional[ArtifactScheme] = None, api: Optional[RemoteApi] = None, integrity: bool = True):

        self.scheme = scheme or ArtifactScheme()

        self.api = api or RemoteApi()

        self.integrity = integrity

    def fetch_installer(self, vb: VersionBuild, directory: Path, call: Callable = None, blocksize: int = 65536) -> Outcome:
        """
        Stream the installer into the server directory, overwriting a
        previous copy, then verify it when integrity is on.
        Returns Outcome.ok(path) or a DownloadFailed / integrity failure.
        """

        if call is None:

            call = progress_bar

        url = self.scheme.installer_url(vb)

        path = Path(directory) / self.scheme.installer_name(vb)

        output(f"# Downloading installer [{self.scheme.installer_name(vb)}] ...")

        output(f"# ({url})")

        try:

            Path(directory).mkdir(parents=True, exist_ok=True)

            with closing(self.api.open_url(url)) as data, open(path, mode='wb') as file:

                length = int(data.headers.get("Content-Length") or 0)

                total_steps = max(1, (length + blocksize - 1) // blocksize)

                step = 0

                while True:

                    chunk = data.read(blocksize)

                    if not chunk:

                        break

                    file.write(chunk)

                    call(length, blocksize, total_steps, step)

                    step += 1

        except NETWORK_ERRORS as e:

            error_report(e)

            self._discard(path)

            return Outcome.fail(EXIT_NET_DL, f"Failed to download installer: {e}", target=url, os_error=getattr(e, "errno", None))

        output(f"# Saved installer ({human_readable_size(path.stat().st_size)}) to: {path}")

        if not self.integrity:

            output("# Integrity Check Skipped (forced: --no-integrity)")

            return Outcome.ok(path)

        return self.verify_integrity(url, path)

    def verify_integrity(self, url: str, path: Path) -> Outcome:
        """
        Compare the download against the '.sha256' sidecar next to it.
        A missing or unreadable sidecar only skips the check with a warning;
        a mismatch deletes the file and fails.
        """

        try:

            with closing(self.api.open_url(url + ".sha256")) as resp:

                expected = parse_checksum(resp.read().decode("utf-8", "replace"))

        except HTTPError as e:

            output(f"# Warning: Integrity Check Skipped (no SHA-256 published, HTTP {e.code})")

            return Outcome.ok(path)

        except NETWORK_ERRORS as e:

            output(f"# Warning: Integrity Check Skipped (checksum fetch failed: {e})")

            return Outcome.ok(path)

        if not expected:

            output("# Warning: Integrity Check Skipped (malformed SHA-256 sidecar)")

            return Outcome.ok(path)

        actual = file_sha256(path)

        if actual != expected:

            self._discard(path)

            output(f"Expected: {expected}")
            output(f"Actual:   {actual}")

            return Outcome.fail(EXIT_INTEGRITY, "Integrity verification failed (SHA-256 mismatch)", target=str(path))

        output(f"# Integrity Test Passed! -- SHA256 Ending in: {actual[-10:]}")

        return Outcome.ok(path)

    def run_installer(self, installer_path: Path, java: str, timeout: Optional[float] = None) -> Outcome:
        """
        Run 'java -jar <installer> --installServer' in the installer's
        directory, blocking until it exits. With a timeout the installer is
        killed once the deadline passes.
        """

        installer_path = Path(installer_path)

        cmd = [java, "-jar", installer_path.name, "--installServer"]

        output(f"# Running: {' '.join(cmd)}")

        sink = subprocess.DEVNULL if is_quiet() else None

        try:

            p = subprocess.Popen(cmd, cwd=str(installer_path.parent), stdin=subprocess.DEVNULL, stdout=sink, stderr=sink)

        except (OSError, ValueError, subprocess.SubprocessError) as e:

            return Outcome.fail(EXIT_LAUNCH, f"Failed to launch installer: {e}", target=java, os_error=getattr(e, "errno", None))

        try:

            code = p.wait(timeout=timeout)

        except subprocess.TimeoutExpired:

            p.kill()

            p.wait()

            return Outcome.fail(EXIT_INSTALLER_TIMEOUT, f"Installer did not finish within {timeout} seconds and was killed", target=str(installer_path))

        # Forge installers exit 0 on several failure paths; success is judged by the artifact on disk.
        output(f"# Installer exited with code {code}")

        return Outcome.ok(code)

    @staticmethod
    def _discard(path: Path):

        try:

            os.remove(path)

        except FileNotFoundError:

            pass

        except OSError as e:

            output(f"# Could not remove incomplete file {path}: {e}")
