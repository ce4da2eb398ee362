from __future__ import annotations
import os
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from .collaborators import ConsentPrompt, ConsolePrompt, ConsoleSink, JavaLocator, OutputSink, RuntimeLocator, ServerPaths
from .console import output
from .errors import (EXIT_ARTIFACT_MISSING, EXIT_CONSENT, EXIT_FILESYSTEM, EXIT_INSTALL_INCOMPLETE,
                     EXIT_PREREQUISITE, Outcome)
from .installer import InstallerRunner
from .locator import ArtifactLocator
from .models import ArtifactRef, ArtifactScheme, ServerConfig, VersionBuild
from .process import ManagedProcess, start_server, stop_server
from .remote import RemoteApi, VersionResolver
from .serverfiles import EULA_URL, write_eula, write_server_properties


OPERATIONS = ("install", "update", "check", "start", "stop", "create_server_config")

_executor: Optional[ThreadPoolExecutor] = None


def shared_executor() -> ThreadPoolExecutor:
    """
    Pool that runs lifecycle operations for hosts managing several servers.
    """

    global _executor

    if _executor is None:

        _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="forge-lifecycle")

    return _executor


class UpdateCheck(NamedTuple):

    installed: Optional[ArtifactRef]

    remote: VersionBuild

    available: bool


class ServerLifecycle:
    """
    High-level orchestrator for install, update, start, stop and validation
    of one server instance. The only class a host needs to talk to.
    Every operation returns an Outcome and the first failing step aborts it.
    Operations on the same instance must not overlap; callers serialize them.
    """

    def __init__(self, config: ServerConfig, paths: ServerPaths, scheme: Optional[ArtifactScheme] = None,
                 resolver: Optional[VersionResolver] = None, installer: Optional[InstallerRunner] = None,
                 runtime: Optional[RuntimeLocator] = None, consent: Optional[ConsentPrompt] = None,
                 sink: Optional[OutputSink] = None, stream: str = "latest", installer_timeout: Optional[float] = None,
                 integrity: bool = True, user_agent: str = ''):
        """
        Bind the instance settings and the collaborators.
        Anything not supplied gets the terminal-friendly default.
        """

        self.config = config

        self.paths = paths

        self.scheme = scheme or ArtifactScheme()

        api = RemoteApi(user_agent=user_agent)

        self.resolver = resolver or VersionResolver(self.scheme, api)

        self.installer = installer or InstallerRunner(self.scheme, api, integrity=integrity)

        self.locator = ArtifactLocator(self.scheme)

        self.runtime = runtime or JavaLocator()

        self.consent = consent or ConsolePrompt()

        self.sink = sink or ConsoleSink()

        self.stream = stream

        self.installer_timeout = installer_timeout

    @property
    def server_dir(self) -> Path:

        return self.paths.resolve_server_files_path(self.config.server_id)

    def installed_artifact(self) -> Optional[ArtifactRef]:

        return self.locator.find_installed_artifact(self.server_dir)

    def ensure_runtime(self) -> Outcome:
        """
        Return Outcome.ok(java path), provisioning the runtime when absent.
        """

        if not self.runtime.is_runtime_installed():

            output("# Java runtime not found, attempting to provision ...")

            provisioned = self.runtime.provision_runtime(self.config.server_id)

            if not provisioned:

                return provisioned

        java = self.runtime.find_runtime_executable()

        if java is None:

            return Outcome.fail(EXIT_PREREQUISITE, "Java is not installed", target=f"server {self.config.server_id}")

        return Outcome.ok(java)

    def install(self, stream: Optional[str] = None) -> Outcome:
        """
        Fresh install: consent, runtime, remote release, installer download,
        eula.txt, installer run. Succeeds with the ArtifactRef the installer
        left behind, or InstallIncomplete when nothing usable appeared.
        """

        output("\n[ --== Install Server: ==-- ]\n")

        agreed = self.consent.prompt_yes_no(
            "Agreement to the EULA",
            f"By continuing you are indicating your agreement to the EULA.\n({EULA_URL})",
            "Agree", "Decline",
        )

        if not agreed:

            return Outcome.fail(EXIT_CONSENT, "Disagree to the EULA")

        java = self.ensure_runtime()

        if not java:

            return java

        remote = self.resolver.resolve(stream or self.stream)

        if not remote:

            return remote

        before = self._artifact_snapshot()

        fetched = self.installer.fetch_installer(remote.value, self.server_dir)

        if not fetched:

            return fetched

        try:

            write_eula(self.server_dir)

        except OSError as e:

            return Outcome.fail(EXIT_FILESYSTEM, f"Failed to write eula.txt: {e}", target=str(self.server_dir), os_error=e.errno)

        ran = self.installer.run_installer(fetched.value, str(java.value), timeout=self.installer_timeout)

        if not ran:

            return ran

        artifact = self._new_artifact(remote.value, before)

        if artifact is None:

            return Outcome.fail(EXIT_INSTALL_INCOMPLETE, "Installer finished but no server artifact was produced", target=str(self.server_dir))

        output(f"# Installed: {artifact.file_name}")

        output("\n[ --== Install Complete! ==-- ]")

        return Outcome.ok(artifact)

    def check(self, stream: Optional[str] = None) -> Outcome:
        """
        Compare the installed artifact with the remote release.
        An artifact whose name carries no version counts as outdated.
        """

        output("\n[ --== Checking For New Version: ==-- ]\n")

        installed = self.installed_artifact()

        remote = self.resolver.resolve(stream or self.stream)

        if not remote:

            return remote

        output("# Comparing local <> remote versions ...")

        available = installed is None or installed.parsed != remote.value

        if available:

            output(f"# New Version Available! - [Version: {remote.value}]")

        else:

            output("# You are up to date!")

        return Outcome.ok(UpdateCheck(installed, remote.value, available))

    def update(self, stream: Optional[str] = None, force: bool = False, cleanup: bool = True) -> Outcome:
        """
        Install the remote release next to the current one, then remove the
        previous artifact and its installer. Nothing is deleted until the new
        artifact is on disk, so a failed download or installer run leaves the
        old server runnable. Cleanup failures are reported, not rolled back.
        """

        output("\n[ --== Update Server: ==-- ]\n")

        previous = self.installed_artifact()

        previous_installer = self.locator.installer_path_for(previous) if previous else None

        if previous:

            output(f"# Current artifact: {previous.file_name}")

        else:

            output("# No installed artifact found, installing fresh")

        java = self.ensure_runtime()

        if not java:

            return java

        remote = self.resolver.resolve(stream or self.stream)

        if not remote:

            return remote

        if previous and previous.parsed == remote.value and not force:

            output("# You are up to date!")

            return Outcome.ok(previous, message="already up to date")

        before = self._artifact_snapshot()

        fetched = self.installer.fetch_installer(remote.value, self.server_dir)

        if not fetched:

            return fetched

        ran = self.installer.run_installer(fetched.value, str(java.value), timeout=self.installer_timeout)

        if not ran:

            return ran

        artifact = self._new_artifact(remote.value, before)

        if artifact is None:

            return Outcome.fail(EXIT_INSTALL_INCOMPLETE, f"Installer for {remote.value} produced no server artifact; previous artifact kept", target=str(self.server_dir))

        output(f"# Installed: {artifact.file_name}")

        problems: List[str] = []

        if cleanup and previous:

            problems = self._remove_previous(previous, previous_installer, keep=(artifact.absolute_path, fetched.value))

        output("\n[ --== Update Complete! ==-- ]")

        return Outcome.ok(artifact, message="; ".join(problems))

    def _artifact_snapshot(self) -> Dict[Path, Optional[Tuple[int, int]]]:
        """
        Modification time and size of every artifact currently on disk.
        """

        return {ref.absolute_path: self._signature(ref.absolute_path) for ref in self.locator.list_artifacts(self.server_dir)}

    @staticmethod
    def _signature(path: Path) -> Optional[Tuple[int, int]]:

        try:

            st = Path(path).stat()

        except OSError:

            return None

        return st.st_mtime_ns, st.st_size

    def _new_artifact(self, remote: VersionBuild, before: Dict[Path, Optional[Tuple[int, int]]]) -> Optional[ArtifactRef]:
        """
        The artifact the installer run produced: a file that did not exist
        before the run or was rewritten by it. Files left untouched never
        count, whatever their version.
        """

        produced = [ref for ref in self.locator.list_artifacts(self.server_dir)
                    if ref.absolute_path not in before or before[ref.absolute_path] != self._signature(ref.absolute_path)]

        for ref in produced:

            if ref.parsed == remote:

                return ref

        return produced[0] if produced else None

    def _remove_previous(self, previous: ArtifactRef, previous_installer: Optional[Path], keep) -> List[str]:

        output("\n[ --== Cleaning Previous Version: ==-- ]\n")

        keep = {Path(k).resolve() for k in keep}

        problems: List[str] = []

        for path in (previous.absolute_path, previous_installer):

            if path is None or Path(path).resolve() in keep or not Path(path).exists():

                continue

            try:

                os.remove(path)

                output(f"# Removed: {path}")

            except OSError as e:

                output(f"# Could not remove {path}: {e}")

                problems.append(f"could not remove {Path(path).name}: {e}")

        return problems

    def start(self) -> Outcome:
        """
        Launch the installed artifact with 'java <params> -jar <artifact> nogui'.
        Fails with ArtifactMissing, without launching, when nothing is installed.
        """

        output("\n[ --== Starting Server: ==-- ]\n")

        artifact = self.installed_artifact()

        if artifact is None:

            return Outcome.fail(EXIT_ARTIFACT_MISSING, f"No server artifact found in {self.server_dir}", target=str(self.server_dir))

        java = self.runtime.find_runtime_executable()

        if java is None:

            return Outcome.fail(EXIT_PREREQUISITE, "Java is not installed", target=f"server {self.config.server_id}")

        args = f"{self.config.params} -jar {artifact.file_name} nogui".strip()

        return start_server(self.server_dir, str(java), args, self.config.capture_output, self.sink)

    def stop(self, proc: ManagedProcess) -> Outcome:

        output("\n[ --== Stopping Server: ==-- ]\n")

        return stop_server(proc)

    def is_install_valid(self) -> bool:

        return self.installed_artifact() is not None

    def is_import_valid(self, path: Path) -> bool:
        """
        True when an existing directory holds a server artifact to import.
        """

        if self.locator.find_installed_artifact(Path(path)) is None:

            output(f"# Invalid Path! Fail to find a {self.scheme.file_glob} server artifact in {path}")

            return False

        return True

    def create_server_config(self) -> Outcome:

        try:

            path = write_server_properties(self.server_dir, self.config)

        except OSError as e:

            return Outcome.fail(EXIT_FILESYSTEM, f"Failed to write server.properties: {e}", target=str(self.server_dir), os_error=e.errno)

        output(f"# Wrote {path}")

        return Outcome.ok(path)

    def submit(self, operation: str, *args, **kwargs) -> "Future[Outcome]":
        """
        Run one lifecycle operation on the shared pool and return its Future,
        so a host can drive several servers at once and bound each call with
        future.result(timeout).
        """

        if operation not in OPERATIONS:

            raise ValueError(f"unknown lifecycle operation: {operation}")

        return shared_executor().submit(getattr(self, operation), *args, **kwargs)
