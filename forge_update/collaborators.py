"""
Narrow interfaces to the things this package consumes but does not own:
the Java runtime, the user's consent, the console that shows server
output, and where a server's files live. Each has a small default that
works from a terminal; hosts pass their own objects with the same methods.
"""

from __future__ import annotations
import os
import shutil
from pathlib import Path
from typing import Optional

from .console import output
from .errors import EXIT_PREREQUISITE, Outcome


class OutputSink:
    """
    Receives captured server output, one call per line.
    """

    def on_line(self, text: str):

        raise NotImplementedError


class ConsoleSink(OutputSink):

    def __init__(self, prefix: str = ""):

        self.prefix = prefix

    def on_line(self, text: str):

        output(f"{self.prefix}{text}")


class RuntimeLocator:
    """
    Finds (and optionally provisions) the Java runtime.
    """

    def find_runtime_executable(self) -> Optional[Path]:

        raise NotImplementedError

    def is_runtime_installed(self) -> bool:

        return self.find_runtime_executable() is not None

    def provision_runtime(self, server_id: str) -> Outcome:

        return Outcome.fail(EXIT_PREREQUISITE, "Java is not installed and cannot be provisioned automatically")


class JavaLocator(RuntimeLocator):
    """
    Explicit path first, then JAVA_HOME, then PATH.
    """

    def __init__(self, java: Optional[str] = None):

        self.java = java

    def find_runtime_executable(self) -> Optional[Path]:

        if self.java:

            candidate = Path(self.java).expanduser()

            if candidate.is_file():

                return candidate.resolve()

            found = shutil.which(self.java)

            return Path(found) if found else None

        home = os.environ.get("JAVA_HOME")

        if home:

            for name in ("java.exe", "java"):

                candidate = Path(home) / "bin" / name

                if candidate.is_file():

                    return candidate

        found = shutil.which("java")

        return Path(found) if found else None

    def provision_runtime(self, server_id: str) -> Outcome:

        return Outcome.fail(

            EXIT_PREREQUISITE,
            "Java is not installed.\n\n"
            "     Info      : Forge servers and their installer run on the Java runtime.\n"
            "     Fix       : Install a Java runtime matching your Minecraft version.\n"
            "     Fix       : Put it on PATH, set JAVA_HOME, or pass --java <path>.",
            target=f"server {server_id}"

        )


class ConsentPrompt:

    def prompt_yes_no(self, title: str, body: str, yes_label: str = "Yes", no_label: str = "No") -> bool:

        raise NotImplementedError


class ConsolePrompt(ConsentPrompt):
    """
    Y/N question on the terminal. Anything but an explicit yes declines.
    """

    def prompt_yes_no(self, title: str, body: str, yes_label: str = "Yes", no_label: str = "No") -> bool:

        output(f"\n# {title}")

        for line in body.splitlines():

            output(f"#  {line}")

        try:

            inp = input(f"#  ({yes_label}/{no_label}):").strip().lower()

        except EOFError:

            return False

        return inp in ("y", "yes", yes_label.lower())


class AcceptAll(ConsentPrompt):
    """
    Pre-recorded consent, for --accept-eula and unattended hosts.
    """

    def prompt_yes_no(self, title: str, body: str, yes_label: str = "Yes", no_label: str = "No") -> bool:

        output(f"# {title}: accepted (forced: --accept-eula)")

        return True


class ServerPaths:
    """
    Maps a server id (and optional file name) to a location on disk.
    The default keeps every server in a single directory.
    """

    def __init__(self, root: Path):

        self.root = Path(root).expanduser().resolve()

    def resolve_server_files_path(self, server_id: str, relative_name: Optional[str] = None) -> Path:

        base = self.root

        return base / relative_name if relative_name else base


class ServerTreePaths(ServerPaths):
    """
    '<root>/servers/<id>/serverfiles', one tree per managed server.
    """

    def resolve_server_files_path(self, server_id: str, relative_name: Optional[str] = None) -> Path:

        base = self.root / "servers" / str(server_id) / "serverfiles"

        return base / relative_name if relative_name else base
