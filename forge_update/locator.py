from __future__ import annotations
from pathlib import Path
from typing import List, Optional

from .console import output
from .models import ArtifactRef, ArtifactScheme, VersionBuild


class ArtifactLocator:
    """
    Answer "what is installed" from the server directory alone.
    The installer's output name is only conventionally predictable, so the
    directory contents are the source of truth; nothing is cached.
    """

    def __init__(self, scheme: Optional[ArtifactScheme] = None):

        self.scheme = scheme or ArtifactScheme()

    def parse_version_build(self, file_name: str) -> Optional[VersionBuild]:
        """
        Apply the artifact name pattern; group 1 is the version, group 2
        the build. Returns None for names that do not follow it.
        """

        m = self.scheme.name_pattern.match(Path(file_name).name)

        if not m:

            return None

        return VersionBuild(m.group(1), m.group(2))

    def is_installer(self, file_name: str) -> bool:

        return self.scheme.installer_marker.lower() in file_name.lower()

    def list_artifacts(self, directory: Path) -> List[ArtifactRef]:
        """
        Every non-installer file matching the artifact glob, newest first.
        Ties on modification time fall back to the name, descending, so the
        order never depends on how the OS enumerates the directory.
        Returns [] (with a notice) when the directory cannot be read.
        """

        directory = Path(directory)

        if not directory.is_dir():

            output(f"# Server directory not found: {directory}")

            return []

        candidates = []

        try:

            for p in directory.glob(self.scheme.file_glob):

                if not p.is_file() or self.is_installer(p.name):

                    continue

                candidates.append((p.stat().st_mtime, p.name, p))

        except OSError as e:

            output(f"# Unable to read server directory {directory}: {e}")

            return []

        candidates.sort(key=lambda c: (c[0], c[1]), reverse=True)

        return [ArtifactRef(name, path.resolve(), self.parse_version_build(name)) for _, name, path in candidates]

    def find_installed_artifact(self, directory: Path) -> Optional[ArtifactRef]:
        """
        The authoritative artifact of a directory, or None.
        When several match, the most recently modified one wins.
        """

        found = self.list_artifacts(directory)

        if len(found) > 1:

            output(f"# Found {len(found)} server artifacts, using newest: {found[0].file_name}")

        return found[0] if found else None

    def installer_path_for(self, artifact: ArtifactRef) -> Optional[Path]:
        """
        Conventional path of the installer that produced this artifact.
        None when the artifact name does not carry a version/build.
        """

        if artifact.parsed is None:

            return None

        return artifact.absolute_path.parent / self.scheme.installer_name(artifact.parsed)
