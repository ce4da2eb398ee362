"""
Value types shared by the resolver, locator, installer and orchestrator.
"""

from __future__ import annotations
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Pattern


BUILD_STREAMS = ("latest", "recommended")

RCON_PORT_OFFSET = 10

STOP_COMMAND = "stop"


@dataclass(frozen=True)
class VersionBuild:
    """
    One upstream release: platform (Minecraft) version plus loader build.
    Serialized as '{version}-{build}', the form used in artifact names.
    """

    version: str

    build: str

    def __str__(self) -> str:

        return f"{self.version}-{self.build}"

    @classmethod
    def from_string(cls, text: str) -> "VersionBuild":
        """
        Split '{version}-{build}' at the first dash.
        Raises ValueError when either half is missing.
        """

        version, sep, build = text.strip().partition("-")

        if not sep or not version or not build:

            raise ValueError(f"not a version-build string: {text!r}")

        return cls(version, build)


@dataclass(frozen=True)
class ArtifactRef:
    """
    A file on disk that looks like an installed server artifact.
    parsed is None when the name matches the glob but not the name pattern.
    """

    file_name: str

    absolute_path: Path

    parsed: Optional[VersionBuild] = None

    @property
    def version(self) -> str:

        return self.parsed.version if self.parsed else ""

    @property
    def build(self) -> str:

        return self.parsed.build if self.parsed else ""


@dataclass(frozen=True)
class ArtifactScheme:
    """
    Naming and download conventions of one installer-based server product.
    The defaults describe Minecraft Forge.
    """

    prefix: str = "forge"

    extension: str = "jar"

    installer_marker: str = "installer"

    download_host: str = "https://maven.minecraftforge.net"

    download_base: str = "/net/minecraftforge/forge"

    versions_url: str = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"

    promotions_url: str = "https://files.minecraftforge.net/net/minecraftforge/forge/promotions_slim.json"

    glob: Optional[str] = None

    @property
    def file_glob(self) -> str:

        return self.glob or f"*{self.prefix}*.{self.extension}"

    @property
    def name_pattern(self) -> Pattern[str]:
        """
        '{prefix}-{version}-{build}[-classifier].{ext}', case-insensitive.
        Group 1 is the version, group 2 the build.
        """

        return re.compile(
            r"^{}-([^-]+)-([^-]+?)(?:-[A-Za-z]+)?\.{}$".format(re.escape(self.prefix), re.escape(self.extension)),
            re.IGNORECASE,
        )

    def artifact_name(self, vb: VersionBuild) -> str:

        return f"{self.prefix}-{vb}.{self.extension}"

    def installer_name(self, vb: VersionBuild) -> str:

        return f"{self.prefix}-{vb}-{self.installer_marker}.{self.extension}"

    def installer_url(self, vb: VersionBuild) -> str:

        return f"{self.download_host}{self.download_base}/{vb}/{self.installer_name(vb)}"


def generate_password(length: int = 12) -> str:
    """
    Random alphanumeric secret for the management (RCON) port.
    """

    alphabet = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"

    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class ServerConfig:
    """
    Per-instance settings for one managed server.
    """

    server_id: str = "1"

    name: str = "Minecraft: Forge Server"

    ip: str = ""

    port: int = 25565

    query_port: int = 25565

    max_players: int = 20

    default_map: str = "world"

    params: str = ""

    capture_output: bool = True

    rcon_password: str = field(default_factory=generate_password)

    @property
    def rcon_port(self) -> int:

        return int(self.port) + RCON_PORT_OFFSET
