from __future__ import annotations
from pathlib import Path

from .models import ServerConfig


EULA_URL = "https://aka.ms/MinecraftEULA"

EULA_FILE = "eula.txt"

PROPERTIES_FILE = "server.properties"


def eula_text() -> str:

    return (f"#By changing the setting below to TRUE you are indicating your agreement to our EULA ({EULA_URL}).\n"
            "eula=true\n")


def write_eula(directory: Path) -> Path:
    """
    Write the accepted eula.txt the installer and server need to run unattended.
    OSError propagates to the caller.
    """

    path = Path(directory) / EULA_FILE

    path.write_text(eula_text(), encoding="utf-8")

    return path


def server_properties(config: ServerConfig) -> str:
    """
    Initial server.properties lines for a fresh install.
    """

    lines = [
        f"motd={config.name}",
        f"server-port={config.port}",
        "enable-query=true",
        f"query.port={config.query_port}",
        f"rcon.port={config.rcon_port}",
        f"rcon.password={config.rcon_password}",
    ]

    if config.ip:

        lines.append(f"server-ip={config.ip}")

    lines.append(f"max-players={config.max_players}")

    lines.append(f"level-name={config.default_map}")

    return "\n".join(lines) + "\n"


def write_server_properties(directory: Path, config: ServerConfig) -> Path:

    path = Path(directory) / PROPERTIES_FILE

    path.write_text(server_properties(config), encoding="utf-8")

    return path
