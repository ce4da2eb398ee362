"""
Keep a Minecraft Forge server installed, up to date and running.

Resolves the newest Forge release from the upstream version and promotion
feeds, runs the vendor installer next to the current server, swaps the old
artifact out only after the new one exists, and starts/stops the server
with its console either captured or in its own window.
"""

__version__ = '1.0.0'

from .errors import Outcome  # noqa: E402
from .lifecycle import ServerLifecycle  # noqa: E402
from .models import ArtifactRef, ArtifactScheme, ServerConfig, VersionBuild  # noqa: E402

__all__ = ["Outcome", "ServerLifecycle", "ArtifactRef", "ArtifactScheme", "ServerConfig", "VersionBuild", "__version__"]
