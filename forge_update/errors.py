"""
Error taxonomy and the per-call Outcome result.

Each failure kind is an integer that doubles as the command line exit code.
Library code never raises these across its boundary, it returns an Outcome.
"""

from __future__ import annotations
from typing import Any, Optional


# === Exit codes (centralized) ===
EXIT_NOTHING            = 0       # Success: nothing to do (already up-to-date / check only)
EXIT_UPDATE             = 1       # Success: new artifact installed
EXIT_REMOTE_RESOLUTION  = 30      # Remote version/build lookup failed
EXIT_NET_DL             = 31      # Installer download failed (HTTP/URL/IO)
EXIT_LAUNCH             = 32      # Child process could not be launched
EXIT_STOP               = 33      # Stop command could not be delivered
EXIT_ARTIFACT_MISSING   = 34      # No server artifact in the server directory
EXIT_INSTALL_INCOMPLETE = 35      # Installer ran but produced no artifact
EXIT_PREREQUISITE       = 36      # Java runtime missing and could not be provisioned
EXIT_CONSENT            = 37      # EULA declined
EXIT_FILESYSTEM         = 38      # Reading/writing/deleting server files failed
EXIT_INTEGRITY          = 39      # Installer checksum mismatch
EXIT_INSTALLER_TIMEOUT  = 40      # Installer exceeded its deadline and was killed


ERROR_NAMES = {
    EXIT_REMOTE_RESOLUTION: "RemoteResolutionFailed",
    EXIT_NET_DL: "DownloadFailed",
    EXIT_LAUNCH: "LaunchFailed",
    EXIT_STOP: "StopFailed",
    EXIT_ARTIFACT_MISSING: "ArtifactMissing",
    EXIT_INSTALL_INCOMPLETE: "InstallIncomplete",
    EXIT_PREREQUISITE: "PrerequisiteMissing",
    EXIT_CONSENT: "ConsentDeclined",
    EXIT_FILESYSTEM: "FilesystemError",
    EXIT_INTEGRITY: "IntegrityFailed",
    EXIT_INSTALLER_TIMEOUT: "InstallerTimeout",
}


class Outcome:
    """
    Tagged result of one lifecycle call: success with a payload, or a
    failure carrying its EXIT_* code and a human-readable message.
    """

    __slots__ = ("success", "value", "code", "message", "target", "os_error")

    def __init__(self, success: bool, value: Any = None, code: int = EXIT_NOTHING, message: str = "",
                 target: Optional[str] = None, os_error: Optional[int] = None):

        self.success = success

        self.value = value

        self.code = code

        self.message = message

        self.target = target

        self.os_error = os_error

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> "Outcome":

        return cls(True, value=value, message=message)

    @classmethod
    def fail(cls, code: int, message: str, target: Optional[str] = None, os_error: Optional[int] = None) -> "Outcome":

        if code == EXIT_NOTHING:

            raise ValueError("a failed Outcome needs a non-zero error code")

        return cls(False, code=code, message=message, target=target, os_error=os_error)

    @property
    def name(self) -> str:
        """
        Taxonomy name of the failure, or 'Success'.
        """

        if self.success:

            return "Success"

        return ERROR_NAMES.get(self.code, f"Error{self.code}")

    def __bool__(self) -> bool:

        return self.success

    def __repr__(self) -> str:

        if self.success:

            return f"Outcome.ok({self.value!r})"

        return f"Outcome.fail({self.name}, {self.message!r})"
