"""
Installer Errors

Every failure that aborts an install run derives from InstallerError.
"""

from typing import Optional


class InstallerError(Exception):
    """Base class for errors that abort the current install run"""


class UnsupportedPlatformError(InstallerError):
    """Host architecture or service manager could not be identified"""


class VersionNotFoundError(InstallerError):
    """Requested release tag has no artifact for the host architecture"""

    def __init__(self, version: str, detail: Optional[str] = None):
        self.version = version
        message = f"Release {version!r} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DownloadError(InstallerError):
    """Artifact could not be downloaded or failed verification"""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"Download of {url} failed: {reason}")


class InstallPermissionError(InstallerError, PermissionError):
    """Write into a protected location was denied"""

    def __init__(self, path, action: str = "write"):
        self.path = path
        super().__init__(f"Permission denied to {action} {path} (re-run with sudo, or use --user)")


class ServiceManagerError(InstallerError):
    """Service manager refused a reload/enable/start request"""

    def __init__(self, command, reason: str):
        self.command = list(command)
        self.reason = reason
        super().__init__(f"'{' '.join(self.command)}' failed: {reason}")


class ConfigTemplateError(InstallerError):
    """Config template could not be turned into a valid config file"""
