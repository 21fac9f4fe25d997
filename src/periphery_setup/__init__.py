"""
Periphery Setup

Installs and upgrades the Komodo Periphery agent and registers it with the
host service manager. Safe to re-run: every run converges toward the target
state without clobbering operator edits.
"""

from .errors import (
    ConfigTemplateError,
    DownloadError,
    InstallerError,
    InstallPermissionError,
    ServiceManagerError,
    UnsupportedPlatformError,
    VersionNotFoundError,
)
from .models import DesiredState, InstallMode, InstallReport, Outcome, Stage
from .orchestrator import InstallOrchestrator
from .platform import detect, PlatformInfo
from .version import __version__

__all__ = [
    "ConfigTemplateError",
    "DesiredState",
    "DownloadError",
    "InstallMode",
    "InstallOrchestrator",
    "InstallPermissionError",
    "InstallReport",
    "InstallerError",
    "Outcome",
    "PlatformInfo",
    "ServiceManagerError",
    "Stage",
    "UnsupportedPlatformError",
    "VersionNotFoundError",
    "detect",
    "__version__",
]
