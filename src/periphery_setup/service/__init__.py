"""
Service Supervision

Unit file rendering and reconciliation against the host service manager.
"""

from ..errors import UnsupportedPlatformError
from ..models import InstallMode, ServiceManagerKind
from .base import ServiceManager, ServiceUnitDescriptor
from .reconciler import ServiceUnitReconciler, write_unit_file
from .systemd import SystemdManager

__all__ = [
    "ServiceManager",
    "ServiceUnitDescriptor",
    "ServiceUnitReconciler",
    "SystemdManager",
    "manager_for",
    "write_unit_file",
]


def manager_for(kind: ServiceManagerKind, mode: InstallMode) -> ServiceManager:
    """Service manager driver for a detected supervisor and install mode"""
    if kind == ServiceManagerKind.SYSTEMD:
        return SystemdManager.for_mode(mode)
    raise UnsupportedPlatformError(f"No driver for service manager: {kind}")
