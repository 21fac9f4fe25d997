"""
Platform Detection

Detect host architecture and service manager. Detection is split into
gathering raw host facts and a pure classification of those facts, so the
classification can be exercised with fake hosts.
"""

import platform
import shutil
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .errors import UnsupportedPlatformError
from .models import HostArchitecture, ServiceManagerKind


SYSTEMD_RUNTIME_DIR = Path("/run/systemd/system")

_MACHINE_ALIASES: Dict[str, HostArchitecture] = {
    "x86_64": HostArchitecture.X86_64,
    "amd64": HostArchitecture.X86_64,
    "aarch64": HostArchitecture.AARCH64,
    "arm64": HostArchitecture.AARCH64,
}


@dataclass(frozen=True)
class HostFacts:
    """Raw observations about the running host"""
    system: str  # 'linux', 'darwin', ...
    machine: str
    hostname: str
    has_systemctl: bool
    systemd_booted: bool


@dataclass(frozen=True)
class PlatformInfo:
    """Platform information"""
    architecture: HostArchitecture
    service_manager: ServiceManagerKind
    hostname: str


def gather_host_facts() -> HostFacts:
    """Collect host facts from the running environment"""
    return HostFacts(
        system=platform.system().lower(),
        machine=platform.machine(),
        hostname=socket.gethostname(),
        has_systemctl=shutil.which("systemctl") is not None,
        systemd_booted=SYSTEMD_RUNTIME_DIR.is_dir(),
    )


def detect_architecture(machine: str) -> HostArchitecture:
    """Map a machine string to a supported architecture, refusing to guess"""
    arch = _MACHINE_ALIASES.get(machine.strip().lower())
    if arch is None:
        raise UnsupportedPlatformError(f"Unsupported CPU architecture: {machine or 'unknown'}")
    return arch


def detect_service_manager(facts: HostFacts) -> ServiceManagerKind:
    """Identify the service manager that supervises this host"""
    if facts.system != "linux":
        raise UnsupportedPlatformError(f"Unsupported operating system: {facts.system or 'unknown'}")

    # systemctl alone is not enough, containers often ship it without systemd as PID 1
    if facts.has_systemctl and facts.systemd_booted:
        return ServiceManagerKind.SYSTEMD

    raise UnsupportedPlatformError("No supported service manager found (systemd is required)")


def detect(facts: Optional[HostFacts] = None) -> PlatformInfo:
    """Detect current platform"""
    if facts is None:
        facts = gather_host_facts()

    return PlatformInfo(
        architecture=detect_architecture(facts.machine),
        service_manager=detect_service_manager(facts),
        hostname=facts.hostname,
    )
