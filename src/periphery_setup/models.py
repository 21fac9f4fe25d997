"""
Install Data Model

Values carried between the installer stages. Everything here is rebuilt on
every run; the only durable state is what already sits on disk.
"""

import socket
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


LATEST = "latest"

APP_NAME = "komodo"
BINARY_NAME = "periphery"
CONFIG_FILENAME = "periphery.config.toml"
SERVICE_NAME = "periphery"

DEFAULT_BINARY_BASE_URL = "https://github.com/moghtech/komodo/releases/download"
DEFAULT_CONFIG_URL = (
    "https://raw.githubusercontent.com/moghtech/komodo/{version}/config/periphery.config.toml"
)
DEFAULT_RELEASE_INDEX_URL = "https://api.github.com/repos/moghtech/komodo/releases"


def default_connect_as() -> str:
    return socket.gethostname()


class InstallMode(str, Enum):
    """Elevation context of an install"""
    SYSTEM = "system"
    USER = "user"


class HostArchitecture(str, Enum):
    """CPU architectures with published agent binaries"""
    X86_64 = "x86_64"
    AARCH64 = "aarch64"

    @property
    def is_baseline(self) -> bool:
        return self is HostArchitecture.X86_64


class ServiceManagerKind(str, Enum):
    """Supported service supervisors"""
    SYSTEMD = "systemd"


class Outcome(str, Enum):
    """
    Result of a single install stage.

    Detecting and resolving write nothing and always report RESOLVED; the
    created/already-present/updated/recreated outcomes belong to the stages
    that change the host.
    """
    CREATED = "created"
    ALREADY_PRESENT = "already-present"
    UPDATED = "updated"
    RECREATED = "recreated"
    RESOLVED = "resolved"
    FAILED = "failed"


class Stage(str, Enum):
    """Install state machine; stages run in declaration order"""
    DETECTING = "detecting"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    CONFIGURING_FILE = "configuring-file"
    CONFIGURING_SERVICE = "configuring-service"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ArtifactSources:
    """Where release metadata and artifacts are downloaded from"""
    binary_base_url: str = DEFAULT_BINARY_BASE_URL
    config_url: str = DEFAULT_CONFIG_URL
    release_index_url: str = DEFAULT_RELEASE_INDEX_URL


@dataclass(frozen=True)
class DesiredState:
    """Fully resolved target of one install run"""
    version: str = LATEST
    mode: InstallMode = InstallMode.SYSTEM
    root_directory: Optional[Path] = None  # None = mode default
    core_address: Optional[str] = None  # None = agent listens for inbound connections
    connect_as: str = field(default_factory=default_connect_as)
    onboarding_key: Optional[str] = None
    force_service_file: bool = False
    service_name: str = SERVICE_NAME
    sources: ArtifactSources = field(default_factory=ArtifactSources)


@dataclass(frozen=True)
class ReleaseArtifact:
    """Concrete download locations for one release and architecture"""
    version: str
    binary_name: str
    binary_url: str
    config_url: str
    size: Optional[int] = None
    sha256: Optional[str] = None


@dataclass(frozen=True)
class ConfigFields:
    """Values spliced into a freshly written config file"""
    root_directory: Path
    connect_as: str
    core_address: Optional[str] = None
    onboarding_key: Optional[str] = None


@dataclass
class StageResult:
    """Outcome of one stage, as shown to the operator"""
    stage: Stage
    outcome: Outcome
    detail: str = ""


@dataclass
class InstallReport:
    """Per-stage outcomes of a single install run"""
    stages: List[StageResult] = field(default_factory=list)
    version: Optional[str] = None
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.failed_stage is None

    def record(self, stage: Stage, outcome: Outcome, detail: str = "") -> StageResult:
        result = StageResult(stage=stage, outcome=outcome, detail=detail)
        self.stages.append(result)
        return result

    def outcome_of(self, stage: Stage) -> Optional[Outcome]:
        for result in self.stages:
            if result.stage == stage:
                return result.outcome
        return None

    def fail(self, stage: Stage, error: Exception):
        self.failed_stage = stage
        self.error = error
        self.record(stage, Outcome.FAILED, str(error))
