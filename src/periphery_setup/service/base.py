"""Base classes for service supervision."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..models import InstallMode, ServiceManagerKind
from ..paths import InstallPaths


def _quote(arg: str, always: bool = False) -> str:
    arg = arg.replace("%", "%%")  # systemd specifiers
    if always or not arg or any(ch.isspace() for ch in arg) or '"' in arg:
        return '"' + arg.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return arg


@dataclass(frozen=True)
class ServiceUnitDescriptor:
    """Desired content of the agent's unit file"""
    name: str
    exec_args: List[str]
    working_directory: Path
    description: str = "Komodo Periphery agent"
    restart: str = "always"
    restart_sec: int = 5
    user: Optional[str] = None
    group: Optional[str] = None
    environment: Dict[str, str] = field(default_factory=dict)
    wanted_by: str = "multi-user.target"

    @classmethod
    def for_install(cls, mode: InstallMode, paths: InstallPaths, name: str) -> "ServiceUnitDescriptor":
        """Unit that runs the installed binary against the installed config"""
        exec_args = [str(paths.binary_path), "--config-path", str(paths.config_path)]

        if mode == InstallMode.SYSTEM:
            return cls(
                name=name,
                exec_args=exec_args,
                working_directory=paths.root_directory,
                user="root",
                group="root",
                environment={"HOME": "/root"},
                wanted_by="multi-user.target",
            )

        # User managers run units as the owning user; User=/Group= are not allowed there
        return cls(
            name=name,
            exec_args=exec_args,
            working_directory=paths.root_directory,
            wanted_by="default.target",
        )

    @property
    def exec_start(self) -> str:
        return " ".join(_quote(arg) for arg in self.exec_args)

    def render(self) -> str:
        """Render as a systemd unit file"""
        lines = [
            "[Unit]",
            f"Description={self.description}",
            "Wants=network-online.target",
            "After=network-online.target",
            "",
            "[Service]",
            "Type=simple",
        ]
        if self.user:
            lines.append(f"User={self.user}")
        if self.group:
            lines.append(f"Group={self.group}")
        for key, value in sorted(self.environment.items()):
            lines.append(f"Environment={_quote(f'{key}={value}', always=True)}")
        lines += [
            f"WorkingDirectory={_quote(str(self.working_directory))}",
            f"ExecStart={self.exec_start}",
            f"Restart={self.restart}",
            f"RestartSec={self.restart_sec}",
            "TimeoutStartSec=0",
            "",
            "[Install]",
            f"WantedBy={self.wanted_by}",
        ]
        return "\n".join(lines) + "\n"


class ServiceManager(ABC):
    """Host supervisor that loads, enables and runs service units."""

    kind: ServiceManagerKind

    @abstractmethod
    def reload(self):
        """Re-read unit definitions from disk"""

    @abstractmethod
    def enable(self, name: str):
        """Start the service on boot"""

    @abstractmethod
    def start(self, name: str):
        """Start the service if it is not running"""

    @abstractmethod
    def restart(self, name: str):
        """Stop (if running) and start the service"""

    @abstractmethod
    def is_active(self, name: str) -> bool:
        """Whether the service is currently running"""
