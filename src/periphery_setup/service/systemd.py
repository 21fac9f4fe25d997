"""
systemd Service Manager

Drives systemctl, at system scope or with --user for per-user installs.
"""

import logging
import subprocess
from typing import Callable

from ..errors import InstallPermissionError, ServiceManagerError
from ..models import InstallMode, ServiceManagerKind
from .base import ServiceManager

logger = logging.getLogger(__name__)

_DENIED_MARKERS = (
    "access denied",
    "interactive authentication required",
    "permission denied",
)


class SystemdManager(ServiceManager):
    """systemd via systemctl"""

    kind = ServiceManagerKind.SYSTEMD

    def __init__(
        self,
        user_scope: bool = False,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = 90.0,
    ):
        self.user_scope = user_scope
        self._runner = runner
        self.timeout = timeout

    @classmethod
    def for_mode(cls, mode: InstallMode, **kwargs) -> "SystemdManager":
        return cls(user_scope=mode == InstallMode.USER, **kwargs)

    def _systemctl(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        command = ["systemctl"]
        if self.user_scope:
            command.append("--user")
        command.extend(args)

        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = self._runner(command, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError:
            raise ServiceManagerError(command, "systemctl not found")
        except subprocess.TimeoutExpired:
            raise ServiceManagerError(command, f"timed out after {self.timeout:.0f}s")

        if check and result.returncode != 0:
            reason = (result.stderr or result.stdout or "").strip() or f"exit status {result.returncode}"
            if any(marker in reason.lower() for marker in _DENIED_MARKERS):
                raise InstallPermissionError(" ".join(command), "run")
            raise ServiceManagerError(command, reason)
        return result

    def reload(self):
        self._systemctl("daemon-reload")

    def enable(self, name: str):
        self._systemctl("enable", name)

    def start(self, name: str):
        self._systemctl("start", name)

    def restart(self, name: str):
        self._systemctl("restart", name)

    def is_active(self, name: str) -> bool:
        return self._systemctl("is-active", "--quiet", name, check=False).returncode == 0
