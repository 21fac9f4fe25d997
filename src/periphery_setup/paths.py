"""
Install Paths

Mode-dependent filesystem layout of an install.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .models import APP_NAME, BINARY_NAME, CONFIG_FILENAME, SERVICE_NAME, InstallMode


SYSTEM_BINARY_DIR = Path("/usr/local/bin")
SYSTEM_CONFIG_DIR = Path("/etc") / APP_NAME
SYSTEM_UNIT_DIR = Path("/etc/systemd/system")


@dataclass(frozen=True)
class InstallPaths:
    """Where the binary, config file and unit file live"""
    binary_path: Path
    root_directory: Path
    config_path: Path
    unit_path: Path

    @classmethod
    def for_mode(
        cls,
        mode: InstallMode,
        root_directory: Optional[Path] = None,
        service_name: str = SERVICE_NAME,
        home: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "InstallPaths":
        """
        Build the layout for an install mode.

        Args:
            mode: System or User install
            root_directory: Overrides the default config/data root
            service_name: Unit name, without the .service suffix
            home: Home directory for User mode (defaults to the current user's)
            env: Environment used to look up XDG_CONFIG_HOME
        """
        unit_file = f"{service_name}.service"

        if mode == InstallMode.SYSTEM:
            binary_dir = SYSTEM_BINARY_DIR
            default_root = SYSTEM_CONFIG_DIR
            unit_dir = SYSTEM_UNIT_DIR
        else:
            env = os.environ if env is None else env
            home = home or Path.home()
            xdg_config = Path(env.get("XDG_CONFIG_HOME") or home / ".config")
            binary_dir = home / ".local" / "bin"
            default_root = xdg_config / APP_NAME
            unit_dir = xdg_config / "systemd" / "user"

        # unit files and the agent both need an absolute root
        root = Path(root_directory).expanduser().absolute() if root_directory else default_root

        return cls(
            binary_path=binary_dir / BINARY_NAME,
            root_directory=root,
            config_path=root / CONFIG_FILENAME,
            unit_path=unit_dir / unit_file,
        )
