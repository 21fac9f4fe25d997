"""
Service Unit Reconciliation

Creates the unit file when missing (or when forced), otherwise leaves a
possibly hand-authored unit alone, and makes sure the service ends up enabled
and running.
"""

import logging
import os
import tempfile
from pathlib import Path

from ..errors import InstallPermissionError
from ..models import InstallMode, Outcome
from .base import ServiceManager, ServiceUnitDescriptor

logger = logging.getLogger(__name__)


def write_unit_file(unit_path: Path, content: str):
    """Replace the unit file wholesale"""
    try:
        unit_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{unit_path.name}.", suffix=".tmp", dir=unit_path.parent)
    except PermissionError as e:
        raise InstallPermissionError(unit_path.parent) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, unit_path)
    except PermissionError as e:
        raise InstallPermissionError(unit_path) from e
    finally:
        tmp_path.unlink(missing_ok=True)


class ServiceUnitReconciler:
    """Reconciles the unit file and service state with a service manager."""

    def __init__(self, manager: ServiceManager):
        self.manager = manager

    def reconcile(
        self,
        mode: InstallMode,
        unit_path: Path,
        desired_unit: ServiceUnitDescriptor,
        force: bool,
        restart_required: bool = False,
    ) -> Outcome:
        """
        Converge unit file and service state.

        Args:
            mode: Install mode the unit belongs to
            unit_path: Location of the unit file
            desired_unit: Unit to write when creating or recreating
            force: Rewrite the unit file even if one exists
            restart_required: The agent binary changed, so a running
                service must be restarted to pick it up

        Returns:
            CREATED, RECREATED (forced over an existing file) or
            ALREADY_PRESENT (existing file left untouched)
        """
        unit_path = Path(unit_path)
        name = desired_unit.name

        existed = os.path.lexists(unit_path)

        if existed and not force:
            logger.info(f"Unit file {unit_path} already exists, leaving it untouched")
            self.manager.enable(name)
            if not self.manager.is_active(name):
                logger.info(f"Starting {name}")
                self.manager.start(name)
            elif restart_required:
                logger.info(f"Restarting {name} to pick up the new binary")
                self.manager.restart(name)
            return Outcome.ALREADY_PRESENT

        write_unit_file(unit_path, desired_unit.render())
        outcome = Outcome.RECREATED if existed else Outcome.CREATED
        logger.info(f"Unit file {unit_path} {outcome.value}")

        self.manager.reload()
        self.manager.enable(name)
        self.manager.restart(name)

        if mode == InstallMode.USER and outcome == Outcome.CREATED:
            logger.info("User services stop at logout unless lingering is enabled: loginctl enable-linger $USER")
        return outcome
