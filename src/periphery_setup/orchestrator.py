"""
Install Orchestrator

Runs the install stages in order:

    detecting -> resolving -> fetching -> configuring-file -> configuring-service -> done

The first failing stage ends the run in the failed state. Completed stages are
never rolled back; every stage re-derives its action from disk and service
manager state, so re-running the installer is the recovery path.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .config_file import ConfigReconciler
from .errors import InstallerError
from .fetch import ArtifactFetcher
from .models import (
    ConfigFields,
    DesiredState,
    InstallReport,
    Outcome,
    ReleaseArtifact,
    Stage,
)
from .paths import InstallPaths
from .platform import PlatformInfo, detect
from .release import ReleaseResolver
from .service import ServiceManager, ServiceUnitDescriptor, ServiceUnitReconciler, manager_for

logger = logging.getLogger(__name__)

_STAGE_ORDER = [
    Stage.DETECTING,
    Stage.RESOLVING,
    Stage.FETCHING,
    Stage.CONFIGURING_FILE,
    Stage.CONFIGURING_SERVICE,
    Stage.DONE,
]


@dataclass
class InstallPlan:
    """State carried from stage to stage during one run"""
    desired: DesiredState
    paths: InstallPaths
    platform: Optional[PlatformInfo] = None
    artifact: Optional[ReleaseArtifact] = None
    binary_outcome: Optional[Outcome] = None

    @property
    def config_fields(self) -> ConfigFields:
        return ConfigFields(
            root_directory=self.paths.root_directory,
            connect_as=self.desired.connect_as,
            core_address=self.desired.core_address,
            onboarding_key=self.desired.onboarding_key,
        )


class InstallOrchestrator:
    """
    Sequences one install run.

    Args:
        desired: Target state of this run
        fetcher: Entered ArtifactFetcher used for every download
        paths: Install layout (defaults to the layout of desired.mode)
        detector: Platform detection function
        manager: Service manager driver (defaults to the detected one)
    """

    def __init__(
        self,
        desired: DesiredState,
        fetcher: ArtifactFetcher,
        paths: Optional[InstallPaths] = None,
        detector: Callable[[], PlatformInfo] = detect,
        manager: Optional[ServiceManager] = None,
    ):
        self.desired = desired
        self.fetcher = fetcher
        self.paths = paths or InstallPaths.for_mode(
            desired.mode,
            root_directory=desired.root_directory,
            service_name=desired.service_name,
        )
        self.detector = detector
        self.manager = manager
        self.state: Optional[Stage] = None

    def _enter(self, stage: Stage):
        if self.state is not None:
            if self.state in (Stage.DONE, Stage.FAILED):
                raise RuntimeError(f"Install run already finished ({self.state.value})")
            if _STAGE_ORDER.index(stage) <= _STAGE_ORDER.index(self.state):
                raise RuntimeError(f"Illegal transition {self.state.value} -> {stage.value}")
        logger.debug(f"Stage: {stage.value}")
        self.state = stage

    async def run(self) -> InstallReport:
        """Run every stage; failures are reported, not raised"""
        report = InstallReport()
        plan = InstallPlan(desired=self.desired, paths=self.paths)

        try:
            await self._run_stages(plan, report)
        except (InstallerError, OSError) as e:
            failed_stage = self.state or Stage.DETECTING
            logger.error(f"Install failed while {failed_stage.value}: {e}")
            report.fail(failed_stage, e)
            self.state = Stage.FAILED

        return report

    async def _run_stages(self, plan: InstallPlan, report: InstallReport):
        desired = self.desired

        self._enter(Stage.DETECTING)
        plan.platform = self.detector()
        report.record(
            Stage.DETECTING,
            Outcome.RESOLVED,
            f"{plan.platform.architecture.value}, {plan.platform.service_manager.value}",
        )

        self._enter(Stage.RESOLVING)
        resolver = ReleaseResolver(self.fetcher)
        plan.artifact = await resolver.resolve(desired.version, plan.platform.architecture, desired.sources)
        report.version = plan.artifact.version
        report.record(Stage.RESOLVING, Outcome.RESOLVED, plan.artifact.version)

        self._enter(Stage.FETCHING)
        artifact = plan.artifact
        data = await self.fetcher.fetch(artifact.binary_url, expected_size=artifact.size, sha256=artifact.sha256)
        plan.binary_outcome = await self.fetcher.install_binary(
            data, self.paths.binary_path, expected_size=artifact.size, sha256=artifact.sha256
        )
        report.record(Stage.FETCHING, plan.binary_outcome, str(self.paths.binary_path))

        self._enter(Stage.CONFIGURING_FILE)
        config = ConfigReconciler(self.fetcher, artifact.config_url)
        config_outcome = await config.reconcile(self.paths.root_directory, plan.config_fields)
        report.record(Stage.CONFIGURING_FILE, config_outcome, str(self.paths.config_path))

        self._enter(Stage.CONFIGURING_SERVICE)
        manager = self.manager or manager_for(plan.platform.service_manager, desired.mode)
        unit = ServiceUnitDescriptor.for_install(desired.mode, self.paths, desired.service_name)
        unit_outcome = ServiceUnitReconciler(manager).reconcile(
            desired.mode,
            self.paths.unit_path,
            unit,
            force=desired.force_service_file,
            restart_required=plan.binary_outcome != Outcome.ALREADY_PRESENT,
        )
        report.record(Stage.CONFIGURING_SERVICE, unit_outcome, str(self.paths.unit_path))

        self._enter(Stage.DONE)
        logger.info(f"Periphery {artifact.version} installed")
