import stat
import subprocess
import tempfile
from pathlib import Path

import pytest

from periphery_setup.errors import InstallPermissionError, ServiceManagerError
from periphery_setup.models import InstallMode, Outcome
from periphery_setup.paths import InstallPaths
from periphery_setup.service import ServiceUnitDescriptor, ServiceUnitReconciler, SystemdManager

from tests.fakes import FakeSystemctl


def make_unit(paths, mode=InstallMode.SYSTEM):
    return ServiceUnitDescriptor.for_install(mode, paths, "periphery")


def reconciler_for(systemctl, mode=InstallMode.SYSTEM):
    return ServiceUnitReconciler(SystemdManager.for_mode(mode, runner=systemctl))


def test_system_unit_rendering():
    paths = InstallPaths.for_mode(InstallMode.SYSTEM)
    text = make_unit(paths).render()

    assert "ExecStart=/usr/local/bin/periphery --config-path /etc/komodo/periphery.config.toml\n" in text
    assert "WorkingDirectory=/etc/komodo\n" in text
    assert "Restart=always\n" in text
    assert "User=root\nGroup=root\n" in text
    assert 'Environment="HOME=/root"\n' in text
    assert text.endswith("[Install]\nWantedBy=multi-user.target\n")


def test_user_unit_has_no_user_or_group(tmp_path):
    paths = InstallPaths.for_mode(InstallMode.USER, home=tmp_path / "my home", env={})
    text = make_unit(paths, InstallMode.USER).render()

    assert "User=" not in text
    assert "Group=" not in text
    assert "WantedBy=default.target" in text
    # paths with spaces are quoted
    assert f'ExecStart="{paths.binary_path}" --config-path "{paths.config_path}"' in text


def test_missing_unit_is_created_and_started(paths, systemctl):
    outcome = reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)

    assert outcome == Outcome.CREATED
    assert paths.unit_path.read_text() == make_unit(paths).render()
    assert stat.S_IMODE(paths.unit_path.stat().st_mode) == 0o644
    assert systemctl.calls == [
        ["systemctl", "daemon-reload"],
        ["systemctl", "enable", "periphery"],
        ["systemctl", "restart", "periphery"],
    ]


def test_existing_unit_is_left_untouched_and_started(paths, systemctl):
    paths.unit_path.parent.mkdir(parents=True)
    paths.unit_path.write_text("[Service]\nExecStart=/opt/custom/periphery\n")

    outcome = reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)

    assert outcome == Outcome.ALREADY_PRESENT
    assert paths.unit_path.read_text() == "[Service]\nExecStart=/opt/custom/periphery\n"
    assert systemctl.verbs == ["enable", "is-active", "start"]


def test_existing_unit_running_is_not_restarted_without_binary_change(paths):
    systemctl = FakeSystemctl(active=True)
    paths.unit_path.parent.mkdir(parents=True)
    paths.unit_path.write_text("hand written\n")

    reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)
    assert systemctl.verbs == ["enable", "is-active"]

    systemctl.calls.clear()
    reconciler_for(systemctl).reconcile(
        InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False, restart_required=True
    )
    assert systemctl.verbs == ["enable", "is-active", "restart"]


def test_force_recreates_unit_wholesale(paths, systemctl):
    paths.unit_path.parent.mkdir(parents=True)
    paths.unit_path.write_text("[Service]\nExecStart=/opt/custom/periphery\nNice=5\n")

    outcome = reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=True)

    assert outcome == Outcome.RECREATED
    assert paths.unit_path.read_text() == make_unit(paths).render()
    assert systemctl.verbs == ["daemon-reload", "enable", "restart"]
    assert [p.name for p in paths.unit_path.parent.iterdir()] == ["periphery.service"]


def test_user_mode_uses_user_scope(paths, systemctl):
    reconciler_for(systemctl, InstallMode.USER).reconcile(
        InstallMode.USER, paths.unit_path, make_unit(paths, InstallMode.USER), force=False
    )
    assert all(call[:2] == ["systemctl", "--user"] for call in systemctl.calls)


def test_rejected_restart_is_a_service_manager_error(paths):
    systemctl = FakeSystemctl(fail={"restart": (1, "Job for periphery.service failed.")})

    with pytest.raises(ServiceManagerError, match="Job for periphery.service failed"):
        reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)


def test_denied_systemctl_is_a_permission_error(paths):
    systemctl = FakeSystemctl(fail={"daemon-reload": (1, "Access denied")})

    with pytest.raises(PermissionError):
        reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)


def test_unwritable_unit_directory_is_a_permission_error(paths, systemctl, monkeypatch):
    def deny(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(tempfile, "mkstemp", deny)

    with pytest.raises(InstallPermissionError):
        reconciler_for(systemctl).reconcile(InstallMode.SYSTEM, paths.unit_path, make_unit(paths), force=False)
    assert systemctl.calls == []


def test_systemctl_missing_or_hanging():
    def missing(command, **kwargs):
        raise FileNotFoundError(command[0])

    def hanging(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    with pytest.raises(ServiceManagerError, match="not found"):
        SystemdManager(runner=missing).reload()
    with pytest.raises(ServiceManagerError, match="timed out"):
        SystemdManager(runner=hanging, timeout=5).enable("periphery")


def test_unit_paths_are_absolute_for_relative_root(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    paths = InstallPaths.for_mode(InstallMode.SYSTEM, root_directory="komodo")

    text = make_unit(paths).render()

    assert f"WorkingDirectory={tmp_path / 'komodo'}\n" in text
    assert f"--config-path {tmp_path / 'komodo' / 'periphery.config.toml'}\n" in text


def test_percent_signs_are_escaped_in_unit():
    paths = InstallPaths.for_mode(InstallMode.SYSTEM, root_directory=Path("/srv/100%komodo"))

    text = make_unit(paths).render()

    assert "WorkingDirectory=/srv/100%%komodo\n" in text
    assert "--config-path /srv/100%%komodo/periphery.config.toml\n" in text
