from pathlib import Path

from periphery_setup.models import InstallMode
from periphery_setup.paths import InstallPaths


def test_system_layout():
    paths = InstallPaths.for_mode(InstallMode.SYSTEM)
    assert paths.binary_path == Path("/usr/local/bin/periphery")
    assert paths.root_directory == Path("/etc/komodo")
    assert paths.config_path == Path("/etc/komodo/periphery.config.toml")
    assert paths.unit_path == Path("/etc/systemd/system/periphery.service")


def test_user_layout_follows_home_and_xdg(tmp_path):
    home = tmp_path / "alice"

    paths = InstallPaths.for_mode(InstallMode.USER, home=home, env={})
    assert paths.binary_path == home / ".local" / "bin" / "periphery"
    assert paths.config_path == home / ".config" / "komodo" / "periphery.config.toml"
    assert paths.unit_path == home / ".config" / "systemd" / "user" / "periphery.service"

    xdg = tmp_path / "xdg"
    paths = InstallPaths.for_mode(InstallMode.USER, home=home, env={"XDG_CONFIG_HOME": str(xdg)})
    assert paths.root_directory == xdg / "komodo"
    assert paths.unit_path == xdg / "systemd" / "user" / "periphery.service"


def test_root_directory_override_moves_config_only():
    paths = InstallPaths.for_mode(InstallMode.SYSTEM, root_directory=Path("/srv/periphery"), service_name="agent")
    assert paths.config_path == Path("/srv/periphery/periphery.config.toml")
    assert paths.binary_path == Path("/usr/local/bin/periphery")
    assert paths.unit_path == Path("/etc/systemd/system/agent.service")


def test_relative_root_directory_is_made_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    paths = InstallPaths.for_mode(InstallMode.SYSTEM, root_directory="komodo")

    assert paths.root_directory == tmp_path / "komodo"
    assert paths.config_path == tmp_path / "komodo" / "periphery.config.toml"
    assert paths.root_directory.is_absolute()
