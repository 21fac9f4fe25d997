"""Pytest configuration for installer tests."""

import pytest

from periphery_setup.fetch import ArtifactFetcher, FetchConfig
from periphery_setup.paths import InstallPaths

from tests.fakes import FakeSession, FakeSystemctl


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetcher(session, sleeps):
    async def record_sleep(delay):
        sleeps.append(delay)

    return ArtifactFetcher(
        session=session,
        config=FetchConfig(retry_attempts=3, retry_delay=1.0, max_retry_delay=30.0),
        sleep=record_sleep,
    )


@pytest.fixture
def systemctl():
    return FakeSystemctl()


@pytest.fixture
def paths(tmp_path):
    root = tmp_path / "etc" / "komodo"
    return InstallPaths(
        binary_path=tmp_path / "usr" / "local" / "bin" / "periphery",
        root_directory=root,
        config_path=root / "periphery.config.toml",
        unit_path=tmp_path / "etc" / "systemd" / "system" / "periphery.service",
    )
