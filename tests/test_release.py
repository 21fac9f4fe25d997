import asyncio

import pytest

from periphery_setup.errors import DownloadError, VersionNotFoundError
from periphery_setup.models import ArtifactSources, HostArchitecture
from periphery_setup.release import ReleaseResolver, binary_filename, binary_url

from tests.fakes import FakeResponse, release

INDEX = "https://api.example.test/releases"
SOURCES = ArtifactSources(
    binary_base_url="https://dl.example.test/download",
    config_url="https://raw.example.test/{version}/config/periphery.config.toml",
    release_index_url=INDEX,
)


def resolve(fetcher, version, arch=HostArchitecture.X86_64):
    return asyncio.run(ReleaseResolver(fetcher).resolve(version, arch, SOURCES))


def test_baseline_architecture_has_no_suffix():
    assert binary_filename(HostArchitecture.X86_64) == "periphery"
    url = binary_url(SOURCES.binary_base_url, "v1.19.5", HostArchitecture.X86_64)
    assert url == "https://dl.example.test/download/v1.19.5/periphery"


def test_non_baseline_architecture_is_suffixed():
    assert binary_filename(HostArchitecture.AARCH64) == "periphery-aarch64"
    url = binary_url(SOURCES.binary_base_url + "/", "v1.19.5", HostArchitecture.AARCH64)
    assert url == "https://dl.example.test/download/v1.19.5/periphery-aarch64"


def test_latest_uses_newest_tag(fetcher, session):
    session.add(f"{INDEX}/latest", FakeResponse.json(release("v1.19.5", "periphery", "periphery-aarch64", size=42)))

    artifact = resolve(fetcher, "latest", HostArchitecture.AARCH64)

    assert artifact.version == "v1.19.5"
    assert artifact.binary_name == "periphery-aarch64"
    assert artifact.binary_url == "https://dl.example.test/download/v1.19.5/periphery-aarch64"
    assert artifact.config_url == "https://raw.example.test/v1.19.5/config/periphery.config.toml"
    assert artifact.size == 42


def test_pinned_version_is_looked_up_by_tag(fetcher, session):
    digest = "sha256:" + "AB" * 32
    session.add(f"{INDEX}/tags/v1.18.4", FakeResponse.json(release("v1.18.4", "periphery", digest=digest)))

    artifact = resolve(fetcher, "v1.18.4")

    assert artifact.version == "v1.18.4"
    assert artifact.sha256 == "ab" * 32
    assert session.requests == [f"{INDEX}/tags/v1.18.4"]


def test_unknown_tag_raises_version_not_found(fetcher, session):
    with pytest.raises(VersionNotFoundError) as excinfo:
        resolve(fetcher, "v0.0.1")
    assert excinfo.value.version == "v0.0.1"
    # 404 is not retried
    assert session.count(f"{INDEX}/tags/v0.0.1") == 1


def test_release_without_arch_artifact_raises_version_not_found(fetcher, session):
    session.add(f"{INDEX}/tags/v1.0.0", FakeResponse.json(release("v1.0.0", "periphery")))

    with pytest.raises(VersionNotFoundError, match="periphery-aarch64"):
        resolve(fetcher, "v1.0.0", HostArchitecture.AARCH64)


def test_index_outage_is_a_download_error(fetcher, session):
    session.add(f"{INDEX}/latest", FakeResponse(status=503))

    with pytest.raises(DownloadError):
        resolve(fetcher, "latest")
