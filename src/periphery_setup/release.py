"""
Release Resolution

Maps a version request and host architecture onto concrete artifact URLs.

Binary naming is deterministic so pinned fleets stay reproducible:

    x86_64   ->  <binary-base>/<tag>/periphery
    aarch64  ->  <binary-base>/<tag>/periphery-aarch64
"""

import logging
from typing import Any, Dict, Optional

from .errors import DownloadError, VersionNotFoundError
from .fetch import ArtifactFetcher
from .models import BINARY_NAME, LATEST, ArtifactSources, HostArchitecture, ReleaseArtifact

logger = logging.getLogger(__name__)

DIGEST_PREFIX = "sha256:"


def binary_filename(arch: HostArchitecture) -> str:
    """Release asset name of the agent binary for an architecture"""
    if arch.is_baseline:
        return BINARY_NAME
    return f"{BINARY_NAME}-{arch.value}"


def binary_url(base_url: str, version: str, arch: HostArchitecture) -> str:
    return f"{base_url.rstrip('/')}/{version}/{binary_filename(arch)}"


def config_url(template_url: str, version: str) -> str:
    return template_url.replace("{version}", version)


def _find_asset(release: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    for asset in release.get("assets") or []:
        if isinstance(asset, dict) and asset.get("name") == name:
            return asset
    return None


def _asset_sha256(asset: Dict[str, Any]) -> Optional[str]:
    digest = asset.get("digest")
    if isinstance(digest, str) and digest.startswith(DIGEST_PREFIX):
        return digest[len(DIGEST_PREFIX):].lower()
    return None


class ReleaseResolver:
    """Resolves version requests against the published release index."""

    def __init__(self, fetcher: ArtifactFetcher):
        self.fetcher = fetcher

    async def _lookup(self, version_request: str, index_url: str) -> Dict[str, Any]:
        index_url = index_url.rstrip("/")
        if version_request == LATEST:
            url = f"{index_url}/latest"
        else:
            url = f"{index_url}/tags/{version_request}"

        try:
            return await self.fetcher.fetch_json(url)
        except DownloadError as e:
            if e.status == 404:
                raise VersionNotFoundError(version_request, "no such release in the release index") from e
            raise

    async def resolve(
        self,
        version_request: str,
        arch: HostArchitecture,
        base_urls: ArtifactSources,
    ) -> ReleaseArtifact:
        """
        Resolve a version request for one architecture.

        Args:
            version_request: Release tag, or "latest"
            arch: Detected host architecture
            base_urls: Binary base, config template and release index URLs

        Raises:
            VersionNotFoundError: tag unknown, or published without a binary for arch
        """
        release = await self._lookup(version_request, base_urls.release_index_url)

        tag = release.get("tag_name")
        if not isinstance(tag, str) or not tag:
            raise VersionNotFoundError(version_request, "release index entry has no tag name")

        filename = binary_filename(arch)
        asset = _find_asset(release, filename)
        if asset is None:
            raise VersionNotFoundError(tag, f"no '{filename}' artifact published for {arch.value}")

        size = asset.get("size")
        artifact = ReleaseArtifact(
            version=tag,
            binary_name=filename,
            binary_url=binary_url(base_urls.binary_base_url, tag, arch),
            config_url=config_url(base_urls.config_url, tag),
            size=size if isinstance(size, int) and size > 0 else None,
            sha256=_asset_sha256(asset),
        )
        logger.info(f"Resolved {version_request} -> {tag} ({filename})")
        return artifact
