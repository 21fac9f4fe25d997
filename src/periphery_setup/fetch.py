"""
Artifact Fetching

Downloads release metadata and artifacts with bounded retries, and installs
the agent binary with a write-temp-then-rename so readers of the target path
never observe a partial file.
"""

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import aiofiles
import aiohttp

from .errors import DownloadError, InstallPermissionError
from .models import Outcome

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429}
GITHUB_JSON = "application/vnd.github+json"


class FetchConfig:
    """Timeout and retry budget for downloads."""

    def __init__(
        self,
        timeout: float = 60.0,  # Seconds per request
        retry_attempts: int = 4,
        retry_delay: float = 1.0,  # First backoff, doubled on every attempt
        max_retry_delay: float = 30.0,
        chunk_size: int = 64 * 1024,
    ):
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.chunk_size = chunk_size

    def backoff(self, attempt: int) -> float:
        return min(self.retry_delay * (2 ** attempt), self.max_retry_delay)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verification_error(data: bytes, expected_size: Optional[int], sha256: Optional[str]) -> Optional[str]:
    """Describe why downloaded bytes do not match expectations, or None if they do"""
    if expected_size is not None and len(data) != expected_size:
        return f"size mismatch (expected {expected_size} bytes, got {len(data)})"
    if sha256 and sha256_hex(data) != sha256.lower():
        return "sha256 mismatch"
    return None


async def file_sha256(path: Path, chunk_size: int = 64 * 1024) -> Optional[str]:
    """sha256 of a file on disk, or None if there is no readable file"""
    if not path.is_file():
        return None
    digest = hashlib.sha256()
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                digest.update(chunk)
    except PermissionError as e:
        raise InstallPermissionError(path, "read") from e
    return digest.hexdigest()


class ArtifactFetcher:
    """
    Downloads artifacts over HTTP.

    Use as an async context manager when no session is injected; the fetcher
    then owns and closes its own aiohttp session.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        config: Optional[FetchConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session = session
        self.config = config or FetchConfig()
        self._sleep = sleep
        self._owns_session = False

    async def __aenter__(self) -> "ArtifactFetcher":
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            self._owns_session = True
        return self

    async def __aexit__(self, *exc_info):
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None
            self._owns_session = False

    async def fetch(
        self,
        url: str,
        expected_size: Optional[int] = None,
        sha256: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> bytes:
        """
        Download a URL into memory.

        Connection errors, timeouts, 5xx, 408 and 429 responses and
        verification failures are retried with exponential backoff. Any other
        non-200 status fails immediately.

        Raises:
            DownloadError: retries exhausted or non-retryable status
        """
        if self.session is None:
            raise RuntimeError("ArtifactFetcher used outside of 'async with'")

        attempts = self.config.retry_attempts
        last_error = "no attempt made"
        last_status = None

        for attempt in range(attempts):
            try:
                async with self.session.get(url, headers=headers) as resp:
                    last_status = resp.status
                    if resp.status == 200:
                        data = await resp.read()
                        declared = resp.content_length
                        if resp.headers.get("Content-Encoding", "identity") != "identity":
                            declared = None  # length of the compressed body
                        if declared is not None and declared != len(data):
                            last_error = f"truncated response ({len(data)} of {declared} bytes)"
                        else:
                            problem = verification_error(data, expected_size, sha256)
                            if problem is None:
                                logger.debug(f"Fetched {url} ({len(data)} bytes)")
                                return data
                            last_error = problem
                    elif resp.status in RETRYABLE_STATUSES or resp.status >= 500:
                        last_error = f"HTTP {resp.status}"
                    else:
                        raise DownloadError(url, f"HTTP {resp.status}", status=resp.status)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_status = None
                last_error = str(e) or type(e).__name__

            if attempt < attempts - 1:
                delay = self.config.backoff(attempt)
                logger.warning(
                    f"Download of {url} failed: {last_error}, retry {attempt + 1}/{attempts - 1} in {delay:.1f}s"
                )
                await self._sleep(delay)

        raise DownloadError(url, f"gave up after {attempts} attempts: {last_error}", status=last_status)

    async def fetch_json(self, url: str) -> Dict[str, Any]:
        """Download and decode a JSON document"""
        data = await self.fetch(url, headers={"Accept": GITHUB_JSON})
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DownloadError(url, f"invalid JSON: {e}")
        if not isinstance(document, dict):
            raise DownloadError(url, "expected a JSON object")
        return document

    async def install_binary(
        self,
        data: bytes,
        target_path: Path,
        expected_size: Optional[int] = None,
        sha256: Optional[str] = None,
    ) -> Outcome:
        """
        Atomically install an executable at target_path.

        The bytes are written to a temporary file next to the target, checked,
        marked executable and renamed over the target. Replacing an existing
        binary is always allowed.

        Returns:
            CREATED if nothing was there before, UPDATED if the content
            changed, ALREADY_PRESENT if identical bytes were rewritten
        """
        target_path = Path(target_path)
        problem = verification_error(data, expected_size, sha256)
        if problem:
            raise DownloadError(str(target_path), problem)

        previous = await file_sha256(target_path, self.config.chunk_size)

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target_path.name}.", suffix=".tmp", dir=target_path.parent
            )
            os.close(fd)
        except PermissionError as e:
            raise InstallPermissionError(target_path.parent) from e

        tmp_path = Path(tmp_name)
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
                await f.flush()

            written = tmp_path.stat().st_size
            if written != len(data):
                raise DownloadError(str(target_path), f"short write ({written} of {len(data)} bytes)")

            os.chmod(tmp_path, 0o755)
            os.replace(tmp_path, target_path)
        except PermissionError as e:
            raise InstallPermissionError(target_path) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        if previous is None:
            logger.info(f"Installed binary at {target_path}")
            return Outcome.CREATED
        if previous != sha256_hex(data):
            logger.info(f"Upgraded binary at {target_path}")
            return Outcome.UPDATED
        logger.info(f"Refreshed binary at {target_path} (content unchanged)")
        return Outcome.ALREADY_PRESENT
