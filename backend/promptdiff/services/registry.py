"""
npm registry client - package metadata and tarball downloads
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from promptdiff.core.config import settings
from promptdiff.core.errors import (
    ArchiveTooLarge,
    MetadataFetchFailed,
    TarballFetchFailed,
    VersionNotFound,
)
from promptdiff.core.logging import get_logger, log_duration
from promptdiff.services.cache import Cache, InMemoryCache

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

RELEASE_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


@dataclass
class VersionInfo:
    """A published version and its publish date (YYYY-MM-DD)"""
    version: str
    date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "date": self.date}


@dataclass
class PackageMetadata:
    """The parts of the registry document the pipeline reads"""
    name: str
    versions: Dict[str, str] = field(default_factory=dict)  # version -> tarball URL
    times: Dict[str, str] = field(default_factory=dict)  # version -> ISO timestamp

    def tarball_url(self, version: str) -> str:
        url = self.versions.get(version)
        if not url:
            raise VersionNotFound(version)
        return url

    def has_version(self, version: str) -> bool:
        return version in self.versions

    def version_infos(self) -> List[VersionInfo]:
        """Published versions in natural order, oldest first"""
        infos = [VersionInfo(version=v, date=publish_date(self.times.get(v))) for v in self.versions]
        infos.sort(key=cmp_to_key(lambda a, b: compare_versions(a.version, b.version)))
        return infos

    @classmethod
    def from_document(cls, document: Any, package_name: str) -> "PackageMetadata":
        """
        Build metadata from the registry JSON document.

        Raises:
            MetadataFetchFailed: If `versions` is missing or malformed
        """
        if not isinstance(document, dict) or not isinstance(document.get("versions"), dict):
            raise MetadataFetchFailed(f"Package metadata for {package_name} has no 'versions' mapping")

        times = document.get("time")
        if not isinstance(times, dict):
            logger.warning(f"Package metadata for {package_name} has no 'time' mapping; dates unavailable")
            times = {}

        versions: Dict[str, str] = {}
        for version, manifest in document["versions"].items():
            tarball = None
            if isinstance(manifest, dict) and isinstance(manifest.get("dist"), dict):
                tarball = manifest["dist"].get("tarball")
            if not tarball:
                logger.warning(f"Version {version} has no dist.tarball; skipping")
                continue
            versions[version] = tarball

        return cls(
            name=document.get("name", package_name),
            versions=versions,
            times={k: v for k, v in times.items() if isinstance(v, str)},
        )


def compare_versions(a: str, b: str) -> int:
    """
    Natural version order.

    Plain x.y.z versions compare numerically; anything else (pre-releases,
    odd tags) falls back to string comparison.
    """
    a_match = RELEASE_VERSION_RE.match(a)
    b_match = RELEASE_VERSION_RE.match(b)
    if a_match and b_match:
        a_parts = tuple(int(p) for p in a_match.groups())
        b_parts = tuple(int(p) for p in b_match.groups())
        return (a_parts > b_parts) - (a_parts < b_parts)
    return (a > b) - (a < b)


def publish_date(timestamp: Optional[str]) -> Optional[str]:
    """UTC calendar date of an ISO timestamp, None if unreadable"""
    if not timestamp:
        return None
    try:
        # fromisoformat() only accepts a trailing Z from Python 3.11
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


class NpmRegistryClient:
    """HTTP client for one package on an npm-compatible registry"""

    def __init__(
        self,
        base_url: str = settings.NPM_REGISTRY_URL,
        package_name: str = settings.PACKAGE_NAME,
        timeout: float = settings.REGISTRY_TIMEOUT,
        tarball_timeout: float = settings.TARBALL_TIMEOUT,
        user_agent: str = settings.USER_AGENT,
        max_download_size: Optional[int] = None,
        metadata_cache: Optional[Cache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.package_name = package_name
        self.timeout = timeout
        self.tarball_timeout = tarball_timeout
        self.user_agent = user_agent
        self.max_download_size = max_download_size
        self._metadata_cache: Cache = metadata_cache if metadata_cache is not None else InMemoryCache()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._metadata_lock = asyncio.Lock()

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def metadata_path(self) -> str:
        # Scoped names keep the @ but encode the slash
        return "/" + quote(self.package_name, safe="@")

    async def get_metadata(self, refresh: bool = False) -> PackageMetadata:
        """
        Package metadata, fetched at most once unless `refresh` is set.

        Concurrent callers wait on one fetch rather than issuing their own.

        Raises:
            MetadataFetchFailed: On transport errors, non-2xx status or an
                unusable document
        """
        async with self._metadata_lock:
            if not refresh:
                cached = self._metadata_cache.get(self.package_name)
                if cached is not None:
                    return cached

            with log_duration("registry_metadata", structured_logger, package=self.package_name):
                metadata = await self._fetch_metadata()

            self._metadata_cache.set(self.package_name, metadata)
            return metadata

    async def _fetch_metadata(self) -> PackageMetadata:
        try:
            response = await self.client.get(
                self.metadata_path,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise MetadataFetchFailed(f"Failed to get package metadata: {e}") from e

        if not response.is_success:
            raise MetadataFetchFailed(
                f"Failed to get package metadata: {response.status_code}",
                status=response.status_code,
            )

        try:
            document = response.json()
        except ValueError as e:
            raise MetadataFetchFailed(f"Package metadata is not valid JSON: {e}") from e

        metadata = PackageMetadata.from_document(document, self.package_name)
        logger.info(f"Loaded {len(metadata.versions)} versions of {self.package_name}")
        return metadata

    async def list_versions(self, refresh: bool = False) -> List[VersionInfo]:
        """Published versions in natural order, oldest first"""
        metadata = await self.get_metadata(refresh=refresh)
        return metadata.version_infos()

    async def download_tarball(self, version: str, url: Optional[str] = None) -> bytes:
        """
        Download the gzip tarball of `version`.

        Args:
            version: Version to download
            url: Tarball URL; looked up in the metadata when omitted

        Raises:
            VersionNotFound: If `url` is omitted and the version is unknown
            TarballFetchFailed: On transport errors or a non-2xx status
            ArchiveTooLarge: If the download exceeds max_download_size
        """
        if url is None:
            metadata = await self.get_metadata()
            url = metadata.tarball_url(version)

        with log_duration("tarball_download", structured_logger, version=version):
            try:
                data = await self._stream_tarball(version, url)
            except httpx.HTTPError as e:
                raise TarballFetchFailed(version, f"Failed to download tarball for {version}: {e}") from e

        logger.debug(f"Downloaded {len(data)} bytes for {version}")
        return data

    async def _stream_tarball(self, version: str, url: str) -> bytes:
        """Read the tarball body, stopping as soon as it passes max_download_size"""
        chunks: List[bytes] = []
        received = 0

        async with self.client.stream(
            "GET",
            url,
            timeout=httpx.Timeout(self.tarball_timeout),
        ) as response:
            if not response.is_success:
                raise TarballFetchFailed(
                    version,
                    f"Failed to download tarball for {version}: {response.status_code}",
                    status=response.status_code,
                )

            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if self.max_download_size is not None and received > self.max_download_size:
                    raise ArchiveTooLarge(
                        f"Tarball for {version} exceeds {self.max_download_size} bytes",
                        {"version": version, "limit": self.max_download_size},
                    )
                chunks.append(chunk)

        return b"".join(chunks)
