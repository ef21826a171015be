"""
Shared fixtures: in-memory tarballs, a fake npm registry and an API client
"""
import gzip
import io
import tarfile
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from promptdiff.api.dependencies import get_version_comparator
from promptdiff.main import app
from promptdiff.services.comparator import VersionComparator
from promptdiff.services.registry import NpmRegistryClient

REGISTRY_URL = "https://registry.test"
PACKAGE = "@example/cli"

SYSTEM_LINES = [
    "You are an interactive CLI tool for ${PRODUCT}.",
    "Working directory: ${cwd}",
    "Line two",
    "Line three",
]

COMPACT_PROMPT = "Your task is to create a detailed summary of the conversation so far."


def make_cli_source(system_lines: List[str], compact: Optional[str] = None, product: str = "Claude Code") -> str:
    """A small CLI bundle: a shebang, a constant and a templated system prompt"""
    body = "\n".join(system_lines)
    lines = [
        "#!/usr/bin/env node",
        f'const PRODUCT = "{product}";',
        "function systemPrompt(cwd) {",
        f"  return `{body}`;",
        "}",
    ]
    if compact:
        lines.append(f'const compactPrompt = "{compact}";')
    lines.append("module.exports = { systemPrompt };")
    return "\n".join(lines) + "\n"


def build_tar(files: Dict[str, bytes]) -> bytes:
    """Uncompressed ustar archive with a package/ directory entry first"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        directory = tarfile.TarInfo("package")
        directory.type = tarfile.DIRTYPE
        directory.mode = 0o755
        tar.addfile(directory)
        for path, content in files.items():
            info = tarfile.TarInfo(path)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def build_tarball(files: Dict[str, bytes]) -> bytes:
    return gzip.compress(build_tar(files))


class FakeRegistry:
    """npm registry double served through httpx.MockTransport"""

    def __init__(self):
        self.tarballs: Dict[str, bytes] = {}
        self.times: Dict[str, str] = {}
        self.tarball_status: Dict[str, int] = {}
        self.metadata_status = 200
        self.metadata_requests = 0
        self.tarball_requests: Dict[str, int] = {}

    def publish(self, version: str, files: Dict[str, bytes], date: str = "2025-01-01"):
        self.tarballs[version] = build_tarball(files)
        self.times[version] = f"{date}T12:00:00.000Z"

    def publish_source(self, version: str, source: str, date: str = "2025-01-01", path: str = "package/cli.js"):
        self.publish(version, {
            "package/package.json": b'{"name": "@example/cli"}',
            path: source.encode("utf-8"),
        }, date=date)

    def tarball_url(self, version: str) -> str:
        return f"{REGISTRY_URL}/tarballs/{version}.tgz"

    def metadata(self) -> dict:
        return {
            "name": PACKAGE,
            "versions": {
                version: {"version": version, "dist": {"tarball": self.tarball_url(version)}}
                for version in self.tarballs
            },
            "time": {"created": "2024-12-31T00:00:00.000Z", **self.times},
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/tarballs/"):
            version = path[len("/tarballs/"):-len(".tgz")]
            self.tarball_requests[version] = self.tarball_requests.get(version, 0) + 1
            status = self.tarball_status.get(version, 200)
            if status != 200 or version not in self.tarballs:
                return httpx.Response(status if status != 200 else 404, text="not found")
            return httpx.Response(200, content=self.tarballs[version])

        self.metadata_requests += 1
        if self.metadata_status != 200:
            return httpx.Response(self.metadata_status, text="registry error")
        return httpx.Response(200, json=self.metadata())

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def registry() -> FakeRegistry:
    """Three versions; only the two newer ones carry a compact prompt"""
    fake = FakeRegistry()
    fake.publish_source("1.0.0", make_cli_source(SYSTEM_LINES), date="2025-01-01")
    fake.publish_source(
        "1.0.2",
        make_cli_source(SYSTEM_LINES, compact=COMPACT_PROMPT),
        date="2025-01-05",
    )
    fake.publish_source(
        "1.0.10",
        make_cli_source(
            [line if line != "Line two" else "Line 2 changed" for line in SYSTEM_LINES],
            compact=COMPACT_PROMPT,
        ),
        date="2025-02-01",
    )
    return fake


@pytest_asyncio.fixture
async def comparator(registry: FakeRegistry):
    client = NpmRegistryClient(
        base_url=REGISTRY_URL,
        package_name=PACKAGE,
        transport=registry.transport,
    )
    instance = VersionComparator(
        registry=client,
        cli_paths=("package/cli.js", "package/cli.mjs"),
        max_archive_size=None,
    )
    yield instance
    await instance.close()


@pytest_asyncio.fixture
async def client(comparator: VersionComparator):
    """API client wired to the fake registry"""
    app.dependency_overrides[get_version_comparator] = lambda: comparator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
