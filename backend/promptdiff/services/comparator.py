"""
Version comparator - orchestrates fetch -> unpack -> extract -> diff

Per-version prompt sets are memoised in an injected cache. Concurrent
requests for the same uncached version share one in-flight load, so a
tarball is downloaded and parsed once no matter how many comparisons
ask for it at the same time.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from promptdiff.core.config import settings
from promptdiff.core.errors import InvalidComparison, NoCliFileFound, PromptMissingForTab
from promptdiff.core.logging import get_logger, log_comparison
from promptdiff.services.archive import ArchiveEntry, decompress_gzip, find_entry, unpack
from promptdiff.services.cache import Cache, make_cache
from promptdiff.services.diff_service import DiffRow, DiffSummary, diff_texts
from promptdiff.services.prompt_extractor import (
    PROMPT_MARKERS,
    PromptName,
    PromptSet,
    extract_prompt_set,
    missing_label,
    prompt_label,
)
from promptdiff.services.registry import NpmRegistryClient, VersionInfo

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)


@dataclass
class TabInfo:
    """A prompt tab and whether both compared versions contain it"""
    name: str
    label: str
    available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "available": self.available}


@dataclass
class Comparison:
    """The diff of one prompt between two versions"""
    base: str
    compare: str
    tab: PromptName
    base_length: int
    compare_length: int
    rows: List[DiffRow] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)
    tabs: List[TabInfo] = field(default_factory=list)
    show_tabs: bool = False

    @property
    def label(self) -> str:
        return prompt_label(self.tab)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base,
            "compare": self.compare,
            "tab": self.tab.value,
            "label": self.label,
            "base_length": self.base_length,
            "compare_length": self.compare_length,
            "rows": [row.to_dict() for row in self.rows],
            "summary": self.summary.to_dict(),
            "tabs": [tab.to_dict() for tab in self.tabs],
            "show_tabs": self.show_tabs,
        }


def parse_tab(tab: str) -> PromptName:
    try:
        return PromptName(tab)
    except ValueError:
        raise InvalidComparison(
            f"Unknown tab {tab!r}; expected one of: {', '.join(n.value for n in PromptName)}"
        ) from None


def _decompress_and_unpack(data: bytes, max_size: Optional[int]) -> List[ArchiveEntry]:
    return unpack(decompress_gzip(data, max_size))


class VersionComparator:
    """Loads prompt sets per version and diffs them"""

    def __init__(
        self,
        registry: NpmRegistryClient,
        result_cache: Optional[Cache] = None,
        cli_paths: Sequence[str] = tuple(settings.CLI_ENTRY_PATHS),
        max_archive_size: Optional[int] = settings.max_archive_bytes,
        markers: Optional[Dict[PromptName, str]] = None,
    ):
        self.registry = registry
        self.cli_paths = tuple(cli_paths)
        self.max_archive_size = max_archive_size
        self.markers = markers if markers is not None else PROMPT_MARKERS
        self._results: Cache = result_cache if result_cache is not None else make_cache()
        self._inflight: Dict[str, "asyncio.Task[PromptSet]"] = {}

    async def close(self):
        await self.registry.close()

    async def list_versions(self, refresh: bool = False) -> List[VersionInfo]:
        return await self.registry.list_versions(refresh=refresh)

    async def default_pair(self) -> Tuple[str, str]:
        """Second-latest and latest version"""
        versions = await self.list_versions()
        if len(versions) < 2:
            raise InvalidComparison("At least two published versions are needed for a comparison")
        return versions[-2].version, versions[-1].version

    def cached(self, version: str) -> Optional[PromptSet]:
        return self._results.get(version)

    async def load_version(self, version: str) -> PromptSet:
        """
        Prompt set of `version`, from cache or freshly extracted.

        Failures are not cached; the next call retries from scratch.
        """
        cached = self._results.get(version)
        if cached is not None:
            return cached

        task = self._inflight.get(version)
        if task is None:
            task = asyncio.ensure_future(self._load(version))
            self._inflight[version] = task
            task.add_done_callback(lambda t, v=version: self._forget(v, t))
        else:
            logger.debug(f"Joining in-flight load of {version}")

        # One cancelled waiter must not cancel the load for the others
        return await asyncio.shield(task)

    def _forget(self, version: str, task: "asyncio.Task[PromptSet]"):
        if self._inflight.get(version) is task:
            del self._inflight[version]

    async def _load(self, version: str) -> PromptSet:
        logger.info(f"Extracting prompts for version {version}...")

        metadata = await self.registry.get_metadata()
        url = metadata.tarball_url(version)
        data = await self.registry.download_tarball(version, url)

        version_logger = structured_logger.with_fields(event="version_load", version=version)

        entries = await asyncio.to_thread(_decompress_and_unpack, data, self.max_archive_size)
        cli_file = find_entry(entries, self.cli_paths)
        if cli_file is None:
            version_logger.warning("No CLI file in tarball", entries=len(entries))
            raise NoCliFileFound(version)
        version_logger.info("CLI file unpacked", source_path=cli_file.path, size=cli_file.size)

        # Parsing a multi-megabyte bundle blocks for seconds
        prompt_set = await asyncio.to_thread(
            extract_prompt_set, cli_file.text(), version, cli_file.path, self.markers
        )
        self._results.set(version, prompt_set)
        version_logger.debug("Prompt set cached", found=sum(1 for p in prompt_set.prompts.values() if p.found))
        return prompt_set

    async def compare(self, base: str, compare: str, tab: str = PromptName.SYSTEM.value) -> Comparison:
        """
        Diff the prompt shown by `tab` between two versions.

        Raises:
            InvalidComparison: Same version on both sides, or unknown tab
            VersionNotFound: If either version is not published
            PromptMissingForTab: If either version lacks the tab's prompt
        """
        start = time.perf_counter()
        name = parse_tab(tab)
        if base == compare:
            raise InvalidComparison("Pick two different versions.")

        # Reject unknown versions before starting any download
        metadata = await self.registry.get_metadata()
        metadata.tarball_url(base)
        metadata.tarball_url(compare)

        left, right = await asyncio.gather(self.load_version(base), self.load_version(compare))

        if name is not PromptName.SYSTEM:
            missing = [
                version for version, prompts in ((base, left), (compare, right))
                if not prompts.get(name).found
            ]
            if missing:
                raise PromptMissingForTab(name.value, missing_label(name), missing)

        result = diff_texts(left.text(name) or "", right.text(name) or "")

        comparison = Comparison(
            base=base,
            compare=compare,
            tab=name,
            base_length=left.get(name).length,
            compare_length=right.get(name).length,
            rows=result.rows,
            summary=result.summary,
            tabs=[
                TabInfo(n.value, prompt_label(n), left.get(n).found and right.get(n).found)
                for n in self.markers
            ],
            show_tabs=left.has_alternates() or right.has_alternates(),
        )

        log_comparison(
            base, compare, name.value,
            result.summary.added, result.summary.removed,
            (time.perf_counter() - start) * 1000,
        )
        return comparison


# ============ Singleton ============

_comparator: Optional[VersionComparator] = None


def get_comparator() -> VersionComparator:
    """Get or create the comparator singleton"""
    global _comparator
    if _comparator is None:
        registry = NpmRegistryClient(
            base_url=settings.NPM_REGISTRY_URL,
            package_name=settings.PACKAGE_NAME,
            timeout=settings.REGISTRY_TIMEOUT,
            tarball_timeout=settings.TARBALL_TIMEOUT,
            user_agent=settings.USER_AGENT,
            max_download_size=settings.max_archive_bytes,
        )
        _comparator = VersionComparator(
            registry=registry,
            result_cache=make_cache(settings.EXTRACTION_CACHE_SIZE),
            cli_paths=settings.CLI_ENTRY_PATHS,
            max_archive_size=settings.max_archive_bytes,
        )
    return _comparator


async def close_comparator():
    """Release the comparator's HTTP client (app shutdown)"""
    global _comparator
    if _comparator is not None:
        await _comparator.close()
        _comparator = None
