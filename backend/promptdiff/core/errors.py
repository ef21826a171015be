"""
Error taxonomy for the fetch -> unpack -> extract -> diff pipeline

Every error a user can see derives from PromptDiffError and carries a
stable code plus the HTTP status the API answers with. Parse failures
inside extraction never appear here: they degrade to the lexical
locator instead.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Stable error codes returned in API error bodies"""
    METADATA_FETCH_FAILED = "metadata_fetch_failed"
    VERSION_NOT_FOUND = "version_not_found"
    TARBALL_FETCH_FAILED = "tarball_fetch_failed"
    ARCHIVE_INVALID = "archive_invalid"
    ARCHIVE_TOO_LARGE = "archive_too_large"
    NO_CLI_FILE = "no_cli_file"
    NO_SYSTEM_PROMPT = "no_system_prompt"
    PROMPT_MISSING = "prompt_missing"
    INVALID_COMPARISON = "invalid_comparison"


class PromptDiffError(Exception):
    """Base class for errors surfaced to API clients"""
    code: ErrorCode = ErrorCode.INVALID_COMPARISON
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.code.value,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class MetadataFetchFailed(PromptDiffError):
    """The registry metadata document could not be fetched or read"""
    code = ErrorCode.METADATA_FETCH_FAILED
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message, {"status": status} if status is not None else None)
        self.status = status


class VersionNotFound(PromptDiffError):
    """The requested version is not published"""
    code = ErrorCode.VERSION_NOT_FOUND
    status_code = 404

    def __init__(self, version: str):
        super().__init__(f"Version {version} not found", {"version": version})
        self.version = version


class TarballFetchFailed(PromptDiffError):
    """The tarball download returned a non-2xx status or failed in transit"""
    code = ErrorCode.TARBALL_FETCH_FAILED
    status_code = 502

    def __init__(self, version: str, message: str, status: Optional[int] = None):
        details: Dict[str, Any] = {"version": version}
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.version = version
        self.status = status


class ArchiveDecodeError(PromptDiffError):
    """The downloaded tarball is not valid gzip data"""
    code = ErrorCode.ARCHIVE_INVALID
    status_code = 502


class ArchiveTooLarge(PromptDiffError):
    """The decompressed tarball exceeds MAX_ARCHIVE_SIZE_MB"""
    code = ErrorCode.ARCHIVE_TOO_LARGE
    status_code = 413


class NoCliFileFound(PromptDiffError):
    """Neither package/cli.js nor package/cli.mjs is in the tarball"""
    code = ErrorCode.NO_CLI_FILE
    status_code = 422

    def __init__(self, version: str):
        super().__init__(f"No CLI file found in version {version}", {"version": version})
        self.version = version


class NoSystemPromptFound(PromptDiffError):
    """The system prompt marker matched nothing; fatal for the version"""
    code = ErrorCode.NO_SYSTEM_PROMPT
    status_code = 422

    def __init__(self, version: str, source_path: str):
        super().__init__(
            f"No system prompt found in {source_path} for version {version}",
            {"version": version, "source_path": source_path},
        )
        self.version = version


class PromptMissingForTab(PromptDiffError):
    """One or both selected versions lack the prompt shown by a tab"""
    code = ErrorCode.PROMPT_MISSING
    status_code = 404

    def __init__(self, tab: str, label: str, versions: List[str]):
        super().__init__(
            f"{label} not found in version(s): {', '.join(versions)}",
            {"tab": tab, "versions": versions},
        )
        self.tab = tab
        self.versions = versions


class InvalidComparison(PromptDiffError):
    """The comparison request itself is malformed"""
    code = ErrorCode.INVALID_COMPARISON
    status_code = 400
