"""
Pydantic schemas for API responses
"""
from pydantic import BaseModel
from typing import Optional, List, Dict


# ============ Version Schemas ============

class VersionResponse(BaseModel):
    version: str
    date: Optional[str] = None


class TabResponse(BaseModel):
    name: str
    label: str
    available: bool = True


class VersionListResponse(BaseModel):
    package: str
    versions: List[VersionResponse]
    default_base: Optional[str] = None
    default_compare: Optional[str] = None
    tabs: List[TabResponse]


# ============ Prompt Schemas ============

class PromptResponse(BaseModel):
    label: str
    length: int
    found: bool
    strategy: Optional[str] = None
    text: Optional[str] = None


class PromptSetResponse(BaseModel):
    """Prompts extracted from one version's CLI file"""
    version: str
    source_path: str
    prompts: Dict[str, PromptResponse]


# ============ Comparison Schemas ============

class WordSegmentResponse(BaseModel):
    text: str
    changed: bool = False


class DiffLineResponse(BaseModel):
    number: Optional[int] = None
    text: str
    kind: str  # context, removed, added, empty
    segments: Optional[List[WordSegmentResponse]] = None


class DiffRowResponse(BaseModel):
    kind: str  # unchanged, change, removed, added
    left: DiffLineResponse
    right: DiffLineResponse


class DiffSummaryResponse(BaseModel):
    added: int
    removed: int
    text: str


class ComparisonResponse(BaseModel):
    base: str
    compare: str
    tab: str
    label: str
    base_length: int
    compare_length: int
    rows: List[DiffRowResponse]
    summary: DiffSummaryResponse
    tabs: List[TabResponse]
    show_tabs: bool = False


# ============ Error Schemas ============

class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict] = None
