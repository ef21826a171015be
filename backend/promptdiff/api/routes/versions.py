"""
Version API routes - published versions and their extracted prompts
"""
from fastapi import APIRouter, Depends, Query
import logging

from promptdiff.api.dependencies import get_version_comparator
from promptdiff.api.schemas import PromptSetResponse, TabResponse, VersionListResponse
from promptdiff.services.comparator import VersionComparator
from promptdiff.services.prompt_extractor import prompt_label

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Versions"])


@router.get("", response_model=VersionListResponse)
async def list_versions(
    refresh: bool = Query(False, description="Re-fetch registry metadata"),
    comparator: VersionComparator = Depends(get_version_comparator),
):
    """List published versions, oldest first, with the default comparison pair"""
    versions = await comparator.list_versions(refresh=refresh)

    default_base = default_compare = None
    if len(versions) >= 2:
        default_base, default_compare = versions[-2].version, versions[-1].version

    return VersionListResponse(
        package=comparator.registry.package_name,
        versions=[v.to_dict() for v in versions],
        default_base=default_base,
        default_compare=default_compare,
        tabs=[TabResponse(name=name.value, label=prompt_label(name)) for name in comparator.markers],
    )


@router.get("/{version}/prompts", response_model=PromptSetResponse)
async def get_version_prompts(
    version: str,
    include_text: bool = Query(True, description="Include prompt text, not just lengths"),
    comparator: VersionComparator = Depends(get_version_comparator),
):
    """Extract (or return cached) prompts of one version"""
    prompt_set = await comparator.load_version(version)
    return prompt_set.to_dict(include_text=include_text)
