"""
Comparison API route - line diff of one prompt between two versions
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
import logging

from promptdiff.api.dependencies import get_version_comparator
from promptdiff.api.schemas import ComparisonResponse
from promptdiff.core.config import settings
from promptdiff.services.comparator import VersionComparator

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Compare"])


@router.get("", response_model=ComparisonResponse)
async def compare_versions(
    base: Optional[str] = Query(None, description="Left-hand version (default: second-latest)"),
    compare: Optional[str] = Query(None, description="Right-hand version (default: latest)"),
    tab: str = Query(settings.DEFAULT_TAB, description="Prompt to diff"),
    comparator: VersionComparator = Depends(get_version_comparator),
):
    """Diff the selected prompt between two versions"""
    if base is None or compare is None:
        default_base, default_compare = await comparator.default_pair()
        base = base or default_base
        compare = compare or default_compare

    comparison = await comparator.compare(base, compare, tab)
    return comparison.to_dict()
