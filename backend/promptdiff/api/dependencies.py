"""
FastAPI dependencies
"""
from promptdiff.services.comparator import VersionComparator, get_comparator


async def get_version_comparator() -> VersionComparator:
    """Process-wide comparator; overridden in tests"""
    return get_comparator()
