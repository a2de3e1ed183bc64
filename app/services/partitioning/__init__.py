"""Multi-student document partitioning and roster identity resolution."""

from .identity import IdentityMatch, IdentityResolver, name_similarity
from .partitioner import (
    DocumentPartitioner,
    PageReading,
    PartitionResult,
    PartitionRules,
    StudentGroup,
    StudentIdentity,
    group_pages,
    validate_groups,
)

__all__ = [
    "DocumentPartitioner",
    "IdentityMatch",
    "IdentityResolver",
    "PageReading",
    "PartitionResult",
    "PartitionRules",
    "StudentGroup",
    "StudentIdentity",
    "group_pages",
    "name_similarity",
    "validate_groups",
]
