"""Service layer - build, search and audit use cases."""

from .services import (
    BuildReport,
    IndexAuditReport,
    audit_index,
    build_index,
    search_index,
)


__all__ = [
    "BuildReport",
    "IndexAuditReport",
    "audit_index",
    "build_index",
    "search_index",
]
