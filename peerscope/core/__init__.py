"""
Core functionality exports for peerscope.

Importing from here keeps user-facing imports clean and stable:

    from peerscope.core import RegistryClient, resolve_conflicts
"""

from __future__ import annotations

from peerscope.core.cache import CacheEntry, CacheStats, CacheStore
from peerscope.core.registry import (
    BulkFetchResult,
    FetchResult,
    FetchStatus,
    RegistryClient,
)
from peerscope.core.extractor import declared_requirements, extract_requirements
from peerscope.core.peer_analyzer import analyze_peers
from peerscope.core.conflict_resolver import resolve_conflicts
from peerscope.core.engine import (
    AnalysisOutcome,
    AnalysisResult,
    AnalysisSummary,
    DependencyAdvisor,
    run_analysis,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "BulkFetchResult",
    "FetchResult",
    "FetchStatus",
    "RegistryClient",
    "declared_requirements",
    "extract_requirements",
    "analyze_peers",
    "resolve_conflicts",
    "AnalysisOutcome",
    "AnalysisResult",
    "AnalysisSummary",
    "DependencyAdvisor",
    "run_analysis",
]
