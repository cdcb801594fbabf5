"""
peerscope: dependency health advisor for npm projects.

peerscope fetches package metadata from an npm-compatible registry, caches
it, and reports peer dependency problems and version conflicts before a
larger upgrade is attempted.

Features include:
    • Async registry client with bounded concurrency, retries and
      rate-limit backoff
    • TTL cache with registry isolation and an optional disk snapshot
    • Missing / mismatched peer detection
    • Version conflict detection with a proposed resolution

Typical usage::

    from peerscope import ProjectManifest, run_analysis

    manifest = ProjectManifest(dependencies={"react-dom": "^18.2.0"})
    result = run_analysis(manifest)
    print(result.summary.health_score)
"""

from __future__ import annotations

from peerscope.__version__ import __version__
from peerscope.config import PeerScopeConfig, load_config
from peerscope.models.requirement import ProjectManifest
from peerscope.core.engine import (
    AnalysisOutcome,
    AnalysisResult,
    DependencyAdvisor,
    run_analysis,
)

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "peerscope Contributors"
__license__ = "Apache-2.0"
__description__ = "Peer dependency and version conflict advisor for npm projects."

__all__ = [
    "__version__",
    "AnalysisOutcome",
    "AnalysisResult",
    "DependencyAdvisor",
    "PeerScopeConfig",
    "ProjectManifest",
    "load_config",
    "run_analysis",
]
