"""
Version helpers for npm-style semantic versions.

npm ranges (``^1.2.0``, ``~2.0``, ``>=1.2.5 <2.0.0``, ``1.x || 2.x``,
``1.0.0 - 1.4.0``) are evaluated with :class:`semantic_version.NpmSpec`,
which follows npm's pre-release rule: a pre-release only satisfies a range
when a comparator in the same set names a pre-release of the same
``major.minor.patch``.

All helpers are forgiving: unparseable input yields ``None`` or ``False``
rather than an exception, except :func:`parse_range`, whose callers decide
how to treat an invalid range.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Optional

from semantic_version import NpmSpec, Version

_COERCE_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")

# ">= 1.2.0" is legal npm syntax but NpmSpec wants ">=1.2.0"
_OPERATOR_GAP_RE = re.compile(r"([<>=~^]+)\s+")

#: Ranges that mean "any version".
_WILDCARD_RANGES = frozenset({"", "*", "x", "X", "latest"})


def parse_version(value: Optional[str]) -> Optional[Version]:
    """Parse a concrete version string, tolerating a leading ``v`` or ``=``.

    Examples:
        >>> parse_version("v1.2.3")
        Version('1.2.3')
        >>> parse_version("^1.2.3") is None
        True
    """
    if not value:
        return None
    cleaned = value.strip().lstrip("=v").strip()
    try:
        return Version(cleaned)
    except ValueError:
        return None


def coerce_version(value: Optional[str]) -> Optional[Version]:
    """Extract the first ``major[.minor[.patch]]`` found in *value*.

    Mirrors npm's ``semver.coerce``: range operators and suffixes are
    ignored, missing components default to zero.

    Examples:
        >>> coerce_version("^16.2")
        Version('16.2.0')
        >>> coerce_version("~1.4.7-beta.1")
        Version('1.4.7')
        >>> coerce_version("latest") is None
        True
    """
    if not value:
        return None
    match = _COERCE_RE.search(value)
    if not match:
        return None
    major, minor, patch = match.groups()
    return Version(
        major=int(major),
        minor=int(minor or 0),
        patch=int(patch or 0),
    )


def resolve_installed_version(
    installed: Optional[str],
    declared: Optional[str] = None,
) -> Optional[Version]:
    """Best guess at the version actually present in a project.

    An exact installed version wins; otherwise the declared range is
    coerced (``^2.1.0`` becomes ``2.1.0``).
    """
    return parse_version(installed) or coerce_version(installed) or coerce_version(declared)


@lru_cache(maxsize=1024)
def parse_range(expression: str) -> NpmSpec:
    """Parse an npm range expression.

    Blank ranges, ``*``, ``x`` and the ``latest`` tag match everything.

    Raises:
        ValueError: The expression is not a valid npm range (URLs, git
            references, ``npm:`` aliases, other dist-tags...).
    """
    cleaned = _OPERATOR_GAP_RE.sub(r"\1", " ".join(expression.split()))
    if cleaned in _WILDCARD_RANGES:
        cleaned = "*"
    return NpmSpec(cleaned)


def is_valid_range(expression: str) -> bool:
    """Return True if *expression* parses as an npm range."""
    try:
        parse_range(expression)
    except ValueError:
        return False
    return True


def satisfies(version: Optional[str], expression: str) -> bool:
    """Return True if *version* satisfies the npm range *expression*.

    Examples:
        >>> satisfies("1.4.0", "^1.2.0")
        True
        >>> satisfies("2.0.0", "^1.2.0")
        False
        >>> satisfies("not-a-version", "*")
        False
    """
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        return parse_range(expression).match(parsed)
    except ValueError:
        return False


def is_prerelease(version: Version) -> bool:
    """Return True for versions such as ``2.0.0-rc.1``."""
    return bool(version.prerelease)


def sort_versions(values: Iterable[str], *, reverse: bool = False) -> List[str]:
    """Sort version strings by semver precedence, dropping invalid ones."""
    parsed = [(v, parse_version(v)) for v in values]
    valid = [(raw, ver) for raw, ver in parsed if ver is not None]
    valid.sort(key=lambda item: item[1], reverse=reverse)
    return [raw for raw, _ in valid]


def max_satisfying(
    values: Iterable[str],
    expressions: Iterable[str],
) -> Optional[str]:
    """Return the highest version satisfying *every* range in *expressions*.

    Stable releases are preferred; a pre-release is only returned when no
    stable version satisfies all ranges.

    Raises:
        ValueError: One of *expressions* is not a valid npm range.

    Example:
        >>> max_satisfying(["1.2.0", "1.9.1", "2.0.0"], ["^1.2.0", ">=1.2.5 <2.0.0"])
        '1.9.1'
    """
    specs = [parse_range(expr) for expr in expressions]

    best_stable: Optional[tuple] = None
    best_pre: Optional[tuple] = None

    for raw in values:
        parsed = parse_version(raw)
        if parsed is None:
            continue
        if not all(spec.match(parsed) for spec in specs):
            continue
        if is_prerelease(parsed):
            if best_pre is None or parsed > best_pre[1]:
                best_pre = (raw, parsed)
        elif best_stable is None or parsed > best_stable[1]:
            best_stable = (raw, parsed)

    if best_stable is not None:
        return best_stable[0]
    if best_pre is not None:
        return best_pre[0]
    return None
