"""
Input validation for peerscope.

Package names end up in registry URLs and cache keys, so they are checked
before any I/O happens. The rules follow npm's own naming rules:

- at most 214 characters,
- lowercase letters, digits and ``-._~`` (legacy mixed-case names are
  tolerated),
- an optional ``@scope/`` prefix,
- no path traversal, whitespace or shell metacharacters.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List

from peerscope.exceptions import ValidationError
from peerscope.constants import (
    FORBIDDEN_NAME_SEQUENCES,
    MAX_PACKAGE_NAME_LENGTH,
    PACKAGE_NAME_PATTERN,
)

_NAME_RE = re.compile(PACKAGE_NAME_PATTERN, re.IGNORECASE)


def validate_package_name(name: Any) -> str:
    """Return *name* unchanged if it is a legal npm package name.

    Raises:
        ValidationError: The name is empty, too long, malformed or contains
            a forbidden sequence.

    Example:
        >>> validate_package_name("@angular/core")
        '@angular/core'
    """
    if not isinstance(name, str) or not name:
        raise ValidationError(
            "Package name must be a non-empty string",
            value=name,
            field="package_name",
        )

    if len(name) > MAX_PACKAGE_NAME_LENGTH:
        raise ValidationError(
            f"Package name exceeds {MAX_PACKAGE_NAME_LENGTH} characters",
            value=name,
            field="package_name",
        )

    for sequence in FORBIDDEN_NAME_SEQUENCES:
        if sequence in name:
            raise ValidationError(
                f"Package name contains forbidden sequence {sequence!r}",
                value=name,
                field="package_name",
            )

    if not _NAME_RE.match(name):
        raise ValidationError(
            "Invalid package name",
            value=name,
            field="package_name",
        )

    return name


def validate_package_batch(names: Any) -> List[str]:
    """Validate a whole batch up front and return it de-duplicated.

    Order of first appearance is kept. A bare string is rejected rather
    than iterated character by character.

    Raises:
        ValidationError: *names* is not an iterable of strings, or any
            element is an invalid package name.
    """
    if isinstance(names, (str, bytes)) or not isinstance(names, Iterable):
        raise ValidationError(
            "Package batch must be an iterable of names",
            value=names,
            field="names",
        )

    validated = [validate_package_name(name) for name in names]
    return list(dict.fromkeys(validated))
