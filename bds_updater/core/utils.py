"""Shared utilities for bds-updater."""

from __future__ import annotations

import re

_VERSION_PART = re.compile(r"^\d+$")


def parse_version(version: str) -> tuple[int, ...]:
    """Parse a dotted version string into numeric components.

    Args:
        version: Version such as "1.21.44.01"

    Returns:
        Tuple of integer components

    Raises:
        ValueError: If any component is not a non-negative integer

    Example:
        >>> parse_version("1.21.44.01")
        (1, 21, 44, 1)
    """
    parts = version.strip().split(".")
    if not parts or not all(_VERSION_PART.match(part) for part in parts):
        raise ValueError(f"Invalid version: {version!r}")
    return tuple(int(part) for part in parts)


def compare_versions(a: str, b: str) -> int:
    """Compare two dotted versions numerically.

    Missing trailing components count as zero, so "1.2" equals "1.2.0".

    Args:
        a: First version
        b: Second version

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b

    Example:
        >>> compare_versions("1.10.0", "1.9.9")
        1
    """
    left = parse_version(a)
    right = parse_version(b)
    width = max(len(left), len(right))
    left += (0,) * (width - len(left))
    right += (0,) * (width - len(right))
    return (left > right) - (left < right)


def normalize_relative_path(path: str) -> str:
    """Normalize a relative path for policy matching.

    Backslashes become forward slashes, and leading "./", leading and
    trailing slashes, and repeated separators are removed.

    Example:
        >>> normalize_relative_path(".\\\\config\\\\default\\\\")
        'config/default'
    """
    path = path.replace("\\", "/")
    parts = [part for part in path.split("/") if part not in ("", ".")]
    return "/".join(parts)


def shorten_name(name: str, limit: int = 35) -> str:
    """Shorten a display name to at most ``limit`` characters.

    Example:
        >>> shorten_name("a" * 40)
        '...aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa'
    """
    if len(name) <= limit:
        return name
    return "..." + name[-(limit - 3):]
