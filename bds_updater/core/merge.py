"""Merge strategies for configuration files the operator edits.

A strategy receives the staged file's text and the live file's text
(None when the live file does not exist yet) and returns the text to
write over the live file. Strategies are pure; the reconciler handles
all file I/O.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import json5
import structlog

logger = structlog.get_logger()

MergeStrategy = Callable[[str, str | None], str]


def parse_properties(text: str) -> dict[str, str]:
    """Parse ``key=value`` lines.

    Blank lines, lines starting with ``#`` and lines without ``=`` are
    ignored. Keys and values are stripped of surrounding whitespace.

    Args:
        text: Properties file content

    Returns:
        Mapping of key to value, later duplicates winning
    """
    properties: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        key = key.strip()
        if not key:
            continue
        properties[key] = value.strip()
    return properties


def merge_properties(staged: str, live: str | None) -> str:
    """Append keys that only exist in the staged properties file.

    The live text is preserved byte for byte; missing keys are appended
    as ``key=value`` lines in staged order. Existing keys are never
    overwritten.

    Args:
        staged: Content shipped with the new package
        live: Content currently installed, or None

    Returns:
        Merged content
    """
    if live is None:
        return staged

    live_properties = parse_properties(live)
    missing = [
        (key, value)
        for key, value in parse_properties(staged).items()
        if key not in live_properties
    ]
    if not missing:
        return live

    newline = "\r\n" if "\r\n" in live else "\n"
    merged = live
    if merged and not merged.endswith("\n"):
        merged += newline
    for key, value in missing:
        merged += f"{key}={value}{newline}"

    logger.debug("properties_merged", added=[key for key, _ in missing])
    return merged


def _list_field(document: dict[str, Any], field: str | None) -> str:
    if field is not None:
        return field
    candidates = [key for key, value in document.items() if isinstance(value, list)]
    if len(candidates) != 1:
        raise ValueError(f"Expected exactly one array field, found {len(candidates)}")
    return candidates[0]


def merge_permissions(staged: str, live: str | None, field: str | None = "allowed_modules") -> str:
    """Union the array field of two JSON permission documents.

    Entries already present live keep their order; staged-only entries
    follow. Other fields of the live document are preserved. Both inputs
    may contain comments; the result is plain JSON without them.

    Args:
        staged: Content shipped with the new package
        live: Content currently installed, or None
        field: Array field to merge, or None to use the document's only
            array field

    Returns:
        Merged JSON document

    Raises:
        ValueError: If either document is not a JSON object holding the field
    """
    if live is None:
        return staged

    new_doc = json5.loads(staged)
    old_doc = json5.loads(live)
    if not isinstance(new_doc, dict) or not isinstance(old_doc, dict):
        raise ValueError("Permissions documents must be JSON objects")

    name = _list_field(new_doc, field)
    old_values = old_doc.get(name, [])
    new_values = new_doc.get(name, [])
    if not isinstance(old_values, list) or not isinstance(new_values, list):
        raise ValueError(f"Field {name!r} must be an array")

    union: list[Any] = []
    for value in [*old_values, *new_values]:
        if value not in union:
            union.append(value)

    merged = dict(old_doc)
    merged[name] = union
    return json.dumps(merged, indent=2) + "\n"
