"""
Structural comparison of workflow definitions.

HubSpot returns JSON whose object key order and list order (e.g. enrollment
filters, contact lists) are not stable between calls. Both payloads are
reduced to a canonical form first:

- dict  -> keys sorted, values canonicalised;
- list  -> items canonicalised, then sorted by their JSON encoding;
- booleans are tagged so that ``true`` never equals ``1``; other scalars
  are kept as-is (``1`` and ``1.0`` compare equal, like JSON).

Lists are treated as unordered collections. Duplicates are kept, so
``[a, a, b]`` still differs from ``[a, b]``.
"""

from __future__ import annotations

import json
from typing import Any

from app.models import WorkflowVersion


def canonicalize(value: Any) -> Any:
    if isinstance(value, bool):
        # Keep true/false distinct from 1/0.
        return ("bool", value)
    if isinstance(value, dict):
        return {str(key): canonicalize(value[key]) for key in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        items = [canonicalize(item) for item in value]
        return sorted(items, key=_sort_key)
    return value


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def definitions_equal(left: Any, right: Any) -> bool:
    return canonicalize(left) == canonicalize(right)


def has_changed(latest_version: WorkflowVersion | None, fresh_definition: dict[str, Any]) -> bool:
    """
    True when a snapshot must be taken.

    No prior version (bootstrap) always counts as a change.
    """
    if latest_version is None:
        return True
    return not definitions_equal(latest_version.data, fresh_definition)


def diff_definitions(old: Any, new: Any, *, path: str = "") -> dict[str, dict[str, Any]]:
    """
    Field-level differences between two payloads, keyed by dotted path.

    Nested objects are walked key by key; lists are compared as unordered
    collections and reported as a single entry when they differ.
    """
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        for key in sorted(set(old) | set(new), key=str):
            child = f"{path}.{key}" if path else str(key)
            if key not in new:
                changes[child] = {"old": old[key], "new": None, "change": "removed"}
            elif key not in old:
                changes[child] = {"old": None, "new": new[key], "change": "added"}
            else:
                changes.update(diff_definitions(old[key], new[key], path=child))
        return changes

    if not definitions_equal(old, new):
        changes[path or "$"] = {"old": old, "new": new, "change": "modified"}
    return changes


__all__ = ["canonicalize", "definitions_equal", "diff_definitions", "has_changed"]
