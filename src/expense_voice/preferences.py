"""Helpers that compute the next settings value for add/remove edits.

The store replaces whole values, so callers read the current list or mapping,
derive the next one with these functions and write it back.
"""

from __future__ import annotations

from typing import Mapping, Sequence


def add_entry(values: Sequence[str], entry: str) -> list[str]:
    """Append ``entry`` unless an entry with the same name already exists."""

    cleaned = _require_text(entry, "entry")
    existing = {value.strip().lower() for value in values}
    result = list(values)
    if cleaned.lower() not in existing:
        result.append(cleaned)
    return result


def remove_entry(values: Sequence[str], entry: str) -> list[str]:
    """Drop every entry matching ``entry`` case-insensitively."""

    target = _require_text(entry, "entry").lower()
    return [value for value in values if value.strip().lower() != target]


def add_mapping(mappings: Mapping[str, str], keyword: str, category: str) -> dict[str, str]:
    """Map a lowercase keyword to a category, replacing any previous target."""

    key = _require_text(keyword, "keyword").lower()
    target = _require_text(category, "category")
    result = {k: v for k, v in mappings.items() if k.strip().lower() != key}
    result[key] = target
    return result


def remove_mapping(mappings: Mapping[str, str], keyword: str) -> dict[str, str]:
    key = _require_text(keyword, "keyword").lower()
    return {k: v for k, v in mappings.items() if k.strip().lower() != key}


def _require_text(value: str, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{label} cannot be blank.")
    return cleaned


__all__ = ["add_entry", "add_mapping", "remove_entry", "remove_mapping"]
