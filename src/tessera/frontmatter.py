"""Markdown frontmatter codec.

An item file is a ``---`` delimited block of ``key: value`` lines followed
by one blank line and the markdown body::

    ---
    title: Auth bug
    tags: ["bug", "auth"]
    start_date:
    ---

    Body text.

List fields are written as JSON array literals so values containing commas
survive a round trip. Files written before that convention stored lists as
comma-joined text; those are still read, never written.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from tessera.errors import FrontmatterError

DELIMITER = "---"

LIST_FIELDS: frozenset[str] = frozenset({"tags", "related", "related_tasks", "related_documents", "keywords"})


@dataclass
class ParsedDocument:
    metadata: dict[str, Any] = field(default_factory=dict)
    content: str = ""
    # True when the file had no metadata block at all.
    bare: bool = False
    # List fields that were stored in the legacy comma-joined form.
    legacy_fields: list[str] = field(default_factory=list)


def is_legacy_list(raw_value: str) -> bool:
    """True if *raw_value* is a non-empty list field not stored as a JSON array."""
    stripped = raw_value.strip()
    return bool(stripped) and stripped != "null" and not stripped.startswith("[")


def _parse_list(raw_value: str, key: str, line_no: int) -> list[str]:
    stripped = raw_value.strip()
    if not stripped or stripped == "null":
        return []
    if stripped.startswith("["):
        try:
            value = json.loads(stripped)
        except json.JSONDecodeError as exc:
            msg = f"line {line_no}: field '{key}' is not a valid JSON array: {exc.msg}"
            raise FrontmatterError(msg) from exc
        if not isinstance(value, list):
            msg = f"line {line_no}: field '{key}' must be an array"
            raise FrontmatterError(msg)
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [part.strip() for part in stripped.split(",") if part.strip()]


def _parse_scalar(raw_value: str) -> str | None:
    stripped = raw_value.strip()
    if not stripped or stripped == "null":
        return None
    if stripped.startswith('"'):
        # Quoted form is written for values that would not survive as plain text.
        try:
            decoded = json.loads(stripped)
        except json.JSONDecodeError:
            return stripped
        if isinstance(decoded, str):
            return decoded
    return stripped


def _needs_quoting(text: str) -> bool:
    return (
        not text
        or text != text.strip()
        or text == "null"
        or text.startswith('"')
        or "\n" in text
        or "\r" in text
    )


def parse(raw: str) -> ParsedDocument:
    """Split *raw* into metadata and content.

    A file that does not open with ``---`` has no metadata; its whole text is
    content. A file that opens a block but never closes it, or holds a line
    that is not ``key: value``, raises :class:`FrontmatterError`.

    CRLF is tolerated on the delimiter and metadata lines. The content is
    sliced from *raw* untouched, so its line endings survive a round trip.
    """
    lines = raw.split("\n")
    if lines[0].rstrip("\r").strip() != DELIMITER:
        return ParsedDocument(metadata={}, content=raw, bare=True)

    end = None
    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r").strip() == DELIMITER:
            end = idx
            break
    if end is None:
        msg = "metadata block opened with '---' but never closed"
        raise FrontmatterError(msg)

    metadata: dict[str, Any] = {}
    legacy: list[str] = []
    for idx in range(1, end):
        line = lines[idx].rstrip("\r")
        if not line.strip():
            continue
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key or " " in key:
            msg = f"line {idx + 1}: expected 'key: value', got {line!r}"
            raise FrontmatterError(msg)
        value = value[1:] if value.startswith(" ") else value
        if key in LIST_FIELDS:
            if is_legacy_list(value):
                legacy.append(key)
            metadata[key] = _parse_list(value, key, idx + 1)
        else:
            metadata[key] = _parse_scalar(value)

    content = raw[sum(len(line) + 1 for line in lines[: end + 1]) :]
    # One blank separator line follows the block.
    for separator in ("\r\n", "\n"):
        if content.startswith(separator):
            content = content[len(separator) :]
            break
    return ParsedDocument(metadata=metadata, content=content, legacy_fields=legacy)


def _format_value(key: str, value: Any) -> str:
    if key in LIST_FIELDS:
        items = [] if value is None else [str(v) for v in value]
        return json.dumps(items, ensure_ascii=False)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if _needs_quoting(text):
        return json.dumps(text, ensure_ascii=False)
    return text


def generate(metadata: dict[str, Any], content: str) -> str:
    """Render *metadata* and *content* into the on-disk file format.

    ``None`` is written as an empty value. Strings that would not read back
    unchanged (empty, padded, multi-line, or starting with a quote) are
    written as JSON string literals.
    """
    out = [DELIMITER]
    for key, value in metadata.items():
        if not isinstance(key, str) or not key or " " in key or ":" in key:
            msg = f"invalid frontmatter key {key!r}"
            raise ValueError(msg)
        rendered = _format_value(key, value)
        out.append(f"{key}: {rendered}" if rendered else f"{key}: ")
    out.append(DELIMITER)
    out.append("")
    out.append(content)
    return "\n".join(out)
