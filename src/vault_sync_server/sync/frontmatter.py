"""YAML front-matter handling for vault documents.

A document may start with a block delimited by ``---`` lines::

    ---
    title: Render graph
    remote_id: 42
    tags: [vulkan, render-graph]
    ---
    # Body starts here

The block is parsed with ``yaml.safe_load``.  A block that is not valid
YAML, or whose root is not a mapping, is treated as if the document had
no front matter at all.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)


def _split(content: str) -> tuple[dict[str, Any] | None, str]:
    """Split *content* into ``(front_matter, body)``.

    ``front_matter`` is ``None`` when there is no valid block, in which
    case ``body`` is the full content.
    """
    text = content.lstrip("\ufeff")
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return None, content

    try:
        data = yaml.safe_load(match.group(1) or "")
    except yaml.YAMLError as exc:
        logger.debug("Ignoring invalid front matter: %s", exc)
        return None, content

    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, content
    return data, text[match.end():]


def render_frontmatter(data: dict[str, Any], body: str) -> str:
    """Render *data* as a front-matter block followed by *body*."""
    if not data:
        return body
    block = yaml.safe_dump(
        data, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"---\n{block}---\n{body}"


def extract_frontmatter(content: str) -> dict[str, Any]:
    """Return the parsed front matter of *content* (empty dict if none)."""
    data, _ = _split(content)
    return data or {}


def has_frontmatter(content: str) -> bool:
    """Return ``True`` if *content* carries a non-empty, valid block."""
    data, _ = _split(content)
    return bool(data)


def strip_frontmatter(content: str) -> str:
    """Return *content* without its front-matter block."""
    _, body = _split(content)
    return body


def update_frontmatter(content: str, updates: dict[str, Any]) -> str:
    """Merge *updates* into the front matter of *content*.

    Existing keys not named in *updates* are preserved in their original
    order.  A key whose update value is ``None`` is removed.  When the
    document has no (valid) front matter a new block is prepended.
    """
    data, body = _split(content)
    merged = dict(data or {})
    for key, value in updates.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return render_frontmatter(merged, body)


def replace_body(content: str, new_body: str) -> str:
    """Replace the body of *content*, keeping its front-matter block verbatim."""
    text = content.lstrip("\ufeff")
    data, _ = _split(content)
    if data is None:
        return new_body
    match = _FRONTMATTER_RE.match(text)
    block = text[: match.end()]
    if not block.endswith("\n"):
        block += "\n"
    return block + new_body


def frontmatter_tags(data: dict[str, Any]) -> list[str]:
    """Normalise the ``tags`` entry of *data* into a list of names.

    Accepts a YAML list or a comma-separated string; a leading ``#`` is
    dropped from each name.
    """
    raw = data.get("tags")
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw if item is not None]
    else:
        items = [str(raw)]
    return [t.strip().lstrip("#") for t in items if t.strip().lstrip("#")]
