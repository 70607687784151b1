"""Config-driven pairing mapper for vault documents.

Translates local document paths into the remote attributes a create
needs, using the ``PairingConfig`` of the vault they belong to.

Type resolution:

1. **Exclude check** -- excluded paths never map.
2. **Exact folder** -- the document's folder (relative to the vault root)
   is looked up in ``folder_mappings``.
3. **Ancestor folder** -- otherwise the nearest (longest) mapping that is
   a path prefix of the document wins.  Documents at the vault root use
   the ``""`` key.

The reverse direction, ``folder_for_type()``, picks the folder a record
pulled from the remote is written into.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from pathlib import Path, PurePosixPath

from ..config_schema import PairingConfig

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def relative_document_path(path: str | Path, pairing: PairingConfig) -> str | None:
    """Return *path* relative to the pairing's vault (POSIX separators).

    Returns ``None`` when *path* lies outside the vault.
    """
    resolved = Path(path).expanduser().resolve()
    try:
        rel = resolved.relative_to(pairing.root)
    except ValueError:
        return None
    return rel.as_posix()


def is_excluded(rel_path: str, pairing: PairingConfig) -> bool:
    return any(fnmatch.fnmatch(rel_path, pattern) for pattern in pairing.exclude)


def resolve_type_id(path: str | Path, pairing: PairingConfig) -> int | None:
    """Return the remote type id for the document at *path*.

    Args:
        path: Absolute (or CWD-relative) document path.
        pairing: Pairing whose vault contains the document.

    Returns:
        The mapped type id, or ``None`` if the document is outside the
        vault, excluded, or in an unmapped folder.
    """
    rel = relative_document_path(path, pairing)
    if rel is None or is_excluded(rel, pairing):
        return None

    folder = PurePosixPath(rel).parent.as_posix()
    if folder == ".":
        folder = ""

    mappings = pairing.folder_mappings
    if folder in mappings:
        return mappings[folder]

    for mapped_folder, type_id in sorted(
        mappings.items(), key=lambda item: len(item[0]), reverse=True
    ):
        if mapped_folder and rel.startswith(mapped_folder + "/"):
            return type_id

    logger.debug("No folder mapping for %s", rel)
    return None


def folder_for_type(type_id: int, pairing: PairingConfig) -> str | None:
    """Return the vault folder mapped to *type_id*.

    When several folders map to the same type the first one in the
    configuration wins.  ``""`` is the vault root.
    """
    for folder, mapped_type in pairing.folder_mappings.items():
        if mapped_type == type_id:
            return folder
    return None


def document_filename(name: str, fallback: str) -> str:
    """Turn a record name into a safe ``.md`` file name."""
    stem = _UNSAFE_FILENAME_RE.sub("-", name).strip(" .-")
    return f"{stem or fallback}.md"


def resolve_tag_ids(tags: list[str], pairing: PairingConfig) -> list[int]:
    """Map tag names to remote tag ids, dropping unmapped tags.

    Order follows *tags*; duplicates are removed.
    """
    ids: list[int] = []
    for tag in tags:
        tag_id = pairing.tag_mappings.get(tag)
        if tag_id is not None and tag_id not in ids:
            ids.append(tag_id)
    return ids


def discover_documents(
    vault_path: str | Path, exclude: list[str] | None = None
) -> list[Path]:
    """Scan *vault_path* for Markdown documents.

    Hidden directories (name starting with ``.``) are skipped, as are
    files matching any *exclude* glob (relative POSIX path).

    Returns:
        Sorted list of absolute document paths; empty if the vault does
        not exist.
    """
    root = Path(vault_path).expanduser().resolve()
    if not root.is_dir():
        return []

    patterns = exclude or []
    documents: list[Path] = []
    for path in sorted(root.rglob("*.md")):
        if not path.is_file():
            continue
        rel = path.relative_to(root)
        if any(part.startswith(".") for part in rel.parts[:-1]):
            continue
        rel_posix = rel.as_posix()
        if any(fnmatch.fnmatch(rel_posix, p) for p in patterns):
            continue
        documents.append(path)
    return documents
