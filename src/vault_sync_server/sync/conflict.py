"""Three-way timestamp conflict detection.

Compares the current local mtime and remote ``updatedAt`` against the
snapshot recorded at the last successful sync:

======================  ======================  ===============
local changed           remote changed          strategy
======================  ======================  ===============
no                      no                      local-wins (no-op)
yes                     no                      local-wins
no                      yes                     remote-wins
yes                     yes                     manual-merge
======================  ======================  ===============

A timestamp "changed" only if it moved by more than
``TIMESTAMP_TOLERANCE_MS``.  Everything here is pure: no I/O, no clock.
"""

from __future__ import annotations

import difflib
import logging
from datetime import datetime

from .models import (
    ConflictResult,
    ConflictSide,
    ConflictStrategy,
    ResolutionResult,
    SyncSnapshot,
)

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_MS = 5000

LOCAL_MARKER = "<<<<<<< LOCAL"
SEPARATOR_MARKER = "======="
REMOTE_MARKER = ">>>>>>> REMOTE"


def to_epoch_ms(value: str | datetime) -> float:
    """Convert an ISO 8601 string (``Z`` suffix allowed) or datetime to ms."""
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text).timestamp() * 1000


def _timestamp_changed(current: float, last_synced: float) -> bool:
    return abs(current - last_synced) > TIMESTAMP_TOLERANCE_MS


def _iso(value: str | datetime) -> str:
    return value.isoformat() if isinstance(value, datetime) else value


def detect_conflict(
    local_modified_at: float,
    remote_updated_at: str | datetime,
    snapshot: SyncSnapshot | None,
) -> ConflictResult:
    """Classify a document's state relative to its last sync.

    Args:
        local_modified_at: Current document mtime in ms since epoch.
        remote_updated_at: Current remote ``updatedAt``.
        snapshot: Baseline from the last sync, or ``None`` if never synced.

    Returns:
        ``ConflictResult`` whose ``changed_sides`` lists exactly the sides
        that moved beyond tolerance.
    """
    remote_iso = _iso(remote_updated_at)

    if snapshot is None:
        return ConflictResult(
            has_conflict=False,
            strategy=ConflictStrategy.LOCAL_WINS,
            reason="First sync - no previous state to compare",
            local_timestamp=local_modified_at,
            remote_timestamp=remote_iso,
        )

    local_changed = _timestamp_changed(
        local_modified_at, snapshot.local_modified_at
    )
    remote_changed = _timestamp_changed(
        to_epoch_ms(remote_updated_at), to_epoch_ms(snapshot.remote_updated_at)
    )

    changed: list[ConflictSide] = []
    if local_changed:
        changed.append(ConflictSide.LOCAL)
    if remote_changed:
        changed.append(ConflictSide.REMOTE)

    match (local_changed, remote_changed):
        case (False, False):
            strategy = ConflictStrategy.LOCAL_WINS
            reason = "No changes since last sync"
        case (True, False):
            strategy = ConflictStrategy.LOCAL_WINS
            reason = "Only local changed since last sync - safe to push"
        case (False, True):
            strategy = ConflictStrategy.REMOTE_WINS
            reason = "Only remote changed since last sync - safe to pull"
        case _:
            strategy = ConflictStrategy.MANUAL_MERGE
            reason = (
                "Both local and remote changed since last sync - "
                "manual resolution required"
            )

    return ConflictResult(
        has_conflict=local_changed and remote_changed,
        strategy=strategy,
        reason=reason,
        changed_sides=changed,
        local_timestamp=local_modified_at,
        remote_timestamp=remote_iso,
        last_synced_at=snapshot.last_synced_at,
    )


def generate_content_diff(local_text: str, remote_text: str) -> str:
    """Line diff from *remote_text* to *local_text*.

    Every line of both inputs appears exactly once, prefixed with ``+``
    (local only), ``-`` (remote only) or a space (common).
    """
    remote_lines = remote_text.splitlines()
    local_lines = local_text.splitlines()
    matcher = difflib.SequenceMatcher(
        None, remote_lines, local_lines, autojunk=False
    )

    lines = ["--- remote", "+++ local", ""]
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            lines.extend(f" {line}" for line in remote_lines[i1:i2])
            continue
        lines.extend(f"-{line}" for line in remote_lines[i1:i2])
        lines.extend(f"+{line}" for line in local_lines[j1:j2])
    return "\n".join(lines)


def conflict_markers(local_text: str, remote_text: str) -> str:
    """Frame both versions with textual conflict markers, local first."""
    return (
        f"{LOCAL_MARKER}\n{local_text}\n{SEPARATOR_MARKER}\n"
        f"{remote_text}\n{REMOTE_MARKER}"
    )


def resolve_conflict(
    strategy: ConflictStrategy, local_text: str, remote_text: str
) -> ResolutionResult:
    """Pick the content to keep for *strategy*.

    ``manual-merge`` reports ``local`` as the winner because the marked-up
    text is what gets written back locally for a human to resolve.
    """
    match strategy:
        case ConflictStrategy.LOCAL_WINS:
            return ResolutionResult(
                winner=ConflictSide.LOCAL,
                content=local_text,
                summary="Local content selected - remote will be overwritten",
            )
        case ConflictStrategy.REMOTE_WINS:
            return ResolutionResult(
                winner=ConflictSide.REMOTE,
                content=remote_text,
                summary="Remote content selected - local document will be overwritten",
            )
        case ConflictStrategy.MANUAL_MERGE:
            return ResolutionResult(
                winner=ConflictSide.LOCAL,
                content=conflict_markers(local_text, remote_text),
                summary="Manual merge required - conflict markers added to content",
                requires_manual=True,
            )
    raise ValueError(f"Unknown conflict strategy: {strategy!r}")


def detect_conflict_with_diff(
    local_modified_at: float,
    remote_updated_at: str | datetime,
    snapshot: SyncSnapshot | None,
    local_text: str | None = None,
    remote_text: str | None = None,
) -> ConflictResult:
    """``detect_conflict()`` plus a diff and marker text for real conflicts.

    The diff is attached only when a conflict was found and both texts
    were supplied.
    """
    result = detect_conflict(local_modified_at, remote_updated_at, snapshot)
    if not result.has_conflict or local_text is None or remote_text is None:
        return result

    logger.debug("Conflict detected, generating diff")
    return result.model_copy(
        update={
            "content_diff": generate_content_diff(local_text, remote_text),
            "merged_content": conflict_markers(local_text, remote_text),
        }
    )
