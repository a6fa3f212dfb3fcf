from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from assertguard.core.discovery import AssertionSet, assertion_set_for_path
from assertguard.core.git_ops import git_diff_head, git_is_tracked, git_show_blob
from assertguard.core.ledger import GitNotesLedger
from assertguard.core.verify import AssertionSetResult, VerificationEngine


DiffStatus = Literal["clean", "modified", "untracked"]

_LEGACY_CHANGE_RE = re.compile(r"^[+-]\*\*(Given|When|Then)\*\*:")
_FEATURE_CHANGE_RE = re.compile(r"^[+-]\s*(Given|When|Then|And|But) ")


def resolve_assertion_set(rel: str) -> AssertionSet:
    aset = assertion_set_for_path(rel)
    if aset is None:
        raise ValueError(
            f"not an assertion path: {rel} (expected <feature>/tests/features[/x.feature] or <feature>/tests/test-specs.md)"
        )
    return aset


def context_is_pending(repo_root: Path, aset: AssertionSet) -> bool:
    """True when the on-disk context.json differs from the committed one."""

    try:
        on_disk = (repo_root / aset.context_path).read_bytes()
    except OSError:
        return False
    return git_show_blob(repo_root, f"HEAD:{aset.context_path}") != on_disk


def verify_path(
    repo_root: Path,
    rel: str,
    *,
    notes_ref: str | None = None,
    search_depth: int | None = None,
) -> AssertionSetResult:
    """Verify the working-tree content of the Assertion Set that ``rel`` belongs to."""

    aset = resolve_assertion_set(rel)
    engine = VerificationEngine(repo_root, GitNotesLedger(repo_root, ref=notes_ref), search_depth=search_depth)
    return engine.verify_working_tree(aset, context_pending=context_is_pending(repo_root, aset))


def check_git_diff(repo_root: Path, rel: str) -> DiffStatus:
    """Classify uncommitted changes to an assertion file.

    Only added or removed step lines count; edits to comments, titles or
    formatting leave the file ``clean``.
    """

    if not (repo_root / rel).is_file():
        raise ValueError(f"file not found: {rel}")
    if not git_is_tracked(repo_root, rel):
        return "untracked"

    diff = git_diff_head(repo_root, rel)
    if not diff:
        return "clean"
    for line in diff.splitlines():
        if line.startswith("+++") or line.startswith("---"):
            continue
        if _LEGACY_CHANGE_RE.match(line) or _FEATURE_CHANGE_RE.match(line):
            return "modified"
    return "clean"
