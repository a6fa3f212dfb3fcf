from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

from assertguard.core.discovery import AssertionSet, discover_assertion_sets
from assertguard.core.fingerprint import NO_ASSERTIONS
from assertguard.core.git_ops import GitError, git_commit_paths, git_resolve_commit, git_toplevel
from assertguard.core.ledger import GitNotesLedger, LedgerEntry
from assertguard.core.time import utc_timestamp_iso_z
from assertguard.core.verify import committed_fingerprint


TAG = "[assertguard]"


def record_commit(
    repo_root: Path,
    *,
    rev: str = "HEAD",
    notes_ref: str | None = None,
    deterministic: bool | None = None,
) -> list[LedgerEntry]:
    """Fingerprint the Assertion Sets touched by ``rev`` and append them to the ledger.

    Fingerprints come from the committed tree, never the working tree. Sets
    without assertions are not recorded. Returns the entries written.
    """

    commit = git_resolve_commit(repo_root, rev)
    sets: list[AssertionSet] = discover_assertion_sets(git_commit_paths(repo_root, commit))
    if not sets:
        return []

    generated_at = utc_timestamp_iso_z(deterministic=deterministic)
    entries: list[LedgerEntry] = []
    for aset in sets:
        fingerprint = committed_fingerprint(repo_root, aset, rev=commit)
        if fingerprint is None or fingerprint == NO_ASSERTIONS:
            continue
        entries.append(LedgerEntry.for_set(aset, assertion_hash=fingerprint, generated_at=generated_at))

    if entries:
        GitNotesLedger(repo_root, ref=notes_ref).append(commit, entries)
    return entries


def run_post_commit(
    repo: Path,
    *,
    notes_ref: str | None = None,
    quiet: bool = False,
    out: TextIO | None = None,
) -> int:
    """git post-commit entry point; always returns 0 because the commit already exists."""

    stream = out if out is not None else sys.stderr
    try:
        repo_root = git_toplevel(repo)
        entries = record_commit(repo_root, notes_ref=notes_ref)
    except (GitError, OSError, ValueError) as e:
        print(f"{TAG} Warning: assertion hash not stored as git note: {e}", file=stream)
        return 0

    if not quiet:
        for entry in entries:
            print(f"{TAG} Assertion hash stored as git note for {entry.path}", file=stream)
    return 0
