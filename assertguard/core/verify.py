"""Verification engine: recompute a fingerprint and cross-check both channels.

Channels:

- context: the feature's Context Record (tracked, mutable).
- ledger: the git-notes ledger (commit-addressed, append-only).

Each channel reports ``valid``, ``invalid`` or ``missing`` on its own;
:func:`combine_verdicts` is the single precedence function that turns the pair
into the verdict for one Assertion Set.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from assertguard.core.context_record import ContextRecord, ContextSource, read_context, read_context_file
from assertguard.core.discovery import AssertionSet
from assertguard.core.fingerprint import (
    FEATURE_SUFFIX,
    NO_ASSERTIONS,
    decode_document,
    fingerprint_documents,
    fingerprint_path,
)
from assertguard.core.git_ops import GitError, git_index_files, git_show_blob, git_tree_files
from assertguard.core.ledger import GitNotesLedger, LedgerMatch


Verdict = Literal["valid", "invalid", "missing"]
ChannelStatus = Literal["valid", "invalid", "missing"]

VALID: Verdict = "valid"
INVALID: Verdict = "invalid"
MISSING: Verdict = "missing"


def channel_status(stored: str | None, current: str) -> ChannelStatus:
    if not stored:
        return MISSING
    return VALID if stored == current else INVALID


def combine_verdicts(*, context: ChannelStatus, ledger: ChannelStatus, context_staged: bool) -> Verdict:
    """Precedence for one Assertion Set.

    1. A Context Record staged with the assertions and matching them wins,
       even over a stale ledger entry from an earlier generation.
    2. Any channel disagreeing with the current fingerprint is ``invalid``.
    3. Any channel agreeing is ``valid``.
    4. Otherwise nothing is recorded: ``missing``.
    """

    if context_staged and context == VALID:
        return VALID
    if context == INVALID or ledger == INVALID:
        return INVALID
    if context == VALID or ledger == VALID:
        return VALID
    return MISSING


@dataclass(frozen=True)
class AssertionSetResult:
    assertion_set: AssertionSet
    current_hash: str | None
    context_status: ChannelStatus
    ledger_status: ChannelStatus
    context_staged: bool
    verdict: Verdict
    context_hash: str | None = None
    ledger_hash: str | None = None
    ledger_commit: str | None = None
    note: str | None = None

    @property
    def skipped(self) -> bool:
        return self.current_hash == NO_ASSERTIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.assertion_set.path,
            "kind": self.assertion_set.kind,
            "verdict": self.verdict,
            "current_hash": self.current_hash,
            "context_staged": self.context_staged,
            "checks": {
                "context": self.context_status,
                "ledger": self.ledger_status,
            },
            "context_hash": self.context_hash,
            "ledger_hash": self.ledger_hash,
            "ledger_commit": self.ledger_commit,
            "note": self.note,
        }


def evaluate(
    aset: AssertionSet,
    *,
    current_hash: str | None,
    context_record: ContextRecord | None,
    ledger_match: LedgerMatch | None,
    context_staged: bool,
) -> AssertionSetResult:
    """Pure verdict computation from already-gathered inputs.

    ``current_hash`` None means the assertions could not be read; such a set
    is reported ``missing`` and never ``valid``.
    """

    context_hash = context_record.assertion_hash if context_record is not None else None
    ledger_hash = ledger_match.entry.assertion_hash if ledger_match is not None else None
    ledger_commit = ledger_match.commit if ledger_match is not None else None

    if current_hash is None:
        return AssertionSetResult(
            assertion_set=aset,
            current_hash=None,
            context_status=MISSING,
            ledger_status=MISSING,
            context_staged=context_staged,
            verdict=MISSING,
            context_hash=context_hash,
            ledger_hash=ledger_hash,
            ledger_commit=ledger_commit,
            note="assertion content unreadable",
        )

    if current_hash == NO_ASSERTIONS:
        return AssertionSetResult(
            assertion_set=aset,
            current_hash=current_hash,
            context_status=MISSING,
            ledger_status=MISSING,
            context_staged=context_staged,
            verdict=VALID,
            context_hash=context_hash,
            ledger_hash=ledger_hash,
            ledger_commit=ledger_commit,
            note="no assertions to verify",
        )

    ctx = channel_status(context_hash, current_hash)
    led = channel_status(ledger_hash, current_hash)
    return AssertionSetResult(
        assertion_set=aset,
        current_hash=current_hash,
        context_status=ctx,
        ledger_status=led,
        context_staged=context_staged,
        verdict=combine_verdicts(context=ctx, ledger=led, context_staged=context_staged),
        context_hash=context_hash,
        ledger_hash=ledger_hash,
        ledger_commit=ledger_commit,
    )


# ---------------------------------------------------------------------------
# Snapshot readers
# ---------------------------------------------------------------------------

def _blobs_to_documents(repo_root: Path, specs: dict[str, str]) -> dict[str, str] | None:
    docs: dict[str, str] = {}
    for name, spec in specs.items():
        data = git_show_blob(repo_root, spec)
        if data is None:
            return None
        docs[name] = decode_document(data)
    return docs


def staged_fingerprint(repo_root: Path, aset: AssertionSet) -> str | None:
    """Fingerprint of ``aset`` as recorded in the index (HEAD plus staged changes).

    Returns None when a blob that the index lists cannot be read.
    """

    if aset.legacy:
        data = git_show_blob(repo_root, f":{aset.path}")
        if data is None:
            return NO_ASSERTIONS
        return fingerprint_documents({aset.path: decode_document(data)}, legacy=True)

    specs: dict[str, str] = {}
    for rel in git_index_files(repo_root, aset.path):
        name = rel[len(aset.path) + 1:]
        if "/" in name or not name.endswith(FEATURE_SUFFIX):
            continue
        specs[name] = f":{rel}"
    docs = _blobs_to_documents(repo_root, specs)
    if docs is None:
        return None
    return fingerprint_documents(docs, legacy=False)


def committed_fingerprint(repo_root: Path, aset: AssertionSet, *, rev: str = "HEAD") -> str | None:
    """Fingerprint of ``aset`` as recorded in commit ``rev``."""

    if aset.legacy:
        data = git_show_blob(repo_root, f"{rev}:{aset.path}")
        if data is None:
            return NO_ASSERTIONS
        return fingerprint_documents({aset.path: decode_document(data)}, legacy=True)

    specs: dict[str, str] = {}
    for rel in git_tree_files(repo_root, rev, aset.path):
        name = rel.rsplit("/", 1)[-1]
        if name.endswith(FEATURE_SUFFIX):
            specs[name] = f"{rev}:{rel}"
    docs = _blobs_to_documents(repo_root, specs)
    if docs is None:
        return None
    return fingerprint_documents(docs, legacy=False)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class VerificationEngine:
    """Verify Assertion Sets of one repository against both channels."""

    def __init__(self, repo_root: Path, ledger: GitNotesLedger, *, search_depth: int | None = None) -> None:
        self.repo_root = repo_root
        self.ledger = ledger
        self.search_depth = search_depth

    def _ledger_lookup(self, aset: AssertionSet) -> LedgerMatch | None:
        try:
            return self.ledger.find(aset, search_depth=self.search_depth)
        except GitError:
            return None

    def verify_staged(self, aset: AssertionSet, *, staged_paths: set[str]) -> AssertionSetResult:
        """Verify the pending (index) content of ``aset`` before a commit.

        The staged Context Record is trusted only when it is staged together
        with assertion files of the same set; otherwise the committed record
        is read.
        """

        context_staged = aset.context_path in staged_paths and any(aset.covers(p) for p in staged_paths)
        source: ContextSource = "working-tree" if context_staged else "last-finalized"

        try:
            current = staged_fingerprint(self.repo_root, aset)
        except (GitError, OSError):
            current = None
        if current is None or current == NO_ASSERTIONS:
            return evaluate(aset, current_hash=current, context_record=None, ledger_match=None, context_staged=context_staged)

        try:
            record = read_context(self.repo_root, aset, source)
        except (GitError, OSError):
            record = None

        return evaluate(
            aset,
            current_hash=current,
            context_record=record,
            ledger_match=self._ledger_lookup(aset),
            context_staged=context_staged,
        )

    def verify_working_tree(self, aset: AssertionSet, *, context_pending: bool) -> AssertionSetResult:
        """Verify the on-disk content of ``aset`` (manual checks outside a hook).

        ``context_pending`` marks the on-disk Context Record as an
        uncommitted generation event; otherwise the committed record is used.
        """

        try:
            current: str | None = fingerprint_path(self.repo_root / aset.path)
        except OSError:
            current = None
        if current is None or current == NO_ASSERTIONS:
            return evaluate(aset, current_hash=current, context_record=None, ledger_match=None, context_staged=context_pending)

        try:
            if context_pending:
                record = read_context_file(self.repo_root / aset.context_path, aset)
            else:
                record = read_context(self.repo_root, aset, "last-finalized")
        except (GitError, OSError):
            record = None

        return evaluate(
            aset,
            current_hash=current,
            context_record=record,
            ledger_match=self._ledger_lookup(aset),
            context_staged=context_pending,
        )
