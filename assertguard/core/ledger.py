"""Side-channel ledger of assertion fingerprints stored as git notes.

git allows one note per commit per notes ref, so every entry recorded on a
commit lives in one note body, entries separated by a ``---`` line::

    assertion-hash: <fingerprint>
    generated-at: 2024-01-01T00:00:00Z
    features-dir: specs/001-login/tests/features
    ---
    assertion-hash: <fingerprint>
    generated-at: 2024-01-01T00:00:00Z
    test-specs-file: specs/002-legacy/tests/test-specs.md

:func:`parse_note` and :func:`serialize_note` are the only places that know
this layout.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

from assertguard.core.discovery import AssertionSet
from assertguard.core.git_ops import (
    git_notes_list,
    git_notes_show,
    git_notes_write,
    git_resolve_commit,
    git_rev_list,
)
from assertguard.core.hash import is_hex_sha256


DEFAULT_NOTES_REF = "refs/notes/testify"
DEFAULT_SEARCH_DEPTH = 50

NOTES_REF_ENV = "ASSERTGUARD_NOTES_REF"
SEARCH_DEPTH_ENV = "ASSERTGUARD_SEARCH_DEPTH"

ENTRY_DELIMITER = "---"

KEY_HASH = "assertion-hash"
KEY_GENERATED_AT = "generated-at"
KEY_FEATURES_DIR = "features-dir"
KEY_TEST_SPECS_FILE = "test-specs-file"

# Notes written by earlier tooling used this key for the fingerprint.
_HASH_ALIASES = (KEY_HASH, "testify-hash")


@dataclass(frozen=True)
class LedgerEntry:
    assertion_hash: str
    generated_at: str
    kind: Literal["features", "legacy"]
    path: str

    @classmethod
    def for_set(cls, aset: AssertionSet, *, assertion_hash: str, generated_at: str) -> "LedgerEntry":
        return cls(assertion_hash=assertion_hash, generated_at=generated_at, kind=aset.kind, path=aset.path)

    def same_target(self, other: "LedgerEntry") -> bool:
        return self.kind == other.kind and self.path.rstrip("/") == other.path.rstrip("/")

    def certifies(self, aset: AssertionSet) -> bool:
        return self.kind == aset.kind and aset.named_by(self.path)


def _entry_from_fields(fields: dict[str, str]) -> LedgerEntry | None:
    assertion_hash = ""
    for key in _HASH_ALIASES:
        if fields.get(key):
            assertion_hash = fields[key]
            break
    if not is_hex_sha256(assertion_hash):
        return None

    features_dir = fields.get(KEY_FEATURES_DIR, "")
    specs_file = fields.get(KEY_TEST_SPECS_FILE, "")
    if bool(features_dir) == bool(specs_file):
        return None

    return LedgerEntry(
        assertion_hash=assertion_hash,
        generated_at=fields.get(KEY_GENERATED_AT, ""),
        kind="features" if features_dir else "legacy",
        path=features_dir or specs_file,
    )


def parse_note(text: str) -> list[LedgerEntry]:
    """Split a note body into entries; malformed segments are dropped."""

    entries: list[LedgerEntry] = []
    fields: dict[str, str] = {}

    def flush() -> None:
        if fields:
            entry = _entry_from_fields(fields)
            if entry is not None:
                entries.append(entry)
            fields.clear()

    for raw in (text or "").splitlines():
        line = raw.strip()
        if line == ENTRY_DELIMITER:
            flush()
            continue
        if not line:
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key in _HASH_ALIASES and fields.get(key):
            # A second fingerprint without a delimiter starts a new entry.
            flush()
        fields[key] = value
    flush()
    return entries


def serialize_entry(entry: LedgerEntry) -> str:
    path_key = KEY_FEATURES_DIR if entry.kind == "features" else KEY_TEST_SPECS_FILE
    return "\n".join(
        [
            f"{KEY_HASH}: {entry.assertion_hash}",
            f"{KEY_GENERATED_AT}: {entry.generated_at}",
            f"{path_key}: {entry.path}",
        ]
    )


def serialize_note(entries: Iterable[LedgerEntry]) -> str:
    blocks = [serialize_entry(e) for e in entries]
    if not blocks:
        return ""
    return f"\n{ENTRY_DELIMITER}\n".join(blocks) + "\n"


def merge_entries(existing: Iterable[LedgerEntry], new: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Drop existing entries superseded by ``new`` and append ``new`` after the survivors."""

    fresh: list[LedgerEntry] = []
    for entry in new:
        fresh = [e for e in fresh if not e.same_target(entry)]
        fresh.append(entry)
    kept = [e for e in existing if not any(e.same_target(n) for n in fresh)]
    return kept + fresh


def notes_ref_from_env(default: str = DEFAULT_NOTES_REF) -> str:
    v = os.environ.get(NOTES_REF_ENV, "").strip()
    return v or default


def search_depth_from_env(default: int = DEFAULT_SEARCH_DEPTH) -> int:
    raw = os.environ.get(SEARCH_DEPTH_ENV, "").strip()
    if not raw:
        return default
    try:
        depth = int(raw)
    except ValueError:
        return default
    return depth if depth > 0 else default


@dataclass(frozen=True)
class LedgerMatch:
    commit: str
    entry: LedgerEntry


class GitNotesLedger:
    """Commit-addressed fingerprint ledger backed by a git notes ref."""

    def __init__(self, repo_root: Path, *, ref: str | None = None) -> None:
        self.repo_root = repo_root
        self.ref = ref or notes_ref_from_env()

    def entries_at(self, commit: str) -> list[LedgerEntry]:
        body = git_notes_show(self.repo_root, self.ref, commit)
        if body is None:
            return []
        return parse_note(body)

    def append(self, commit: str, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        """Merge ``entries`` into the note on ``commit`` and force-write the result."""

        sha = git_resolve_commit(self.repo_root, commit)
        merged = merge_entries(self.entries_at(sha), entries)
        git_notes_write(self.repo_root, self.ref, sha, serialize_note(merged))
        return merged

    def find(self, aset: AssertionSet, *, search_depth: int | None = None, tip: str = "HEAD") -> LedgerMatch | None:
        """Nearest entry for ``aset`` on ``tip`` or one of its first ``search_depth`` ancestors.

        The walk covers at most ``search_depth`` commits (tip included) and
        stops at the first commit whose note holds a matching entry. When a
        note lists the same set twice the last entry wins.
        """

        depth = search_depth if search_depth is not None else search_depth_from_env()
        annotated = git_notes_list(self.repo_root, self.ref)
        if not annotated:
            return None
        for sha in git_rev_list(self.repo_root, tip, max_count=depth):
            if sha not in annotated:
                continue
            matches = [e for e in self.entries_at(sha) if e.certifies(aset)]
            if matches:
                return LedgerMatch(commit=sha, entry=matches[-1])
        return None
