"""Per-feature Context Record (``<feature>/context.json``).

The record is tracked and mutable, so the reader decides where to take it
from: the staged index when the record is part of the pending commit (the
generation event), otherwise the last commit. The working-tree file alone is
never trusted during a hook run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from assertguard.core.discovery import AssertionSet, CONTEXT_FILENAME
from assertguard.core.fingerprint import FEATURE_SUFFIX, fingerprint_path
from assertguard.core.git_ops import git_show_blob
from assertguard.core.jail import safe_relpath
from assertguard.core.time import utc_timestamp_iso_z


ContextSource = Literal["working-tree", "last-finalized"]

CONTEXT_SECTION = "testify"


@dataclass(frozen=True)
class ContextRecord:
    assertion_hash: str
    generated_at: str | None
    features_dir: str | None
    test_specs_file: str | None
    file_count: int | None = None

    def names(self, aset: AssertionSet) -> bool:
        if aset.kind == "features":
            return self.features_dir is not None and aset.named_by(self.features_dir)
        return self.test_specs_file is not None and aset.named_by(self.test_specs_file)


def _optional_str(section: dict[str, Any], key: str) -> str | None:
    v = section.get(key)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def parse_context_record(raw: bytes | str) -> ContextRecord | None:
    """Parse a context.json document; None when malformed or lacking a testify section."""

    try:
        text = raw.decode("utf-8", errors="strict") if isinstance(raw, bytes) else raw
        obj = json.loads(text)
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(obj, dict):
        return None
    section = obj.get(CONTEXT_SECTION)
    if not isinstance(section, dict):
        return None

    assertion_hash = _optional_str(section, "assertion_hash")
    if assertion_hash is None:
        return None

    file_count = section.get("file_count")
    if not isinstance(file_count, int) or isinstance(file_count, bool):
        file_count = None

    return ContextRecord(
        assertion_hash=assertion_hash,
        generated_at=_optional_str(section, "generated_at"),
        features_dir=_optional_str(section, "features_dir"),
        test_specs_file=_optional_str(section, "test_specs_file"),
        file_count=file_count,
    )


def load_context_bytes(repo_root: Path, aset: AssertionSet, source: ContextSource) -> bytes | None:
    rel = aset.context_path
    if source == "last-finalized":
        return git_show_blob(repo_root, f"HEAD:{rel}")

    staged = git_show_blob(repo_root, f":{rel}")
    if staged is not None:
        return staged
    try:
        return (repo_root / rel).read_bytes()
    except OSError:
        return None


def read_context(repo_root: Path, aset: AssertionSet, source: ContextSource) -> ContextRecord | None:
    """Return the Context Record certifying ``aset``, or None when absent/invalid.

    A record that parses but names a different Assertion Set is treated as
    absent for this set.
    """

    raw = load_context_bytes(repo_root, aset, source)
    if raw is None:
        return None
    record = parse_context_record(raw)
    if record is None or not record.names(aset):
        return None
    return record


def read_context_file(path: Path, aset: AssertionSet) -> ContextRecord | None:
    try:
        raw = path.read_bytes()
    except OSError:
        return None
    record = parse_context_record(raw)
    if record is None or not record.names(aset):
        return None
    return record


def derive_context_path(path: Path) -> Path:
    """Locate the feature's context.json for a features dir, a .feature file or a legacy test-specs file.

    tests/features/ -> 2 levels up; tests/features/x.feature -> 3 levels up;
    tests/test-specs.md -> 2 levels up.
    """

    if path.is_dir():
        return path.parent.parent / CONTEXT_FILENAME
    if path.name.endswith(FEATURE_SUFFIX):
        return path.parent.parent.parent / CONTEXT_FILENAME
    return path.parent.parent / CONTEXT_FILENAME


def store_assertion_hash(repo_root: Path, path: Path, *, deterministic: bool | None = None) -> str:
    """Compute the fingerprint of ``path`` and record it in the feature's context.json.

    Other top-level keys of an existing context.json are preserved; an
    unreadable or non-object document is replaced.
    """

    if path.is_file() and path.name.endswith(FEATURE_SUFFIX):
        path = path.parent

    context_file = derive_context_path(path)
    fingerprint = fingerprint_path(path)
    rel = safe_relpath(repo_root, path)

    obj: dict[str, Any] = {}
    if context_file.is_file():
        try:
            loaded = json.loads(context_file.read_text(encoding="utf-8", errors="strict"))
        except (UnicodeDecodeError, ValueError):
            loaded = None
        if isinstance(loaded, dict):
            obj = loaded

    section: dict[str, Any] = {
        "assertion_hash": fingerprint,
        "generated_at": utc_timestamp_iso_z(deterministic=deterministic),
    }
    if path.is_dir():
        section["features_dir"] = rel
        section["file_count"] = sum(1 for p in path.iterdir() if p.name.endswith(FEATURE_SUFFIX) and p.is_file())
    else:
        section["test_specs_file"] = rel
    obj[CONTEXT_SECTION] = section

    context_file.parent.mkdir(parents=True, exist_ok=True)
    tmp = context_file.with_name(context_file.name + ".tmp")
    tmp.write_text(json.dumps(obj, indent=2, ensure_ascii=False) + "\n", encoding="utf-8", newline="\n")
    tmp.replace(context_file)
    return fingerprint
