"""Assertion Set canonicalization and fingerprinting.

Two document formats are understood:

- Gherkin ``.feature`` files: step lines (Given/When/Then/And/But) are kept in
  document order, files are concatenated in name order, whitespace is
  normalized.
- Legacy ``test-specs.md``: ``**Given**:``/``**When**:``/``**Then**:`` lines are
  kept, right-stripped and sorted.

The digest is SHA-256 over the kept lines joined with LF (no trailing LF).
A set with no kept lines yields :data:`NO_ASSERTIONS` instead of a digest.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

from assertguard.core.hash import sha256_text


NO_ASSERTIONS = "NO_ASSERTIONS"

FEATURE_SUFFIX = ".feature"
LEGACY_SPECS_FILENAME = "test-specs.md"

_FEATURE_STEP_RE = re.compile(r"^\s*(Given|When|Then|And|But) ")
_LEGACY_STEP_RE = re.compile(r"^\*\*(Given|When|Then)\*\*:")
_WS_RUN_RE = re.compile(r"\s+")


def _lines(text: str) -> list[str]:
    return text.split("\n")


def extract_feature_steps(text: str) -> list[str]:
    out: list[str] = []
    for line in _lines(text):
        if _FEATURE_STEP_RE.match(line) is None:
            continue
        out.append(_WS_RUN_RE.sub(" ", line).strip())
    return out


def extract_legacy_steps(text: str) -> list[str]:
    out = [line.rstrip() for line in _lines(text) if _LEGACY_STEP_RE.match(line) is not None]
    return sorted(out)


def canonical_assertion_lines(documents: Mapping[str, str], *, legacy: bool) -> list[str]:
    """Canonical assertion lines of an in-memory snapshot.

    ``documents`` maps a file name (or path) to its decoded text. For feature
    sets the map is ordered by name before extraction; for the legacy format
    all documents are pooled and sorted line-wise.
    """

    if legacy:
        pooled: list[str] = []
        for name in sorted(documents):
            pooled.extend(extract_legacy_steps(documents[name]))
        return sorted(pooled)

    lines: list[str] = []
    for name in sorted(documents):
        lines.extend(extract_feature_steps(documents[name]))
    return lines


def digest_lines(lines: list[str]) -> str:
    if not lines:
        return NO_ASSERTIONS
    return sha256_text("\n".join(lines))


def fingerprint_documents(documents: Mapping[str, str], *, legacy: bool) -> str:
    return digest_lines(canonical_assertion_lines(documents, legacy=legacy))


def decode_document(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def is_legacy_document(path: str | Path) -> bool:
    name = Path(path).name
    return not name.endswith(FEATURE_SUFFIX)


def _read_feature_dir(directory: Path) -> dict[str, str]:
    docs: dict[str, str] = {}
    for p in sorted(directory.iterdir()):
        if p.name.endswith(FEATURE_SUFFIX) and p.is_file():
            docs[p.name] = decode_document(p.read_bytes())
    return docs


def extract_assertions(path: Path) -> list[str]:
    """Canonical assertion lines for a features directory, a .feature file or a legacy document.

    Missing paths and empty directories yield no lines.
    """

    if path.is_dir():
        return canonical_assertion_lines(_read_feature_dir(path), legacy=False)
    if path.is_file():
        docs = {path.name: decode_document(path.read_bytes())}
        return canonical_assertion_lines(docs, legacy=is_legacy_document(path))
    return []


def fingerprint_path(path: Path) -> str:
    return digest_lines(extract_assertions(path))
