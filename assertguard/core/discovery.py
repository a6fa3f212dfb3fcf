from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

from assertguard.core.fingerprint import FEATURE_SUFFIX, LEGACY_SPECS_FILENAME
from assertguard.core.jail import paths_match


SetKind = Literal["features", "legacy"]

CONTEXT_FILENAME = "context.json"
FEATURES_SUBDIR = "tests/features"

CODE_SUFFIXES = (".py", ".js", ".ts", ".jsx", ".tsx", ".go", ".java", ".rs", ".cs", ".rb", ".kt")
TOOLING_PREFIXES = (".tessl/", ".claude/", ".codex/", ".gemini/", ".opencode/", "node_modules/")

_FEATURE_DIR_NAME_RE = re.compile(r"^[0-9]{3}-")


@dataclass(frozen=True, order=True)
class AssertionSet:
    """One feature's assertions, identified by a repo-relative POSIX path.

    ``path`` is the features directory (``<feature>/tests/features``) for the
    new format, or the ``test-specs.md`` file for the legacy format.
    """

    kind: SetKind
    path: str
    feature_dir: str

    @property
    def legacy(self) -> bool:
        return self.kind == "legacy"

    @property
    def context_path(self) -> str:
        return _join(self.feature_dir, CONTEXT_FILENAME)

    @property
    def display_path(self) -> str:
        return self.path + "/" if self.kind == "features" else self.path

    def covers(self, rel: str) -> bool:
        """True when repo-relative ``rel`` is one of this set's assertion files."""

        if self.kind == "legacy":
            return rel == self.path
        return rel.startswith(self.path + "/") and is_feature_file(rel)

    def named_by(self, recorded: str) -> bool:
        """True when a recorded path (context.json or ledger) identifies this set.

        Recorded paths may carry an absolute or './' prefix and are matched on
        their trailing segments. A set at the repository root has no feature
        directory to anchor such a match, so it needs an exact path.
        """

        if not self.feature_dir:
            r = recorded.replace("\\", "/").rstrip("/")
            if r.startswith("./"):
                r = r[2:]
            return r == self.path
        return paths_match(recorded, self.path)


def _join(parent: str, child: str) -> str:
    return f"{parent}/{child}" if parent else child


def _parent(rel: str) -> str:
    head, _, _ = rel.rpartition("/")
    return head


def is_feature_file(rel: str) -> bool:
    """``<feature>/tests/features/<name>.feature`` (direct children only)."""

    if not rel.endswith(FEATURE_SUFFIX):
        return False
    parts = rel.split("/")
    return len(parts) >= 3 and parts[-3] == "tests" and parts[-2] == "features"


def is_legacy_specs_file(rel: str) -> bool:
    return rel.rsplit("/", 1)[-1] == LEGACY_SPECS_FILENAME


def is_code_file(rel: str) -> bool:
    if rel.startswith(TOOLING_PREFIXES):
        return False
    return rel.endswith(CODE_SUFFIXES)


def features_set_for(feature_dir: str) -> AssertionSet:
    return AssertionSet(kind="features", path=_join(feature_dir, FEATURES_SUBDIR), feature_dir=feature_dir)


def legacy_set_for(specs_file: str) -> AssertionSet:
    # <feature>/tests/test-specs.md -> <feature>
    return AssertionSet(kind="legacy", path=specs_file, feature_dir=_parent(_parent(specs_file)))


def assertion_set_for_path(rel: str) -> AssertionSet | None:
    """Map a single repo-relative path onto the Assertion Set it belongs to."""

    if is_feature_file(rel):
        return features_set_for(_parent(_parent(_parent(rel))))
    if rel.rstrip("/").endswith("/" + FEATURES_SUBDIR) or rel.rstrip("/") == FEATURES_SUBDIR:
        trimmed = rel.rstrip("/")
        return features_set_for(trimmed[: -len(FEATURES_SUBDIR)].rstrip("/"))
    if is_legacy_specs_file(rel):
        return legacy_set_for(rel)
    return None


def discover_assertion_sets(paths: Iterable[str]) -> list[AssertionSet]:
    """Group changed paths into the distinct Assertion Sets they touch.

    Several ``.feature`` files of one feature collapse into a single set;
    multiple features in one change produce one set each.
    """

    found: set[AssertionSet] = set()
    for rel in paths:
        aset = assertion_set_for_path(rel)
        if aset is not None and (aset.kind == "legacy" or is_feature_file(rel)):
            found.add(aset)
    return sorted(found)


def repository_has_assertions(repo_root: Path) -> bool:
    """True when any ``specs/NNN-*`` feature on disk carries .feature files or a test-specs.md.

    Directories that cannot be listed count as holding nothing.
    """

    specs = repo_root / "specs"
    try:
        feat_dirs = sorted(specs.iterdir()) if specs.is_dir() else []
    except OSError:
        return False
    for feat_dir in feat_dirs:
        if not feat_dir.is_dir() or _FEATURE_DIR_NAME_RE.match(feat_dir.name) is None:
            continue
        features = feat_dir / "tests" / "features"
        try:
            entries = list(features.iterdir()) if features.is_dir() else []
        except OSError:
            entries = []
        if any(p.name.endswith(FEATURE_SUFFIX) and p.is_file() for p in entries):
            return True
        if (feat_dir / "tests" / LEGACY_SPECS_FILENAME).is_file():
            return True
    return False
