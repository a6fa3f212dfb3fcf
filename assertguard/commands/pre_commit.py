from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from assertguard.core.discovery import discover_assertion_sets, is_code_file, repository_has_assertions
from assertguard.core.git_ops import GitError, GitUnavailableError, git_staged_paths, git_toplevel, git_tracked_files
from assertguard.core.ledger import GitNotesLedger
from assertguard.core.policy import Determination, get_tdd_determination
from assertguard.core.verify import INVALID, MISSING, AssertionSetResult, VerificationEngine


TAG = "[assertguard]"
BYPASS_HINT = "git commit --no-verify"
REGENERATE_HINT = "Re-run the testify step to regenerate the assertions and their integrity hashes."

_BANNER = (
    "+-------------------------------------------------------------+",
    "|  ASSERTGUARD PRE-COMMIT: ASSERTION INTEGRITY CHECK FAILED   |",
    "+-------------------------------------------------------------+",
)


@dataclass
class PreCommitReport:
    results: list[AssertionSetResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    tdd_determination: Determination = "unknown"
    staged_paths: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> list[AssertionSetResult]:
        return [r for r in self.results if r.verdict == INVALID]

    @property
    def exit_code(self) -> int:
        return 1 if self.blocked else 0

    def render(self) -> list[str]:
        lines: list[str] = []
        for w in self.warnings:
            lines.append(f"{TAG} {w}")
        blocked = self.blocked
        if not blocked:
            return lines

        lines.append("")
        lines.extend(_BANNER)
        lines.append("")
        for r in blocked:
            aset = r.assertion_set
            what = ".feature assertion integrity check failed" if aset.kind == "features" else "assertion integrity check failed"
            lines.append(f"{TAG} BLOCKED: {aset.display_path} : {what}")
            lines.append(f"{TAG}   Assertions have been modified since they were generated and locked.")
            for p in self.staged_paths:
                if aset.covers(p):
                    lines.append(f"{TAG}   staged: {p}")
            if r.context_status == INVALID:
                lines.append(f"{TAG}   context.json hash: {r.context_hash}")
            if r.ledger_status == INVALID:
                lines.append(f"{TAG}   git note hash:     {r.ledger_hash} (commit {(r.ledger_commit or '')[:12]})")
            lines.append(f"{TAG}   current hash:      {r.current_hash}")
        lines.append("")
        lines.append(f"{TAG} To fix: {REGENERATE_HINT}")
        lines.append(f"{TAG} To bypass (NOT recommended): {BYPASS_HINT}")
        lines.append("")
        return lines


def _missing_warning(r: AssertionSetResult) -> list[str]:
    path = r.assertion_set.display_path
    return [
        f"Warning: {path} : no stored assertion hash found (TDD is mandatory)",
        "  If this is the initial testify commit, this is expected.",
        "  Otherwise, run the testify step to generate integrity hashes.",
    ]


def check_staged(
    repo_root: Path,
    *,
    staged_paths: list[str],
    notes_ref: str | None = None,
    search_depth: int | None = None,
) -> PreCommitReport:
    """Verify the Assertion Sets relevant to ``staged_paths`` and collect one report.

    Sets touched by the change are always verified. When production code is
    staged, every tracked Assertion Set is verified as well, so code never
    lands on top of assertions that were altered in an earlier commit.
    """

    report = PreCommitReport(staged_paths=sorted(staged_paths))
    sets = discover_assertion_sets(staged_paths)
    code_staged = any(is_code_file(p) for p in staged_paths)
    if not sets and not code_staged:
        return report

    if code_staged:
        try:
            tracked = git_tracked_files(repo_root)
        except GitError as e:
            report.warnings.append(f"Warning: could not list tracked files ({e}); only staged assertions verified")
            tracked = []
        sets = sorted(set(sets) | set(discover_assertion_sets(tracked)))

    report.tdd_determination = get_tdd_determination(repo_root)
    mandatory = report.tdd_determination == "mandatory"

    if mandatory and code_staged and not repository_has_assertions(repo_root):
        report.warnings.append("WARNING: TDD is mandatory (per CONSTITUTION.md) but no .feature files or test-specs.md found.")
        report.warnings.append("  Run the testify step before implementing features.")

    engine = VerificationEngine(repo_root, GitNotesLedger(repo_root, ref=notes_ref), search_depth=search_depth)
    staged_set = set(staged_paths)
    for aset in sets:
        result = engine.verify_staged(aset, staged_paths=staged_set)
        report.results.append(result)
        if result.verdict != MISSING:
            continue
        if result.current_hash is None:
            report.warnings.append(f"Warning: {aset.display_path} : staged assertions could not be read; integrity not verified")
        elif mandatory:
            report.warnings.extend(_missing_warning(result))
    return report


def run_pre_commit(
    repo: Path,
    *,
    notes_ref: str | None = None,
    search_depth: int | None = None,
    out: TextIO | None = None,
) -> int:
    """git pre-commit entry point: 0 allows the commit, 1 blocks it."""

    stream = out if out is not None else sys.stderr
    try:
        repo_root = git_toplevel(repo)
        staged = git_staged_paths(repo_root)
    except GitUnavailableError as e:
        print(f"{TAG} Warning: {e}; skipping assertion integrity check", file=stream)
        return 0
    except GitError as e:
        print(f"{TAG} Warning: could not list staged files ({e}); skipping assertion integrity check", file=stream)
        return 0

    report = check_staged(repo_root, staged_paths=staged, notes_ref=notes_ref, search_depth=search_depth)
    lines = report.render()
    if lines:
        print("\n".join(lines), file=stream)
    return report.exit_code
