#!/usr/bin/env python3
"""assertguard CLI: assertion integrity fingerprints, verification and git hooks.

This is the installable CLI entrypoint (console_scripts).

Subcommands:
- assertguard hash <path>          → Print the assertion fingerprint (or NO_ASSERTIONS)
- assertguard extract <path>       → Print the canonical assertion lines
- assertguard store-hash <path>    → Record the fingerprint in the feature's context.json (alias: rehash)
- assertguard verify <path>        → Verify a working-tree Assertion Set against context.json and git notes
- assertguard check-diff <path>    → Report uncommitted changes to assertion steps
- assertguard ledger show          → Print ledger entries recorded on a commit
- assertguard ledger record        → Record ledger entries for a commit (what post-commit does)
- assertguard tdd-status           → Print the project's TDD determination
- assertguard install-hooks        → Install pre-commit/post-commit hooks
- assertguard hook pre-commit      → git pre-commit entry point
- assertguard hook post-commit     → git post-commit entry point
- assertguard about                → Print package identity info

Exit codes:
- 0: success (including NO_ASSERTIONS and missing baselines)
- 1: check failed (integrity violation)
- 3: usage/internal error
"""

from __future__ import annotations

import argparse
import json
import sys
from importlib.metadata import PackageNotFoundError, metadata, version
from pathlib import Path


def _add_repo_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("--repo", default=".", help="Repository path (default: .)")


def _add_ledger_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--notes-ref",
        default=None,
        help="git notes ref holding the ledger (default: $ASSERTGUARD_NOTES_REF or refs/notes/testify)",
    )


def _add_search_depth_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--search-depth",
        type=int,
        default=None,
        help="Number of commits searched for a ledger entry (default: $ASSERTGUARD_SEARCH_DEPTH or 50)",
    )


# ---------------------------------------------------------------------------
# about
# ---------------------------------------------------------------------------

def cmd_about(_: argparse.Namespace) -> int:
    """Print package identity info (human-readable)."""

    try:
        pkg_version = version("assertguard")
    except PackageNotFoundError:
        pkg_version = "0.0.0"

    pkg_name = "assertguard"
    pkg_summary = ""
    try:
        meta = metadata("assertguard")
        pkg_name = str(meta.get("Name") or pkg_name)
        pkg_summary = str(meta.get("Summary") or "")
    except PackageNotFoundError:
        pass

    print(f"{pkg_name} {pkg_version}")
    if pkg_summary:
        print(pkg_summary)
    return 0


# ---------------------------------------------------------------------------
# hash / extract / store-hash
# ---------------------------------------------------------------------------

def cmd_hash(args: argparse.Namespace) -> int:
    from assertguard.core.fingerprint import fingerprint_path

    path = Path(str(args.path))
    if not path.exists():
        print(f"[assertguard hash] Warning: path not found: {path}", file=sys.stderr)
    try:
        print(fingerprint_path(path))
    except OSError as e:
        print(f"[assertguard hash] ERROR: {e}", file=sys.stderr)
        return 3
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    from assertguard.core.fingerprint import extract_assertions

    try:
        lines = extract_assertions(Path(str(args.path)))
    except OSError as e:
        print(f"[assertguard extract] ERROR: {e}", file=sys.stderr)
        return 3
    for line in lines:
        print(line)
    return 0


def cmd_store_hash(args: argparse.Namespace) -> int:
    from assertguard.core.context_record import derive_context_path, store_assertion_hash
    from assertguard.core.git_ops import GitUnavailableError, git_toplevel

    path = Path(str(args.path)).resolve()
    if not path.exists():
        print(f"[assertguard store-hash] ERROR: path not found: {path}", file=sys.stderr)
        return 3
    try:
        repo_root = git_toplevel(Path(str(args.repo)))
    except GitUnavailableError:
        repo_root = Path(str(args.repo)).resolve()

    try:
        fingerprint = store_assertion_hash(repo_root, path, deterministic=bool(args.deterministic) or None)
    except (OSError, ValueError) as e:
        print(f"[assertguard store-hash] ERROR: {e}", file=sys.stderr)
        return 3

    target = path.parent if path.is_file() and path.suffix == ".feature" else path
    print(f"[assertguard store-hash] wrote: {derive_context_path(target)}", file=sys.stderr)
    print(fingerprint)
    return 0


# ---------------------------------------------------------------------------
# verify / check-diff
# ---------------------------------------------------------------------------

def cmd_verify(args: argparse.Namespace) -> int:
    from assertguard.commands.integrity_check import verify_path
    from assertguard.core.git_ops import git_toplevel
    from assertguard.core.jail import repo_rel_from_arg

    try:
        repo_root = git_toplevel(Path(str(args.repo)))
        rel = repo_rel_from_arg(repo_root, str(args.path))
        result = verify_path(repo_root, rel, notes_ref=args.notes_ref, search_depth=args.search_depth)
    except Exception as e:
        print(f"[assertguard verify] ERROR: {e}", file=sys.stderr)
        print("[assertguard verify] Remediation: Do run inside a git repository and pass a features directory, a .feature file or a test-specs.md.", file=sys.stderr)
        return 3

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        print(result.verdict)
        print(
            f"[assertguard verify] {result.assertion_set.display_path}: "
            f"context={result.context_status} ledger={result.ledger_status}",
            file=sys.stderr,
        )
        if result.verdict == "invalid":
            print("[assertguard verify] Assertions were modified since they were generated. Re-run the testify step.", file=sys.stderr)
    return 1 if result.verdict == "invalid" else 0


def cmd_check_diff(args: argparse.Namespace) -> int:
    from assertguard.commands.integrity_check import check_git_diff
    from assertguard.core.git_ops import git_toplevel
    from assertguard.core.jail import repo_rel_from_arg

    try:
        repo_root = git_toplevel(Path(str(args.repo)))
        rel = repo_rel_from_arg(repo_root, str(args.path))
        status = check_git_diff(repo_root, rel)
    except Exception as e:
        print(f"[assertguard check-diff] ERROR: {e}", file=sys.stderr)
        return 3
    print(status)
    return 1 if status == "modified" else 0


# ---------------------------------------------------------------------------
# ledger
# ---------------------------------------------------------------------------

def cmd_ledger_show(args: argparse.Namespace) -> int:
    from assertguard.core.git_ops import git_resolve_commit, git_toplevel
    from assertguard.core.ledger import GitNotesLedger

    try:
        repo_root = git_toplevel(Path(str(args.repo)))
        ledger = GitNotesLedger(repo_root, ref=args.notes_ref)
        commit = git_resolve_commit(repo_root, str(args.commit))
        entries = ledger.entries_at(commit)
    except Exception as e:
        print(f"[assertguard ledger show] ERROR: {e}", file=sys.stderr)
        return 3

    if args.json:
        payload = {
            "commit": commit,
            "notes_ref": ledger.ref,
            "entries": [
                {
                    "assertion_hash": e.assertion_hash,
                    "generated_at": e.generated_at,
                    "kind": e.kind,
                    "path": e.path,
                }
                for e in entries
            ],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    if not entries:
        print(f"[assertguard ledger show] no entries on {commit[:12]} ({ledger.ref})", file=sys.stderr)
        return 0
    for e in entries:
        print(f"{e.assertion_hash}  {e.generated_at}  {e.path}")
    return 0


def cmd_ledger_record(args: argparse.Namespace) -> int:
    from assertguard.commands.post_commit import record_commit
    from assertguard.core.git_ops import git_toplevel

    try:
        repo_root = git_toplevel(Path(str(args.repo)))
        entries = record_commit(repo_root, rev=str(args.commit), notes_ref=args.notes_ref)
    except Exception as e:
        print(f"[assertguard ledger record] ERROR: {e}", file=sys.stderr)
        return 3
    for e in entries:
        print(f"[assertguard ledger record] stored: {e.path}", file=sys.stderr)
    if not entries:
        print("[assertguard ledger record] no assertion sets in commit", file=sys.stderr)
    return 0


# ---------------------------------------------------------------------------
# tdd-status
# ---------------------------------------------------------------------------

def cmd_tdd_status(args: argparse.Namespace) -> int:
    from assertguard.core.policy import CONSTITUTION_FILENAME, assess_constitution, get_tdd_determination

    repo_root = Path(str(args.repo)).resolve()
    if args.json:
        constitution = repo_root / CONSTITUTION_FILENAME
        if not constitution.is_file():
            print(json.dumps({"error": "Constitution file not found"}))
            return 1
        assessment = assess_constitution(constitution.read_text(encoding="utf-8", errors="replace"))
        print(json.dumps(assessment.to_dict(), indent=2))
        return 0
    print(get_tdd_determination(repo_root))
    return 0


# ---------------------------------------------------------------------------
# hooks
# ---------------------------------------------------------------------------

def cmd_install_hooks(args: argparse.Namespace) -> int:
    from assertguard.commands.install_hooks import install_hooks
    from assertguard.core.git_ops import git_toplevel

    try:
        repo_root = git_toplevel(Path(str(args.repo)))
        results = install_hooks(repo_root)
    except Exception as e:
        print(f"[assertguard install-hooks] ERROR: {e}", file=sys.stderr)
        print("[assertguard install-hooks] Remediation: Do run inside a git repository with a writable hooks directory.", file=sys.stderr)
        return 3
    for r in results:
        print(f"[assertguard install-hooks] {r.hook}: {r.action} ({r.path})", file=sys.stderr)
    return 0


def cmd_hook(args: argparse.Namespace) -> int:
    repo = Path(str(args.repo))
    if args.hook_name == "pre-commit":
        from assertguard.commands.pre_commit import run_pre_commit

        return run_pre_commit(repo, notes_ref=args.notes_ref, search_depth=args.search_depth)

    from assertguard.commands.post_commit import run_post_commit

    return run_post_commit(repo, notes_ref=args.notes_ref, quiet=bool(args.quiet))


# ---------------------------------------------------------------------------
# Main CLI
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="assertguard",
        description="assertguard: assertion integrity fingerprints and git hooks",
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommand")

    # about
    subparsers.add_parser("about", help="Print package identity info")

    # hash
    p_hash = subparsers.add_parser("hash", help="Print the assertion fingerprint of a features dir or file")
    p_hash.add_argument("path", help="Features directory, .feature file or legacy test-specs.md")
    p_hash.set_defaults(func=cmd_hash)

    # extract
    p_extract = subparsers.add_parser("extract", help="Print canonical assertion lines")
    p_extract.add_argument("path", help="Features directory, .feature file or legacy test-specs.md")
    p_extract.set_defaults(func=cmd_extract)

    # store-hash / rehash
    for name in ("store-hash", "rehash"):
        p_store = subparsers.add_parser(name, help="Record the fingerprint in the feature's context.json")
        p_store.add_argument("path", help="Features directory, .feature file or legacy test-specs.md")
        _add_repo_arg(p_store)
        p_store.add_argument("--deterministic", action="store_true", help="Use a fixed generated_at timestamp")
        p_store.set_defaults(func=cmd_store_hash)

    # verify
    p_verify = subparsers.add_parser("verify", help="Verify a working-tree Assertion Set")
    p_verify.add_argument("path", help="Features directory, .feature file or legacy test-specs.md")
    _add_repo_arg(p_verify)
    _add_ledger_args(p_verify)
    _add_search_depth_arg(p_verify)
    p_verify.add_argument("--json", action="store_true", help="Emit the full result as JSON")
    p_verify.set_defaults(func=cmd_verify)

    # check-diff
    p_diff = subparsers.add_parser("check-diff", help="Report uncommitted changes to assertion steps")
    p_diff.add_argument("path", help="Assertion file")
    _add_repo_arg(p_diff)
    p_diff.set_defaults(func=cmd_check_diff)

    # ledger (subparser group)
    p_ledger = subparsers.add_parser("ledger", help="Git-notes ledger commands")
    ledger_subs = p_ledger.add_subparsers(dest="ledger_command", help="Ledger subcommand")

    p_ledger_show = ledger_subs.add_parser("show", help="Print ledger entries recorded on a commit")
    _add_repo_arg(p_ledger_show)
    _add_ledger_args(p_ledger_show)
    p_ledger_show.add_argument("--commit", default="HEAD", help="Commit to inspect (default: HEAD)")
    p_ledger_show.add_argument("--json", action="store_true", help="Emit JSON")
    p_ledger_show.set_defaults(func=cmd_ledger_show)

    p_ledger_record = ledger_subs.add_parser("record", help="Record ledger entries for a commit")
    _add_repo_arg(p_ledger_record)
    _add_ledger_args(p_ledger_record)
    p_ledger_record.add_argument("--commit", default="HEAD", help="Commit to record (default: HEAD)")
    p_ledger_record.set_defaults(func=cmd_ledger_record)

    # tdd-status
    p_tdd = subparsers.add_parser("tdd-status", help="Print the project's TDD determination")
    _add_repo_arg(p_tdd)
    p_tdd.add_argument("--json", action="store_true", help="Full CONSTITUTION.md assessment as JSON")
    p_tdd.set_defaults(func=cmd_tdd_status)

    # install-hooks
    p_install = subparsers.add_parser("install-hooks", help="Install pre-commit/post-commit hooks")
    _add_repo_arg(p_install)
    p_install.set_defaults(func=cmd_install_hooks)

    # hook
    p_hook = subparsers.add_parser("hook", help="git hook entry points")
    p_hook.add_argument("hook_name", choices=["pre-commit", "post-commit"], help="Lifecycle hook to run")
    _add_repo_arg(p_hook)
    _add_ledger_args(p_hook)
    _add_search_depth_arg(p_hook)
    p_hook.add_argument("--quiet", action="store_true", help="Suppress informational output (post-commit)")
    p_hook.set_defaults(func=cmd_hook)

    args = parser.parse_args(argv)

    if args.command == "about":
        return cmd_about(args)
    elif args.command == "ledger":
        if args.ledger_command in ("show", "record"):
            return int(args.func(args))
        p_ledger.print_help()
        return 3
    elif args.command is not None and hasattr(args, "func"):
        return int(args.func(args))
    else:
        parser.print_help()
        return 3


if __name__ == "__main__":
    sys.exit(main())
