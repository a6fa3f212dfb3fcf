from __future__ import annotations

import os
import subprocess
from pathlib import Path


class GitError(RuntimeError):
    """A git subprocess failed or produced unusable output."""


class GitUnavailableError(GitError):
    """git is not installed, or the directory is not inside a git work tree."""


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Deterministic parsing: avoid localized output.
    env.setdefault("LANG", "C")
    env.setdefault("LC_ALL", "C")
    return env


def _run_git(
    repo_root: Path,
    args: list[str],
    *,
    input_bytes: bytes | None = None,
) -> subprocess.CompletedProcess[bytes]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            env=_git_env(),
            input=input_bytes,
            stdin=None if input_bytes is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except FileNotFoundError as e:
        raise GitUnavailableError("git executable not found on PATH") from e
    except NotADirectoryError as e:
        raise GitUnavailableError(f"not a directory: {repo_root}") from e


def _split_z(raw: bytes) -> list[str]:
    parts = [p for p in raw.split(b"\x00") if p]
    return [p.decode("utf-8", errors="surrogateescape") for p in parts]


def _stderr_text(cp: subprocess.CompletedProcess[bytes]) -> str:
    return (cp.stderr or b"").decode("utf-8", errors="replace").strip()


def git_toplevel(start: Path) -> Path:
    """Return the work tree root containing ``start``."""

    cp = _run_git(start, ["rev-parse", "--show-toplevel"])
    if cp.returncode != 0:
        raise GitUnavailableError(f"not a git repository: {start}")
    top = cp.stdout.decode("utf-8", errors="surrogateescape").strip()
    if not top:
        raise GitUnavailableError(f"not a git repository: {start}")
    return Path(top)


def git_resolve_commit(repo_root: Path, rev: str) -> str:
    if not isinstance(rev, str) or not rev.strip():
        raise ValueError("revision missing/empty")
    cp = _run_git(repo_root, ["rev-parse", "--verify", f"{rev.strip()}^{{commit}}"])
    if cp.returncode != 0:
        raise GitError(f"git rev-parse failed for revision: {rev.strip()}")
    sha = cp.stdout.decode("utf-8", errors="strict").strip()
    if not sha or len(sha) < 7:
        raise GitError("resolved commit sha missing/invalid")
    return sha


def git_staged_paths(repo_root: Path) -> list[str]:
    """Paths added, modified or deleted in the index relative to HEAD."""

    cp = _run_git(
        repo_root,
        ["-c", "core.quotePath=false", "diff", "--cached", "--name-only", "--no-renames", "-z"],
    )
    if cp.returncode != 0:
        raise GitError(f"git diff --cached failed: {_stderr_text(cp)}")
    return sorted(set(_split_z(cp.stdout)))


def git_commit_paths(repo_root: Path, rev: str) -> list[str]:
    """Paths touched by a single commit (root commits included)."""

    cp = _run_git(
        repo_root,
        [
            "-c",
            "core.quotePath=false",
            "diff-tree",
            "--no-commit-id",
            "--name-only",
            "--no-renames",
            "--root",
            "-r",
            "-z",
            rev,
        ],
    )
    if cp.returncode != 0:
        raise GitError(f"git diff-tree failed for {rev}: {_stderr_text(cp)}")
    return sorted(set(_split_z(cp.stdout)))


def git_index_files(repo_root: Path, prefix: str) -> list[str]:
    """Paths currently in the index under ``prefix`` (a directory)."""

    pathspec = prefix.rstrip("/") + "/"
    cp = _run_git(repo_root, ["-c", "core.quotePath=false", "ls-files", "-z", "--", pathspec])
    if cp.returncode != 0:
        raise GitError(f"git ls-files failed: {_stderr_text(cp)}")
    return sorted(_split_z(cp.stdout))


def git_tracked_files(repo_root: Path) -> list[str]:
    cp = _run_git(repo_root, ["-c", "core.quotePath=false", "ls-files", "-z"])
    if cp.returncode != 0:
        raise GitError(f"git ls-files failed: {_stderr_text(cp)}")
    return sorted(_split_z(cp.stdout))


def git_tree_files(repo_root: Path, rev: str, prefix: str) -> list[str]:
    """Full paths of blobs directly under ``prefix`` in ``rev``; empty if absent."""

    tree_path = prefix.rstrip("/")
    cp = _run_git(repo_root, ["-c", "core.quotePath=false", "ls-tree", "-z", f"{rev}:{tree_path}"])
    if cp.returncode != 0:
        return []
    out: list[str] = []
    for record in _split_z(cp.stdout):
        # "<mode> <type> <object>\t<name>"
        meta, _, name = record.partition("\t")
        fields = meta.split(" ")
        if len(fields) < 2 or fields[1] != "blob" or not name:
            continue
        out.append(f"{tree_path}/{name}")
    return sorted(out)


def git_show_blob(repo_root: Path, spec: str) -> bytes | None:
    """Return blob bytes for ``<rev>:<path>`` or ``:<path>`` (index); None when absent."""

    cp = _run_git(repo_root, ["cat-file", "blob", spec])
    if cp.returncode != 0:
        return None
    return cp.stdout


def git_rev_list(repo_root: Path, tip: str, *, max_count: int) -> list[str]:
    if max_count <= 0:
        return []
    cp = _run_git(repo_root, ["rev-list", "-n", str(int(max_count)), tip])
    if cp.returncode != 0:
        raise GitError(f"git rev-list failed for {tip}: {_stderr_text(cp)}")
    return [ln.strip() for ln in cp.stdout.decode("utf-8", errors="strict").splitlines() if ln.strip()]


def git_notes_list(repo_root: Path, ref: str) -> dict[str, str]:
    """Map annotated commit sha -> note blob sha for a notes ref (empty if ref absent)."""

    cp = _run_git(repo_root, ["notes", f"--ref={ref}", "list"])
    if cp.returncode != 0:
        return {}
    out: dict[str, str] = {}
    for line in cp.stdout.decode("utf-8", errors="strict").splitlines():
        parts = line.split()
        if len(parts) == 2:
            note_blob, commit = parts
            out[commit] = note_blob
    return out


def git_notes_show(repo_root: Path, ref: str, commit: str) -> str | None:
    cp = _run_git(repo_root, ["notes", f"--ref={ref}", "show", commit])
    if cp.returncode != 0:
        return None
    return cp.stdout.decode("utf-8", errors="replace")


def git_notes_write(repo_root: Path, ref: str, commit: str, body: str) -> None:
    """Attach ``body`` as the note on ``commit``, replacing any existing note."""

    cp = _run_git(
        repo_root,
        ["notes", f"--ref={ref}", "add", "-f", "-F", "-", commit],
        input_bytes=body.encode("utf-8", errors="strict"),
    )
    if cp.returncode != 0:
        raise GitError(f"git notes add failed for {commit}: {_stderr_text(cp)}")


def git_is_tracked(repo_root: Path, rel: str) -> bool:
    cp = _run_git(repo_root, ["ls-files", "--error-unmatch", "--", rel])
    return cp.returncode == 0


def git_diff_head(repo_root: Path, rel: str) -> str:
    """Unified diff of the working tree against HEAD for one path."""

    cp = _run_git(repo_root, ["-c", "core.quotePath=false", "diff", "HEAD", "--", rel])
    if cp.returncode != 0:
        raise GitError(f"git diff HEAD failed for {rel}: {_stderr_text(cp)}")
    return cp.stdout.decode("utf-8", errors="replace")


def git_hooks_dir(repo_root: Path) -> Path:
    """Resolve the hooks directory (honours core.hooksPath and worktrees)."""

    cp = _run_git(repo_root, ["rev-parse", "--git-path", "hooks"])
    if cp.returncode != 0:
        raise GitUnavailableError(f"not a git repository: {repo_root}")
    raw = cp.stdout.decode("utf-8", errors="surrogateescape").strip()
    p = Path(raw)
    if not p.is_absolute():
        p = repo_root / p
    return p
