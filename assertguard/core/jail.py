from __future__ import annotations

from pathlib import Path


def normalize_repo_rel(rel: str, *, allow_backslashes: bool) -> str:
    """Normalize a repo-relative path to POSIX separators and reject escapes.

    A single trailing '/' is tolerated and dropped, so directory identities
    like ``specs/001-x/tests/features/`` compare equal to their bare form.
    """

    if not isinstance(rel, str) or not rel:
        raise ValueError("path missing/empty")
    if "\x00" in rel:
        raise ValueError("path contains NUL")

    s = str(rel)
    if "\\" in s:
        if not allow_backslashes:
            raise ValueError("path must use '/' separators")
        s = s.replace("\\", "/")

    if s.endswith("/") and len(s) > 1:
        s = s[:-1]
    if "//" in s:
        raise ValueError("path must not contain '//' segments")
    if s.startswith("./"):
        raise ValueError("path must not start with './'")

    if s.startswith("/"):
        raise ValueError("absolute paths are not allowed")
    if len(s) >= 2 and s[1] == ":":
        raise ValueError("drive-qualified paths are not allowed")

    parts = [p for p in s.split("/") if p]
    if not parts:
        raise ValueError("empty path not allowed")
    if any(p in (".", "..") for p in parts):
        raise ValueError("path must not contain '.' or '..' segments")
    return "/".join(parts)


def paths_match(recorded: str, target: str) -> bool:
    """True when ``recorded`` names ``target`` exactly or ends with ``/<target>``.

    Recorded paths come from generators that may have been handed an absolute
    or './'-prefixed path, so only the trailing segments are authoritative.
    """

    if not isinstance(recorded, str) or not isinstance(target, str):
        return False
    r = recorded.replace("\\", "/").rstrip("/")
    t = target.replace("\\", "/").rstrip("/")
    if not r or not t:
        return False
    return r == t or r.endswith("/" + t)


def safe_relpath(repo_root: Path, p: Path) -> str:
    try:
        return p.resolve().relative_to(repo_root.resolve()).as_posix()
    except Exception:
        return p.as_posix()


def ensure_within_root(root: Path, target: Path) -> None:
    root_resolved = root.resolve()
    target_resolved = target.resolve()
    if root_resolved not in target_resolved.parents and root_resolved != target_resolved:
        raise ValueError("Resolved path escapes repo root")


def repo_rel_from_arg(repo_root: Path, arg: str) -> str:
    """Turn a user-supplied path (absolute or cwd-relative) into a repo-relative POSIX path."""

    p = Path(arg)
    if not p.is_absolute():
        p = Path.cwd() / p
    ensure_within_root(repo_root, p)
    return normalize_repo_rel(safe_relpath(repo_root, p), allow_backslashes=True)
