from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from assertguard.core.git_ops import git_hooks_dir


HookName = Literal["pre-commit", "post-commit"]
InstallAction = Literal["installed", "updated", "chained"]

HOOK_NAMES: tuple[HookName, ...] = ("pre-commit", "post-commit")

MARKERS: dict[str, str] = {
    "pre-commit": "ASSERTGUARD-PRE-COMMIT",
    "post-commit": "ASSERTGUARD-POST-COMMIT",
}

_SHIM_TEMPLATE = """#!/bin/sh
# {marker}
# Assertion integrity hook installed by `assertguard install-hooks`.
if command -v assertguard >/dev/null 2>&1; then
    exec assertguard hook {hook}
fi
for py in python3 python; do
    if command -v "$py" >/dev/null 2>&1 && "$py" -c "import assertguard" >/dev/null 2>&1; then
        exec "$py" -m assertguard.cli hook {hook}
    fi
done
echo "[assertguard] Warning: assertguard not found; skipping {hook} assertion integrity hook" >&2
exit 0
"""


@dataclass(frozen=True)
class HookInstallResult:
    hook: str
    path: Path
    action: InstallAction


def render_hook(hook: HookName) -> str:
    return _SHIM_TEMPLATE.format(marker=MARKERS[hook], hook=hook)


def _write_executable(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8", newline="\n")
    mode = path.stat().st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def install_hook(hooks_dir: Path, hook: HookName) -> HookInstallResult:
    """Install one hook shim.

    - no existing hook: write ours.
    - existing hook carrying our marker: overwrite it in place.
    - foreign hook: write ``assertguard-<hook>`` next to it and append a call
      to it at the end of the foreign hook (once).
    """

    hooks_dir.mkdir(parents=True, exist_ok=True)
    target = hooks_dir / hook
    body = render_hook(hook)

    if not target.exists():
        _write_executable(target, body)
        return HookInstallResult(hook=hook, path=target, action="installed")

    existing = target.read_text(encoding="utf-8", errors="replace")
    if MARKERS[hook] in existing:
        _write_executable(target, body)
        return HookInstallResult(hook=hook, path=target, action="updated")

    side = hooks_dir / f"assertguard-{hook}"
    _write_executable(side, body)
    if f"assertguard-{hook}" not in existing:
        suffix = "" if existing.endswith("\n") else "\n"
        call = f'"$(dirname "$0")/assertguard-{hook}"'
        if hook == "pre-commit":
            # A failing pre-commit check must still reject the commit.
            call += " || exit $?"
        with target.open("a", encoding="utf-8", newline="\n") as f:
            f.write(f"{suffix}\n# assertguard assertion integrity check\n{call}\n")
    return HookInstallResult(hook=hook, path=side, action="chained")


def install_hooks(repo_root: Path) -> list[HookInstallResult]:
    hooks_dir = git_hooks_dir(repo_root)
    return [install_hook(hooks_dir, hook) for hook in HOOK_NAMES]
