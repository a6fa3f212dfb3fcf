from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
for _k in list(sys.modules.keys()):
    if _k == "assertguard" or _k.startswith("assertguard."):
        del sys.modules[_k]

from assertguard.cli import main as assertguard_main
from assertguard.core.fingerprint import NO_ASSERTIONS, fingerprint_path


pytestmark = pytest.mark.repo_local

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")

LOGIN_REL = "specs/001-login/tests/features/login.feature"
LOGIN_FEATURE = """Feature: Login
  Scenario: valid credentials
    Given a registered user
    When they submit valid credentials
    Then they see the dashboard
"""


def _git(cwd: Path, *args: str) -> str:
    p = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)
    return (p.stdout or b"").decode("utf-8", errors="strict").strip()


def _write(root: Path, rel: str, content: str) -> Path:
    p = root / Path(*rel.split("/"))
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8", errors="strict", newline="\n")
    return p


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("ASSERTGUARD_NOTES_REF", raising=False)
    monkeypatch.delenv("ASSERTGUARD_SEARCH_DEPTH", raising=False)
    monkeypatch.setenv("ASSERTGUARD_DETERMINISTIC", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    r = tmp_path / "repo"
    r.mkdir()
    _git(r, "init")
    _git(r, "config", "user.email", "test@example.com")
    _git(r, "config", "user.name", "Test")
    _git(r, "config", "commit.gpgsign", "false")
    return r


@pytest.fixture
def locked_repo(repo: Path) -> Path:
    _write(repo, LOGIN_REL, LOGIN_FEATURE)
    _git(repo, "add", LOGIN_REL)
    _git(repo, "commit", "-m", "testify: login")
    assert assertguard_main(["ledger", "record", "--repo", str(repo)]) == 0
    return repo


# ---------------------------------------------------------------------------
# hash / extract / store-hash
# ---------------------------------------------------------------------------

def test_hash_prints_fingerprint(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    features = _write(tmp_path, LOGIN_REL, LOGIN_FEATURE).parent
    assert assertguard_main(["hash", str(features)]) == 0
    out = capsys.readouterr().out.strip()
    assert out == fingerprint_path(features)
    assert len(out) == 64


def test_hash_missing_path_is_sentinel(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert assertguard_main(["hash", str(tmp_path / "nope")]) == 0
    captured = capsys.readouterr()
    assert captured.out.strip() == NO_ASSERTIONS
    assert "path not found" in captured.err


def test_extract_prints_canonical_lines(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    f = _write(tmp_path, LOGIN_REL, LOGIN_FEATURE)
    assert assertguard_main(["extract", str(f)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "Given a registered user",
        "When they submit valid credentials",
        "Then they see the dashboard",
    ]


@requires_git
def test_store_hash_and_rehash_alias(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    features = _write(repo, LOGIN_REL, LOGIN_FEATURE).parent
    assert assertguard_main(["store-hash", str(features), "--repo", str(repo)]) == 0
    printed = capsys.readouterr().out.strip()
    ctx = json.loads((repo / "specs" / "001-login" / "context.json").read_text(encoding="utf-8"))
    assert ctx["testify"]["assertion_hash"] == printed
    assert ctx["testify"]["features_dir"] == "specs/001-login/tests/features"

    _write(repo, LOGIN_REL, LOGIN_FEATURE + "    And a welcome banner\n")
    assert assertguard_main(["rehash", str(repo / LOGIN_REL), "--repo", str(repo)]) == 0
    rehashed = capsys.readouterr().out.strip()
    assert rehashed != printed
    ctx = json.loads((repo / "specs" / "001-login" / "context.json").read_text(encoding="utf-8"))
    assert ctx["testify"]["assertion_hash"] == rehashed


def test_store_hash_missing_path(tmp_path: Path) -> None:
    assert assertguard_main(["store-hash", str(tmp_path / "missing"), "--repo", str(tmp_path)]) == 3


# ---------------------------------------------------------------------------
# verify / check-diff
# ---------------------------------------------------------------------------

@requires_git
def test_verify_json_valid(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    features = locked_repo / "specs" / "001-login" / "tests" / "features"
    rc = assertguard_main(["verify", str(features), "--repo", str(locked_repo), "--json"])
    assert rc == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["verdict"] == "valid"
    assert payload["checks"] == {"context": "missing", "ledger": "valid"}


@requires_git
def test_verify_detects_working_tree_tamper(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(locked_repo, LOGIN_REL, LOGIN_FEATURE.replace("    Then they see the dashboard\n", ""))
    rc = assertguard_main(["verify", str(locked_repo / LOGIN_REL), "--repo", str(locked_repo)])
    assert rc == 1
    assert capsys.readouterr().out.strip() == "invalid"


@requires_git
def test_verify_rejects_non_assertion_path(locked_repo: Path) -> None:
    _write(locked_repo, "README.md", "hi\n")
    assert assertguard_main(["verify", str(locked_repo / "README.md"), "--repo", str(locked_repo)]) == 3


@requires_git
def test_check_diff(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = str(locked_repo / LOGIN_REL)

    assert assertguard_main(["check-diff", target, "--repo", str(locked_repo)]) == 0
    assert capsys.readouterr().out.strip() == "clean"

    _write(locked_repo, LOGIN_REL, LOGIN_FEATURE.replace("Feature: Login", "Feature: Sign in"))
    assert assertguard_main(["check-diff", target, "--repo", str(locked_repo)]) == 0
    assert capsys.readouterr().out.strip() == "clean"

    _write(locked_repo, LOGIN_REL, LOGIN_FEATURE.replace("dashboard", "homepage"))
    assert assertguard_main(["check-diff", target, "--repo", str(locked_repo)]) == 1
    assert capsys.readouterr().out.strip() == "modified"

    other = _write(locked_repo, "specs/003-search/tests/features/search.feature", "Feature: Search\n")
    assert assertguard_main(["check-diff", str(other), "--repo", str(locked_repo)]) == 0
    assert capsys.readouterr().out.strip() == "untracked"


# ---------------------------------------------------------------------------
# ledger
# ---------------------------------------------------------------------------

@requires_git
def test_ledger_show_json(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    capsys.readouterr()
    assert assertguard_main(["ledger", "show", "--repo", str(locked_repo), "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["notes_ref"] == "refs/notes/testify"
    assert payload["commit"] == _git(locked_repo, "rev-parse", "HEAD")
    (entry,) = payload["entries"]
    assert entry["path"] == "specs/001-login/tests/features"
    assert entry["kind"] == "features"
    assert entry["generated_at"] == "1970-01-01T00:00:00Z"


@requires_git
def test_ledger_custom_notes_ref(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert assertguard_main(["ledger", "record", "--repo", str(locked_repo), "--notes-ref", "refs/notes/alt"]) == 0
    capsys.readouterr()
    assert assertguard_main(["ledger", "show", "--repo", str(locked_repo), "--notes-ref", "refs/notes/alt", "--json"]) == 0
    assert len(json.loads(capsys.readouterr().out)["entries"]) == 1


def test_ledger_without_subcommand() -> None:
    assert assertguard_main(["ledger"]) == 3


# ---------------------------------------------------------------------------
# tdd-status
# ---------------------------------------------------------------------------

def test_tdd_status_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert assertguard_main(["tdd-status", "--repo", str(tmp_path), "--json"]) == 1
    assert json.loads(capsys.readouterr().out) == {"error": "Constitution file not found"}

    _write(tmp_path, "CONSTITUTION.md", "# Constitution\n\nAll features MUST follow TDD.\n")
    assert assertguard_main(["tdd-status", "--repo", str(tmp_path), "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["determination"] == "mandatory"

    assert assertguard_main(["tdd-status", "--repo", str(tmp_path)]) == 0
    assert capsys.readouterr().out.strip() == "mandatory"


# ---------------------------------------------------------------------------
# hooks
# ---------------------------------------------------------------------------

@requires_git
def test_install_hooks_fresh_and_update(repo: Path) -> None:
    hooks = repo / ".git" / "hooks"
    assert assertguard_main(["install-hooks", "--repo", str(repo)]) == 0
    pre = (hooks / "pre-commit").read_text(encoding="utf-8")
    post = (hooks / "post-commit").read_text(encoding="utf-8")
    assert "ASSERTGUARD-PRE-COMMIT" in pre and "hook pre-commit" in pre
    assert "ASSERTGUARD-POST-COMMIT" in post and "hook post-commit" in post
    if os.name != "nt":
        assert os.access(hooks / "pre-commit", os.X_OK)

    assert assertguard_main(["install-hooks", "--repo", str(repo)]) == 0
    assert (hooks / "pre-commit").read_text(encoding="utf-8") == pre
    assert not (hooks / "assertguard-pre-commit").exists()


@requires_git
def test_install_hooks_chains_foreign_hook(repo: Path) -> None:
    hooks = repo / ".git" / "hooks"
    hooks.mkdir(parents=True, exist_ok=True)
    (hooks / "pre-commit").write_text("#!/bin/sh\necho lint\n", encoding="utf-8", newline="\n")

    assert assertguard_main(["install-hooks", "--repo", str(repo)]) == 0
    assert assertguard_main(["install-hooks", "--repo", str(repo)]) == 0

    foreign = (hooks / "pre-commit").read_text(encoding="utf-8")
    assert foreign.startswith("#!/bin/sh\necho lint\n")
    assert foreign.count('"$(dirname "$0")/assertguard-pre-commit" || exit $?') == 1
    assert "ASSERTGUARD-PRE-COMMIT" in (hooks / "assertguard-pre-commit").read_text(encoding="utf-8")


@requires_git
def test_hook_entry_points(locked_repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(locked_repo, LOGIN_REL, LOGIN_FEATURE.replace("dashboard", "homepage"))
    _git(locked_repo, "add", LOGIN_REL)
    assert assertguard_main(["hook", "pre-commit", "--repo", str(locked_repo)]) == 1
    assert "--no-verify" in capsys.readouterr().err

    _git(locked_repo, "commit", "--no-verify", "-m", "forced")
    assert assertguard_main(["hook", "post-commit", "--repo", str(locked_repo), "--quiet"]) == 0
    assert capsys.readouterr().err == ""


def test_no_command_prints_help() -> None:
    assert assertguard_main([]) == 3


def test_about_prints_identity(capsys: pytest.CaptureFixture[str]) -> None:
    assert assertguard_main(["about"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("assertguard ")
    assert "http" not in out
