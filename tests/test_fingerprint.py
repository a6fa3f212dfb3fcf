"""Hash engine tests: canonicalization, sentinel and sensitivity properties."""

from __future__ import annotations

import hashlib
import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from assertguard.core.fingerprint import (
    NO_ASSERTIONS,
    canonical_assertion_lines,
    extract_assertions,
    extract_feature_steps,
    extract_legacy_steps,
    fingerprint_documents,
    fingerprint_path,
)


LOGIN_FEATURE = """Feature: Login

  Scenario: valid credentials
    Given a registered user
    When they log in with the right password
    Then they see the dashboard
    And a welcome banner is shown
"""

LOGOUT_FEATURE = """Feature: Logout

  Scenario: explicit logout
    Given a logged in user
    When they click logout
    Then the session is closed
"""

LEGACY_SPECS = """# Test Specifications

## TS-001

**Given**: a registered user
**When**: they log in
**Then**: they see the dashboard

## TS-002

**Given**: an anonymous visitor
**Then**: the login form is shown
"""


def _sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _features_dir(tmp_path: Path, files: dict[str, str]) -> Path:
    d = tmp_path / "specs" / "001-login" / "tests" / "features"
    d.mkdir(parents=True)
    for name, content in files.items():
        (d / name).write_text(content, encoding="utf-8", newline="\n")
    return d


class TestExtraction:
    def test_feature_steps_keep_document_order_and_normalize_whitespace(self) -> None:
        text = "  Given   a user\twith  spaces   \n# Given not a step\nWhen\tthey act\nThen it works\n"
        # "When\tthey" lacks the literal space after the keyword, so it is not a step.
        assert extract_feature_steps(text) == ["Given a user with spaces", "Then it works"]

    def test_keyword_must_be_followed_by_space(self) -> None:
        assert extract_feature_steps("Givenness is not a step\nThenceforth neither\n") == []

    def test_legacy_steps_sorted_and_right_stripped(self) -> None:
        lines = extract_legacy_steps(LEGACY_SPECS + "**Then**: trailing   \n")
        assert lines == sorted(lines)
        assert "**Then**: trailing" in lines
        assert all(not ln.endswith(" ") for ln in lines)

    def test_legacy_ignores_indented_or_unbolded_steps(self) -> None:
        assert extract_legacy_steps("  **Given**: indented\nGiven: plain\n") == []

    def test_directory_lines_follow_file_name_order(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"b.feature": "Given b\n", "a.feature": "Given a\n"})
        assert extract_assertions(d) == ["Given a", "Given b"]

    def test_non_feature_files_ignored(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"a.feature": "Given a\n", "notes.md": "Given not hashed\n"})
        assert extract_assertions(d) == ["Given a"]


class TestFingerprint:
    def test_digest_matches_joined_lines_without_trailing_newline(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"login.feature": LOGIN_FEATURE})
        expected = _sha(
            "\n".join(
                [
                    "Given a registered user",
                    "When they log in with the right password",
                    "Then they see the dashboard",
                    "And a welcome banner is shown",
                ]
            )
        )
        assert fingerprint_path(d) == expected

    def test_deterministic(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"login.feature": LOGIN_FEATURE, "logout.feature": LOGOUT_FEATURE})
        assert fingerprint_path(d) == fingerprint_path(d)

    def test_single_byte_change_changes_fingerprint(self, tmp_path: Path) -> None:
        base = fingerprint_documents({"login.feature": LOGIN_FEATURE}, legacy=False)
        mutated = LOGIN_FEATURE.replace("dashboard", "dashboarD")
        assert fingerprint_documents({"login.feature": mutated}, legacy=False) != base

    def test_removing_a_then_clause_changes_fingerprint(self) -> None:
        base = fingerprint_documents({"login.feature": LOGIN_FEATURE}, legacy=False)
        relaxed = LOGIN_FEATURE.replace("    Then they see the dashboard\n", "")
        assert fingerprint_documents({"login.feature": relaxed}, legacy=False) != base

    def test_file_order_within_set_does_not_matter(self) -> None:
        a = fingerprint_documents({"login.feature": LOGIN_FEATURE, "logout.feature": LOGOUT_FEATURE}, legacy=False)
        b = fingerprint_documents({"logout.feature": LOGOUT_FEATURE, "login.feature": LOGIN_FEATURE}, legacy=False)
        assert a == b

    def test_line_order_within_file_matters(self) -> None:
        swapped = LOGIN_FEATURE.replace(
            "    When they log in with the right password\n    Then they see the dashboard\n",
            "    Then they see the dashboard\n    When they log in with the right password\n",
        )
        assert fingerprint_documents({"f.feature": swapped}, legacy=False) != fingerprint_documents(
            {"f.feature": LOGIN_FEATURE}, legacy=False
        )

    def test_adding_a_file_changes_fingerprint(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"login.feature": LOGIN_FEATURE})
        before = fingerprint_path(d)
        (d / "logout.feature").write_text(LOGOUT_FEATURE, encoding="utf-8")
        assert fingerprint_path(d) != before

    def test_non_step_edits_do_not_change_fingerprint(self) -> None:
        edited = LOGIN_FEATURE.replace("Feature: Login", "Feature: Sign in") + "\n# trailing comment\n"
        assert fingerprint_documents({"f.feature": edited}, legacy=False) == fingerprint_documents(
            {"f.feature": LOGIN_FEATURE}, legacy=False
        )

    def test_legacy_line_order_is_irrelevant(self, tmp_path: Path) -> None:
        p = tmp_path / "test-specs.md"
        p.write_text(LEGACY_SPECS, encoding="utf-8")
        shuffled = tmp_path / "other" / "test-specs.md"
        shuffled.parent.mkdir()
        shuffled.write_text("\n".join(reversed(LEGACY_SPECS.splitlines())) + "\n", encoding="utf-8")
        assert fingerprint_path(p) == fingerprint_path(shuffled)
        assert fingerprint_path(p) != NO_ASSERTIONS

    def test_single_feature_file_equals_directory_with_that_file(self, tmp_path: Path) -> None:
        d = _features_dir(tmp_path, {"login.feature": LOGIN_FEATURE})
        assert fingerprint_path(d / "login.feature") == fingerprint_path(d)


class TestSentinel:
    @pytest.mark.parametrize(
        "files",
        [
            {},
            {"empty.feature": ""},
            {"prose.feature": "Feature: Nothing\n  Scenario: placeholder\n"},
        ],
    )
    def test_no_assertions_for_step_free_sets(self, tmp_path: Path, files: dict[str, str]) -> None:
        assert fingerprint_path(_features_dir(tmp_path, files)) == NO_ASSERTIONS

    def test_missing_path_is_no_assertions(self, tmp_path: Path) -> None:
        assert fingerprint_path(tmp_path / "does-not-exist") == NO_ASSERTIONS

    def test_empty_legacy_document(self, tmp_path: Path) -> None:
        p = tmp_path / "test-specs.md"
        p.write_text("# Test Specifications\n\nNothing yet.\n", encoding="utf-8")
        assert fingerprint_path(p) == NO_ASSERTIONS

    def test_canonical_lines_empty_for_empty_snapshot(self) -> None:
        assert canonical_assertion_lines({}, legacy=False) == []
        assert fingerprint_documents({}, legacy=True) == NO_ASSERTIONS
