"""Project test-first policy (TDD determination).

The determination is cached by the workflow in ``.specify/context.json``
(``tdd_determination``); projects that never cached it are assessed from
``CONSTITUTION.md`` directly.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


Determination = Literal["mandatory", "optional", "forbidden", "unknown"]

CACHE_RELPATH = ".specify/context.json"
CONSTITUTION_FILENAME = "CONSTITUTION.md"

_TDD_TERMS = r"(TDD|BDD|test-first|red-green-refactor|write tests before|behavior-driven|behaviour-driven)"
_MODERATE_TERMS = r"(test-driven|tests.*before.*code|tests.*before.*implementation)"
_PROHIBITION_TERMS = r"(test-after|integration tests only|no unit tests)"

# (pattern, determination, confidence, reasoning), first match wins.
_RULES: list[tuple[re.Pattern[str], Determination, str, str]] = [
    (re.compile(r"MUST.*" + _TDD_TERMS, re.I), "mandatory", "high", "Strong TDD/BDD indicator found with MUST modifier"),
    (re.compile(_TDD_TERMS + r".*MUST", re.I), "mandatory", "high", "Strong TDD/BDD indicator found with MUST modifier"),
    (re.compile(r"MUST.*" + _MODERATE_TERMS, re.I), "mandatory", "medium", "Moderate TDD indicator found with MUST modifier"),
    (re.compile(r"MUST.*" + _PROHIBITION_TERMS, re.I), "forbidden", "high", "TDD prohibition indicator found"),
    (re.compile(_PROHIBITION_TERMS + r".*MUST", re.I), "forbidden", "high", "TDD prohibition indicator found"),
    (re.compile(r"SHOULD.*(quality gates|coverage|test)", re.I), "optional", "low", "Implicit testing indicator found with SHOULD modifier"),
]

_VALID: tuple[str, ...] = ("mandatory", "optional", "forbidden", "unknown")


@dataclass(frozen=True)
class TddAssessment:
    determination: Determination
    confidence: str
    evidence: str
    reasoning: str

    def to_dict(self) -> dict[str, str]:
        return {
            "determination": self.determination,
            "confidence": self.confidence,
            "evidence": self.evidence,
            "reasoning": self.reasoning,
        }


def assess_constitution(text: str) -> TddAssessment:
    lines = text.splitlines()
    for pattern, determination, confidence, reasoning in _RULES:
        for line in lines:
            if pattern.search(line):
                return TddAssessment(determination, confidence, line.strip(), reasoning)
    return TddAssessment("optional", "high", "", "No TDD indicators found in constitution")


def _cached_determination(repo_root: Path) -> Determination | None:
    path = repo_root / CACHE_RELPATH
    try:
        obj = json.loads(path.read_text(encoding="utf-8", errors="strict"))
    except (OSError, UnicodeDecodeError, ValueError):
        return None
    if not isinstance(obj, dict):
        return None
    value = obj.get("tdd_determination")
    if isinstance(value, str) and value in _VALID:
        return value  # type: ignore[return-value]
    return None


def get_tdd_determination(repo_root: Path) -> Determination:
    cached = _cached_determination(repo_root)
    if cached is not None:
        return cached

    constitution = repo_root / CONSTITUTION_FILENAME
    try:
        text = constitution.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return "unknown"
    # The hook-side check only distinguishes mandatory from everything else.
    assessment = assess_constitution(text)
    return "mandatory" if assessment.determination == "mandatory" else "optional"
