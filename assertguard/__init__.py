"""assertguard: assertion integrity verification for test-first workflows.

Fingerprints locked behavioral test scenarios and verifies them at commit time
against a tracked Context Record and a git-notes ledger.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def __getattr__(name: str):
    if name == "__version__":
        try:
            return version("assertguard")
        except PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)
