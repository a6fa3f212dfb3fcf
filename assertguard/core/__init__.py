"""Lowest-level assertguard building blocks.

Dependency direction rules:
- assertguard.core must not import assertguard.commands or assertguard.cli
"""

from assertguard.core.fingerprint import NO_ASSERTIONS, extract_assertions, fingerprint_documents, fingerprint_path
from assertguard.core.git_ops import GitError, GitUnavailableError
from assertguard.core.hash import is_hex_sha256, sha256_bytes
from assertguard.core.jail import normalize_repo_rel, paths_match, safe_relpath

__all__ = [
	"GitError",
	"GitUnavailableError",
	"NO_ASSERTIONS",
	"extract_assertions",
	"fingerprint_documents",
	"fingerprint_path",
	"is_hex_sha256",
	"normalize_repo_rel",
	"paths_match",
	"safe_relpath",
	"sha256_bytes",
]
