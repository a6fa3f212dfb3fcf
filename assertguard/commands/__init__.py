"""Hook entry points and repository-level operations for the assertguard CLI.

These modules implement *when* verification runs (git lifecycle moments);
the protocol itself lives in assertguard.core.
"""

from __future__ import annotations
