from __future__ import annotations

import os
from datetime import datetime, timezone


FIXED_TIMESTAMP_UTC_Z = "1970-01-01T00:00:00Z"
DETERMINISTIC_ENV = "ASSERTGUARD_DETERMINISTIC"


def deterministic_from_env() -> bool:
    return os.environ.get(DETERMINISTIC_ENV) == "1"


def utc_timestamp_iso_z(*, deterministic: bool | None = None) -> str:
    if deterministic is None:
        deterministic = deterministic_from_env()
    if deterministic:
        return FIXED_TIMESTAMP_UTC_Z
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
