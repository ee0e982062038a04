from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point the engine at a throwaway SQLite file before any condonotify module builds it.
_TEST_DB_PATH = Path(tempfile.mkdtemp(prefix="condonotify-tests-")) / "condonotify.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest

from condonotify.core.config import get_settings
from condonotify.services.delivery import health as health_module
from condonotify.services.telemetry import reset_counters


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Tests toggle settings through env vars; never carry a cached instance across cases.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def isolate_process_state(monkeypatch) -> None:
    # Keep probe publication in-process unless a test installs a fake Redis.
    async def _no_redis():
        return None

    monkeypatch.setattr(health_module, "get_resilience_redis", _no_redis)
    health_module.reset_local_probe_result()
    reset_counters()
    yield
    health_module.reset_local_probe_result()
    reset_counters()

