from __future__ import annotations

import pytest

from condonotify.persistence.db import create_schema, drop_schema, engine


@pytest.fixture(autouse=True)
async def delivery_schema() -> None:
    # Recreate tables for every test so stored records never leak between cases.
    await create_schema()
    yield
    await drop_schema()
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
