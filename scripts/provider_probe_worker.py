from __future__ import annotations

import asyncio

from condonotify.core.logging import configure_logging
from condonotify.services.delivery.worker import run_provider_probe_loop


async def _main() -> None:
    configure_logging()
    await run_provider_probe_loop()


if __name__ == "__main__":
    asyncio.run(_main())
