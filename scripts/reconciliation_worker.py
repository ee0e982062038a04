from __future__ import annotations

import asyncio

from condonotify.core.logging import configure_logging
from condonotify.services.delivery.worker import run_reconciliation_loop


async def _main() -> None:
    # Boot a dedicated sweep loop process so statuses converge without request traffic.
    configure_logging()
    await run_reconciliation_loop()


if __name__ == "__main__":
    asyncio.run(_main())
