from __future__ import annotations

import argparse
import asyncio
import json
import sys

from condonotify.core.errors import DeliveryStoreUnavailableError
from condonotify.core.logging import configure_logging
from condonotify.services.delivery.sweep import run_reconciliation_sweep


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one delivery status reconciliation pass.")
    parser.add_argument("--batch-limit", type=int, default=None, help="Maximum records to examine")
    parser.add_argument(
        "--ignore-provider-health",
        action="store_true",
        help="Run even when the last provider probe reported the provider unreachable",
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    try:
        report = await run_reconciliation_sweep(
            batch_limit=args.batch_limit,
            check_provider=False if args.ignore_provider_health else None,
        )
    except DeliveryStoreUnavailableError as exc:
        print(f"DELIVERY_STORE_UNAVAILABLE: {exc}", file=sys.stderr)
        return 2
    print(json.dumps(report.as_dict(), indent=2))
    return 0 if not report.errors else 1


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
