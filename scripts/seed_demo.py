from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from condonotify.persistence.db import SessionLocal, create_schema
from condonotify.persistence.repos.deliveries import create_delivery_record, get_delivery_record


async def seed() -> None:
    # Create one record per reconciliation scenario for local walkthroughs.
    await create_schema()
    now = datetime.now(timezone.utc)
    rows = [
        ("demo-read-lagging", "sent", now - timedelta(minutes=30), None, now - timedelta(minutes=5)),
        ("demo-delivered-lagging", "sent", now - timedelta(minutes=20), now - timedelta(minutes=10), None),
        ("demo-consistent", "read", now - timedelta(minutes=40), now - timedelta(minutes=35), now - timedelta(minutes=30)),
        ("demo-failed", "failed", now - timedelta(minutes=50), None, None),
    ]
    async with SessionLocal() as session:
        for record_id, raw_status, sent_at, delivered_at, read_at in rows:
            if await get_delivery_record(session, record_id) is not None:
                continue
            record = await create_delivery_record(
                session,
                record_id=record_id,
                tenant_id="demo-condo",
                sent_at=sent_at,
                provider_message_id=f"wamid.{record_id}",
                raw_status=raw_status,
            )
            record.delivered_at = delivered_at
            record.read_at = read_at
        await session.commit()
    print(f"seeded_delivery_records={len(rows)}")


if __name__ == "__main__":
    asyncio.run(seed())
