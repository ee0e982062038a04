from __future__ import annotations

import pytest

from condonotify.core.config import get_settings
from condonotify.persistence.db import SessionLocal
from condonotify.persistence.guards import TenantPredicateError
from condonotify.persistence.repos.deliveries import (
    apply_provider_status,
    apply_status_correction,
    attach_provider_message_id,
    count_by_raw_status,
    get_tenant_delivery_record,
    list_delivery_records,
    select_reconciliation_candidates,
)
from condonotify.tests.utils.deliveries import BASE_TIME, load_record, minutes, naive, seed_record


@pytest.mark.asyncio
async def test_candidates_are_sent_or_null_newest_first() -> None:
    oldest = await seed_record(raw_status="sent", sent_at=BASE_TIME)
    unknown = await seed_record(raw_status=None, sent_at=BASE_TIME + minutes(1))
    newest = await seed_record(raw_status="sent", sent_at=BASE_TIME + minutes(2))
    await seed_record(raw_status="delivered", sent_at=BASE_TIME + minutes(3))
    await seed_record(raw_status="failed", sent_at=BASE_TIME + minutes(4))

    async with SessionLocal() as session:
        rows = await select_reconciliation_candidates(session, limit=10)
        limited = await select_reconciliation_candidates(session, limit=0)

    assert [row.id for row in rows] == [newest, unknown, oldest]
    assert [row.id for row in limited] == [newest]


@pytest.mark.asyncio
async def test_status_correction_never_moves_existing_timestamps() -> None:
    delivered_at = BASE_TIME + minutes(1)
    record_id = await seed_record(raw_status="sent", delivered_at=delivered_at)

    async with SessionLocal() as session:
        affected = await apply_status_correction(
            session,
            record_id=record_id,
            expected_raw_status="sent",
            corrections={"raw_status": "read", "delivered_at": BASE_TIME + minutes(9)},
        )
        await session.commit()

    record = await load_record(record_id)
    assert affected == 1
    assert record.raw_status == "read"
    assert naive(record.delivered_at) == naive(delivered_at)


@pytest.mark.asyncio
async def test_status_correction_guard_misses_on_changed_status() -> None:
    record_id = await seed_record(raw_status="delivered")

    async with SessionLocal() as session:
        affected = await apply_status_correction(
            session,
            record_id=record_id,
            expected_raw_status="sent",
            corrections={"raw_status": "read"},
        )
        empty = await apply_status_correction(
            session,
            record_id=record_id,
            expected_raw_status="delivered",
            corrections={},
        )
        await session.commit()

    assert affected == 0
    assert empty == 0
    assert (await load_record(record_id)).raw_status == "delivered"


@pytest.mark.asyncio
async def test_provider_status_fills_timestamps_once() -> None:
    first_delivery = BASE_TIME + minutes(1)
    record_id = await seed_record(raw_status="sent", provider_message_id="wamid.A", delivered_at=first_delivery)

    async with SessionLocal() as session:
        updated = await apply_provider_status(
            session,
            provider_message_id="wamid.A",
            raw_status="read",
            delivered_at=BASE_TIME + minutes(5),
            read_at=BASE_TIME + minutes(5),
        )
        missing = await apply_provider_status(session, provider_message_id="wamid.unknown", raw_status="read")
        await session.commit()

    record = await load_record(record_id)
    assert updated == 1
    assert missing == 0
    assert record.raw_status == "read"
    assert naive(record.delivered_at) == naive(first_delivery)
    assert naive(record.read_at) == naive(BASE_TIME + minutes(5))


@pytest.mark.asyncio
async def test_provider_message_id_is_attached_once() -> None:
    record_id = await seed_record(raw_status="sent")

    async with SessionLocal() as session:
        first = await attach_provider_message_id(session, record_id=record_id, provider_message_id="wamid.1")
        second = await attach_provider_message_id(session, record_id=record_id, provider_message_id="wamid.2")
        await session.commit()

    assert first is True
    assert second is False
    assert (await load_record(record_id)).provider_message_id == "wamid.1"


@pytest.mark.asyncio
async def test_tenant_scoped_reads() -> None:
    mine = await seed_record(tenant_id="condo-a", raw_status="sent")
    await seed_record(tenant_id="condo-a", raw_status="read")
    theirs = await seed_record(tenant_id="condo-b", raw_status="sent")

    async with SessionLocal() as session:
        found = await get_tenant_delivery_record(session, tenant_id="condo-a", record_id=mine)
        hidden = await get_tenant_delivery_record(session, tenant_id="condo-a", record_id=theirs)
        listed = await list_delivery_records(session, tenant_id="condo-a", raw_status="sent")
        counts = await count_by_raw_status(session, tenant_id="condo-a")

    assert found is not None and found.id == mine
    assert hidden is None
    assert [row.id for row in listed] == [mine]
    assert counts == {"sent": 1, "read": 1}


@pytest.mark.asyncio
async def test_missing_tenant_predicate_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("AUTHZ_REQUIRE_TENANT_PREDICATE", "true")
    get_settings.cache_clear()

    async with SessionLocal() as session:
        with pytest.raises(TenantPredicateError):
            await list_delivery_records(session, tenant_id="")
