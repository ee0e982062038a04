from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres while keeping SQLite usable for local runs and tests.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class DeliveryRecord(Base):
    __tablename__ = "notifications_sent"
    __table_args__ = (
        # Serve the sweep candidate scan (status filter, newest first) from one index.
        Index("ix_notifications_sent_raw_status_sent_at", "raw_status", "sent_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Each record belongs to exactly one condominium's sending context.
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    resident_id: Mapped[str | None] = mapped_column(String, nullable=True)
    occurrence_id: Mapped[str | None] = mapped_column(String, nullable=True)
    sent_via: Mapped[str] = mapped_column(String, default="whatsapp", server_default="whatsapp")
    # Null until the provider acknowledges the send; immutable afterwards.
    provider_message_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    # Advisory provider label; canonical state is always derived from timestamps.
    raw_status: Mapped[str | None] = mapped_column(String, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Set-once timestamps written by the webhook ingestor or backfilled by the sweep.
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AuditEvent(Base):
    __tablename__ = "audit_events"

    # Use a monotonic numeric id for efficient pagination and ordering.
    # SQLite only autoincrements INTEGER primary keys, so swap the type there.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    tenant_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    actor_type: Mapped[str] = mapped_column(String)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String, nullable=True)
    # Persist a stable event taxonomy for investigation queries.
    event_type: Mapped[str] = mapped_column(String, index=True)
    outcome: Mapped[str] = mapped_column(String)
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    # Keep metadata sanitized and JSON for flexible investigation.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=dict)
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
