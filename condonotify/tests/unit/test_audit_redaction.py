from __future__ import annotations

from datetime import datetime, timezone

from condonotify.services.audit import sanitize_metadata


def test_audit_redacts_credentials_and_contact_data() -> None:
    payload = {
        "access_token": "EAAG...",
        "nested": {"Authorization": "Bearer abc", "resident_phone": "+5511999990000"},
        "message_content": "Sua encomenda chegou",
        "record_id": "n-1",
        "corrections": {"raw_status": "read"},
    }
    sanitized = sanitize_metadata(payload)
    assert sanitized["access_token"] == "[REDACTED]"
    assert sanitized["nested"]["Authorization"] == "[REDACTED]"
    assert sanitized["nested"]["resident_phone"] == "[REDACTED]"
    assert sanitized["message_content"] == "[REDACTED]"
    assert sanitized["record_id"] == "n-1"
    assert sanitized["corrections"] == {"raw_status": "read"}


def test_audit_metadata_datetimes_are_serialized() -> None:
    moment = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    sanitized = sanitize_metadata({"corrections": {"delivered_at": moment}, "items": [moment]})
    assert sanitized["corrections"]["delivered_at"] == moment.isoformat()
    assert sanitized["items"] == [moment.isoformat()]
