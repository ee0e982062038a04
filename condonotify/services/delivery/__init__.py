from __future__ import annotations

# Re-export delivery reconciliation services for centralized imports.

from condonotify.services.delivery.health import (
    ConnectionProber,
    MetaWhatsAppProber,
    ProbeResult,
    get_last_probe_result,
    publish_probe_result,
    run_provider_probe,
)
from condonotify.services.delivery.normalizer import NormalizationResult, canonical_state, detect_anomalies, normalize
from condonotify.services.delivery.sweep import SweepReport, run_reconciliation_sweep
from condonotify.services.delivery.webhook import (
    IngestOutcome,
    ProviderStatusEvent,
    ingest_provider_event,
    parse_provider_event,
)

__all__ = [
    "ConnectionProber",
    "MetaWhatsAppProber",
    "ProbeResult",
    "get_last_probe_result",
    "publish_probe_result",
    "run_provider_probe",
    "NormalizationResult",
    "canonical_state",
    "detect_anomalies",
    "normalize",
    "SweepReport",
    "run_reconciliation_sweep",
    "IngestOutcome",
    "ProviderStatusEvent",
    "ingest_provider_event",
    "parse_provider_event",
]
