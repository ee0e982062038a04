from __future__ import annotations


class CondoNotifyError(Exception):
    """Base error for condonotify."""


class DeliveryStoreError(CondoNotifyError):
    """Delivery record store failure."""


class DeliveryStoreUnavailableError(DeliveryStoreError):
    """Candidate delivery records could not be fetched at all."""


class ProviderConfigError(CondoNotifyError):
    """Missing or invalid messaging provider configuration."""


class WebhookPayloadError(CondoNotifyError):
    """Provider webhook payload could not be interpreted."""
