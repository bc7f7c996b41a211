"""Clients that observe orders from customer-facing screens."""

from comanda.client.status_sync import (
    HttpStatusFetcher,
    ServiceStatusFetcher,
    StatusFetchError,
    StatusSyncClient,
)

__all__ = [
    "HttpStatusFetcher",
    "ServiceStatusFetcher",
    "StatusFetchError",
    "StatusSyncClient",
]
