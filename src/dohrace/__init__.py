"""dohrace: race DNS-over-HTTPS providers and HTTP fetches."""

from .client import RacingClient, default_client, fetch, lookup
from .dialer import AddressSelector, ResolvingDialer
from .errors import (
    AllProvidersFailedError,
    DoHError,
    DoHRaceError,
    FetchTimeoutError,
    ResolveTimeoutError,
)
from .providers import DEFAULT_PROVIDERS, Endpoint, ProviderRegistry
from .resolver import RacingResolver

__all__ = [
    "AddressSelector",
    "AllProvidersFailedError",
    "DEFAULT_PROVIDERS",
    "DoHError",
    "DoHRaceError",
    "Endpoint",
    "FetchTimeoutError",
    "ProviderRegistry",
    "RacingClient",
    "RacingResolver",
    "ResolveTimeoutError",
    "ResolvingDialer",
    "default_client",
    "fetch",
    "lookup",
]
