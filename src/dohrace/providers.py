"""Static registry of DNS-over-HTTPS JSON providers.

Brief:
  A provider name maps to one or more endpoint URLs answering
  ``?name=<domain>&type=A`` with ``application/dns-json`` bodies. The registry
  is built once at startup and flattened into the ordered endpoint list the
  racing resolver fans out over.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

DEFAULT_PROVIDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "cloudflare": (
            "https://1.1.1.1/dns-query",
            "https://1.0.0.1/dns-query",
        ),
        "google": (
            "https://8.8.8.8/resolve",
            "https://8.8.4.4/resolve",
        ),
        "quad9": (
            "https://9.9.9.9:5053/dns-query",
            "https://149.112.112.112:5053/dns-query",
            "https://dns.quad9.net:5053/dns-query",
        ),
    }
)


class Endpoint(NamedTuple):
    """One DoH endpoint URL and the provider it belongs to."""

    provider: str
    url: str


def _check_url(provider: str, url: object) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ValueError(f"provider {provider!r} has an empty endpoint URL")
    text = url.strip()
    parsed = urllib.parse.urlparse(text)
    if parsed.scheme not in ("https", "http") or not parsed.hostname:
        raise ValueError(
            f"provider {provider!r} endpoint {text!r} must be an http(s) URL with a host"
        )
    return text


@dataclass(frozen=True)
class ProviderRegistry:
    """
    Brief: Immutable provider -> endpoint URLs table.

    Inputs:
      - providers: read-only mapping of provider name to a tuple of URLs.

    Outputs:
      - Registry exposing the flattened endpoint list.

    Example:
      >>> reg = ProviderRegistry.from_mapping({"a": ["https://a.example/dns-query"]})
      >>> reg.endpoints()
      (Endpoint(provider='a', url='https://a.example/dns-query'),)
    """

    providers: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: DEFAULT_PROVIDERS
    )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "ProviderRegistry":
        """Brief: Validate and freeze a provider table.

        Inputs:
          - mapping: provider name -> iterable of endpoint URLs (a single
            string is accepted as a one-element list).

        Outputs:
          - ProviderRegistry

        Raises:
          - ValueError: when the table is empty, a provider has no URLs or a
            URL is not http(s).
        """
        if not mapping:
            raise ValueError("at least one DoH provider must be configured")
        frozen = {}
        for name, urls in mapping.items():
            if not isinstance(name, str) or not name.strip():
                raise ValueError("provider names must be non-empty strings")
            if isinstance(urls, str):
                urls = [urls]
            checked = tuple(_check_url(name, u) for u in urls)
            if not checked:
                raise ValueError(f"provider {name!r} has no endpoints")
            frozen[name.strip()] = checked
        return cls(providers=MappingProxyType(frozen))

    def names(self) -> List[str]:
        return list(self.providers.keys())

    def endpoints(self, providers: Optional[Sequence[str]] = None) -> Tuple[Endpoint, ...]:
        """Brief: Flatten the table into an ordered, de-duplicated endpoint tuple.

        Inputs:
          - providers: optional curated subset of provider names; None means
            every provider in declaration order.

        Outputs:
          - tuple[Endpoint, ...]

        Raises:
          - KeyError: when a requested provider is not registered.
        """
        selected = self.names() if providers is None else list(providers)
        out: List[Endpoint] = []
        seen = set()
        for name in selected:
            if name not in self.providers:
                raise KeyError(f"unknown DoH provider {name!r}")
            for url in self.providers[name]:
                if url in seen:
                    continue
                seen.add(url)
                out.append(Endpoint(name, url))
        return tuple(out)
