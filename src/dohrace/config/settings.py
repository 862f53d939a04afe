"""Typed configuration models for dohrace.

Example YAML:

    providers:
      cloudflare: [https://1.1.1.1/dns-query, https://1.0.0.1/dns-query]
      quad9: [https://9.9.9.9:5053/dns-query]
    resolver:
      timeout: 5
      providers: [cloudflare]   # optional curated subset
    query:
      connect_timeout: 5
      read_timeout: 5
    fetch:
      attempts: 20
      timeout: 3
    logging:
      level: info
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..providers import DEFAULT_PROVIDERS, ProviderRegistry


class QuerySettings(BaseModel):
    """Brief: Per-query settings for the DoH JSON unit.

    Inputs:
      - connect_timeout: TCP/TLS connect timeout in seconds.
      - read_timeout: header/body read timeout in seconds.
      - verify: verify endpoint TLS certificates.
    """

    model_config = ConfigDict(extra="forbid")

    connect_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=5.0, gt=0)
    verify: bool = True


class ResolverSettings(BaseModel):
    """Brief: Racing resolver deadline and endpoint selection.

    Inputs:
      - timeout: hard deadline per lookup, seconds.
      - providers: optional curated subset of provider names; all when None.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=5.0, gt=0)
    providers: Optional[List[str]] = None


class FetchSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attempts: int = Field(default=20, ge=1, le=256)
    timeout: float = Field(default=3.0, gt=0)
    connect_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=5.0, gt=0)
    verify: bool = True


class LoggingSettings(BaseModel):
    """Logging options consumed by init_logging()."""

    model_config = ConfigDict(extra="forbid")

    level: str = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: Union[bool, Dict[str, Any]] = False


class Settings(BaseModel):
    """Brief: Root configuration document.

    Outputs:
      - Settings with defaults for every section; registry() builds the
        immutable ProviderRegistry and endpoints() applies the resolver's
        provider subset.
    """

    model_config = ConfigDict(extra="forbid")

    providers: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_PROVIDERS.items()}
    )
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("providers", mode="before")
    @classmethod
    def _single_url_as_list(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: [v] if isinstance(v, str) else v for k, v in value.items()}
        return value

    @field_validator("providers")
    @classmethod
    def _valid_registry(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        ProviderRegistry.from_mapping(value)
        return value

    @model_validator(mode="after")
    def _known_resolver_providers(self) -> "Settings":
        unknown = [p for p in self.resolver.providers or [] if p not in self.providers]
        if unknown:
            raise ValueError(f"resolver.providers names unknown providers: {unknown}")
        return self

    def registry(self) -> ProviderRegistry:
        return ProviderRegistry.from_mapping(self.providers)

    def endpoints(self):
        return self.registry().endpoints(self.resolver.providers)
