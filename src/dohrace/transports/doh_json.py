"""DNS-over-HTTPS JSON API query unit.

Brief:
  Issues one ``GET <endpoint>?name=<domain>&type=A`` with
  ``Accept: application/dns-json`` and turns the answer into a list of IP
  literals. Every call opens a fresh connection; retries and redundancy
  belong to the racing resolver.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
from importlib import metadata
from typing import List, Optional

import requests
from dnslib import QTYPE
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import (
    DoHDecodeError,
    DoHTransportError,
    NoAddressError,
    QueryCancelledError,
    UnresolvedNameError,
)

try:
    DOHRACE_VERSION = metadata.version("dohrace")
except metadata.PackageNotFoundError:  # pragma: no cover - running from a source checkout
    DOHRACE_VERSION = "unknown"

DNS_JSON = "application/dns-json"

logger = logging.getLogger(__name__)


class Question(BaseModel):
    """Question section entry of a DNS JSON response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    type: int = 0


class Answer(BaseModel):
    """One resource record of a DNS JSON response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    type: int = 0
    ttl: int = Field(default=0, alias="TTL")
    data: str = ""

    @property
    def type_name(self) -> str:
        return QTYPE.get(self.type, str(self.type))

    def ip(self) -> Optional[str]:
        """Return ``data`` when it is an IP literal, else None."""
        try:
            ipaddress.ip_address(self.data.strip())
        except ValueError:
            return None
        return self.data.strip()


class DoHResponse(BaseModel):
    """
    Brief: Decoded DNS JSON document (Google/Cloudflare/Quad9 dialect).

    Notes:
      - ``Status`` is required; it is the only success discriminant.
      - Header flags default to False and sections to empty lists.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: int = Field(alias="Status")
    tc: bool = Field(default=False, alias="TC")
    rd: bool = Field(default=False, alias="RD")
    ra: bool = Field(default=False, alias="RA")
    ad: bool = Field(default=False, alias="AD")
    cd: bool = Field(default=False, alias="CD")
    question: List[Question] = Field(default_factory=list, alias="Question")
    answer: List[Answer] = Field(default_factory=list, alias="Answer")

    def addresses(self) -> List[str]:
        """Brief: IP literals from the answer section, in answer order.

        Outputs:
          - list[str]; records such as CNAME targets are dropped.

        Example:
          >>> r = DoHResponse.model_validate({"Status": 0, "Answer": [
          ...     {"type": 5, "data": "alias.example."},
          ...     {"type": 1, "data": "93.184.216.34"}]})
          >>> r.addresses()
          ['93.184.216.34']
        """
        out: List[str] = []
        for ans in self.answer:
            ip = ans.ip()
            if ip is not None:
                out.append(ip)
        return out


def decode_response(body: bytes) -> DoHResponse:
    """Decode a DNS JSON body, raising DoHDecodeError on malformed input."""
    try:
        return DoHResponse.model_validate_json(body)
    except ValidationError as exc:
        raise DoHDecodeError(f"malformed DNS JSON response: {exc}") from exc


def doh_json_query(
    name: str,
    url: str,
    *,
    qtype: str = "A",
    connect_timeout: float = 5.0,
    read_timeout: float = 5.0,
    verify: bool = True,
    cancel: Optional[threading.Event] = None,
) -> List[str]:
    """
    Brief: Resolve ``name`` against one DoH JSON endpoint.

    Inputs:
    - name: Domain name to query
    - url: Endpoint URL, e.g. https://1.1.1.1/dns-query
    - qtype: Record type mnemonic sent as the ``type`` parameter
    - connect_timeout / read_timeout: Per-phase timeouts in seconds
    - verify: Verify TLS certificates
    - cancel: Optional event; when already set the query is skipped

    Outputs:
    - list[str]: Non-empty list of IP literals

    Notes:
    - Raises DoHTransportError for network failures and non-200 responses,
      DoHDecodeError for malformed JSON, UnresolvedNameError for Status != 0
      and NoAddressError when no answer carries an IP literal.

    Example:
        >>> try:
        ...     doh_json_query('example.com', 'https://example.invalid/dns-query')
        ... except DoHTransportError:
        ...     pass
    """
    if cancel is not None and cancel.is_set():
        raise QueryCancelledError(f"query for {name} via {url} cancelled")

    headers = {
        "Accept": DNS_JSON,
        "User-Agent": f"dohrace/{DOHRACE_VERSION}",
        "Connection": "close",
    }
    params = {"name": name, "type": qtype}

    # A throwaway session keeps racing queries from sharing pooled sockets.
    with requests.Session() as session:
        try:
            resp = session.get(
                url,
                params=params,
                headers=headers,
                timeout=(connect_timeout, read_timeout),
                verify=verify,
                allow_redirects=False,
            )
            with resp:
                status_code = resp.status_code
                body = resp.content
        except requests.RequestException as exc:
            raise DoHTransportError(f"request to {url} failed: {exc}") from exc

    if status_code != 200:
        raise DoHTransportError(
            f"HTTPS server returned with non-OK code {status_code}",
            status_code=status_code,
        )

    decoded = decode_response(body)
    if decoded.status != 0:
        raise UnresolvedNameError(name, decoded.status)

    addrs = decoded.addresses()
    if not addrs:
        raise NoAddressError(f"{url} returned no IP addresses for {name}")

    logger.debug(
        "DoH %s %s via %s -> %s",
        qtype,
        name,
        url,
        ", ".join(f"{a.type_name} {a.data}" for a in decoded.answer),
    )
    return addrs
