"""Connection-time hook that dials DoH-resolved addresses.

Brief:
  ResolvingDialer.connect("host:port") resolves ``host`` through the racing
  resolver, picks one of the returned addresses and opens the TCP connection
  to it. DoH is an enhancement only: any resolution problem hands the
  original address to the system connector unchanged.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import time
from typing import Any, Callable, Optional, Sequence, Tuple

from urllib3.util import connection

logger = logging.getLogger(__name__)

DialFunc = Callable[..., socket.socket]


def split_host_port(address: str) -> Tuple[str, str]:
    """
    Brief: Split ``host:port`` or ``[v6]:port`` into its parts.

    Inputs:
      - address: network address string.

    Outputs:
      - (host, port) strings; brackets are removed from IPv6 literals.

    Raises:
      - ValueError: on a missing port, stray brackets or an unbracketed
        address with several colons.

    Example:
      >>> split_host_port("[::1]:443")
      ('::1', '443')
    """
    if not isinstance(address, str) or not address:
        raise ValueError("missing address")
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {address!r}")
        host = address[1:end]
        rest = address[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {address!r}")
        port = rest[1:]
    else:
        host, sep, port = address.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {address!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {address!r}")
        if "[" in host or "]" in host:
            raise ValueError(f"unexpected bracket in address {address!r}")
    if "[" in port or "]" in port or ":" in port:
        raise ValueError(f"bad port in address {address!r}")
    return host, port


def join_host_port(host: str, port: Any) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def dial_default(
    address: str,
    timeout: Any = None,
    source_address: Optional[Tuple[str, int]] = None,
    socket_options: Optional[Sequence[Tuple[int, int, Any]]] = None,
) -> socket.socket:
    """
    Brief: Open a TCP connection using the system resolver.

    Inputs:
      - address: ``host:port`` string.
      - timeout, source_address, socket_options: as accepted by
        urllib3.util.connection.create_connection.

    Outputs:
      - Connected socket.

    Raises:
      - OSError subclasses from the socket layer; a malformed address is
        reported as socket.gaierror.
    """
    try:
        host, port = split_host_port(address)
        port_num = int(port)
    except ValueError as exc:
        raise socket.gaierror(f"invalid address {address!r}: {exc}") from exc
    return connection.create_connection(
        (host, port_num),
        timeout,
        source_address=source_address,
        socket_options=socket_options,
    )


class AddressSelector:
    """
    Brief: Thread-safe selection state for picking one of several addresses.

    Inputs:
      - seed: optional starting value; defaults to time.time_ns().

    Outputs:
      - choose(addresses) -> one element of addresses.

    Notes:
      - index = seed mod len(addresses); the seed then advances by index + 1
        so repeated picks rotate instead of sticking at index 0.

    Example:
      >>> s = AddressSelector(seed=2)
      >>> s.choose(["a", "b"]), s.choose(["a", "b"])
      ('a', 'b')
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._seed = time.time_ns() if seed is None else int(seed)
        self._lock = threading.Lock()

    @property
    def seed(self) -> int:
        with self._lock:
            return self._seed

    def choose(self, addresses: Sequence[str]) -> str:
        if not addresses:
            raise ValueError("cannot choose from an empty address set")
        with self._lock:
            index = self._seed % len(addresses)
            self._seed += index + 1
        return addresses[index]


class ResolvingDialer:
    """
    Brief: Pluggable connector that substitutes a DoH-resolved IP for the host.

    Inputs:
      - resolver: object with resolve(name) -> list[str] (RacingResolver).
      - selector: AddressSelector shared by every dial through this dialer.
      - dial: system connector fallback, signature like dial_default.

    Outputs:
      - connect(address, ...) -> socket.socket
    """

    def __init__(
        self,
        resolver,
        *,
        selector: Optional[AddressSelector] = None,
        dial: DialFunc = dial_default,
    ) -> None:
        self.resolver = resolver
        self.selector = selector or AddressSelector()
        self._dial = dial

    def connect(
        self,
        address: str,
        timeout: Any = None,
        source_address: Optional[Tuple[str, int]] = None,
        socket_options: Optional[Sequence[Tuple[int, int, Any]]] = None,
    ) -> socket.socket:
        """
        Brief: Dial ``address``, resolving its host through DoH first.

        Inputs:
          - address: ``host:port`` target requested by the HTTP transport.
          - timeout, source_address, socket_options: forwarded to the connector.

        Outputs:
          - Connected socket.
        """
        kwargs = {
            "timeout": timeout,
            "source_address": source_address,
            "socket_options": socket_options,
        }
        try:
            host, port = split_host_port(address)
        except ValueError:
            return self._dial(address, **kwargs)

        if _is_ip_literal(host):
            return self._dial(address, **kwargs)

        try:
            addrs = self.resolver.resolve(host)
        except Exception as exc:  # any DoH failure falls back to the system resolver
            logger.debug("DoH resolution of %s failed, using system resolver: %s", host, exc)
            return self._dial(address, **kwargs)

        ip = self.selector.choose(addrs)
        logger.debug("Dialing %s via %s (%d candidates)", address, ip, len(addrs))
        return self._dial(join_host_port(ip, port), **kwargs)
