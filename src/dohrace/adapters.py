"""requests/urllib3 integration for the resolving dial hook.

Brief:
  ResolvingHTTPAdapter installs connection classes whose socket creation is
  delegated to a ResolvingDialer. Only the TCP peer changes: the HTTP Host
  header, TLS SNI and certificate checks keep using the requested hostname.
"""

from __future__ import annotations

import sys
from socket import gaierror
from socket import timeout as SocketTimeout
from typing import Dict

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ConnectTimeoutError, NameResolutionError, NewConnectionError

from .dialer import ResolvingDialer, join_host_port


class _DialHookMixin:
    """Replaces urllib3's socket creation with ResolvingDialer.connect."""

    dialer: ResolvingDialer

    def _new_conn(self):
        try:
            sock = self.dialer.connect(
                join_host_port(self._dns_host, self.port),
                timeout=self.timeout,
                source_address=self.source_address,
                socket_options=self.socket_options,
            )
        except gaierror as e:
            raise NameResolutionError(self.host, self, e) from e
        except SocketTimeout as e:
            raise ConnectTimeoutError(
                self,
                f"Connection to {self.host} timed out. (connect timeout={self.timeout})",
            ) from e
        except OSError as e:
            raise NewConnectionError(
                self, f"Failed to establish a new connection: {e}"
            ) from e

        sys.audit("http.client.connect", self, self.host, self.port)
        return sock


def resolving_pool_classes(dialer: ResolvingDialer) -> Dict[str, type]:
    """
    Brief: Build urllib3 pool classes bound to ``dialer``.

    Inputs:
      - dialer: ResolvingDialer used for every new connection.

    Outputs:
      - dict mapping "http"/"https" to connection pool classes, suitable for
        PoolManager.pool_classes_by_scheme.
    """
    http_conn = type(
        "ResolvingHTTPConnection", (_DialHookMixin, HTTPConnection), {"dialer": dialer}
    )
    https_conn = type(
        "ResolvingHTTPSConnection", (_DialHookMixin, HTTPSConnection), {"dialer": dialer}
    )
    return {
        "http": type(
            "ResolvingHTTPConnectionPool", (HTTPConnectionPool,), {"ConnectionCls": http_conn}
        ),
        "https": type(
            "ResolvingHTTPSConnectionPool", (HTTPSConnectionPool,), {"ConnectionCls": https_conn}
        ),
    }


class ResolvingHTTPAdapter(HTTPAdapter):
    """
    Brief: requests transport adapter dialing through a ResolvingDialer.

    Inputs:
      - dialer: ResolvingDialer instance.
      - **kwargs: forwarded to requests.adapters.HTTPAdapter.

    Outputs:
      - Adapter to mount on a requests.Session.

    Example:
      >>> session = requests.Session()                         # doctest: +SKIP
      >>> session.mount("https://", ResolvingHTTPAdapter(dialer))  # doctest: +SKIP

    Notes:
      - Requests routed through a proxy dial the proxy with the system
        resolver; the hook only applies to direct connections.
    """

    def __init__(self, dialer: ResolvingDialer, **kwargs) -> None:
        self.dialer = dialer
        self._pool_classes = resolving_pool_classes(dialer)
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = dict(self._pool_classes)

