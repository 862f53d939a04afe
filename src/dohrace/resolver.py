"""Racing multi-provider DoH resolver.

Brief:
  Fans one DoH JSON query out per configured endpoint on a thread pool and
  returns the first non-empty address set. Losers report through their
  futures, so nothing blocks once the race is decided; queries that have not
  started yet see the shared cancel event and exit early.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import AllProvidersFailedError, NoAddressError, ResolveTimeoutError
from .providers import Endpoint
from .transports.doh_json import doh_json_query

logger = logging.getLogger(__name__)

DEFAULT_RESOLVE_TIMEOUT = 5.0

QueryFunc = Callable[[str, Endpoint, threading.Event], List[str]]


class RacingResolver:
    """
    Brief: Resolve names by racing every endpoint and keeping the first answer.

    Inputs:
      - endpoints: ordered Endpoint sequence (usually ProviderRegistry.endpoints()).
      - timeout: hard deadline for one resolve() call, in seconds.
      - query: optional callable (name, endpoint, cancel) -> list[str];
        defaults to doh_json_query with the configured per-phase timeouts.
      - connect_timeout / read_timeout / verify: forwarded to doh_json_query.

    Outputs:
      - Instance whose resolve() returns addresses from exactly one winner.

    Example:
      >>> r = RacingResolver([Endpoint("x", "https://x")], query=lambda n, e, c: ["192.0.2.1"])
      >>> r.resolve("example.com")
      ['192.0.2.1']
    """

    def __init__(
        self,
        endpoints: Sequence[Endpoint],
        *,
        timeout: float = DEFAULT_RESOLVE_TIMEOUT,
        query: Optional[QueryFunc] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 5.0,
        verify: bool = True,
    ) -> None:
        if timeout <= 0:
            raise ValueError("resolver timeout must be positive")
        self.endpoints: Tuple[Endpoint, ...] = tuple(endpoints)
        self.timeout = float(timeout)
        self.connect_timeout = float(connect_timeout)
        self.read_timeout = float(read_timeout)
        self.verify = bool(verify)
        self._query = query or self._doh_query

    def _doh_query(self, name: str, endpoint: Endpoint, cancel: threading.Event) -> List[str]:
        return doh_json_query(
            name,
            endpoint.url,
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            verify=self.verify,
            cancel=cancel,
        )

    def _run_one(self, name: str, endpoint: Endpoint, cancel: threading.Event) -> List[str]:
        addrs = list(self._query(name, endpoint, cancel) or [])
        if not addrs:
            raise NoAddressError(f"{endpoint.url} returned no IP addresses for {name}")
        return addrs

    def resolve(self, name: str) -> List[str]:
        """
        Brief: Race all endpoints for ``name``.

        Inputs:
          - name: domain name to resolve.

        Outputs:
          - list[str]: the winning endpoint's filtered IP literals.

        Raises:
          - ValueError: for an empty name.
          - ResolveTimeoutError: when the deadline passes with no winner.
          - AllProvidersFailedError: when every endpoint failed before the
            deadline (or none are configured); carries each endpoint's error.
        """
        if not name:
            raise ValueError("name must be a non-empty string")
        if not self.endpoints:
            raise AllProvidersFailedError(name, [])

        cancel = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=len(self.endpoints), thread_name_prefix="dohrace-resolve"
        )
        futures = {
            executor.submit(self._run_one, name, ep, cancel): ep for ep in self.endpoints
        }
        errors: List[Tuple[Endpoint, BaseException]] = []
        try:
            for fut in as_completed(futures, timeout=self.timeout):
                endpoint = futures[fut]
                exc = fut.exception()
                if exc is not None:
                    logger.debug("DoH endpoint %s failed for %s: %s", endpoint.url, name, exc)
                    errors.append((endpoint, exc))
                    continue
                logger.debug("DoH endpoint %s won the race for %s", endpoint.url, name)
                return fut.result()
        except FuturesTimeoutError:
            logger.warning(
                "Resolving %s timed out after %.1fs (%d of %d endpoints failed)",
                name,
                self.timeout,
                len(errors),
                len(self.endpoints),
            )
            raise ResolveTimeoutError(name, self.timeout) from None
        finally:
            cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)

        logger.warning("All %d DoH endpoints failed for %s", len(errors), name)
        raise AllProvidersFailedError(name, errors) from errors[0][1]

    lookup = resolve
