"""Racing HTTP fetch built on the resolving dial hook.

Brief:
  RacingClient.fetch() runs the same request on several threads at once, each
  through a fresh requests.Session whose adapter dials DoH-resolved
  addresses, and returns the body of the first attempt that succeeds.
  Module-level lookup()/fetch() use a shared default client.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import List, Optional, Union

import requests

from .adapters import ResolvingHTTPAdapter
from .dialer import AddressSelector, ResolvingDialer
from .errors import FetchTimeoutError
from .providers import ProviderRegistry
from .resolver import RacingResolver

logger = logging.getLogger(__name__)

DEFAULT_FETCH_ATTEMPTS = 20
DEFAULT_FETCH_TIMEOUT = 3.0

RequestLike = Union[requests.Request, requests.PreparedRequest]


class _FetchCancelled(Exception):
    """Raised inside an attempt once another attempt has won."""


class RacingClient:
    """
    Brief: Fetch a request over several concurrent network paths.

    Inputs:
      - resolver: RacingResolver used by every attempt's dial hook.
      - attempts: number of concurrent executions per fetch().
      - timeout: overall deadline for fetch(), in seconds.
      - connect_timeout / read_timeout: per-attempt requests timeouts.
      - verify: TLS verification flag passed to requests.
      - selector: optional AddressSelector shared by all dials.

    Outputs:
      - Instance exposing fetch(), fetch_text() and lookup().
    """

    def __init__(
        self,
        resolver: RacingResolver,
        *,
        attempts: int = DEFAULT_FETCH_ATTEMPTS,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        connect_timeout: float = 5.0,
        read_timeout: float = 5.0,
        verify: bool = True,
        selector: Optional[AddressSelector] = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        if timeout <= 0:
            raise ValueError("fetch timeout must be positive")
        self.resolver = resolver
        self.attempts = int(attempts)
        self.timeout = float(timeout)
        self.connect_timeout = float(connect_timeout)
        self.read_timeout = float(read_timeout)
        self.verify = verify
        self.dialer = ResolvingDialer(resolver, selector=selector)

    def lookup(self, name: str) -> List[str]:
        return self.resolver.resolve(name)

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        adapter = ResolvingHTTPAdapter(self.dialer, pool_connections=1, pool_maxsize=1)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _attempt(self, prepared: requests.PreparedRequest, cancel: threading.Event) -> bytes:
        if cancel.is_set():
            raise _FetchCancelled()
        with self._new_session() as session:
            resp = session.send(
                prepared.copy(),
                stream=True,
                timeout=(self.connect_timeout, self.read_timeout),
                verify=self.verify,
            )
            with resp:
                resp.raise_for_status()
                chunks = []
                for chunk in resp.iter_content(chunk_size=16384):
                    if cancel.is_set():
                        raise _FetchCancelled()
                    chunks.append(chunk)
        return b"".join(chunks)

    def fetch(self, request: RequestLike) -> bytes:
        """
        Brief: Race ``attempts`` executions of ``request``; first success wins.

        Inputs:
          - request: requests.Request or requests.PreparedRequest. Bodies
            must be re-sendable (bytes/str), since every attempt sends a copy.

        Outputs:
          - bytes: body of the winning response (status < 400).

        Raises:
          - FetchTimeoutError: when no attempt succeeds before the deadline,
            or every attempt has already failed.
        """
        prepared = request.prepare() if isinstance(request, requests.Request) else request
        cancel = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self.attempts, thread_name_prefix="dohrace-fetch"
        )
        futures = [
            executor.submit(self._attempt, prepared, cancel) for _ in range(self.attempts)
        ]
        try:
            for fut in as_completed(futures, timeout=self.timeout):
                exc = fut.exception()
                if exc is None:
                    return fut.result()
                logger.debug("Fetch attempt for %s lost: %s", prepared.url, exc)
        except FuturesTimeoutError:
            logger.warning("Fetching %s timed out after %.1fs", prepared.url, self.timeout)
            raise FetchTimeoutError(
                f"time out i/o: no response from {prepared.url} within {self.timeout:g}s"
            ) from None
        finally:
            cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)

        logger.warning("All %d fetch attempts failed for %s", self.attempts, prepared.url)
        raise FetchTimeoutError(
            f"time out i/o: all {self.attempts} attempts to fetch {prepared.url} failed"
        )

    def fetch_text(self, request: RequestLike, encoding: str = "utf-8") -> str:
        return self.fetch(request).decode(encoding, errors="replace")


_default_client: Optional[RacingClient] = None
_default_lock = threading.Lock()


def default_client() -> RacingClient:
    """Return the process-wide client over DEFAULT_PROVIDERS, building it once."""
    global _default_client
    with _default_lock:
        if _default_client is None:
            resolver = RacingResolver(ProviderRegistry().endpoints())
            _default_client = RacingClient(resolver)
        return _default_client


def lookup(name: str) -> List[str]:
    return default_client().lookup(name)


def fetch(request: RequestLike) -> bytes:
    return default_client().fetch(request)
