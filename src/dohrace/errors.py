"""Exception types raised by dohrace.

Brief:
  Errors raised by a single DoH query stay local to the racing resolver; only
  ResolveTimeoutError and AllProvidersFailedError escape resolve(), and only
  FetchTimeoutError escapes fetch().
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class DoHRaceError(Exception):
    """Base class for every dohrace error."""


class DoHError(DoHRaceError):
    """
    Brief: A single DNS-over-HTTPS JSON query failed.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """


class DoHTransportError(DoHError):
    """
    Brief: The endpoint could not be reached or answered with a non-200 status.

    Inputs:
    - message: Description of the error
    - status_code: HTTP status when the endpoint answered, else None
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DoHDecodeError(DoHError):
    """The response body was not a valid DNS JSON document."""


class UnresolvedNameError(DoHError):
    """The endpoint answered with a non-zero DNS status (NXDOMAIN, SERVFAIL, ...)."""

    def __init__(self, name: str, status: int):
        super().__init__(f"{name}'s server IP address could not be found (status {status})")
        self.name = name
        self.status = status


class NoAddressError(DoHError):
    """The answer section held no record whose data is an IP literal."""


class QueryCancelledError(DoHError):
    """The race was already decided before this query started."""


class ResolveTimeoutError(DoHRaceError, TimeoutError):
    """No endpoint produced an address set before the resolver deadline."""

    def __init__(self, name: str, timeout: float):
        super().__init__(f"timed out resolving {name} after {timeout:g}s")
        self.name = name
        self.timeout = timeout


class AllProvidersFailedError(DoHRaceError):
    """
    Brief: Every endpoint in the race failed before the deadline.

    Inputs:
    - name: Queried domain name
    - errors: (endpoint, exception) pairs in completion order

    Outputs:
    - Exception instance whose message summarizes each failure
    """

    def __init__(self, name: str, errors: List[Tuple[object, BaseException]]):
        self.name = name
        self.errors = list(errors)
        if not self.errors:
            message = f"no DoH endpoints configured to resolve {name}"
        else:
            parts = "; ".join(f"{getattr(ep, 'url', ep)}: {err}" for ep, err in self.errors)
            message = f"all DoH providers failed for {name}: {parts}"
        super().__init__(message)


class FetchTimeoutError(DoHRaceError, TimeoutError):
    """No racing fetch attempt completed successfully in time."""
