"""
Brief: Tests for the resolving dial hook, address splitting and selection state.

Inputs:
  - None

Outputs:
  - None
"""

import socket
import threading

import pytest

from dohrace.dialer import (
    AddressSelector,
    ResolvingDialer,
    dial_default,
    join_host_port,
    split_host_port,
)
from dohrace.errors import AllProvidersFailedError, ResolveTimeoutError


class _FakeResolver:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def resolve(self, name):
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        return self.result


class _RecordingDial:
    def __init__(self):
        self.calls = []
        self.sock = object()

    def __call__(self, address, **kwargs):
        self.calls.append((address, kwargs))
        return self.sock


@pytest.mark.parametrize(
    "address,expected",
    [
        ("example.com:443", ("example.com", "443")),
        ("192.0.2.1:80", ("192.0.2.1", "80")),
        ("[2001:db8::1]:8443", ("2001:db8::1", "8443")),
        (":53", ("", "53")),
    ],
)
def test_split_host_port(address, expected):
    assert split_host_port(address) == expected


@pytest.mark.parametrize(
    "address", ["example.com", "2001:db8::1", "[2001:db8::1", "[::1]80", "a]b:1", ""]
)
def test_split_host_port_rejects_malformed(address):
    with pytest.raises(ValueError):
        split_host_port(address)


def test_join_host_port_brackets_ipv6():
    assert join_host_port("192.0.2.1", 443) == "192.0.2.1:443"
    assert join_host_port("2001:db8::1", "443") == "[2001:db8::1]:443"


def test_selector_uses_seed_modulo_and_advances():
    sel = AddressSelector(seed=4)
    addrs = ["a", "b", "c"]
    assert sel.choose(addrs) == "b"  # 4 % 3 == 1
    assert sel.seed == 6
    assert sel.choose(addrs) == "a"  # 6 % 3 == 0
    assert sel.seed == 7


def test_selector_rejects_empty():
    with pytest.raises(ValueError):
        AddressSelector(seed=0).choose([])


def test_selector_is_consistent_under_concurrency():
    sel = AddressSelector(seed=10)

    def worker():
        for _ in range(500):
            sel.choose(["only"])

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sel.seed == 10 + 8 * 500


def test_resolver_failure_falls_back_to_original_address():
    resolver = _FakeResolver(error=AllProvidersFailedError("example.com", []))
    dial = _RecordingDial()
    dialer = ResolvingDialer(resolver, dial=dial)

    assert dialer.connect("example.com:443", timeout=2.0) is dial.sock
    assert resolver.calls == ["example.com"]
    assert dial.calls[0][0] == "example.com:443"
    assert dial.calls[0][1]["timeout"] == 2.0


@pytest.mark.parametrize(
    "error", [ResolveTimeoutError("example.com", 5), RuntimeError("unexpected")]
)
def test_any_resolver_error_is_non_fatal(error):
    dial = _RecordingDial()
    ResolvingDialer(_FakeResolver(error=error), dial=dial).connect("example.com:443")
    assert [a for a, _ in dial.calls] == ["example.com:443"]


def test_resolved_address_substituted_for_host():
    resolver = _FakeResolver(result=["192.0.2.10", "192.0.2.11"])
    dial = _RecordingDial()
    dialer = ResolvingDialer(resolver, selector=AddressSelector(seed=1), dial=dial)

    dialer.connect("example.com:443", timeout=3, source_address=("0.0.0.0", 0))
    address, kwargs = dial.calls[0]
    assert address == "192.0.2.11:443"
    assert kwargs["source_address"] == ("0.0.0.0", 0)


def test_ipv6_result_is_bracketed():
    dial = _RecordingDial()
    ResolvingDialer(_FakeResolver(result=["2001:db8::5"]), dial=dial).connect("example.com:80")
    assert dial.calls[0][0] == "[2001:db8::5]:80"


def test_malformed_address_goes_straight_to_default_dial():
    resolver = _FakeResolver(result=["192.0.2.1"])
    dial = _RecordingDial()
    ResolvingDialer(resolver, dial=dial).connect("no-port-here")
    assert resolver.calls == []
    assert dial.calls[0][0] == "no-port-here"


def test_ip_literal_host_skips_resolution():
    resolver = _FakeResolver(result=["192.0.2.1"])
    dial = _RecordingDial()
    ResolvingDialer(resolver, dial=dial).connect("198.51.100.3:443")
    assert resolver.calls == []
    assert dial.calls[0][0] == "198.51.100.3:443"


def test_dial_default_rejects_malformed_address():
    with pytest.raises(socket.gaierror):
        dial_default("missing-port")


def test_dial_default_connects(doh_stub):
    sock = dial_default(f"127.0.0.1:{doh_stub.port}", timeout=2)
    try:
        assert sock.getpeername()[1] == doh_stub.port
    finally:
        sock.close()
