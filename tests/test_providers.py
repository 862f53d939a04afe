"""
Brief: Tests for the provider registry and endpoint flattening.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from dohrace.providers import DEFAULT_PROVIDERS, Endpoint, ProviderRegistry


def test_default_registry_flattens_every_provider_in_order():
    reg = ProviderRegistry()
    eps = reg.endpoints()
    assert reg.names() == ["cloudflare", "google", "quad9"]
    assert len(eps) == sum(len(v) for v in DEFAULT_PROVIDERS.values())
    assert eps[0] == Endpoint("cloudflare", "https://1.1.1.1/dns-query")
    assert [e.provider for e in eps][-3:] == ["quad9"] * 3


def test_curated_subset_and_unknown_provider():
    reg = ProviderRegistry()
    assert {e.provider for e in reg.endpoints(["quad9"])} == {"quad9"}
    with pytest.raises(KeyError):
        reg.endpoints(["nope"])


def test_from_mapping_dedupes_and_accepts_single_string():
    reg = ProviderRegistry.from_mapping(
        {
            "a": "https://a.example/dns-query",
            "b": ["https://b.example/resolve", "https://a.example/dns-query"],
        }
    )
    assert [e.url for e in reg.endpoints()] == [
        "https://a.example/dns-query",
        "https://b.example/resolve",
    ]


@pytest.mark.parametrize(
    "mapping",
    [
        {},
        {"a": []},
        {"a": [""]},
        {"a": ["ftp://a.example/"]},
        {"": ["https://a.example/"]},
    ],
)
def test_from_mapping_rejects_invalid_tables(mapping):
    with pytest.raises(ValueError):
        ProviderRegistry.from_mapping(mapping)


def test_registry_is_immutable():
    reg = ProviderRegistry.from_mapping({"a": ["https://a.example/dns-query"]})
    with pytest.raises(TypeError):
        reg.providers["b"] = ("https://b.example/",)
    with pytest.raises(AttributeError):
        reg.providers = {}
