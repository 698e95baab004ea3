from __future__ import annotations

import asyncio

import pytest

from storefront.catalog.products import Product
from storefront.checkout.models import CustomerProfile, DraftLine, OrderDraft, ShippingRate
from storefront.core.errors import TransientProviderError, ValidationError
from storefront.shipping import (
    LIMITED_OPTIONS_NOTICE,
    TEMPORARY_RATES_NOTICE,
    ShippingProviderError,
    ShippingRateResolver,
    normalize_service_tokens,
)

INSTAN = ShippingRate(provider="gosend", service_code="INSTANT", service_name="Instan", cost=20000, etd="3 jam")
REGULER = ShippingRate(provider="jne", service_code="REG", service_name="Reguler", cost=9000, etd="2-3 hari")


class FakeProvider:
    provider_name = "fake"

    def __init__(self, rates=None, error: Exception | None = None, delay: float = 0):
        self.rates = list(rates or [INSTAN, REGULER])
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def get_rates(self, destination_postal, weight_grams, origin_postal=None):
        self.calls.append(destination_postal)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.rates)


class FakeCatalog:
    def __init__(self, services=None):
        self.services = services

    async def get_product(self, product_id):
        return Product(id=product_id, name=product_id, price=10000, shipping_services=self.services)

    async def get_products(self, product_ids):
        return [await self.get_product(pid) for pid in product_ids]


def _draft(*product_ids: str) -> OrderDraft:
    return OrderDraft(
        source="cart",
        lines=[DraftLine(product_id=pid, product_name=pid, unit_price=10000, quantity=1) for pid in product_ids],
    )


def _resolve(provider, services=None, draft=None, **kwargs):
    resolver = ShippingRateResolver(provider, FakeCatalog(services))
    return asyncio.run(resolver.resolve(draft or _draft("A"), postal_code="12190", **kwargs))


def test_service_tokens_accept_lists_and_comma_strings():
    assert normalize_service_tokens([" Reguler ", "YES", ""]) == ["reguler", "yes"]
    assert normalize_service_tokens("reguler, Best ,") == ["reguler", "best"]
    assert normalize_service_tokens(None) == []
    assert normalize_service_tokens(42) == []


def test_allow_list_keeps_matching_rates_only():
    quote = _resolve(FakeProvider(), services=["Reguler"])

    assert [rate.service_name for rate in quote.rates] == ["Reguler"]
    assert quote.selected == REGULER
    assert quote.notices == []


def test_allow_list_matches_by_substring_in_either_direction():
    quote = _resolve(FakeProvider(), services="jne reguler")
    assert [rate.service_name for rate in quote.rates] == ["Reguler"]


def test_allow_list_matching_nothing_falls_back_to_full_list_with_notice():
    quote = _resolve(FakeProvider(), services=["XYZ"])

    assert [rate.service_name for rate in quote.rates] == ["Instan", "Reguler"]
    assert quote.notices == [LIMITED_OPTIONS_NOTICE]
    assert quote.selected == INSTAN


def test_allow_list_is_ignored_for_multi_product_drafts():
    quote = _resolve(FakeProvider(), services=["Reguler"], draft=_draft("A", "B"))
    assert len(quote.rates) == 2


def test_html_error_page_switches_to_synthetic_rates():
    provider = FakeProvider(error=ShippingProviderError("Failed to fetch shipping rates (502): <!DOCTYPE html><html>"))
    quote = _resolve(provider)

    assert quote.fallback is True
    assert [(rate.service_name, rate.cost) for rate in quote.rates] == [("Instan", 15000), ("Reguler", 10000)]
    assert quote.notices == [TEMPORARY_RATES_NOTICE]


def test_synthetic_rates_get_the_same_allow_list_filter():
    quote = _resolve(FakeProvider(error=TransientProviderError("Invalid shipping rates response")), services=["reguler"])

    assert [rate.service_code for rate in quote.rates] == ["REG"]
    assert quote.selected.cost == 10000


def test_other_provider_failures_block_rate_selection():
    provider = FakeProvider(error=ShippingProviderError("Failed to fetch shipping rates (400): unknown postal code"))
    with pytest.raises(ShippingProviderError):
        _resolve(provider)


def test_postal_code_comes_from_profile_then_cached_copy(tmp_path):
    cache = tmp_path / "rp_profile.json"
    cache.write_text('{"postal_code": "40115"}', encoding="utf-8")
    provider = FakeProvider()
    resolver = ShippingRateResolver(provider, FakeCatalog(), profile_cache_path=cache)

    asyncio.run(resolver.resolve(_draft("A"), profile=CustomerProfile(user_id="u1", postal_code="12190")))
    asyncio.run(resolver.resolve(_draft("A"), profile=CustomerProfile(user_id="u1")))

    assert provider.calls == ["12190", "40115"]


def test_missing_postal_code_is_a_validation_error():
    resolver = ShippingRateResolver(FakeProvider(), FakeCatalog())
    with pytest.raises(ValidationError):
        asyncio.run(resolver.resolve(_draft("A")))
    assert asyncio.run(resolver.refresh(_draft("A"))) is None


def test_refresh_is_keyed_on_postal_code_and_product_ids():
    provider = FakeProvider()
    resolver = ShippingRateResolver(provider, FakeCatalog())

    async def scenario():
        first = await resolver.refresh(_draft("A", "B"), postal_code="12190")
        # same ids in another order, fresh draft object
        same = await resolver.refresh(_draft("B", "A"), postal_code="12190")
        other = await resolver.refresh(_draft("A"), postal_code="12190")
        return first, same, other

    first, same, other = asyncio.run(scenario())
    assert same is first
    assert other is not first
    assert len(provider.calls) == 2


def test_superseded_refresh_is_discarded():
    provider = FakeProvider(delay=0.05)
    resolver = ShippingRateResolver(provider, FakeCatalog())

    async def scenario():
        stale = asyncio.ensure_future(resolver.refresh(_draft("A"), postal_code="12190"))
        await asyncio.sleep(0)
        fresh = await resolver.refresh(_draft("A"), postal_code="40115")
        return await stale, fresh

    stale, fresh = asyncio.run(scenario())
    assert stale is None
    assert fresh is not None
    assert fresh.key == ("40115", ("A",))


def test_confirm_returns_the_quoted_rate_not_the_submitted_one():
    resolver = ShippingRateResolver(FakeProvider(), FakeCatalog())
    tampered = REGULER.model_copy(update={"cost": 0})

    confirmed = asyncio.run(resolver.confirm(_draft("A"), tampered, postal_code="12190"))

    assert confirmed == REGULER
    assert confirmed.cost == 9000


def test_confirm_rejects_a_rate_outside_the_quote():
    resolver = ShippingRateResolver(FakeProvider(), FakeCatalog(services=["reguler"]))
    unknown = ShippingRate(provider="gosend", service_code="INSTANT", service_name="Instan", cost=20000, etd="3 jam")

    with pytest.raises(ValidationError):
        asyncio.run(resolver.confirm(_draft("A"), unknown, postal_code="12190"))
