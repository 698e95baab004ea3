from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from storefront.cart.local_storage import read_cached_postal_code
from storefront.catalog.products import ProductCatalog
from storefront.checkout.models import CustomerProfile, OrderDraft, ShippingRate
from storefront.core.errors import TransientProviderError, ValidationError
from storefront.shipping.providers import ShippingRateProvider

logger = logging.getLogger(__name__)

LIMITED_OPTIONS_NOTICE = "limited shipping options"
TEMPORARY_RATES_NOTICE = "using temporary shipping rates"
HTML_ERROR_MARKERS = ("<!doctype", "<html")

SYNTHETIC_RATES: tuple[ShippingRate, ...] = (
    ShippingRate(provider="internal", service_code="INST", service_name="Instan", cost=15000, etd="1-2 hari"),
    ShippingRate(provider="internal", service_code="REG", service_name="Reguler", cost=10000, etd="2-4 hari"),
)

RateKey = tuple[str, tuple[str, ...]]


def normalize_service_tokens(raw: Any) -> list[str]:
    """Allowed services come as a list or a comma separated string."""
    if raw is None:
        return []
    if isinstance(raw, str):
        parts: Iterable[Any] = raw.split(",")
    elif isinstance(raw, (list, tuple, set)):
        parts = raw
    else:
        return []
    tokens = []
    for part in parts:
        token = str(part).strip().lower() if part is not None else ""
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def _rate_matches(rate: ShippingRate, token: str) -> bool:
    for candidate in (rate.service_name, rate.service_code):
        value = (candidate or "").strip().lower()
        if value and (token in value or value in token):
            return True
    return False


def filter_rates(rates: list[ShippingRate], allowed: list[str]) -> tuple[list[ShippingRate], bool]:
    """Returns (rates, limited). ``limited`` is set when the allow-list matched nothing."""
    if not allowed:
        return list(rates), False
    kept = [rate for rate in rates if any(_rate_matches(rate, token) for token in allowed)]
    if not kept:
        return list(rates), True
    return kept, False


def is_transient_failure(exc: BaseException) -> bool:
    if isinstance(exc, TransientProviderError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in HTML_ERROR_MARKERS)


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()


@dataclass
class ShippingQuote:
    rates: list[ShippingRate]
    selected: ShippingRate | None
    key: RateKey
    notices: list[str] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "rates": [rate.model_dump() for rate in self.rates],
            "selected": self.selected.model_dump() if self.selected else None,
            "notices": list(self.notices),
            "fallback": self.fallback,
        }


class ShippingRateResolver:
    """Ranked shipping options for a draft, with a synthetic fallback table.

    ``refresh`` remembers the last ``(postal code, product ids)`` key and only
    fetches again when it changes; a newer key cancels the older request.
    """

    def __init__(
        self,
        provider: ShippingRateProvider,
        catalog: ProductCatalog,
        weight_grams: int = 1000,
        profile_cache_path: Path | None = None,
        origin_postal: str | None = None,
    ):
        self.provider = provider
        self.catalog = catalog
        self.weight_grams = weight_grams
        self.profile_cache_path = profile_cache_path
        self.origin_postal = origin_postal
        self._key: RateKey | None = None
        self._quote: ShippingQuote | None = None
        self._task: asyncio.Task | None = None
        self._token: CancellationToken | None = None

    @staticmethod
    def rate_key(postal_code: str, draft: OrderDraft) -> RateKey:
        return postal_code, tuple(draft.product_ids)

    def resolve_postal_code(self, profile: CustomerProfile | None = None) -> str | None:
        if profile is not None and profile.postal_code and profile.postal_code.strip():
            return profile.postal_code.strip()
        return read_cached_postal_code(self.profile_cache_path)

    async def allowed_services(self, draft: OrderDraft) -> list[str]:
        product_ids = draft.product_ids
        if len(product_ids) != 1:
            return []
        product = await self.catalog.get_product(product_ids[0])
        if product is None:
            return []
        return normalize_service_tokens(product.shipping_services)

    async def resolve(
        self,
        draft: OrderDraft,
        profile: CustomerProfile | None = None,
        postal_code: str | None = None,
        token: CancellationToken | None = None,
    ) -> ShippingQuote:
        postal = (postal_code or "").strip() or self.resolve_postal_code(profile)
        if not postal:
            raise ValidationError("destination postal code is required")

        allowed = await self.allowed_services(draft)
        notices: list[str] = []
        fallback = False
        try:
            rates = await self.provider.get_rates(postal, self.weight_grams, self.origin_postal)
        except Exception as exc:
            if not is_transient_failure(exc):
                raise
            logger.warning("shipping provider unavailable, using synthetic rates: %s", exc)
            rates = list(SYNTHETIC_RATES)
            fallback = True
            notices.append(TEMPORARY_RATES_NOTICE)
        if token is not None:
            token.raise_if_cancelled()

        ranked, limited = filter_rates(rates, allowed)
        if limited:
            notices.append(LIMITED_OPTIONS_NOTICE)
        return ShippingQuote(
            rates=ranked,
            selected=ranked[0] if ranked else None,
            key=self.rate_key(postal, draft),
            notices=notices,
            fallback=fallback,
        )

    async def confirm(
        self,
        draft: OrderDraft,
        rate: ShippingRate,
        profile: CustomerProfile | None = None,
        postal_code: str | None = None,
    ) -> ShippingRate:
        """Match a chosen rate against a fresh quote; the quoted rate is returned, never the caller's."""
        quote = await self.resolve(draft, profile=profile, postal_code=postal_code)
        wanted = (rate.provider.strip().lower(), rate.service_code.strip().lower())
        for offered in quote.rates:
            if (offered.provider.strip().lower(), offered.service_code.strip().lower()) == wanted:
                if offered.cost != rate.cost:
                    logger.warning(
                        "submitted shipping cost %s for %s/%s replaced by quoted %s",
                        rate.cost,
                        offered.provider,
                        offered.service_code,
                        offered.cost,
                    )
                return offered
        raise ValidationError(f"shipping rate {rate.provider}/{rate.service_code} is not offered for this order")

    async def refresh(
        self,
        draft: OrderDraft,
        profile: CustomerProfile | None = None,
        postal_code: str | None = None,
    ) -> ShippingQuote | None:
        """Returns None when no postal code is known or the request was superseded."""
        postal = (postal_code or "").strip() or self.resolve_postal_code(profile)
        if not postal:
            return None

        key = self.rate_key(postal, draft)
        if key == self._key:
            if self._quote is not None:
                return self._quote
            if self._task is not None and not self._task.done():
                return await self._await(self._task, self._token)

        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

        token = CancellationToken()
        self._key = key
        self._quote = None
        self._token = token
        self._task = asyncio.ensure_future(self.resolve(draft, postal_code=postal, token=token))
        return await self._await(self._task, token)

    async def _await(self, task: asyncio.Task, token: CancellationToken | None) -> ShippingQuote | None:
        try:
            quote = await task
        except asyncio.CancelledError:
            if token is not None and token.cancelled:
                return None
            raise
        if token is not None and token.cancelled:
            return None
        if task is self._task:
            self._quote = quote
        return quote

    def invalidate(self) -> None:
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._key = None
        self._quote = None
        self._task = None
        self._token = None
