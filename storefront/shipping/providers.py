from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from storefront.checkout.models import ShippingRate
from storefront.core.config import Settings, get_settings
from storefront.core.errors import StorefrontError, TransientProviderError

logger = logging.getLogger(__name__)

INVALID_RESPONSE = "Invalid shipping rates response"


class ShippingProviderError(StorefrontError):
    """The rate provider answered with an error status."""

    code = "shipping_provider_error"
    status_code = 502


class ShippingRateProvider(Protocol):
    provider_name: str

    async def get_rates(
        self,
        destination_postal: str,
        weight_grams: int,
        origin_postal: str | None = None,
    ) -> list[ShippingRate]:
        ...


def parse_rates(payload: Any) -> list[ShippingRate]:
    if isinstance(payload, dict):
        payload = payload.get("rates", payload.get("data"))
    if not isinstance(payload, list):
        raise TransientProviderError(INVALID_RESPONSE)
    try:
        return [ShippingRate.model_validate(item) for item in payload]
    except PydanticValidationError as exc:
        raise TransientProviderError(f"{INVALID_RESPONSE}: {exc.error_count()} invalid rate(s)") from exc


class HttpShippingRateProvider:
    provider_name = "http"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.shipping_api_url.rstrip("/")
        self.timeout = max(1, self.settings.shipping_timeout_seconds)

    async def _request(self, params: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(f"{self.base_url}/api/shipping/rates", params=params)

    async def get_rates(
        self,
        destination_postal: str,
        weight_grams: int,
        origin_postal: str | None = None,
    ) -> list[ShippingRate]:
        params = {"to_postal": destination_postal, "weight": str(weight_grams)}
        if origin_postal:
            params["origin_postal"] = origin_postal
        try:
            response = await self._request(params)
        except httpx.TransportError as exc:
            raise TransientProviderError(f"shipping provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error("shipping rates failed status=%s", response.status_code)
            raise ShippingProviderError(
                f"Failed to fetch shipping rates ({response.status_code}): {response.text[:500]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientProviderError(f"{INVALID_RESPONSE}: {response.text[:200]}") from exc
        return parse_rates(payload)


class StaticShippingRateProvider:
    """Fixed rate table for local development and demos."""

    provider_name = "static"

    def __init__(self, rates: list[ShippingRate] | None = None):
        self.rates = list(rates) if rates is not None else [
            ShippingRate(provider="jne", service_code="YES", service_name="JNE YES", cost=22000, etd="1 hari"),
            ShippingRate(provider="jne", service_code="REG", service_name="JNE Reguler", cost=11000, etd="2-3 hari"),
            ShippingRate(provider="sicepat", service_code="BEST", service_name="SiCepat BEST", cost=18000, etd="1 hari"),
        ]

    async def get_rates(
        self,
        destination_postal: str,
        weight_grams: int,
        origin_postal: str | None = None,
    ) -> list[ShippingRate]:
        return list(self.rates)


def build_shipping_provider(settings: Settings | None = None) -> ShippingRateProvider:
    cfg = settings or get_settings()
    if cfg.shipping_backend == "http":
        return HttpShippingRateProvider(cfg)
    return StaticShippingRateProvider()
