from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from storefront.core.config import Settings, get_settings
from storefront.core.errors import StorefrontError, TransientProviderError

logger = logging.getLogger(__name__)

ALLOWED_PAYMENT_METHODS = {
    "CARD",
    "BANK_TRANSFER",
    "RETAIL_OUTLET",
    "EWALLET",
    "QRIS",
    "DIRECT_DEBIT",
    "PAYLATER",
}
PAYMENT_METHOD_ALIASES = {
    "e-wallet": "EWALLET",
    "ewallet": "EWALLET",
    "wallet": "EWALLET",
    "qris": "QRIS",
    "bank_transfer": "BANK_TRANSFER",
    "bank-transfer": "BANK_TRANSFER",
}


class PaymentProviderError(StorefrontError):
    code = "payment_provider_error"
    status_code = 502


def normalize_payment_method(method: str | None) -> str | None:
    """Map a friendly method name to a provider enum; unknown values yield None."""
    if not method:
        return None
    value = str(method).strip()
    mapped = PAYMENT_METHOD_ALIASES.get(value.lower(), value.upper())
    return mapped if mapped in ALLOWED_PAYMENT_METHODS else None


def parse_dry_run_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true"}


class PaymentSessionRequest(BaseModel):
    """Either a persisted ``order_id`` or, in test mode, an inline ``order``."""

    order_id: str | None = None
    order: dict[str, Any] | None = None
    return_url: str | None = None
    payment_method: str | None = None
    payment_channel: str | None = None
    test: bool = False

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PaymentSession(BaseModel):
    model_config = ConfigDict(extra="allow")

    provider: str = "unknown"
    session_id: str | None = None
    checkout_url: str | None = None
    url: str | None = None

    @property
    def redirect_url(self) -> str | None:
        return self.url or self.checkout_url


class PaymentProvider(Protocol):
    provider_name: str

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession:
        ...


class HttpPaymentProvider:
    provider_name = "http"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.payment_api_url.rstrip("/")
        self.timeout = max(1, self.settings.payment_timeout_seconds)

    async def _request(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(
                f"{self.base_url}/api/payments/create-session",
                json=payload,
                headers={"Content-Type": "application/json"},
            )

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession:
        try:
            response = await self._request(request.to_payload())
        except httpx.TransportError as exc:
            raise TransientProviderError(f"payment provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error("create payment session failed status=%s", response.status_code)
            raise PaymentProviderError(
                response.text or f"Failed to create payment session ({response.status_code})"
            )
        try:
            return PaymentSession.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise TransientProviderError("Invalid payment session response") from exc


class SimulatedPaymentProvider:
    """Issues local sessions without a provider; every request is recorded."""

    provider_name = "simulated"

    def __init__(self, checkout_base_url: str | None = "http://localhost:8000/simulated-checkout", redirect: bool = True):
        self.checkout_base_url = (checkout_base_url or "").rstrip("/")
        self.redirect = redirect
        self.requests: list[PaymentSessionRequest] = []

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession:
        self.requests.append(request)
        session_id = f"sim-{uuid.uuid4().hex[:12]}"
        method = normalize_payment_method(request.payment_method)
        extra = {"payment_methods": [method]} if method else {}
        if not self.redirect or not self.checkout_base_url:
            return PaymentSession(provider=self.provider_name, session_id=session_id, **extra)
        url = f"{self.checkout_base_url}/{session_id}"
        return PaymentSession(provider=self.provider_name, session_id=session_id, checkout_url=url, url=url, **extra)


def build_payment_provider(settings: Settings | None = None) -> PaymentProvider:
    cfg = settings or get_settings()
    if cfg.payment_backend == "http":
        return HttpPaymentProvider(cfg)
    return SimulatedPaymentProvider()
