from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Literal

from fastapi import Header, HTTPException
from pydantic import BaseModel

from storefront.core.config import get_settings


Role = Literal["customer", "admin"]


class Customer(BaseModel):
    user_id: str
    role: Role = "customer"


def _auth_error(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _token_key() -> bytes:
    settings = get_settings()
    return settings.token_signing_secret.encode("utf-8")


def create_access_token(user_id: str, role: Role = "customer", ttl_seconds: int | None = None) -> str:
    settings = get_settings()
    now = int(time.time())
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + (ttl_seconds if ttl_seconds is not None else settings.token_ttl_seconds),
    }
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    mac = hmac.new(_token_key(), body, sha256).digest()
    return base64.urlsafe_b64encode(body + mac).decode("ascii")


def verify_access_token(token: str) -> Customer:
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
    except Exception as exc:
        raise _auth_error("invalid token encoding") from exc

    if len(raw) <= 32:
        raise _auth_error("invalid token body")

    body, mac = raw[:-32], raw[-32:]
    expected = hmac.new(_token_key(), body, sha256).digest()
    if not hmac.compare_digest(mac, expected):
        raise _auth_error("token signature mismatch")

    payload = json.loads(body.decode("utf-8"))
    if int(time.time()) > int(payload.get("exp", 0)):
        raise _auth_error("token expired")
    subject = payload.get("sub")
    if not subject:
        raise _auth_error("token missing subject")
    return Customer(user_id=str(subject), role=payload.get("role", "customer"))


def get_current_user(authorization: str | None = Header(default=None)) -> Customer:
    settings = get_settings()
    if not settings.auth_enabled:
        return Customer(user_id=settings.dev_user_id)

    if not authorization:
        raise _auth_error("missing access token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _auth_error("invalid authorization header")
    return verify_access_token(token.strip())


def require_customer(customer: Customer) -> None:
    if customer.role != "customer":
        raise HTTPException(status_code=403, detail="only customers may modify cart")
