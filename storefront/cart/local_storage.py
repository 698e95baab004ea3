from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from storefront.core.config import get_settings
from storefront.core.errors import CorruptLocalStateError

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "rp_cart_v1"
_EMPTY_MARKERS = {"", "null", "undefined"}


def _coerce_quantity(value: Any) -> int:
    if isinstance(value, dict):
        value = value.get("quantity", 1)
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(float(str(value)))
    except (TypeError, ValueError):
        return 1


def _normalize_entries(entries: list[tuple[Any, Any]]) -> dict[str, int]:
    snapshot: dict[str, int] = {}
    for raw_id, raw_qty in entries:
        if raw_id is None:
            continue
        product_id = str(raw_id).strip()
        if not product_id:
            continue
        qty = _coerce_quantity(raw_qty)
        if qty <= 0:
            continue
        snapshot[product_id] = snapshot.get(product_id, 0) + qty
    return snapshot


def parse_cart_blob(raw: str | None) -> dict[str, int]:
    """Parse a persisted cart blob into a snapshot.

    Accepted shapes: ``{id: qty}``, ``{id: {"quantity": n}}``,
    ``[{"id": .., "quantity": ..}]`` and ``{"items": [...]}`` where list
    entries may use ``id`` or ``product_id``. Missing or literal
    ``null``/``undefined`` values mean an empty cart.
    """
    if raw is None or raw.strip() in _EMPTY_MARKERS:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptLocalStateError(f"local cart data is not valid JSON: {exc.msg}") from exc

    if parsed is None:
        return {}
    if isinstance(parsed, dict) and isinstance(parsed.get("items"), list):
        parsed = parsed["items"]
    if isinstance(parsed, list):
        entries = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            entries.append((item.get("id", item.get("product_id")), item.get("quantity", 1)))
        return _normalize_entries(entries)
    if isinstance(parsed, dict):
        return _normalize_entries(list(parsed.items()))
    raise CorruptLocalStateError(f"local cart data has unsupported shape: {type(parsed).__name__}")


class LocalCartStorage:
    """Durable client-side copy of the cart, one JSON blob on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read_raw(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def read(self) -> dict[str, int]:
        return parse_cart_blob(self.read_raw())

    def write(self, snapshot: dict[str, int]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".tmp")
        tmp_file.write_text(json.dumps(snapshot, separators=(",", ":"), sort_keys=True), encoding="utf-8")
        tmp_file.replace(self.path)

    def reset(self) -> None:
        if self.path.exists():
            self.path.unlink()


def read_cached_postal_code(path: Path | None) -> str | None:
    """Postal code from the cached local profile copy, if any."""
    if path is None or not Path(path).exists():
        return None
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.debug("cached profile at %s is unreadable", path)
        return None
    if not isinstance(payload, dict):
        return None
    postal = payload.get("postal_code")
    return str(postal).strip() if postal else None


def reset_local_cart(path: Path | None = None) -> None:
    """Drop the stored cart blob, e.g. after a CorruptLocalStateError."""
    storage = LocalCartStorage(path or get_settings().local_cart_path)
    storage.reset()
    logger.info("local cart at %s reset", storage.path)
