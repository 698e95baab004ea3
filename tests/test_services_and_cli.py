from __future__ import annotations

import asyncio
import json
import sys

import storefront.persistence.pg as pg
from storefront import cli
from storefront.cart import ReconcileOutcome
from storefront.core.config import get_settings
from storefront.demo import DEMO_CUSTOMER_ID, seed_catalog
from storefront.persistence.models import ProductModel
from storefront.services import build_services, build_shopper_session


def test_seed_catalog_is_idempotent():
    with pg.session_scope() as s:
        first = seed_catalog(s)
    with pg.session_scope() as s:
        second = seed_catalog(s)
        assert s.get(ProductModel, "prod-serum-001").price == 125000

    assert len(first["created"]) == first["products"]
    assert second["created"] == []


def test_services_wire_static_shipping_and_simulated_payments():
    with pg.session_scope() as s:
        seed_catalog(s)
    services = build_services()

    async def scenario():
        draft = await services.assembler.assemble(product_id="prod-serum-001", quantity=2)
        profile = await services.profiles.get_profile(DEMO_CUSTOMER_ID)
        quote = await services.shipping.resolve(draft, profile=profile)
        return draft, quote

    draft, quote = asyncio.run(scenario())
    assert draft.lines[0].unit_price == 112500
    # the serum only ships with Reguler or YES
    assert {rate.service_code for rate in quote.rates} == {"YES", "REG"}
    assert services.payments.provider_name == "simulated"


def test_shopper_session_reconciles_against_sql_cart(tmp_path):
    settings = get_settings().model_copy(update={"local_cart_path": tmp_path / "rp_cart_v1.json"})
    settings.local_cart_path.write_text('{"p1": 2}', encoding="utf-8")

    async def scenario():
        session, reconciler = build_shopper_session(settings)
        outcome = await reconciler.on_login(session, "user-001")
        fetched = await reconciler.remote.fetch("user-001")
        return outcome, fetched

    outcome, fetched = asyncio.run(scenario())
    assert outcome == ReconcileOutcome.LOCAL_PUSHED
    assert fetched == {"p1": 2}


def test_cli_stock_validate_reports_shortage(monkeypatch, capsys):
    with pg.session_scope() as s:
        seed_catalog(s)
    monkeypatch.setattr(sys, "argv", ["storefront", "stock", "validate", "prod-cream-003=5", "prod-toner-002=1"])

    code = cli.main()

    out = json.loads(capsys.readouterr().out)
    assert code == 1
    assert out["valid"] is False
    assert [err["product_id"] for err in out["errors"]] == ["prod-cream-003"]


def test_cli_cart_show_flags_corrupt_blob(monkeypatch, capsys):
    settings = get_settings()
    settings.local_cart_path.write_text("{broken", encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["storefront", "cart", "show"])

    assert cli.main() == 1
    assert "hint" in json.loads(capsys.readouterr().out)

    monkeypatch.setattr(sys, "argv", ["storefront", "cart", "reset"])
    assert cli.main() == 0
    assert not settings.local_cart_path.exists()
