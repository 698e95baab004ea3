from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.persistence.pg as pg
from storefront.core.config import get_settings
from storefront.core.security import create_access_token
from storefront.persistence.models import Base, ProductModel


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.auth_enabled = True
    settings.shipping_backend = "static"
    settings.payment_backend = "simulated"
    settings.remote_cart_backend = "sql"
    settings.local_cart_path = test_db_path.parent / "rp_cart_v1.json"
    settings.local_profile_path = test_db_path.parent / "rp_profile.json"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    with pg.session_scope() as s:
        for table in reversed(Base.metadata.sorted_tables):
            s.execute(table.delete())
    yield


@pytest.fixture()
def client(configure_test_engine):
    from storefront.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def add_product(configure_test_engine):
    def _add(product_id: str, price: int, stock: int = 10, **fields) -> str:
        with pg.session_scope() as s:
            s.add(ProductModel(id=product_id, name=fields.pop("name", f"Product {product_id}"), price=price, stock_quantity=stock, **fields))
        return product_id

    return _add


@pytest.fixture()
def auth_headers():
    return {
        "customer": {"Authorization": f"Bearer {create_access_token('user-001')}"},
        "other": {"Authorization": f"Bearer {create_access_token('user-002')}"},
        "admin": {"Authorization": f"Bearer {create_access_token('admin-001', role='admin')}"},
    }
