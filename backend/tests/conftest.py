from __future__ import annotations

import os
from collections.abc import Callable, Generator
from datetime import timedelta
from decimal import Decimal

# Settings are read at import time; provide the required values before importing cardshop.
os.environ.setdefault("PROJECT_NAME", "cardshop-test")
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_USER", "postgres")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("EPAY_MERCHANT_ID", "1001")
os.environ.setdefault("EPAY_MERCHANT_KEY", "test-key")
os.environ.setdefault("SITE_URL", "https://shop.example.com/")

import pytest  # noqa: E402
import sqlalchemy as sa  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine, delete  # noqa: E402

from cardshop import crud  # noqa: E402
from cardshop.api.deps import get_db  # noqa: E402
from cardshop.core.security import create_access_token  # noqa: E402
from cardshop.enums import PointTransactionType  # noqa: E402
from cardshop.main import app  # noqa: E402
from cardshop.models import (  # noqa: E402
    Card,
    Order,
    PointTransaction,
    Product,
    User,
    UserPoints,
)


def _sqlite_engine() -> sa.Engine:
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(scope="session")
def engine():
    engine = _sqlite_engine()
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        # Clean tables after each test (children first).
        session.exec(delete(PointTransaction))
        session.exec(delete(Order))
        session.exec(delete(Card))
        session.exec(delete(Product))
        session.exec(delete(UserPoints))
        session.exec(delete(User))
        session.commit()


@pytest.fixture(scope="function")
def client(engine, db) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def legacy_engine():
    """cards 表缺少预留字段、is_used 允许 NULL 的旧版数据库"""
    engine = _sqlite_engine()
    tables = [t for t in SQLModel.metadata.sorted_tables if t.name != "cards"]
    SQLModel.metadata.create_all(engine, tables=tables)
    with engine.begin() as conn:
        conn.execute(
            sa.text(
                "CREATE TABLE cards ("
                "id BIGINT PRIMARY KEY, "
                "product_id VARCHAR(64) NOT NULL, "
                "card_key VARCHAR(512) NOT NULL, "
                "is_used BOOLEAN, "
                "used_at DATETIME, "
                "created_at DATETIME NOT NULL)"
            )
        )
    yield engine
    engine.dispose()


@pytest.fixture
def make_product(db) -> Callable[..., Product]:
    def _make(
        product_id: str = "p1",
        *,
        name: str = "Game Key",
        price: str = "9.99",
        purchase_limit: int | None = None,
        cards: int = 1,
    ) -> Product:
        product = Product(
            id=product_id, name=name, price=Decimal(price), purchase_limit=purchase_limit
        )
        db.add(product)
        for i in range(cards):
            db.add(Card(product_id=product_id, card_key=f"{product_id}-KEY-{i}"))
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_user(db) -> Callable[..., User]:
    def _make(
        username: str = "alice",
        *,
        email: str | None = None,
        points: int = 0,
        is_admin: bool = False,
        is_blocked: bool = False,
    ) -> User:
        user = crud.create_user(session=db, username=username, email=email, is_admin=is_admin)
        if is_blocked:
            user.is_blocked = True
            db.add(user)
            db.commit()
            db.refresh(user)
        if points:
            crud.change_points(
                session=db, user_id=user.id, delta=points, tx_type=PointTransactionType.reward
            )
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, timedelta(minutes=5))
        return {"Authorization": f"Bearer {token}"}

    return _headers
