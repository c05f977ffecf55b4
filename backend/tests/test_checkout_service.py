from __future__ import annotations

import hashlib
import os
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine, delete, select

from cardshop import crud
from cardshop.core.config import settings
from cardshop.crud import order as order_crud
from cardshop.enums import CheckoutError, OrderStatus, PointTransactionType
from cardshop.integrations.epay import verify_sign
from cardshop.models import Card, Order, PointTransaction, Product, utc_now
from cardshop.services.checkout import (
    POINTS_REDEMPTION_TRADE_NO,
    create_order,
    quote_points,
)


def _checkout(db, **kwargs):
    kwargs.setdefault("product_id", "p1")
    return create_order(session=db, settings=settings, **kwargs)


def _cards(db, product_id: str = "p1") -> list[Card]:
    db.expire_all()
    return list(db.exec(select(Card).where(Card.product_id == product_id)).all())


def _orders(db) -> list[Order]:
    db.expire_all()
    return list(db.exec(select(Order)).all())


def test_quote_points():
    q = quote_points(price=Decimal("9.99"), balance=3, use_points=True)
    assert q.points_to_use == 3
    assert q.final_amount == Decimal("6.99")
    assert q.is_zero_price is False

    # ceil(9.99) = 10 points clears the price
    q = quote_points(price=Decimal("9.99"), balance=50, use_points=True)
    assert q.points_to_use == 10
    assert q.final_amount == Decimal("0.00")
    assert q.is_zero_price is True

    q = quote_points(price=Decimal("9.99"), balance=50, use_points=False)
    assert q.points_to_use == 0
    assert q.final_amount == Decimal("9.99")

    q = quote_points(price=Decimal("5.00"), balance=0, use_points=True)
    assert q.points_to_use == 0


def test_product_not_found(db):
    result = _checkout(db, product_id="missing")
    assert result.success is False
    assert result.error == CheckoutError.product_not_found


def test_blocked_user_cannot_checkout(db, make_product, make_user):
    make_product()
    user = make_user("blocked", is_blocked=True)
    result = _checkout(db, user=user)
    assert result.error == CheckoutError.user_blocked
    assert _orders(db) == []


def test_out_of_stock_creates_no_order(db, make_product):
    make_product(cards=0)
    result = _checkout(db, email="guest@example.com")
    assert result.success is False
    assert result.error == CheckoutError.out_of_stock
    assert _orders(db) == []


def test_pending_order_returns_signed_payment_form(db, make_product):
    make_product(price="9.99")
    result = _checkout(db, email="guest@example.com")

    assert result.success is True
    assert result.is_zero_price is False
    assert result.url == settings.EPAY_PAY_URL
    params = result.params
    assert params is not None
    assert params["pid"] == "1001"
    assert params["out_trade_no"] == result.order_no
    assert params["money"] == "9.99"
    assert params["name"] == "Game Key"
    assert params["notify_url"] == "https://shop.example.com/api/notify"
    assert params["return_url"] == f"https://shop.example.com/callback/{result.order_no}"
    assert params["sign_type"] == "MD5"

    payload = "&".join(
        f"{k}={params[k]}" for k in sorted(params) if k not in ("sign", "sign_type")
    )
    expected = hashlib.md5(f"{payload}test-key".encode("utf-8")).hexdigest()
    assert params["sign"] == expected
    assert verify_sign(params, "test-key")

    orders = _orders(db)
    assert len(orders) == 1
    order = orders[0]
    assert order.order_no == result.order_no
    assert order.status == OrderStatus.pending
    assert Decimal(str(order.amount)) == Decimal("9.99")
    assert order.card_key is None

    (card,) = _cards(db)
    assert card.reserved_order_id == result.order_no
    assert card.reserved_at is not None
    assert not card.is_used


def test_zero_price_order_is_delivered_immediately(db, make_product, make_user):
    make_product(price="10.00")
    user = make_user("rich", email="rich@example.com", points=12)

    result = _checkout(db, user=user, use_points=True)

    assert result.success is True
    assert result.is_zero_price is True
    assert result.params is None
    assert result.url == f"https://shop.example.com/order/{result.order_no}"

    order = crud.get_order_by_no(session=db, order_no=result.order_no)
    assert order is not None
    assert order.status == OrderStatus.delivered
    assert Decimal(str(order.amount)) == Decimal("0.00")
    assert order.points_used == 10
    assert order.trade_no == POINTS_REDEMPTION_TRADE_NO
    assert order.card_key == "p1-KEY-0"
    assert order.email == "rich@example.com"
    assert order.paid_at is not None
    assert order.delivered_at is not None

    (card,) = _cards(db)
    assert card.is_used is True
    assert card.reserved_order_id is None

    assert crud.get_balance(session=db, user_id=user.id) == 2
    tx = db.exec(
        select(PointTransaction).where(PointTransaction.type == PointTransactionType.redeem)
    ).one()
    assert tx.amount == -10
    assert tx.balance_after == 2
    assert tx.order_no == result.order_no


def test_partial_points_leaves_payable_amount(db, make_product, make_user):
    make_product(price="9.99")
    user = make_user("partial", points=4)

    result = _checkout(db, user=user, use_points=True)

    assert result.success is True
    assert result.is_zero_price is False
    assert result.params is not None
    assert result.params["money"] == "5.99"
    assert crud.get_balance(session=db, user_id=user.id) == 0


def test_purchase_limit_counts_orders_by_email(db, make_product):
    make_product(purchase_limit=1, cards=2)
    db.add(
        Order(
            order_no="prior-order",
            product_id="p1",
            product_name="Game Key",
            amount=Decimal("9.99"),
            email="buyer@example.com",
            status=OrderStatus.paid,
        )
    )
    db.commit()

    result = _checkout(db, email="buyer@example.com")
    assert result.error == CheckoutError.limit_exceeded

    # Other buyers are not affected
    result = _checkout(db, email="other@example.com")
    assert result.success is True


def test_purchase_limit_counts_orders_by_user(db, make_product, make_user):
    make_product(purchase_limit=1, cards=2)
    user = make_user("limited")
    db.add(
        Order(
            order_no="prior-user-order",
            product_id="p1",
            product_name="Game Key",
            amount=Decimal("9.99"),
            user_id=user.id,
            status=OrderStatus.delivered,
        )
    )
    db.commit()

    result = _checkout(db, user=user, email="fresh@example.com")
    assert result.error == CheckoutError.limit_exceeded


def test_expired_reservation_is_reclaimable(db, make_product):
    make_product()
    (card,) = _cards(db)
    card.reserved_order_id = "abandoned"
    card.reserved_at = utc_now() - timedelta(seconds=settings.CARD_RESERVATION_SECONDS + 60)
    db.add(card)
    db.commit()

    result = _checkout(db, email="guest@example.com")

    assert result.success is True
    (card,) = _cards(db)
    assert card.reserved_order_id == result.order_no


def test_active_reservation_is_not_available(db, make_product):
    make_product()
    (card,) = _cards(db)
    card.reserved_order_id = "someone-else"
    card.reserved_at = utc_now() - timedelta(seconds=5)
    db.add(card)
    db.commit()

    result = _checkout(db, email="guest@example.com")
    assert result.error == CheckoutError.out_of_stock


def test_legacy_null_is_used_counts_as_available(db, make_product):
    make_product()
    (card,) = _cards(db)
    card.is_used = None
    db.add(card)
    db.commit()

    result = _checkout(db, email="guest@example.com")
    assert result.success is True


def test_concurrent_contenders_get_stock_locked(db, make_product, monkeypatch):
    """串行执行的争抢：所有请求都通过库存检查，只有第一个预留成功（真实并发见 PostgreSQL 用例）"""
    make_product(cards=1)
    # Every contender passes the stock check before anyone reserves.
    monkeypatch.setattr(crud, "count_available_cards", lambda **kwargs: 1)

    results = [_checkout(db, email=f"buyer{i}@example.com") for i in range(5)]

    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert len(losers) == 4
    assert all(r.error == CheckoutError.stock_locked for r in losers)
    assert len(_orders(db)) == 1


def test_points_changed_between_quote_and_deduct(db, make_product, make_user, monkeypatch):
    make_product(price="10.00")
    user = make_user("spender", points=5)
    monkeypatch.setattr(crud, "get_balance", lambda **kwargs: 100)

    result = _checkout(db, user=user, use_points=True)

    assert result.error == CheckoutError.points_mismatch
    assert _orders(db) == []
    (card,) = _cards(db)
    assert card.reserved_order_id is None
    monkeypatch.undo()
    assert crud.get_balance(session=db, user_id=user.id) == 5


def test_stale_pending_orders_are_cancelled(db, make_product, make_user):
    make_product(price="9.99", cards=1)
    user = make_user("slowpoke", points=0)
    stale_at = utc_now() - timedelta(seconds=settings.PENDING_ORDER_TTL_SECONDS + 60)

    # Points were deducted when the stale order was created.
    db.add(
        Order(
            order_no="stale-order",
            product_id="p1",
            product_name="Game Key",
            amount=Decimal("6.99"),
            user_id=user.id,
            status=OrderStatus.pending,
            points_used=3,
            created_at=stale_at,
        )
    )
    (card,) = _cards(db)
    card.reserved_order_id = "stale-order"
    card.reserved_at = stale_at
    db.add(card)
    db.commit()

    result = _checkout(db, email="next@example.com")
    assert result.success is True

    stale = crud.get_order_by_no(session=db, order_no="stale-order")
    assert stale is not None
    assert stale.status == OrderStatus.cancelled
    assert crud.get_balance(session=db, user_id=user.id) == 3
    refund_tx = db.exec(
        select(PointTransaction).where(PointTransaction.order_no == "stale-order")
    ).one()
    assert refund_tx.type == PointTransactionType.refund
    assert refund_tx.amount == 3

    (card,) = _cards(db)
    assert card.reserved_order_id == result.order_no


def test_cancel_failure_does_not_block_checkout(db, make_product, monkeypatch):
    make_product()

    def _boom(**kwargs):
        raise OperationalError("UPDATE orders", {}, Exception("database is locked"))

    monkeypatch.setattr(crud, "cancel_expired_orders", _boom)

    result = _checkout(db, email="guest@example.com")
    assert result.success is True


def test_overlapping_cancellations_refund_points_once(
    db, engine, make_product, make_user, monkeypatch
):
    make_product(cards=0)
    user = make_user("double_refund", points=0)
    stale_at = utc_now() - timedelta(seconds=settings.PENDING_ORDER_TTL_SECONDS + 60)
    db.add(
        Order(
            order_no="stale-twice",
            product_id="p1",
            product_name="Game Key",
            amount=Decimal("6.99"),
            user_id=user.id,
            status=OrderStatus.pending,
            points_used=3,
            created_at=stale_at,
        )
    )
    db.commit()

    claim = order_crud._claim_expired
    interleaved: list[int] = []
    started: list[bool] = []

    def _claim_after_other_cleanup(*, session, order, now):  # type: ignore[no-untyped-def]
        # Another checkout cancels the same order after this one has read it.
        if not started:
            started.append(True)
            with Session(engine) as other:
                interleaved.append(
                    crud.cancel_expired_orders(
                        session=other,
                        product_id="p1",
                        now=now,
                        ttl_seconds=settings.PENDING_ORDER_TTL_SECONDS,
                    )
                )
        return claim(session=session, order=order, now=now)

    monkeypatch.setattr(order_crud, "_claim_expired", _claim_after_other_cleanup)

    cancelled = crud.cancel_expired_orders(
        session=db,
        product_id="p1",
        now=utc_now(),
        ttl_seconds=settings.PENDING_ORDER_TTL_SECONDS,
    )

    assert interleaved == [1]
    assert cancelled == 0
    db.expire_all()
    assert crud.get_balance(session=db, user_id=user.id) == 3
    refunds = db.exec(
        select(PointTransaction).where(
            PointTransaction.order_no == "stale-twice",
            PointTransaction.type == PointTransactionType.refund,
        )
    ).all()
    assert len(refunds) == 1
    order = crud.get_order_by_no(session=db, order_no="stale-twice")
    assert order is not None
    assert order.status == OrderStatus.cancelled


POSTGRES_TEST_URL = os.environ.get("CARDSHOP_TEST_POSTGRES_URL")


@pytest.mark.skipif(not POSTGRES_TEST_URL, reason="CARDSHOP_TEST_POSTGRES_URL not set")
def test_simultaneous_checkouts_on_postgres_reserve_one_card():
    pg_engine = create_engine(POSTGRES_TEST_URL)  # type: ignore[arg-type]
    SQLModel.metadata.create_all(pg_engine)
    with Session(pg_engine) as session:
        session.add(Product(id="pg-race", name="Race Key", price=Decimal("9.99")))
        session.add(Card(product_id="pg-race", card_key="pg-race-KEY-0"))
        session.commit()

    contenders = 5
    barrier = threading.Barrier(contenders)
    results = []
    lock = threading.Lock()

    def _buy(i: int) -> None:
        with Session(pg_engine) as session:
            barrier.wait()
            result = create_order(
                session=session,
                settings=settings,
                product_id="pg-race",
                email=f"racer{i}@example.com",
            )
            with lock:
                results.append(result)

    threads = [threading.Thread(target=_buy, args=(i,)) for i in range(contenders)]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(results) == contenders
        assert len(winners) == 1
        assert all(
            r.error in (CheckoutError.stock_locked, CheckoutError.out_of_stock) for r in losers
        )
        with Session(pg_engine) as session:
            orders = session.exec(select(Order).where(Order.product_id == "pg-race")).all()
            assert len(orders) == 1
            card = session.exec(select(Card).where(Card.product_id == "pg-race")).one()
            assert card.reserved_order_id == winners[0].order_no
    finally:
        with Session(pg_engine) as session:
            session.exec(delete(Order).where(Order.product_id == "pg-race"))
            session.exec(delete(Card).where(Card.product_id == "pg-race"))
            session.exec(delete(Product).where(Product.id == "pg-race"))
            session.commit()
        pg_engine.dispose()
