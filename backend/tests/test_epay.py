from __future__ import annotations

import hashlib
from decimal import Decimal

import httpx
import pytest

from cardshop.api.errors import AppError
from cardshop.core.config import settings
from cardshop.integrations import epay


class FakeResp:
    def __init__(self, data, status_code: int = 200):  # type: ignore[no-untyped-def]
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):  # type: ignore[no-untyped-def]
        if self.status_code >= 400:
            request = httpx.Request("POST", settings.EPAY_API_URL)
            raise httpx.HTTPStatusError(
                "bad status", request=request, response=httpx.Response(self.status_code)
            )
        return None

    def json(self):  # type: ignore[no-untyped-def]
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


def _fake_httpx_client(queue: list, calls: list):  # type: ignore[no-untyped-def]
    class FakeHttpxClient:
        def __init__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            _ = args, kwargs

        def __enter__(self):  # type: ignore[no-untyped-def]
            return self

        def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
            return False

        def post(self, url, data=None):  # type: ignore[no-untyped-def]
            calls.append((url, data))
            item = queue.pop(0)
            if isinstance(item, httpx.HTTPError):
                raise item
            return item

    return FakeHttpxClient


def test_generate_sign_skips_empty_and_sign_fields():
    params = {
        "pid": "1001",
        "money": "1.00",
        "name": "",
        "out_trade_no": "A1",
        "sign": "ignored",
        "sign_type": "MD5",
    }
    expected = hashlib.md5(b"money=1.00&out_trade_no=A1&pid=1001secret").hexdigest()
    assert epay.generate_sign(params, "secret") == expected
    # order of insertion does not matter
    assert epay.generate_sign(dict(reversed(list(params.items()))), "secret") == expected


def test_verify_sign():
    params = {"pid": "1001", "out_trade_no": "A1", "money": "2.50"}
    params["sign"] = epay.generate_sign(params, "secret")
    assert epay.verify_sign(params, "secret") is True
    assert epay.verify_sign({**params, "sign": params["sign"].upper()}, "secret") is True
    assert epay.verify_sign({**params, "money": "2.51"}, "secret") is False
    assert epay.verify_sign({"pid": "1001"}, "secret") is False


def test_format_money():
    assert epay.format_money(Decimal("5")) == "5.00"
    assert epay.format_money("0.1") == "0.10"
    assert epay.format_money(Decimal("12.3")) == "12.30"


def test_build_refund_params():
    params = epay.build_refund_params(
        settings=settings, order_no="ORDER1", trade_no="T100", amount=Decimal("9.9")
    )
    assert params == {
        "act": "refund",
        "pid": "1001",
        "key": "test-key",
        "trade_no": "T100",
        "out_trade_no": "ORDER1",
        "money": "9.90",
    }


def test_epay_client_refund_processed(monkeypatch):
    calls: list = []
    monkeypatch.setattr(
        httpx, "Client", _fake_httpx_client([FakeResp({"code": 1, "msg": "ok"})], calls)
    )

    result = epay.EpayClient(settings).refund({"out_trade_no": "ORDER1", "act": "refund"})

    assert result.processed is True
    assert result.message == "ok"
    assert result.raw == {"code": 1, "msg": "ok"}
    assert calls == [(settings.EPAY_API_URL, {"out_trade_no": "ORDER1", "act": "refund"})]


def test_epay_client_refund_not_processed(monkeypatch):
    calls: list = []
    monkeypatch.setattr(
        httpx,
        "Client",
        _fake_httpx_client([FakeResp({"code": -1, "msg": "refund not allowed"})], calls),
    )

    result = epay.EpayClient(settings).refund({"out_trade_no": "ORDER1"})

    assert result.processed is False
    assert result.message == "refund not allowed"


@pytest.mark.parametrize(
    "response",
    [
        httpx.ConnectError("connection refused"),
        FakeResp({}, status_code=500),
        FakeResp(ValueError("not json")),
    ],
)
def test_epay_client_refund_gateway_errors(monkeypatch, response):
    monkeypatch.setattr(httpx, "Client", _fake_httpx_client([response], []))

    with pytest.raises(AppError) as exc_info:
        epay.EpayClient(settings).refund({"out_trade_no": "ORDER1"})
    assert exc_info.value.code == 502201
    assert exc_info.value.status_code == 502
