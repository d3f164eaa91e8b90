from __future__ import annotations

import json
import types

import httpx
import openai
import pytest

from spendlog.core.config import settings
from spendlog.core.exceptions import PermanentExtractionError, TransientExtractionError
from spendlog.services.extraction_service import (
    OpenAIExtractionService,
    RuleBasedExtractionService,
    build_extraction_service,
)

RECEIPT = """Blue Bottle Coffee
2024-03-15
Latte $4.50
Croissant $3.25
Subtotal $7.75
Tax $0.70
Total $8.45
Cash $10.00
Change $1.55"""


def test_rules_parse_full_receipt():
    details = RuleBasedExtractionService().parse(RECEIPT)

    assert details.merchant == "Blue Bottle Coffee"
    assert details.date == "2024-03-15"
    assert details.currency == "USD"
    assert [(i.description, i.amount) for i in details.items] == [("Latte", "4.50"), ("Croissant", "3.25")]
    assert details.subtotal == "7.75"
    assert details.tax == "0.70"
    assert details.total == "8.45"


def test_rules_total_falls_back_to_item_sum():
    details = RuleBasedExtractionService().parse("Uber ride 23.10 EUR\nTip 2.00")

    assert details.currency == "EUR"
    assert [i.amount for i in details.items] == ["23.10"]
    assert details.total == "23.10"


def test_rules_thousands_separator_and_bare_integers():
    details = RuleBasedExtractionService().parse("Electronics Hub\nLaptop $1,299.99\nQty 2")

    assert details.merchant == "Electronics Hub"
    assert [(i.description, i.amount) for i in details.items] == [("Laptop", "1299.99")]


def test_rules_currency_code_anywhere_in_text():
    details = RuleBasedExtractionService().parse("Corner Shop\nAmount due 15.00\nPaid in GBP")

    assert details.merchant == "Corner Shop"
    assert details.total == "15.00"
    assert details.currency == "GBP"
    assert details.items == []


def test_rules_tax_lines_are_matched_by_whole_word():
    details = RuleBasedExtractionService().parse(
        "Night Out\nTaxi 23.10\nDinner 40.00\nTotal tax 1.20\nTotal (incl. VAT) 64.30"
    )

    assert [(i.description, i.amount) for i in details.items] == [("Taxi", "23.10"), ("Dinner", "40.00")]
    assert details.tax == "1.20"
    assert details.total == "64.30"


def test_rules_sales_tax_line():
    details = RuleBasedExtractionService().parse("Hardware Store\nHammer 12.00\nSales Tax 0.96\nGrand Total 12.96")

    assert details.tax == "0.96"
    assert details.total == "12.96"
    assert [i.description for i in details.items] == ["Hammer"]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Dinner 25/12/2024\nSteak 30.00", "2024-12-25"),
        ("Dinner 03/04/2024\nSteak 30.00", "2024-03-04"),
        ("Dinner\nSteak 30.00", None),
    ],
)
def test_rules_dates(text, expected):
    assert RuleBasedExtractionService().parse(text).date == expected


def test_rules_blank_text_is_permanent_failure():
    with pytest.raises(PermanentExtractionError):
        RuleBasedExtractionService().parse("   \n\t ")


@pytest.mark.asyncio
async def test_rules_extract_is_async_wrapper():
    details = await RuleBasedExtractionService().extract("Cafe\nTea 2.00")
    assert details.total == "2.00"


# ---------------------------------------------------------------------------
# OpenAI backend with a fake client


def _fake_client(content=None, error=None, calls=None):
    async def create(**kwargs):
        if calls is not None:
            calls.append(kwargs)
        if error is not None:
            raise error
        message = types.SimpleNamespace(content=content)
        return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message)])

    return types.SimpleNamespace(chat=types.SimpleNamespace(completions=types.SimpleNamespace(create=create)))


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.mark.asyncio
async def test_openai_parses_json_reply():
    calls = []
    reply = json.dumps({"merchant": "Cafe", "currency": "USD", "items": [{"description": "Tea", "amount": "2.00"}], "total": "2.00"})
    service = OpenAIExtractionService(client=_fake_client(reply, calls=calls), model="test-model")

    details = await service.extract("Cafe\nTea 2.00")

    assert details.merchant == "Cafe"
    assert details.items[0].amount == "2.00"
    assert calls[0]["model"] == "test-model"
    assert calls[0]["response_format"] == {"type": "json_object"}
    assert calls[0]["messages"][-1] == {"role": "user", "content": "Cafe\nTea 2.00"}


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["not json", json.dumps({"items": "nope"})])
async def test_openai_invalid_reply_is_permanent(reply):
    service = OpenAIExtractionService(client=_fake_client(reply), model="test-model")
    with pytest.raises(PermanentExtractionError):
        await service.extract("Cafe\nTea 2.00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        openai.APIConnectionError(request=_REQUEST),
        openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None),
        openai.InternalServerError("oops", response=httpx.Response(500, request=_REQUEST), body=None),
    ],
)
async def test_openai_capacity_errors_are_transient(error):
    service = OpenAIExtractionService(client=_fake_client(error=error), model="test-model")
    with pytest.raises(TransientExtractionError):
        await service.extract("Cafe\nTea 2.00")


@pytest.mark.asyncio
async def test_openai_rejected_request_is_permanent():
    error = openai.BadRequestError("bad", response=httpx.Response(400, request=_REQUEST), body=None)
    service = OpenAIExtractionService(client=_fake_client(error=error), model="test-model")
    with pytest.raises(PermanentExtractionError):
        await service.extract("Cafe\nTea 2.00")


@pytest.mark.asyncio
async def test_openai_blank_text_skips_the_model():
    calls = []
    service = OpenAIExtractionService(client=_fake_client("{}", calls=calls), model="test-model")
    with pytest.raises(PermanentExtractionError):
        await service.extract("  ")
    assert calls == []


def test_build_extraction_service(monkeypatch):
    assert isinstance(build_extraction_service("rules"), RuleBasedExtractionService)

    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    with pytest.raises(RuntimeError):
        build_extraction_service("openai")

    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    assert isinstance(build_extraction_service("OpenAI"), OpenAIExtractionService)

    with pytest.raises(ValueError):
        build_extraction_service("regex")
