"""Expense extraction from free text.

Two implementations share the same ``async extract(text) -> ExpenseDetails``
interface:

``RuleBasedExtractionService``
    Deterministic line parser for pasted receipts and expense notes.  It
    needs no network access and is the default.

``OpenAIExtractionService``
    Asks a chat model for JSON matching :class:`ExpenseDetails`.  Network
    and capacity problems are raised as :class:`TransientExtractionError`
    so the consumer can retry them; everything else is permanent.

Use :func:`build_extraction_service` to pick one from settings
(``EXTRACTION_BACKEND``).
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal
from typing import Any, List, Optional, Tuple

import openai
from pydantic import ValidationError

from spendlog.core.config import settings
from spendlog.core.exceptions import PermanentExtractionError, TransientExtractionError
from spendlog.models.schemas import ExpenseDetails, ExpenseItem
from spendlog.utils.helpers import format_amount

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Rule-based extraction

_CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "₹": "INR"}
_CURRENCY_CODES = ("USD", "EUR", "GBP", "INR", "CAD", "AUD", "JPY", "CHF")

# An amount at the end of a line, optionally with a currency symbol or code.
# Bare integers are only accepted when a symbol is present (quantities, years).
_TRAILING_AMOUNT_RE = re.compile(
    r"(?<![\w/.\-])(?P<symbol>[$€£₹])?\s?"
    r"(?P<value>\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"
    r"\s*(?P<code>[A-Z]{3})?\s*$"
)
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_SLASH_DATE_RE = re.compile(r"\b(\d{1,2})[/.](\d{1,2})[/.](\d{2,4})\b")
_CODE_RE = re.compile(r"\b(" + "|".join(_CURRENCY_CODES) + r")\b")

_SUBTOTAL_LABELS = ("subtotal", "sub total", "sub-total")
_TAX_WORDS = frozenset({"tax", "vat", "gst", "hst"})
# "Total (incl. VAT)" is a total, not a tax line
_INCLUSIVE_WORDS = frozenset({"incl", "including", "inc"})
_TOTAL_LABELS = ("total", "amount due", "balance due", "grand total", "amount")
_IGNORED_LABELS = ("change", "cash", "tendered", "tip")


def _parse_date(text: str) -> Optional[str]:
    """Return the first recognisable date in ``text`` as ``YYYY-MM-DD``.

    Slash dates are read month-first unless the first number cannot be a
    month (``25/12/2024`` is read day-first).
    """
    m = _ISO_DATE_RE.search(text)
    if m:
        try:
            return dt.date(int(m.group(1)), int(m.group(2)), int(m.group(3))).isoformat()
        except ValueError:
            pass
    for m in _SLASH_DATE_RE.finditer(text):
        first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 2000
        month, day = (second, first) if first > 12 else (first, second)
        try:
            return dt.date(year, month, day).isoformat()
        except ValueError:
            continue
    return None


def _split_amount(line: str) -> Optional[Tuple[str, str, Optional[str]]]:
    """Split ``line`` into (label, amount, currency) when it ends with an amount."""
    m = _TRAILING_AMOUNT_RE.search(line)
    if not m:
        return None
    value = m.group("value")
    symbol = m.group("symbol")
    code = m.group("code") if m.group("code") in _CURRENCY_CODES else None
    if not symbol and "." not in value and "," not in value:
        return None
    amount = format_amount(value)
    if amount is None:
        return None
    label = line[: m.start()].strip(" \t:-=")
    currency = _CURRENCY_SYMBOLS.get(symbol) if symbol else code
    return label, amount, currency


def _label_kind(label: str) -> str:
    lowered = label.lower()
    words = set(re.findall(r"[^\W\d_]+", lowered))
    if any(lowered.startswith(p) for p in _SUBTOTAL_LABELS):
        return "subtotal"
    if words & _TAX_WORDS and not words & _INCLUSIVE_WORDS:
        return "tax"
    if any(lowered.startswith(p) for p in _TOTAL_LABELS):
        return "total"
    if any(lowered.startswith(p) for p in _IGNORED_LABELS):
        return "ignored"
    return "item"


class RuleBasedExtractionService:
    """Parse expense text line by line."""

    async def extract(self, text: str) -> ExpenseDetails:
        return self.parse(text)

    def parse(self, text: str) -> ExpenseDetails:
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
        if not lines:
            raise PermanentExtractionError("nothing to extract: text is blank")

        details = ExpenseDetails(date=_parse_date(text))
        items: List[ExpenseItem] = []
        currency: Optional[str] = None

        for line in lines:
            split = _split_amount(line)
            if split is None:
                if details.merchant is None and not _parse_date(line) and re.search(r"[^\W\d_]", line):
                    details.merchant = line
                continue
            label, amount, line_currency = split
            currency = currency or line_currency
            kind = _label_kind(label)
            if kind == "subtotal":
                details.subtotal = amount
            elif kind == "tax":
                details.tax = amount
            elif kind == "total":
                details.total = amount
            elif kind == "item":
                items.append(ExpenseItem(description=label or None, amount=amount))

        if currency is None:
            code = _CODE_RE.search(text)
            currency = code.group(1) if code else None
        details.currency = currency
        details.items = items
        if details.total is None and items:
            details.total = str(sum((Decimal(i.amount) for i in items if i.amount), Decimal("0.00")))
        return details


# -----------------------------------------------------------------------------
# Model-backed extraction

EXTRACTION_SYSTEM_PROMPT = """You extract structured expense data from text.
Reply with a single JSON object with these keys:
merchant (string or null), date (YYYY-MM-DD or null), currency (ISO 4217 code or null),
items (list of {"description": string or null, "amount": string with two decimals}),
subtotal, tax, total (strings with two decimals, or null).
Do not invent values that are not present in the text."""


class OpenAIExtractionService:
    """Extraction through the OpenAI chat completions API in JSON mode."""

    def __init__(self, client: Any = None, model: Optional[str] = None) -> None:
        self.model = model or settings.EXTRACTION_MODEL
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def extract(self, text: str) -> ExpenseDetails:
        if not (text or "").strip():
            raise PermanentExtractionError("nothing to extract: text is blank")
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
            )
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as exc:
            raise TransientExtractionError(f"model unavailable: {exc}") from exc
        except openai.APIError as exc:
            raise PermanentExtractionError(f"model request rejected: {exc}") from exc

        content = completion.choices[0].message.content or ""
        try:
            return ExpenseDetails.model_validate_json(content)
        except ValidationError as exc:
            logger.warning("[extraction] model=%s returned invalid JSON: %s", self.model, exc)
            raise PermanentExtractionError("model returned invalid expense JSON") from exc


def build_extraction_service(backend: Optional[str] = None) -> Any:
    """Return the extraction service selected by ``EXTRACTION_BACKEND``."""
    name = (backend or settings.EXTRACTION_BACKEND or "rules").lower()
    if name == "rules":
        return RuleBasedExtractionService()
    if name == "openai":
        if not settings.OPENAI_API_KEY:
            raise RuntimeError("EXTRACTION_BACKEND=openai requires OPENAI_API_KEY")
        return OpenAIExtractionService()
    raise ValueError(f"Unknown extraction backend: {name}")
