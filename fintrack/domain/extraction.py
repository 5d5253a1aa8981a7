"""Field extraction - amount, account, merchant and balance from message text"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from fintrack.domain.models import BankPattern, ExtractedFields
from fintrack.domain.patterns import AMOUNT_PATTERN

MAX_MERCHANT_LENGTH = 50
MASKED_ACCOUNT_WIDTH = 8
VISIBLE_ACCOUNT_DIGITS = 4
# Largest amount a single message may carry; anything above is treated as malformed
MAX_AMOUNT = Decimal("999999999999.99")

# Digits with no decimals or exactly two decimal digits, after separators are removed
_AMOUNT_TEXT = re.compile(r"^\d+(?:\.\d{2})?$")
# Phrases the description matcher picks up that refer to the holder, not a counterparty
_NON_MERCHANT = re.compile(r"^(?:your|you|yours|the|a/c|acct|account|ac)\b", re.IGNORECASE)


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse a currency amount such as "1,234.56" into a Decimal.

    Thousands separators are stripped; decimals must be absent or exactly
    two digits. Malformed text, or an amount above MAX_AMOUNT, yields None,
    never an exception.
    """
    if text is None:
        return None
    cleaned = text.strip().replace(",", "")
    if not _AMOUNT_TEXT.match(cleaned):
        return None
    try:
        amount = Decimal(cleaned).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None
    if amount > MAX_AMOUNT:
        return None
    return amount


def mask_account(raw: Optional[str]) -> Optional[str]:
    """Reduce an account reference to a fixed-width mask with the last four digits visible"""
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    visible = digits[-VISIBLE_ACCOUNT_DIGITS:]
    return visible.rjust(MASKED_ACCOUNT_WIDTH, "X")


def clean_merchant(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    merchant = re.sub(r"\s+", " ", raw).strip(" .,-")
    if not merchant or _NON_MERCHANT.match(merchant):
        return None
    return merchant[:MAX_MERCHANT_LENGTH].strip()


def _search(regex: Optional[str], body: str) -> Optional[str]:
    """Apply one sub-matcher; a missing or invalid matcher behaves like no match"""
    if not regex:
        return None
    try:
        match = re.search(regex, body, re.IGNORECASE)
    except re.error:
        return None
    if match is None:
        return None
    return match.group(1) if match.groups() else match.group(0)


def extract_amount(body: str, regex: Optional[str] = None) -> Optional[Decimal]:
    amount = parse_amount(_search(regex, body)) if regex else None
    if amount is None:
        amount = parse_amount(_search(AMOUNT_PATTERN, body))
    return amount


def extract(body: str, pattern: Optional[BankPattern] = None) -> ExtractedFields:
    """
    Extract typed fields from a message body.

    Without a pattern only the generic currency-prefixed amount is attempted.
    With a pattern every sub-matcher runs independently, so a miss on one
    field never affects the others.
    """
    body = body or ""
    if pattern is None:
        return ExtractedFields(amount=extract_amount(body))

    return ExtractedFields(
        amount=extract_amount(body, pattern.amount_pattern),
        account=mask_account(_search(pattern.account_pattern, body)),
        merchant=clean_merchant(_search(pattern.description_pattern, body)),
        balance=parse_amount(_search(pattern.balance_pattern, body)),
    )
