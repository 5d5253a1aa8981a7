"""Unit tests for field extraction"""

from decimal import Decimal
from fintrack.domain.extraction import MAX_AMOUNT, clean_merchant, extract, mask_account, parse_amount
from fintrack.domain.models import BankPattern
from fintrack.domain.patterns import AMOUNT_PATTERN, PatternRegistry


def _hdfc() -> BankPattern:
    return PatternRegistry.with_defaults().find_pattern("VM-HDFCBK")


def test_amount_with_thousands_separator():
    pattern = BankPattern(bank_name="Test", sender_pattern="TEST", amount_pattern=AMOUNT_PATTERN)
    fields = extract("Rs 1,234.56 debited", pattern)
    assert fields.amount == Decimal("1234.56")


def test_missing_amount_is_absent_not_error():
    fields = extract("no amount here", _hdfc())
    assert fields.amount is None
    assert fields.account is None
    assert fields.balance is None


def test_full_hdfc_message():
    fields = extract("Rs.450.00 debited from A/c XX1234 at SWIGGY on 12-01-25. Avl Bal Rs 10,000.00", _hdfc())
    assert fields.amount == Decimal("450.00")
    assert fields.account == "XXXX1234"
    assert fields.merchant == "SWIGGY"
    assert fields.balance == Decimal("10000.00")


def test_no_pattern_extracts_generic_amount_only():
    fields = extract("INR 2,500 spent at ZOMATO on 03-02-25")
    assert fields.amount == Decimal("2500.00")
    assert fields.merchant is None
    assert fields.account is None


def test_invalid_amount_regex_falls_back_to_generic():
    pattern = BankPattern(bank_name="Broken", sender_pattern="BRK", amount_pattern="(unclosed")
    fields = extract("Rs 75 paid", pattern)
    assert fields.amount == Decimal("75.00")


def test_one_field_miss_does_not_affect_others():
    fields = extract("Rs 300 debited from A/c 99887766", _hdfc())
    assert fields.amount == Decimal("300.00")
    assert fields.account == "XXXX7766"
    assert fields.merchant is None


def test_parse_amount():
    assert parse_amount("1,00,000.00") == Decimal("100000.00")
    assert parse_amount("42") == Decimal("42.00")
    assert parse_amount("12.5") is None
    assert parse_amount("abc") is None
    assert parse_amount("") is None
    assert parse_amount(None) is None


def test_implausibly_large_amount_is_absent():
    assert parse_amount("999,999,999,999.99") == MAX_AMOUNT
    assert parse_amount("1000000000000") is None
    assert parse_amount("99999999999999999999.00") is None
    fields = extract("Rs 99999999999999999999.00 debited from A/c XX1234", _hdfc())
    assert fields.amount is None
    assert fields.account == "XXXX1234"


def test_mask_account():
    assert mask_account("XX1234") == "XXXX1234"
    assert mask_account("123456789012") == "XXXX9012"
    assert mask_account("961") == "XXXXX961"
    assert mask_account("xx") is None
    assert mask_account(None) is None


def test_clean_merchant():
    assert clean_merchant("  AMAZON   PAY ") == "AMAZON PAY"
    assert clean_merchant("your A") is None
    assert clean_merchant("") is None
    assert len(clean_merchant("A" * 80)) == 50
