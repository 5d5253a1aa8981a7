"""Unit tests for direction classification"""

import pytest
from fintrack.domain.classifier import classify, find_occurrences, is_financial, score
from fintrack.domain.models import Direction


def test_empty_and_keywordless_text_default_to_expense():
    assert classify("") == Direction.EXPENSE
    assert classify("no keywords present") == Direction.EXPENSE
    assert classify(None) == Direction.EXPENSE


def test_dispute_wording_suppresses_credit_keyword():
    """Credit keyword right next to 'call ... for dispute' must not flip a debit"""
    text = (
        "ICICIBANK Acct xxx961 debited for Rs 5000.00 on 01-01-25 anand icici credited "
        "call +9988798 for dispute."
    )
    assert classify(text) == Direction.EXPENSE


def test_primary_keyword_wins_over_trailing_helpline_sentence():
    assert classify("Debited Rs 100 from your account. For dispute call customer care") == Direction.EXPENSE


def test_credit_first_with_unrelated_followup_is_income():
    assert classify("Credited Rs 100 to your account. Previous transaction reversed") == Direction.INCOME


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Rs.450.00 debited from A/c XX1234 at SWIGGY on 12-01-25", Direction.EXPENSE),
        ("Your A/c XX5678 is credited with Rs 25,000.00 by NEFT. Salary.", Direction.INCOME),
        ("You have paid Rs 299 to NETFLIX via UPI", Direction.EXPENSE),
        ("Rs 2,000 withdrawn from ATM at MG Road", Direction.EXPENSE),
        ("Refund of Rs 1,299 received from AMAZON", Direction.INCOME),
        ("Cashback of Rs 50 credited to your wallet", Direction.INCOME),
        ("INR 5,000 deposited in your account by cash", Direction.INCOME),
        ("Spent Rs 899 on your credit card at MYNTRA", Direction.EXPENSE),
    ],
)
def test_common_bank_messages(text: str, expected: Direction):
    assert classify(text) == expected


def test_classification_is_deterministic():
    text = "Debited Rs 100 from your account. For dispute call customer care"
    results = {classify(text) for _ in range(10)}
    assert results == {Direction.EXPENSE}


def test_case_insensitive_keywords():
    assert classify("AMOUNT CREDITED TO YOUR ACCOUNT") == Direction.INCOME
    assert classify("amount DEBITED from your account") == Direction.EXPENSE


def test_keywords_are_word_bounded():
    """'discredited' and 'prepaid' contain keywords but are not money movements"""
    occurrences = find_occurrences("discredited prepaid")
    assert occurrences == []


def test_earlier_keyword_weighs_more():
    result = score("credited " + "x" * 100 + " debited")
    assert result.direction == Direction.INCOME
    assert result.credit_score > result.debit_score


def test_exact_tie_resolves_to_expense():
    # No keywords at all: both scores zero
    result = score("hello there")
    assert result.debit_score == result.credit_score == 0.0
    assert result.direction == Direction.EXPENSE
    assert result.strength == 0.0


def test_suppressed_occurrence_has_reduced_context_factor():
    occurrences = find_occurrences("Rs 100 debited. If not done by you, credited amount will be reversed")
    credited = next(o for o in occurrences if o.keyword == "credited")
    debited = next(o for o in occurrences if o.keyword == "debited")
    assert debited.context_factor == 1.0
    assert credited.context_factor < 1.0


def test_marker_in_another_sentence_does_not_suppress():
    occurrences = find_occurrences("Amount credited to your account. Call us for support")
    assert occurrences[0].context_factor == 1.0


def test_is_financial():
    assert is_financial("Rs 500 debited from your account")
    assert is_financial("UPI transaction failed")
    assert not is_financial("Your OTP is 482913. Do not share it with anyone.")
    assert not is_financial("Get 50% off on pizzas this weekend!")
    assert not is_financial("")
