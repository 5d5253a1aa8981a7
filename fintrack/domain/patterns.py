"""Bank pattern registry - per-bank message matchers and sender lookup"""

import re
from typing import Iterable, List, Optional
from fintrack.domain.models import BankPattern
from fintrack.domain.exceptions import InvalidPatternError

AMOUNT_PATTERN = r"(?<![a-z])(?:rs\.?|inr|₹)\s*(\d+(?:,\d+)*(?:\.\d+)?)"
ACCOUNT_PATTERN = r"(?:a/c|acct|account)\s*(?:no\.?\s*)?([x*]*\d{3,})"
DESCRIPTION_PATTERN = r"\b(?:at|to|towards)\s+([A-Za-z0-9&' ]+?)(?:\s+on\b|\s+via\b|\s+ref\b|[.,]|$)"

# Seeded in registration order; the first matching sender wins
DEFAULT_PATTERNS: List[BankPattern] = [
    BankPattern(
        bank_name="SBI",
        sender_pattern=r"SBI|SBIINB|SBIPSG",
        amount_pattern=AMOUNT_PATTERN,
        account_pattern=ACCOUNT_PATTERN,
        description_pattern=DESCRIPTION_PATTERN,
        balance_pattern=r"avbl\s*bal\w*\s*(?:rs\.?|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)",
        debit_keywords=("debited", "withdrawn"),
        credit_keywords=("credited", "deposited"),
    ),
    BankPattern(
        bank_name="HDFC",
        sender_pattern=r"HDFC|HDFCBK",
        amount_pattern=AMOUNT_PATTERN,
        account_pattern=ACCOUNT_PATTERN,
        description_pattern=DESCRIPTION_PATTERN,
        balance_pattern=r"avl\s*bal\w*\s*(?:rs\.?|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)",
        debit_keywords=("debited", "spent"),
        credit_keywords=("credited", "received"),
    ),
    BankPattern(
        bank_name="ICICI",
        sender_pattern=r"ICICI|ICICIB",
        amount_pattern=AMOUNT_PATTERN,
        account_pattern=ACCOUNT_PATTERN,
        description_pattern=DESCRIPTION_PATTERN,
        balance_pattern=r"avl\s*bal\w*\s*(?:rs\.?|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)",
        debit_keywords=("debited", "withdrawn"),
        credit_keywords=("credited", "deposited"),
    ),
    BankPattern(
        bank_name="Axis",
        sender_pattern=r"AXIS|AXISBK",
        amount_pattern=AMOUNT_PATTERN,
        account_pattern=ACCOUNT_PATTERN,
        description_pattern=DESCRIPTION_PATTERN,
        balance_pattern=r"avl\s*bal\w*\s*(?:rs\.?|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)",
        debit_keywords=("debited", "spent"),
        credit_keywords=("credited", "received"),
    ),
    BankPattern(
        bank_name="Kotak",
        sender_pattern=r"KOTAK|KOTAKB",
        amount_pattern=AMOUNT_PATTERN,
        account_pattern=ACCOUNT_PATTERN,
        description_pattern=DESCRIPTION_PATTERN,
        balance_pattern=r"bal\w*\s*(?:rs\.?|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)",
        debit_keywords=("debited", "sent"),
        credit_keywords=("credited", "received"),
    ),
]


def validate_pattern(pattern: BankPattern) -> None:
    """
    Check registry invariants for a bank pattern.

    Raises:
        InvalidPatternError: Sender matcher is empty or does not compile
    """
    if not pattern.sender_pattern or not pattern.sender_pattern.strip():
        raise InvalidPatternError(f"Bank pattern {pattern.bank_name!r} has an empty sender matcher")
    try:
        re.compile(pattern.sender_pattern, re.IGNORECASE)
    except re.error as e:
        raise InvalidPatternError(f"Invalid sender matcher for {pattern.bank_name!r}: {e}") from e


class PatternRegistry:
    """Ordered collection of bank patterns looked up by message sender"""

    def __init__(self, patterns: Iterable[BankPattern] = ()):
        self._patterns: List[BankPattern] = []
        for pattern in patterns:
            self.register(pattern)

    @classmethod
    def with_defaults(cls) -> "PatternRegistry":
        return cls(DEFAULT_PATTERNS)

    @property
    def patterns(self) -> List[BankPattern]:
        return list(self._patterns)

    def register(self, pattern: BankPattern) -> None:
        validate_pattern(pattern)
        self._patterns.append(pattern)

    def find_pattern(self, sender: str) -> Optional[BankPattern]:
        """Return the first registered pattern whose sender matcher matches, or None"""
        if not sender:
            return None
        for pattern in self._patterns:
            if re.search(pattern.sender_pattern, sender, re.IGNORECASE):
                return pattern
        return None

    def __len__(self) -> int:
        return len(self._patterns)
