"""Heuristic direction classifier - income vs expense from noisy message text"""

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple
from fintrack.domain.models import ClassificationResult, Direction

# Keyword -> base weight, reflecting how reliably each word describes the money movement
DEBIT_KEYWORDS: Dict[str, float] = {
    "debited for": 6.0,
    "debited": 5.0,
    "paid": 4.0,
    "withdrawn": 3.0,
    "spent": 3.0,
    "purchased": 3.0,
    "charged": 2.0,
    "transferred to": 2.0,
}

CREDIT_KEYWORDS: Dict[str, float] = {
    "credited": 5.0,
    "deposited": 4.0,
    "received": 4.0,
    "refunded": 4.0,
    "refund": 3.0,
    "cashback": 2.0,
    "transferred from": 2.0,
}

# Phrases that turn a nearby keyword into a reference to some other action (calling a number)
SECONDARY_CONTEXT_MARKERS: Tuple[str, ...] = (
    "dispute",
    "call",
    "customer care",
    "helpline",
    "contact",
    "complaint",
    "toll free",
    "report",
    "support",
    "not you",
    "not done by you",
)

# Any of these marks a message as money-related even without a parsable amount
FINANCIAL_KEYWORDS: Tuple[str, ...] = (
    "debited", "credited", "debit", "credit", "transaction", "txn", "payment", "paid",
    "transfer", "transferred", "withdrawal", "withdrawn", "deposit", "deposited", "refund",
    "refunded", "spent", "balance", "a/c", "account", "upi", "atm", "pos", "neft", "rtgs", "imps",
)

POSITION_SCALE = 50.0  # Characters over which an occurrence loses half its weight
PRIMARY_MULTIPLIER = 2.0
CONTEXT_RADIUS = 30  # Characters within which a context marker suppresses a keyword
PRIMARY_MIN_FACTOR = 0.5  # An occurrence suppressed below this cannot be the primary indicator


def _alternation(words) -> re.Pattern:
    ordered = sorted(words, key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in ordered) + r")\b", re.IGNORECASE)


_KEYWORD_RE = _alternation(list(DEBIT_KEYWORDS) + list(CREDIT_KEYWORDS))
_MARKER_RE = _alternation(SECONDARY_CONTEXT_MARKERS)
_FINANCIAL_RE = re.compile(
    r"(?<![\w/])(?:" + "|".join(re.escape(w) for w in sorted(FINANCIAL_KEYWORDS, key=len, reverse=True)) + r")(?![\w/])",
    re.IGNORECASE,
)
# Sentence/clause ends; "5000.00" and "Rs. 500" do not end a clause
_CLAUSE_END_RE = re.compile(r"(?<!rs)(?<!inr)[.!?;](?=\s|$)", re.IGNORECASE)


@dataclass
class KeywordOccurrence:
    keyword: str
    direction: Direction
    start: int
    end: int
    base_weight: float
    context_factor: float = 1.0

    def weight(self, primary: bool) -> float:
        position_factor = 1.0 / (1.0 + self.start / POSITION_SCALE)
        multiplier = PRIMARY_MULTIPLIER if primary else 1.0
        return self.base_weight * position_factor * self.context_factor * multiplier


def _clause_bounds(text: str) -> List[Tuple[int, int]]:
    bounds = []
    start = 0
    for match in _CLAUSE_END_RE.finditer(text):
        bounds.append((start, match.end()))
        start = match.end()
    bounds.append((start, len(text)))
    return bounds


def _clause_of(position: int, bounds: List[Tuple[int, int]]) -> Tuple[int, int]:
    for start, end in bounds:
        if start <= position < end:
            return start, end
    return bounds[-1]


def _context_factor(occurrence: KeywordOccurrence, text: str, bounds: List[Tuple[int, int]]) -> float:
    """Scale toward zero when a secondary-mention marker sits close by in the same clause"""
    clause_start, clause_end = _clause_of(occurrence.start, bounds)
    clause = text[clause_start:clause_end]
    nearest = None
    for marker in _MARKER_RE.finditer(clause):
        marker_start = clause_start + marker.start()
        marker_end = clause_start + marker.end()
        if marker_end <= occurrence.start:
            distance = occurrence.start - marker_end
        elif marker_start >= occurrence.end:
            distance = marker_start - occurrence.end
        else:
            distance = 0
        if nearest is None or distance < nearest:
            nearest = distance
    if nearest is None or nearest >= CONTEXT_RADIUS:
        return 1.0
    return nearest / CONTEXT_RADIUS


def find_occurrences(text: str) -> List[KeywordOccurrence]:
    """Locate every directional keyword with its offset and context suppression"""
    bounds = _clause_bounds(text)
    occurrences = []
    for match in _KEYWORD_RE.finditer(text):
        keyword = match.group(0).lower()
        if keyword in DEBIT_KEYWORDS:
            direction, weight = Direction.EXPENSE, DEBIT_KEYWORDS[keyword]
        else:
            direction, weight = Direction.INCOME, CREDIT_KEYWORDS[keyword]
        occurrence = KeywordOccurrence(keyword, direction, match.start(), match.end(), weight)
        occurrence.context_factor = _context_factor(occurrence, text, bounds)
        occurrences.append(occurrence)
    return occurrences


def score(body: str) -> ClassificationResult:
    """
    Weigh debit-like against credit-like signals in a message.

    Rules:
    - Earlier occurrences weigh more; the earliest unsuppressed one is the primary indicator
    - Keywords next to dispute/helpline phrasing in the same clause are suppressed
    - Exact ties and keyword-less text resolve to expense
    """
    text = body or ""
    occurrences = find_occurrences(text)

    primary = next((o for o in occurrences if o.context_factor >= PRIMARY_MIN_FACTOR), None)

    debit_score = 0.0
    credit_score = 0.0
    for occurrence in occurrences:
        weight = occurrence.weight(primary=occurrence is primary)
        if occurrence.direction == Direction.EXPENSE:
            debit_score += weight
        else:
            credit_score += weight

    direction = Direction.INCOME if credit_score > debit_score else Direction.EXPENSE
    return ClassificationResult(direction=direction, debit_score=debit_score, credit_score=credit_score)


def is_financial(body: str) -> bool:
    """True when the text mentions money movement or account activity at all"""
    return bool(_FINANCIAL_RE.search(body or ""))


def classify(body: str) -> Direction:
    """Resolve the transaction direction of a message; unknown text is treated as expense"""
    return score(body).direction
