"""
Category inference rules for message-derived transactions.

Keyword tables map merchants and contextual words to the default category
set. Matching is case-insensitive and word-bounded, merchant text first,
then the full message body.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from fintrack.domain.models import Direction, INCOME_CATEGORY, OTHER_CATEGORY


@dataclass(frozen=True)
class CategoryDefinition:
    """Seeded category row"""

    name: str
    icon: str
    color: str
    is_income: bool = False


DEFAULT_CATEGORIES: List[CategoryDefinition] = [
    CategoryDefinition("Food & Dining", "restaurant", "#FF9800"),
    CategoryDefinition("Transport", "directions_car", "#2196F3"),
    CategoryDefinition("Shopping", "shopping_bag", "#E91E63"),
    CategoryDefinition("Entertainment", "movie", "#9C27B0"),
    CategoryDefinition("Healthcare", "local_hospital", "#009688"),
    CategoryDefinition("Utilities", "home", "#795548"),
    CategoryDefinition("Education", "school", "#607D8B"),
    CategoryDefinition("Financial Services", "account_balance_wallet", "#3F51B5"),
    CategoryDefinition(INCOME_CATEGORY, "account_balance", "#4CAF50", is_income=True),
    CategoryDefinition(OTHER_CATEGORY, "category", "#616161"),
]

CATEGORY_NAMES = {c.name for c in DEFAULT_CATEGORIES}

MERCHANT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Food & Dining": (
        "swiggy", "zomato", "dominos", "pizza", "restaurant", "cafe", "bigbasket", "grofers",
        "blinkit", "instamart", "zepto", "mcdonalds", "kfc", "subway", "starbucks", "haldirams",
        "bakery", "grocery",
    ),
    "Transport": (
        "uber", "ola", "rapido", "metro", "dmrc", "petrol", "fuel", "cab", "taxi", "parking",
        "toll", "fastag", "irctc", "redbus", "makemytrip", "goibibo",
    ),
    "Shopping": (
        "amazon", "flipkart", "myntra", "ajio", "nykaa", "meesho", "reliance", "westside",
        "pantaloons", "mall", "store",
    ),
    "Entertainment": (
        "netflix", "spotify", "hotstar", "youtube", "bookmyshow", "cinema", "pvr", "inox",
        "zee5", "disney", "prime video",
    ),
    "Healthcare": (
        "hospital", "clinic", "pharmacy", "pharmeasy", "netmeds", "apollo", "medplus",
        "diagnostic", "dental", "medical",
    ),
    "Utilities": (
        "electricity", "broadband", "recharge", "airtel", "jio", "vodafone", "bsnl", "wifi",
        "water bill", "gas bill", "bill pay", "billpay",
    ),
    "Education": (
        "school", "college", "university", "tuition", "byju", "unacademy", "vedantu", "coursera",
        "exam fee",
    ),
    "Financial Services": (
        "insurance", "mutual fund", "sip", "emi", "loan", "lic", "premium", "zerodha", "groww",
        "upstox",
    ),
    INCOME_CATEGORY: ("salary", "payroll", "dividend", "interest earned", "bonus", "cashback"),
}

CONTEXT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Food & Dining": ("meal", "lunch", "dinner", "breakfast", "snack", "food", "delivered"),
    "Transport": ("trip", "ride", "journey", "station", "airport", "ticket"),
    "Shopping": ("order", "cart", "shipped", "product", "purchase"),
    "Entertainment": ("subscription", "streaming", "movie", "entertainment"),
    "Healthcare": ("treatment", "consultation", "prescription", "medicine", "checkup"),
    "Utilities": ("bill", "connection", "postpaid", "prepaid"),
    "Education": ("admission", "semester", "course", "fees"),
    "Financial Services": ("policy", "investment", "installment"),
}


def _compile(words) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


_MERCHANT_RULES = [(category, _compile(words)) for category, words in MERCHANT_KEYWORDS.items()]
_CONTEXT_RULES = [(category, _compile(words)) for category, words in CONTEXT_KEYWORDS.items()]


def _match_merchant_rules(text: str) -> Optional[str]:
    for category, regex in _MERCHANT_RULES:
        if regex.search(text):
            return category
    return None


def infer_category(body: str, merchant: Optional[str], direction: Direction) -> str:
    """
    Pick a category name for a transaction.

    Priority:
    1. Known merchant names in the extracted merchant text
    2. Known merchant names anywhere in the message
    3. Most contextual keyword hits
    4. Income for credits, otherwise Other
    """
    body = body or ""
    category = _match_merchant_rules(merchant) if merchant else None
    if category is None:
        category = _match_merchant_rules(body)

    # Income-only keywords never label an expense
    if category == INCOME_CATEGORY and direction == Direction.EXPENSE:
        category = None

    if category is None:
        best, best_hits = None, 0
        for name, regex in _CONTEXT_RULES:
            hits = len(regex.findall(body))
            if hits > best_hits:
                best, best_hits = name, hits
        category = best

    if category is None:
        return INCOME_CATEGORY if direction == Direction.INCOME else OTHER_CATEGORY
    return category


_INCOME_DESCRIPTIONS = (
    ("salary", "Salary Credit"),
    ("refund", "Refund Received"),
    ("cashback", "Cashback"),
    ("bonus", "Bonus Payment"),
    ("interest", "Interest Earned"),
    ("dividend", "Dividend"),
)

_EXPENSE_DESCRIPTIONS = (
    (("swiggy", "zomato"), "Food Delivery"),
    (("uber", "ola", "rapido"), "Cab Ride"),
    (("amazon", "flipkart", "myntra"), "Online Shopping"),
    (("netflix", "spotify", "hotstar"), "Subscription"),
    (("petrol", "fuel"), "Fuel Payment"),
    (("electricity", "water bill"), "Utility Bill"),
    (("insurance", "premium"), "Insurance Premium"),
    (("emi", "loan"), "EMI Payment"),
    (("atm", "cash withdrawal"), "ATM Withdrawal"),
    (("pos",), "POS Transaction"),
    (("upi",), "UPI Payment"),
    (("neft", "imps", "rtgs", "transfer"), "Money Transfer"),
    (("bill",), "Bill Payment"),
)


def describe(body: str, direction: Direction, merchant: Optional[str] = None) -> str:
    """Short human-readable description for a transaction"""
    content = (body or "").lower()
    if direction == Direction.INCOME:
        for keyword, label in _INCOME_DESCRIPTIONS:
            if keyword in content:
                return label
        return f"Credit from {merchant}" if merchant else "Credit Transaction"

    for keywords, label in _EXPENSE_DESCRIPTIONS:
        if any(re.search(rf"\b{re.escape(k)}\b", content) for k in keywords):
            return label
    return f"Payment to {merchant}" if merchant else "Debit Transaction"


def normalize_category(label: Optional[str]) -> Optional[str]:
    """Map an external category label onto a known category name, or None"""
    if not label:
        return None
    cleaned = label.strip()
    if cleaned.lower() in ("others", "other", "misc", "miscellaneous"):
        return OTHER_CATEGORY
    for name in CATEGORY_NAMES:
        if name.lower() == cleaned.lower():
            return name
    return None
