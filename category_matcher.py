"""Map free-text category suggestions onto the user's categories.

Resolution order: exact name, alias table, fuzzy similarity, then a fallback.
``match_category`` is total: it always returns a non-empty category name.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from config import get_settings
from ledger import CategoryView
from models import TransactionType
from schemas import ExtractedTransaction

FALLBACK_CATEGORY = "Other"
CONTAINMENT_SCORE = 0.8

CATEGORY_ALIASES = MappingProxyType(
    {
        "Food": ("food", "meal", "meals", "eating", "restaurant", "cafe"),
        "Groceries": (
            "groceries",
            "grocery",
            "supermarket",
            "market",
            "walmart",
            "costco",
            "target",
            "aldi",
            "kroger",
            "safeway",
            "trader joe",
        ),
        "Dining": (
            "dining",
            "restaurant",
            "cafe",
            "coffee",
            "starbucks",
            "mcdonalds",
            "fast food",
            "takeout",
            "takeaway",
            "delivery",
        ),
        "Transport": (
            "transport",
            "transportation",
            "uber",
            "lyft",
            "taxi",
            "bus",
            "train",
            "metro",
            "subway",
            "gas",
            "fuel",
            "petrol",
            "parking",
        ),
        "Travel": (
            "travel",
            "flight",
            "hotel",
            "airbnb",
            "vacation",
            "trip",
            "airline",
            "booking",
        ),
        "Entertainment": (
            "entertainment",
            "movies",
            "cinema",
            "netflix",
            "spotify",
            "streaming",
            "games",
            "gaming",
            "concert",
            "show",
        ),
        "Health": (
            "health",
            "medical",
            "doctor",
            "pharmacy",
            "medicine",
            "hospital",
            "clinic",
            "dental",
            "dentist",
            "healthcare",
        ),
        "Fitness": ("fitness", "gym", "workout", "sports", "exercise", "yoga", "running"),
        "Bills": (
            "bills",
            "bill",
            "utility",
            "utilities",
            "electric",
            "electricity",
            "water",
            "internet",
            "phone",
            "mobile",
            "subscription",
        ),
        "Utilities": (
            "utilities",
            "utility",
            "electric",
            "electricity",
            "water",
            "gas",
            "heating",
            "cooling",
        ),
        "Rent": ("rent", "mortgage", "housing", "lease"),
        "Home": (
            "home",
            "house",
            "household",
            "furniture",
            "appliances",
            "cleaning",
            "maintenance",
        ),
        "Education": (
            "education",
            "school",
            "university",
            "college",
            "course",
            "learning",
            "books",
            "tuition",
        ),
        "Work Expenses": ("work", "office", "business", "professional", "supplies"),
        "Pets": ("pets", "pet", "dog", "cat", "vet", "veterinary", "animal"),
        "Family": ("family", "kids", "children", "childcare", "baby"),
        "Gear": ("gear", "equipment", "electronics", "tech", "gadgets", "amazon"),
        "Creativity": ("creativity", "art", "craft", "hobby", "creative"),
        "Outdoors": ("outdoors", "outdoor", "camping", "hiking", "nature"),
        "Lifestyle": (
            "lifestyle",
            "personal",
            "shopping",
            "clothing",
            "clothes",
            "fashion",
            "beauty",
            "hair",
            "salon",
        ),
        "Salary": ("salary", "paycheck", "wages", "pay", "income"),
        "Side Hustle": ("side hustle", "freelance", "gig", "extra income"),
        "Client Work": ("client", "client work", "project", "contract"),
        "Consulting": ("consulting", "consultant", "advisory"),
        "Investing": ("investing", "investment", "stocks", "crypto", "trading"),
        "Bonus": ("bonus", "reward", "incentive"),
        "Dividends": ("dividends", "dividend", "yield", "interest"),
        "Other": ("other", "misc", "miscellaneous", "general", "uncategorized"),
    }
)


def string_similarity(first: str, second: str) -> float:
    a = first.strip().lower()
    b = second.strip().lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return CONTAINMENT_SCORE
    return float(Levenshtein.normalized_similarity(a, b))


def _candidates(
    categories: Iterable[CategoryView], transaction_type: TransactionType
) -> list[CategoryView]:
    named = [c for c in categories if c.name and c.name.strip()]
    relevant = [c for c in named if c.type == transaction_type]
    return relevant or named


def _alias_match(suggestion: str, candidates: Sequence[CategoryView]) -> Optional[str]:
    for category in candidates:
        aliases = CATEGORY_ALIASES.get(category.name, ())
        if any(alias in suggestion or suggestion in alias for alias in aliases):
            return category.name

    by_lower = {c.name.strip().lower(): c.name for c in candidates}
    for key, aliases in CATEGORY_ALIASES.items():
        if key.lower() in by_lower and any(alias in suggestion for alias in aliases):
            return by_lower[key.lower()]
    return None


def _fuzzy_match(
    suggestion: str, candidates: Sequence[CategoryView], threshold: float
) -> Optional[str]:
    best: Optional[str] = None
    best_score = 0.0
    for category in candidates:
        score = string_similarity(suggestion, category.name)
        if score > best_score and score >= threshold:
            best_score = score
            best = category.name
    return best


def _fallback(candidates: Sequence[CategoryView]) -> str:
    for category in candidates:
        if category.name.strip().lower() != FALLBACK_CATEGORY.lower():
            return category.name
    if candidates:
        return candidates[0].name
    return FALLBACK_CATEGORY


def match_category(
    suggested: Optional[str],
    categories: Iterable[CategoryView],
    transaction_type: TransactionType = TransactionType.expense,
    *,
    threshold: Optional[float] = None,
) -> str:
    candidates = _candidates(categories, transaction_type)
    suggestion = (suggested or "").strip().lower()
    if not suggestion or not candidates:
        return _fallback(candidates)

    for category in candidates:
        if category.name.strip().lower() == suggestion:
            return category.name

    aliased = _alias_match(suggestion, candidates)
    if aliased:
        return aliased

    if threshold is None:
        threshold = get_settings().category_match_threshold
    fuzzy = _fuzzy_match(suggestion, candidates, threshold)
    if fuzzy:
        return fuzzy

    return _fallback(candidates)


def match_categories(
    extracted: Iterable[ExtractedTransaction], categories: Iterable[CategoryView]
) -> dict[str, str]:
    categories = list(categories)
    return {
        item.id: match_category(item.suggested_category, categories, item.type)
        for item in extracted
    }
