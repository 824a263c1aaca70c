import pytest

from category_matcher import (
    CATEGORY_ALIASES,
    match_categories,
    match_category,
    string_similarity,
)
from ledger import CategoryView
from models import TransactionType
from schemas import ExtractedTransaction


def _categories(*names, type=TransactionType.expense):
    return [
        CategoryView(id=str(i), name=name, type=type) for i, name in enumerate(names)
    ]


def test_exact_match_ignores_case() -> None:
    categories = _categories("Groceries", "Dining")
    assert match_category("  GROCERIES ", categories) == "Groceries"


def test_alias_match_uses_merchant_names() -> None:
    categories = _categories("Food", "Dining", "Groceries")
    assert match_category("Starbucks", categories) == "Dining"
    assert match_category("Costco Wholesale", categories) == "Groceries"


def test_fuzzy_match_for_typos() -> None:
    categories = _categories("Entertainment", "Rent")
    assert match_category("Entertainmnt", categories, threshold=0.4) == "Entertainment"


def test_fallback_skips_other() -> None:
    categories = _categories("Other", "Dining")
    assert match_category("zzzz", categories, threshold=0.4) == "Dining"
    assert match_category("zzzz", _categories("Other"), threshold=0.4) == "Other"


def test_never_returns_empty() -> None:
    categories = _categories("Food")
    for suggestion in ("", "   ", None, "日本語", "🙂", "x" * 500):
        assert match_category(suggestion, categories, threshold=0.4) == "Food"
    assert match_category("Food", []) == "Other"


def test_prefers_categories_of_requested_type() -> None:
    categories = _categories("Dining") + [
        CategoryView(id="9", name="Salary", type=TransactionType.income)
    ]
    assert match_category("paycheck", categories, TransactionType.income) == "Salary"
    assert match_category("", categories, TransactionType.income) == "Salary"


def test_string_similarity_scores() -> None:
    assert string_similarity("abc", "ABC") == 1.0
    assert string_similarity("", "abc") == 0.0
    assert string_similarity("gym", "gym membership") == 0.8
    assert 0 < string_similarity("kitten", "sitting") < 0.8


def test_alias_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        CATEGORY_ALIASES["New"] = ("new",)  # type: ignore[index]


def test_match_categories_maps_each_candidate() -> None:
    categories = _categories("Dining", "Transport") + [
        CategoryView(id="9", name="Salary", type=TransactionType.income)
    ]
    extracted = [
        ExtractedTransaction(id="a", amount=4.5, suggested_category="coffee"),
        ExtractedTransaction(id="b", amount=20, suggested_category="Uber ride"),
        ExtractedTransaction(
            id="c", amount=900, type="income", suggested_category="wages"
        ),
    ]
    assert match_categories(extracted, categories) == {
        "a": "Dining",
        "b": "Transport",
        "c": "Salary",
    }
