import pytest

from classifier import CATEGORY_RULES, classify, coerce_category
from models import SpendingCategory


@pytest.mark.parametrize(
    "description, expected",
    [
        ("WHOLE FOODS #123", SpendingCategory.groceries),
        ("STARBUCKS STORE 1021", SpendingCategory.dining),
        ("SHELL OIL 5741", SpendingCategory.gas),
        ("CVS PHARMACY", SpendingCategory.medical),
        ("COSTCO WHOLESALE", SpendingCategory.shopping),
        ("UBER TRIP HELP.UBER.COM", SpendingCategory.transportation),
        ("NETFLIX.COM", SpendingCategory.subscriptions),
        ("COMCAST CABLE", SpendingCategory.utilities),
        ("RENT PAYMENT", SpendingCategory.housing),
        ("ZELLE TO JOHN", SpendingCategory.transfer),
        ("PAYROLL ACME CORP", SpendingCategory.income),
        ("XYZZY 42", SpendingCategory.other),
    ],
)
def test_classify_known_merchants(description: str, expected: SpendingCategory) -> None:
    assert classify(description) == expected


def test_classify_is_case_insensitive() -> None:
    assert classify("whole foods market") == SpendingCategory.groceries
    assert classify("Whole Foods Market") == SpendingCategory.groceries


def test_classify_empty_or_missing_description_is_other() -> None:
    assert classify("") == SpendingCategory.other
    assert classify("   ") == SpendingCategory.other
    assert classify(None) == SpendingCategory.other


def test_classify_is_repeatable() -> None:
    for description in ("TARGET T-1234", "UBER EATS", "mystery", ""):
        assert classify(description) == classify(description)


def test_grocery_chain_wins_over_generic_store() -> None:
    # "store" alone would be Shopping
    assert classify("ACME STORE") == SpendingCategory.shopping
    assert classify("TARGET STORE 0042") == SpendingCategory.groceries


def test_food_delivery_wins_over_ride_hailing() -> None:
    assert classify("UBER EATS ORDER") == SpendingCategory.dining
    assert classify("UBER *TRIP") == SpendingCategory.transportation


def test_housing_wins_over_transfer_payment() -> None:
    assert classify("MORTGAGE PAYMENT") == SpendingCategory.housing
    assert classify("ONLINE PAYMENT") == SpendingCategory.transfer


def test_rule_priority_order() -> None:
    order = [category for _, category in CATEGORY_RULES]
    assert order.index(SpendingCategory.groceries) < order.index(SpendingCategory.shopping)
    assert order.index(SpendingCategory.dining) < order.index(
        SpendingCategory.transportation
    )
    assert order.index(SpendingCategory.housing) < order.index(SpendingCategory.transfer)
    assert SpendingCategory.other not in order


def test_coerce_category_exact_and_near_matches() -> None:
    assert coerce_category("groceries") == SpendingCategory.groceries
    assert coerce_category("  DINING ") == SpendingCategory.dining
    assert coerce_category("Dinning") == SpendingCategory.dining
    assert coerce_category("Gass") == SpendingCategory.gas


def test_coerce_category_unknown_labels_fall_back_to_other() -> None:
    assert coerce_category("FOOD_AND_DRINK") == SpendingCategory.other
    assert coerce_category("Uncategorized") == SpendingCategory.other
    assert coerce_category("") == SpendingCategory.other
    assert coerce_category(None) == SpendingCategory.other
