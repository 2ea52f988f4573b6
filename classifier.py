"""Keyword classification of statement descriptions into spending categories.

Rules are evaluated top to bottom and the first match wins. Several categories
share vocabulary (a grocery chain is also a "store", "uber eats" also contains
"uber"), so the order of ``CATEGORY_RULES`` is part of the behaviour.
"""

from __future__ import annotations

import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

from models import SpendingCategory


def _rule(pattern: str, category: SpendingCategory) -> tuple[re.Pattern[str], SpendingCategory]:
    return re.compile(pattern, re.IGNORECASE), category


CATEGORY_RULES: tuple[tuple[re.Pattern[str], SpendingCategory], ...] = (
    _rule(
        r"grocery|grocer|supermarket|whole foods|walmart|target|kroger|publix|aldi"
        r"|trader joe|food lion|sprouts",
        SpendingCategory.groceries,
    ),
    _rule(
        r"restaurant|cafe|coffee|starbucks|mcdonald|burger|pizza|taco|subway|diner"
        r"|bistro|sushi|doordash|grubhub|uber eats|postmates",
        SpendingCategory.dining,
    ),
    _rule(
        r"shell|bp |exxon|chevron|marathon|sunoco|speedway|gas station|fuel",
        SpendingCategory.gas,
    ),
    _rule(
        r"pharmacy|drug|cvs|walgreen|rite aid|medicine|health|clinic|hospital"
        r"|doctor|dental",
        SpendingCategory.medical,
    ),
    _rule(
        r"amazon|ebay|best buy|costco|shop|store|mall|retail|clothing|apparel",
        SpendingCategory.shopping,
    ),
    _rule(
        r"uber|lyft|transit|bus|taxi|metro|train|parking|toll",
        SpendingCategory.transportation,
    ),
    _rule(
        r"netflix|spotify|hulu|disney|apple|google|subscription|streaming",
        SpendingCategory.subscriptions,
    ),
    _rule(
        r"electric|water|gas bill|utility|internet|cable|at&t|verizon|comcast"
        r"|t-mobile",
        SpendingCategory.utilities,
    ),
    _rule(r"mortgage|rent|hoa|apartment|lease", SpendingCategory.housing),
    _rule(r"transfer|zelle|venmo|paypal|cashapp|payment", SpendingCategory.transfer),
    _rule(
        r"payroll|direct deposit|salary|deposit|ach credit", SpendingCategory.income
    ),
)


def classify(description: Optional[str]) -> SpendingCategory:
    if not description or not description.strip():
        return SpendingCategory.other
    for pattern, category in CATEGORY_RULES:
        if pattern.search(description):
            return category
    return SpendingCategory.other


_BY_LABEL = {category.value.lower(): category for category in SpendingCategory}


def coerce_category(label: Optional[str]) -> SpendingCategory:
    """Map a free-text category label from an outside source onto the closed set.

    Exact (case-insensitive) names win; otherwise a single label within one
    edit is accepted. Anything else, including ties, becomes Other.
    """
    clean = (label or "").strip().lower()
    if not clean:
        return SpendingCategory.other
    exact = _BY_LABEL.get(clean)
    if exact:
        return exact

    best_distance: Optional[int] = None
    best: list[SpendingCategory] = []
    for name, category in _BY_LABEL.items():
        dist = int(Levenshtein.distance(clean, name))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)

    if best_distance is not None and best_distance <= 1 and len(best) == 1:
        return best[0]
    return SpendingCategory.other
