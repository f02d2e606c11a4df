"""
Correction suggestions for a single cell.

Heuristic families are picked by keywords in the column name. The table is
data so each entry can be tested on its own; adding a family means adding a
row to ``SUGGESTION_RULES``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from sales_doctor.mapping import resolve_column
from sales_doctor.models import CorrectionTier, DataType, cell_text, is_blank
from sales_doctor.normalization import (
    age_from_number,
    clean_numeric,
    collapse_whitespace,
    format_number,
    lookup_age_group,
    standardize_date,
    standardize_gender,
)


RETAILER_VARIANTS: dict[str, tuple[str, ...]] = {
    "Tesco": ("teso", "tescos", "tesc0"),
    "Asda": ("adsa", "asda."),
    "Sainsbury's": ("sainsbury", "sainsburys", "sainsburys'"),
    "Morrisons": ("morisons", "morrison"),
    "Waitrose": ("waitros",),
    "Aldi": (),
    "Lidl": (),
    "Co-op": ("coop", "co op"),
    "Marks & Spencer": ("m&s", "marks and spencer", "marks&spencer"),
}


def _retailer_key(value: Any) -> str:
    return collapse_whitespace(cell_text(value)).lower()


def canonical_retailer(value: Any) -> str | None:
    key = _retailer_key(value)
    if not key:
        return None
    for canonical, variants in RETAILER_VARIANTS.items():
        if key == canonical.lower() or key in variants:
            return canonical
    return None


def is_retailer_variant(value: Any) -> bool:
    """True for a known misspelling, not for a differently cased canonical name."""
    key = _retailer_key(value)
    return any(key in variants for variants in RETAILER_VARIANTS.values())


def fix_retailer_name(value: Any) -> str:
    canonical = canonical_retailer(value)
    if canonical:
        return canonical
    return collapse_whitespace(cell_text(value))


def standardize_product_name(value: str) -> str:
    text = collapse_whitespace(value).replace("'", "").replace('"', "").lower()
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def _suggest_date(value: str) -> str:
    return str(standardize_date(value))


def _suggest_number(value: str) -> str:
    number = clean_numeric(value)
    return value if number is None else format_number(number)


def _suggest_age_group(value: str) -> str:
    return lookup_age_group(value) or age_from_number(value) or value


def _suggest_gender(value: str) -> str:
    return str(standardize_gender(value))


def _trim_whitespace(value: str) -> str:
    return collapse_whitespace(value)


@dataclass(frozen=True)
class Suggestion:
    value: Any
    tier: CorrectionTier
    description: str
    confidence: float
    family: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "tier": self.tier.value,
            "description": self.description,
            "confidence": self.confidence,
            "family": self.family,
        }


@dataclass(frozen=True)
class SuggestionRule:
    family: str
    keywords: tuple[str, ...]
    transform: Callable[[str], str]
    tier: CorrectionTier
    confidence: float
    description: str

    def applies_to(self, column: str) -> bool:
        if not self.keywords:
            return True
        lowered = column.lower()
        return any(keyword in lowered for keyword in self.keywords)


SUGGESTION_RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule("date", ("date", "created_at"), _suggest_date, CorrectionTier.AUTO, 0.9,
                   "Convert to standard date format (YYYY-MM-DD)"),
    SuggestionRule("number", ("total", "amount", "price"), _suggest_number, CorrectionTier.AUTO, 0.8,
                   "Clean number formatting"),
    SuggestionRule("retailer", ("chain", "retailer"), fix_retailer_name, CorrectionTier.SUGGESTED, 0.7,
                   "Fix retailer name"),
    SuggestionRule("age_group", ("age",), _suggest_age_group, CorrectionTier.AUTO, 0.9,
                   "Standardize age group format"),
    SuggestionRule("gender", ("gender", "sex"), _suggest_gender, CorrectionTier.SUGGESTED, 0.8,
                   "Standardize gender value"),
    SuggestionRule("product", ("product",), standardize_product_name, CorrectionTier.SUGGESTED, 0.6,
                   "Standardize product name formatting"),
    SuggestionRule("whitespace", (), _trim_whitespace, CorrectionTier.AUTO, 0.95,
                   "Remove extra whitespace"),
)

EMPTY_VALUE_SUGGESTION = Suggestion(
    value="",
    tier=CorrectionTier.MANUAL,
    description="This field cannot be empty. Please provide a value.",
    confidence=0.0,
    family="empty",
)


def suggest_corrections(column: str, value: Any, data_type: DataType | None = None) -> list[Suggestion]:
    """
    Candidate corrections for one cell, in rule order.

    A rule only contributes when its output differs from the input. The
    first entry is the one to display; the rest are kept for review.
    """
    if is_blank(value):
        return [EMPTY_VALUE_SUGGESTION]

    name = str(column)
    if data_type is not None and data_type is not DataType.UNKNOWN:
        name = resolve_column(column, data_type) or name

    text = cell_text(value)
    suggestions: list[Suggestion] = []
    for rule in SUGGESTION_RULES:
        if not rule.applies_to(name):
            continue
        candidate = rule.transform(text)
        if candidate == text:
            continue
        suggestions.append(
            Suggestion(
                value=candidate,
                tier=rule.tier,
                description=rule.description,
                confidence=rule.confidence,
                family=rule.family,
            )
        )
    return suggestions


Suggester = Callable[[str, Any, DataType | None], list[Suggestion]]
