"""
Fixed dataset schemas for the three supported domain types.

Each column rule is one of a small closed set of validator classes. A rule
knows how to check a cell, how to describe a failure, and which correction
heuristic family applies to it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from sales_doctor.models import DataType, cell_text, is_blank
from sales_doctor.normalization import AGE_GROUPS, GENDER_CANONICAL, parse_date, parse_number


class SchemaError(ValueError):
    """Raised when a caller asks for a schema that does not exist."""


class CorrectionHint(str, Enum):
    DATE_FORMAT = "date_format"
    NUMBER_FORMAT = "number_format"
    RETAILER_MAPPING = "retailer_mapping"
    AGE_GROUP_MAPPING = "age_group_mapping"
    GENDER_MAPPING = "gender_mapping"
    MANUAL_INPUT = "manual_input"


@dataclass(frozen=True)
class RequiredText:
    message: str
    hint: CorrectionHint = CorrectionHint.MANUAL_INPUT
    correctable: bool = False

    def check(self, value: Any) -> bool:
        return not is_blank(value)

    def describe(self) -> str:
        return self.message


@dataclass(frozen=True)
class DateValue:
    message: str = "Invalid date format"
    hint: CorrectionHint = CorrectionHint.DATE_FORMAT
    correctable: bool = True

    def check(self, value: Any) -> bool:
        return parse_date(value) is not None

    def describe(self) -> str:
        return self.message


@dataclass(frozen=True)
class NonNegativeNumber:
    """Empty is allowed; anything else must parse as a number >= 0."""

    message: str = "Must be a valid positive number"
    hint: CorrectionHint = CorrectionHint.NUMBER_FORMAT
    correctable: bool = True

    def check(self, value: Any) -> bool:
        if is_blank(value):
            return True
        number = parse_number(value)
        return number is not None and number >= 0

    def describe(self) -> str:
        return self.message


@dataclass(frozen=True)
class AllowedValues:
    """Case-insensitive membership; empty is allowed."""

    allowed: tuple[str, ...]
    message: str
    hint: CorrectionHint
    correctable: bool = True

    def check(self, value: Any) -> bool:
        if is_blank(value):
            return True
        text = cell_text(value).strip().lower()
        return text in {item.lower() for item in self.allowed}

    def describe(self) -> str:
        return self.message


Validator = RequiredText | DateValue | NonNegativeNumber | AllowedValues


@dataclass(frozen=True)
class DatasetSchema:
    data_type: DataType
    required_columns: tuple[str, ...]
    optional_columns: tuple[str, ...] = ()
    validators: Mapping[str, Validator] = field(default_factory=dict)

    def known_columns(self) -> set[str]:
        return {*self.required_columns, *self.optional_columns, *self.validators}


AGE_GROUP_RULE = AllowedValues(
    allowed=AGE_GROUPS,
    message="Must be a valid age group (e.g., 25-34, 35-44)",
    hint=CorrectionHint.AGE_GROUP_MAPPING,
)
GENDER_RULE = AllowedValues(
    allowed=tuple(GENDER_CANONICAL.values()),
    message="Must be Male, Female, Other, or Prefer not to say",
    hint=CorrectionHint.GENDER_MAPPING,
)

SCHEMAS: dict[DataType, DatasetSchema] = {
    DataType.SALES: DatasetSchema(
        data_type=DataType.SALES,
        required_columns=("receipt_date", "product_name", "chain"),
        optional_columns=("receipt_total", "user_id", "offer_id"),
        validators={
            "receipt_date": DateValue(message="Invalid date format (expected YYYY-MM-DD or MM/DD/YYYY)"),
            "product_name": RequiredText(message="Product name cannot be empty"),
            "chain": RequiredText(
                message="Chain/retailer cannot be empty",
                hint=CorrectionHint.RETAILER_MAPPING,
                correctable=True,
            ),
            "receipt_total": NonNegativeNumber(),
        },
    ),
    DataType.OFFERS: DatasetSchema(
        data_type=DataType.OFFERS,
        required_columns=("hit_id", "created_at"),
        optional_columns=("offer_name", "user_id", "gender", "age_group"),
        validators={
            "hit_id": RequiredText(message="Hit ID cannot be empty"),
            "created_at": DateValue(message="Invalid date format (YYYY-MM-DD HH:MM:SS format recommended)"),
            "age_group": AGE_GROUP_RULE,
            "gender": GENDER_RULE,
        },
    ),
    DataType.DEMOGRAPHICS: DatasetSchema(
        data_type=DataType.DEMOGRAPHICS,
        required_columns=("user_id",),
        optional_columns=("age_group", "gender", "location"),
        validators={
            "user_id": RequiredText(message="User ID cannot be empty"),
            "age_group": AGE_GROUP_RULE,
            "gender": GENDER_RULE,
        },
    ),
}


def coerce_data_type(value: DataType | str) -> DataType:
    if isinstance(value, DataType):
        return value
    try:
        return DataType(str(value).strip().lower())
    except ValueError as exc:
        known = ", ".join(item.value for item in SCHEMAS)
        raise SchemaError(f"Unknown dataset type '{value}'. Expected one of: {known}") from exc


def get_schema(data_type: DataType | str) -> DatasetSchema | None:
    """Schema for a type; None for ``unknown``; SchemaError for anything else."""
    resolved = coerce_data_type(data_type)
    if resolved is DataType.UNKNOWN:
        return None
    schema = SCHEMAS.get(resolved)
    if schema is None:
        raise SchemaError(f"No schema registered for '{resolved.value}'")
    return schema
