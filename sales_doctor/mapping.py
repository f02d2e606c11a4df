from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from sales_doctor.models import DataType
from sales_doctor.schemas import SCHEMAS

logger = logging.getLogger(__name__)


USER_ALIASES = {
    "customer_id": "user_id",
    "customer": "user_id",
    "user": "user_id",
    "userid": "user_id",
}

COLUMN_ALIASES: dict[DataType, dict[str, str]] = {
    DataType.SALES: {
        "date": "receipt_date",
        "transaction_date": "receipt_date",
        "purchase_date": "receipt_date",
        "order_date": "receipt_date",
        "created_at": "receipt_date",
        "timestamp": "receipt_date",
        "product": "product_name",
        "item": "product_name",
        "item_name": "product_name",
        "product_title": "product_name",
        "description": "product_name",
        "sku": "product_name",
        "retailer": "chain",
        "store": "chain",
        "merchant": "chain",
        "vendor": "chain",
        "shop": "chain",
        "outlet": "chain",
        "amount": "receipt_total",
        "total": "receipt_total",
        "price": "receipt_total",
        "value": "receipt_total",
        "cost": "receipt_total",
        "spend": "receipt_total",
        **USER_ALIASES,
    },
    DataType.OFFERS: {
        "id": "hit_id",
        "offer_hit_id": "hit_id",
        "engagement_id": "hit_id",
        "interaction_id": "hit_id",
        "timestamp": "created_at",
        "date": "created_at",
        "hit_date": "created_at",
        "engagement_date": "created_at",
        "offer": "offer_name",
        "campaign": "offer_name",
        "promotion": "offer_name",
        "deal": "offer_name",
        **USER_ALIASES,
    },
    DataType.DEMOGRAPHICS: {
        "id": "user_id",
        **USER_ALIASES,
        "age": "age_group",
        "age_range": "age_group",
        "age_bracket": "age_group",
        "sex": "gender",
        "city": "location",
        "region": "location",
        "state": "location",
        "country": "location",
    },
}


def clean_header(header: Any) -> str:
    return str(header).strip().lower()


def canonical_columns(data_type: DataType) -> set[str]:
    columns = set(COLUMN_ALIASES.get(data_type, {}).values())
    schema = SCHEMAS.get(data_type)
    if schema is not None:
        columns |= schema.known_columns()
    return columns


def resolve_column(header: Any, data_type: DataType) -> str | None:
    """Canonical name for a header, or None when the header is not recognised."""
    cleaned = clean_header(header)
    if cleaned in canonical_columns(data_type):
        return cleaned
    return COLUMN_ALIASES.get(data_type, {}).get(cleaned)


def plan_mapping(headers: Iterable[Any], data_type: DataType) -> dict[Any, Any]:
    """
    Decide the output key for every header of one row.

    Headers that already carry a canonical name exactly keep it. Any other
    header claims its canonical name only if nothing earlier claimed it;
    otherwise it passes through unchanged so no column is dropped.
    """
    headers = list(headers)
    targets = {header: resolve_column(header, data_type) for header in headers}
    claimed = {header for header in headers if targets[header] == header}
    plan: dict[Any, Any] = {}
    for header in headers:
        target = targets[header]
        if target is None or target == header:
            plan[header] = header
        elif target in claimed:
            plan[header] = header
        else:
            plan[header] = target
            claimed.add(target)
    return plan


@dataclass
class MappingReport:
    mapped: dict[str, str] = field(default_factory=dict)
    unmapped: list[str] = field(default_factory=list)
    suggestions: dict[str, dict[str, str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mapped": dict(self.mapped),
            "unmapped": list(self.unmapped),
            "suggestions": {key: dict(value) for key, value in self.suggestions.items()},
        }


@dataclass
class MappedRows:
    rows: list[dict[str, Any]]
    report: MappingReport


def suggest_column_mappings(headers: Sequence[Any], data_type: DataType) -> dict[str, dict[str, str]]:
    aliases = COLUMN_ALIASES.get(data_type)
    if not aliases:
        return {}
    canonical = canonical_columns(data_type)
    suggestions: dict[str, dict[str, str]] = {}
    for header in headers:
        cleaned = clean_header(header)
        if not cleaned or cleaned in canonical:
            continue
        if cleaned in aliases:
            suggestions[str(header)] = {
                "suggested": aliases[cleaned],
                "confidence": "high",
                "reason": "Exact column name match",
            }
            continue
        for pattern, target in aliases.items():
            if pattern in cleaned or cleaned in pattern:
                suggestions[str(header)] = {
                    "suggested": target,
                    "confidence": "medium",
                    "reason": f'Partial match with "{pattern}"',
                }
                break
    return suggestions


def map_columns(rows: Sequence[Mapping[str, Any]], data_type: DataType) -> MappedRows:
    report = MappingReport()
    if data_type not in COLUMN_ALIASES:
        return MappedRows(rows=[dict(row) for row in rows], report=report)

    plans: dict[tuple, dict[Any, Any]] = {}
    mapped_rows: list[dict[str, Any]] = []
    for row in rows:
        key = tuple(row.keys())
        plan = plans.get(key)
        if plan is None:
            plan = plan_mapping(key, data_type)
            plans[key] = plan
        mapped_rows.append({plan[header]: value for header, value in row.items()})

    canonical = canonical_columns(data_type)
    for plan in plans.values():
        for header, target in plan.items():
            if target != header:
                report.mapped[str(header)] = str(target)
            elif clean_header(header) not in canonical and str(header) not in report.unmapped:
                report.unmapped.append(str(header))

    report.suggestions = {
        header: suggestion
        for header, suggestion in suggest_column_mappings(report.unmapped, data_type).items()
        if suggestion["confidence"] == "medium"
    }
    logger.debug("Mapped %d columns for %s: %s", len(report.mapped), data_type.value, report.mapped)
    return MappedRows(rows=mapped_rows, report=report)
