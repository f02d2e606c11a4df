from __future__ import annotations

import logging
from typing import Any, Iterable

from sales_doctor.mapping import clean_header, resolve_column
from sales_doctor.models import DataType

logger = logging.getLogger(__name__)


DETECTION_ORDER = (DataType.SALES, DataType.OFFERS, DataType.DEMOGRAPHICS)


def _matches(data_type: DataType, headers: set[str]) -> bool:
    if data_type is DataType.SALES:
        return {"receipt_date", "product_name"} <= headers
    if data_type is DataType.OFFERS:
        return bool({"hit_id", "offer_id", "created_at"} & headers)
    if data_type is DataType.DEMOGRAPHICS:
        return bool({"age_group", "gender"} & headers)
    return False


def detect_data_type(headers: Iterable[Any]) -> DataType:
    """Marker-column detection: sales, then offers, then demographics."""
    header_set = {clean_header(header) for header in headers}
    for data_type in DETECTION_ORDER:
        if _matches(data_type, header_set):
            return data_type
    return DataType.UNKNOWN


def infer_data_type(headers: Iterable[Any]) -> DataType:
    """
    Strict detection first, then detection over alias-mapped headers.

    ``purchase_date, item, store`` has no marker column as written but maps
    to ``receipt_date, product_name, chain`` under the sales aliases.
    """
    headers = list(headers)
    detected = detect_data_type(headers)
    if detected is not DataType.UNKNOWN:
        return detected
    for data_type in DETECTION_ORDER:
        mapped = {resolve_column(header, data_type) or clean_header(header) for header in headers}
        if _matches(data_type, mapped):
            logger.debug("Detected %s after alias mapping of %s", data_type.value, headers)
            return data_type
    return DataType.UNKNOWN
