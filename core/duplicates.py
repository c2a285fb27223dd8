"""Duplicate detection for uploaded dispatch rows."""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence, Tuple
import logging

from config.settings import settings
from integrations.mongo_handler import with_row_id

logger = logging.getLogger(__name__)

DISPATCH_DUPLICATE_KEY = (
    "billing_document",
    "billing_date",
    "bill_to_customer",
    "lot_no",
    "plant",
    "product",
    "item_description",
    "billed_quantity",
    "no_of_package",
    "gross_weight",
    "vehicle_number",
)
DISPATCH_NUMERIC_FIELDS = frozenset({"billed_quantity", "no_of_package", "gross_weight"})

RESULT_DUPLICATE_KEY = ("billing_date", "lot_no", "customer_name", "billing_document")


def _as_text(value) -> str:
    return "" if value is None else str(value)


def _as_number(value):
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        # "8,870 KG" style values only ever equal the same text
        return str(value).strip()


def composite_key(
    record: Dict,
    key_fields: Sequence[str] = DISPATCH_DUPLICATE_KEY,
    numeric_fields: Iterable[str] = DISPATCH_NUMERIC_FIELDS,
) -> Tuple:
    numeric_fields = frozenset(numeric_fields)
    return tuple(
        (field, _as_number(record.get(field)) if field in numeric_fields else _as_text(record.get(field)))
        for field in sorted(key_fields)
    )


def classify(
    candidates: Sequence[Dict],
    existing: Iterable[Dict],
    key_fields: Sequence[str] = DISPATCH_DUPLICATE_KEY,
    numeric_fields: Iterable[str] = DISPATCH_NUMERIC_FIELDS,
) -> Dict[str, List[Dict]]:
    """Split candidates into rows already present in `existing` and new rows.

    Order is preserved inside each partition. Nothing is persisted.
    """
    index = {composite_key(row, key_fields, numeric_fields) for row in existing}

    duplicates, non_duplicates = [], []
    for candidate in candidates:
        if composite_key(candidate, key_fields, numeric_fields) in index:
            duplicates.append(candidate)
        else:
            non_duplicates.append(candidate)

    return {"duplicates": duplicates, "non_duplicates": non_duplicates}


def narrowing_values(candidates: Iterable[Dict], column: str) -> List:
    """Distinct values of `column`, plus null and "" when any candidate lacks one."""
    values, has_blank = [], False
    for candidate in candidates:
        value = candidate.get(column)
        if value is None or value == "":
            has_blank = True
        elif value not in values:
            values.append(value)

    if has_blank:
        values.extend([None, ""])
    return values


def find_duplicates(store, candidates: Sequence[Dict]) -> Dict[str, List[Dict]]:
    """Classify uploaded dispatch rows against the stored dispatch data."""
    billing_documents = narrowing_values(candidates, "billing_document")
    existing = []
    if billing_documents:
        existing = store.fetch(
            settings.DISPATCH_COLLECTION,
            columns=list(DISPATCH_DUPLICATE_KEY),
            filters={"billing_document": {"$in": billing_documents}},
        )

    result = classify(candidates, existing)
    logger.info(
        f"Duplicate check: {len(candidates)} candidates, {len(existing)} existing rows, "
        f"{len(result['duplicates'])} duplicates"
    )
    return result


def insert_dispatch_results(store, results: Sequence[Dict]) -> Dict:
    """Insert dispatch results, skipping rows already stored for the same lot.

    Every stored row gets an `id`; the master back-fill targets rows by it.
    """
    lot_numbers = [lot for lot in narrowing_values(results, "lot_no") if lot not in (None, "")]

    existing = []
    if lot_numbers:
        existing = store.fetch(
            settings.DISPATCH_RESULTS_COLLECTION,
            columns=list(RESULT_DUPLICATE_KEY),
            filters={"lot_no": {"$in": lot_numbers}},
        )

    result = classify(results, existing, RESULT_DUPLICATE_KEY, numeric_fields=())
    now = datetime.now(timezone.utc).isoformat()
    to_insert = [with_row_id({**row, "created_at": now}) for row in result["non_duplicates"]]
    inserted = store.insert(settings.DISPATCH_RESULTS_COLLECTION, to_insert) if to_insert else []

    return {
        "data": inserted,
        "inserted": len(to_insert),
        "skipped": len(result["duplicates"]),
    }
