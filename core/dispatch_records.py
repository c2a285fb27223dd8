"""Single-row maintenance of dispatch data and dispatch results.

Rows are addressed by the `id` assigned when they are stored. Dispatch
results are listed with count, blend and customer values filled from the
latest dispatch row of the same lot.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence
import logging

from config.settings import settings
from core.dispatch_stats import parse_billing_date
from core.errors import NotFoundError, ValidationError
from core.master_data import PLACEHOLDER
from integrations.mongo_handler import active_filter, combine, with_row_id

logger = logging.getLogger(__name__)

PROTECTED_COLUMNS = ("id", "created_at")

DISPATCH_INFO_COLUMNS = ["lot_no", "smpl_count", "customer_name", "item_description", "blend", "billing_date"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _editable(values: Dict) -> Dict:
    return {key: value for key, value in values.items() if key not in PROTECTED_COLUMNS}


def prepare_dispatch_rows(entries: Sequence[Dict]) -> List[Dict]:
    """Drop client ids and timestamps; stamp fresh ones shared by the upload."""
    now = _now()
    return [with_row_id({**_editable(entry), "created_at": now}) for entry in entries]


def update_dispatch_row(store, row_id: str, values: Dict) -> Dict:
    changes = _editable(values)
    if not changes:
        raise ValidationError("No values provided")

    store.update(settings.DISPATCH_COLLECTION, changes, {"id": row_id})
    rows = store.fetch(settings.DISPATCH_COLLECTION, filters={"id": row_id}, limit=1)
    if not rows:
        raise NotFoundError(f"Dispatch entry {row_id} not found")
    return rows[0]


def delete_dispatch_row(store, row_id: str, deleted_by: Optional[str] = None) -> None:
    if not store.delete(settings.DISPATCH_COLLECTION, {"id": row_id}):
        raise NotFoundError(f"Dispatch entry {row_id} not found")
    logger.info(f"Deleted dispatch entry {row_id} (by {deleted_by or 'unknown user'})")


def find_by_invoice(store, invoice_no: str) -> Optional[Dict]:
    """First active dispatch row billed under `invoice_no`, if any."""
    rows = store.fetch(
        settings.DISPATCH_COLLECTION,
        filters=combine({"billing_document": invoice_no}, active_filter()),
        limit=1,
    )
    return rows[0] if rows else None


def add_dispatch_result(store, row: Dict) -> Dict:
    stored = store.insert(settings.DISPATCH_RESULTS_COLLECTION, [with_row_id({**_editable(row), "created_at": _now()})])
    return stored[0]


def latest_dispatch_by_lot(dispatch_rows: Sequence[Dict]) -> Dict[str, Dict]:
    """Dispatch row with the latest billing date per lot; the first row wins ties."""
    latest = {}
    for row in dispatch_rows:
        lot = row.get("lot_no")
        current = latest.get(lot)
        if current is None or _billed_on(row) > _billed_on(current):
            latest[lot] = row
    return latest


def _billed_on(row: Dict) -> date:
    return parse_billing_date(row.get("billing_date")) or date.min


def merge_dispatch_info(result: Dict, dispatch: Dict) -> Dict:
    return {
        **result,
        "smpl_count": result.get("smpl_count") or dispatch.get("smpl_count") or PLACEHOLDER,
        "blend": result.get("blend") or dispatch.get("blend") or PLACEHOLDER,
        "customer_short_name": result.get("customer_short_name") or dispatch.get("customer_name") or PLACEHOLDER,
        "item_description": dispatch.get("item_description") or PLACEHOLDER,
        "billing_date": dispatch.get("billing_date"),
    }


def list_dispatch_results(store, lot_no: Optional[str] = None) -> List[Dict]:
    """Dispatch results, newest first, with dispatch info of their lot merged in."""
    results = store.fetch(
        settings.DISPATCH_RESULTS_COLLECTION,
        filters={"lot_no": lot_no} if lot_no else None,
        order_by="created_at",
        descending=True,
    )

    lot_numbers = []
    for row in results:
        lot = row.get("lot_no")
        if lot and lot not in lot_numbers:
            lot_numbers.append(lot)
    if not lot_numbers:
        return results

    dispatch_rows = store.fetch(
        settings.DISPATCH_COLLECTION,
        columns=DISPATCH_INFO_COLUMNS,
        filters={"lot_no": {"$in": lot_numbers}},
    )
    latest = latest_dispatch_by_lot(dispatch_rows)
    return [merge_dispatch_info(row, latest.get(row.get("lot_no"), {})) for row in results]
