"""Billed-quantity statistics over dispatch records.

Rows are folded into five tonnage buckets (unit, market, customer, month,
year) and a grand total. The fold is pure: every step returns a new
accumulator instead of mutating the previous one.
"""

from datetime import date, datetime
from functools import reduce
from typing import Dict, Iterable, Optional
import logging
import re

from integrations.mongo_handler import (
    active_filter,
    column_filters,
    combine,
    division_filter,
    range_filter,
)
from config.settings import settings

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
STATS_COLUMNS = ["plant", "market", "billing_date", "billed_quantity", "customer_name"]
DATE_FORMATS = ["%d-%m-%Y", "%d.%m.%Y", "%d/%m/%Y"]
UNKNOWN = "Unknown"

_LEADING_NUMBER = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")
_LEADING_INTEGER = re.compile(r"[-+]?\d+")


def parse_tonnes(value) -> float:
    """Convert a quantity string such as "8,870 KG" to tonnes (8.87)."""
    text = str(value or "0").replace(",", "").strip()
    token = text.split(" ")[0]
    match = _LEADING_NUMBER.match(token)
    if not match:
        return 0.0
    return float(match.group(0)) / 1000


def unit_for_plant(plant, division: Optional[str]) -> str:
    """Yarn plants collapse to their unit number (1101 -> "1")."""
    match = _LEADING_INTEGER.match(str(plant if plant is not None else "").strip())
    if not match:
        return UNKNOWN

    code = int(match.group(0))
    if division == "Yarn":
        return str(code % 100)
    return str(code)


def parse_billing_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def empty_stats() -> Dict:
    return {
        "unit": {},
        "market": {},
        "customer": {},
        "month": {},
        "year": {},
        "total": 0.0,
    }


def _add(bucket: Dict[str, float], key: str, quantity: float) -> Dict[str, float]:
    return {**bucket, key: bucket.get(key, 0.0) + quantity}


def accumulate(stats: Dict, row: Dict, division: Optional[str] = None) -> Dict:
    """Return a new accumulator with `row` folded into `stats`."""
    quantity = parse_tonnes(row.get("billed_quantity"))
    billed_on = parse_billing_date(row.get("billing_date"))

    month, year = stats["month"], stats["year"]
    if billed_on is not None:
        month = _add(month, MONTH_NAMES[billed_on.month - 1], quantity)
        year = _add(year, str(billed_on.year), quantity)

    return {
        "unit": _add(stats["unit"], unit_for_plant(row.get("plant"), division), quantity),
        "market": _add(stats["market"], str(row.get("market") or UNKNOWN), quantity),
        "customer": _add(stats["customer"], str(row.get("customer_name") or UNKNOWN), quantity),
        "month": month,
        "year": year,
        "total": stats["total"] + quantity,
    }


def aggregate_dispatch_stats(rows: Iterable[Dict], division: Optional[str] = None) -> Dict:
    return reduce(lambda stats, row: accumulate(stats, row, division), rows, empty_stats())


def build_stats_query(
    division: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    filters: Optional[Dict[str, str]] = None,
) -> Dict:
    return combine(
        active_filter(),
        division_filter(division),
        range_filter("billing_date", start_date, end_date),
        column_filters(filters or {}),
    )


def fetch_dispatch_stats(
    store,
    division: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    filters: Optional[Dict[str, str]] = None,
) -> Dict:
    rows = store.fetch(
        settings.DISPATCH_COLLECTION,
        columns=STATS_COLUMNS,
        filters=build_stats_query(division, start_date, end_date, filters),
    )
    stats = aggregate_dispatch_stats(rows, division)
    logger.info(
        f"Aggregated {len(rows)} dispatch rows (division={division or 'all'}): "
        f"{round(stats['total'], 3)} MT"
    )
    return stats


def fetch_dispatch_data(
    store,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    filters: Optional[Dict[str, str]] = None,
):
    """Active dispatch rows, newest first."""
    query = combine(
        active_filter(),
        range_filter("billing_date", start_date, end_date),
        column_filters(filters or {}),
    )
    return store.fetch(
        settings.DISPATCH_COLLECTION,
        filters=query,
        order_by="created_at",
        descending=True,
    )
