"""Master table maintenance.

Seeds the count, market and customer masters with natural keys found in the
dispatch data, exposes the rows still waiting for curation, and plans
back-fills of curated values onto dispatch results.
"""

from typing import Dict, List, Sequence
import logging
import re

from config.settings import settings
from core.errors import ValidationError
from integrations.mongo_handler import active_filter, blank_filter, combine, not_blank_filter

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"

# kind -> (table, natural key column, curated columns)
MASTER_KINDS = {
    "count": (settings.COUNT_MASTER_COLLECTION, "item_description", ["smpl_count", "blend"]),
    "market": (settings.MARKET_MASTER_COLLECTION, "ship_to_city", ["market"]),
    "customer": (settings.CUSTOMER_MASTER_COLLECTION, "bill_to_customer", ["customer_name"]),
}

# suggestion kind -> (table, column)
SUGGESTION_KINDS = {
    "count": (settings.COUNT_MASTER_COLLECTION, "smpl_count"),
    "blend": (settings.COUNT_MASTER_COLLECTION, "blend"),
    "market": (settings.MARKET_MASTER_COLLECTION, "market"),
    "customer": (settings.CUSTOMER_MASTER_COLLECTION, "customer_name"),
}

_YARN_DIVISION = {"division_description": {"$regex": "^yarn$", "$options": "i"}}
_NOT_YARN_DIVISION = {"division_description": {"$not": re.compile("^yarn$", re.IGNORECASE)}}


def _division_clause(division: str) -> Dict:
    if division == "Yarn":
        return _YARN_DIVISION
    if division == "Fabric":
        return _NOT_YARN_DIVISION
    raise ValidationError(f"Invalid division: {division}")


def _master_kind(kind: str):
    if kind not in MASTER_KINDS:
        raise ValidationError(f"Invalid type: {kind}")
    return MASTER_KINDS[kind]


def refresh_count_master(store, division: str) -> int:
    """Upsert every item description of the division into the count master."""
    rows = store.fetch(
        settings.DISPATCH_COLLECTION,
        columns=["item_description", "division_description"],
        filters=combine(_division_clause(division), active_filter()),
    )

    divisions = {}
    for row in rows:
        if row.get("item_description"):
            divisions[row["item_description"]] = row.get("division_description")

    store.upsert(
        settings.COUNT_MASTER_COLLECTION,
        [{"item_description": item, "division_description": div} for item, div in divisions.items()],
        conflict_columns=["item_description"],
    )
    logger.info(f"{division} count master refreshed with {len(divisions)} item descriptions")
    return len(divisions)


def _refresh_keys_only(store, kind: str) -> int:
    table, key_column, value_columns = _master_kind(kind)
    rows = store.fetch(settings.DISPATCH_COLLECTION, columns=[key_column], filters=active_filter())

    keys = []
    for row in rows:
        key = row.get(key_column)
        if key and key not in keys:
            keys.append(key)

    # New master rows start with an empty value, awaiting curation
    store.upsert(
        table,
        [{key_column: key, **{column: "" for column in value_columns}} for key in keys],
        conflict_columns=[key_column],
        ignore_duplicates=True,
    )
    logger.info(f"{kind.capitalize()} master refreshed with {len(keys)} keys")
    return len(keys)


def refresh_market_master(store) -> int:
    return _refresh_keys_only(store, "market")


def refresh_customer_master(store) -> int:
    return _refresh_keys_only(store, "customer")


def pending_master_rows(store, kind: str) -> List[Dict]:
    """Master rows whose canonical values are still null or empty.

    `kind` is one of yarn-count, fabric-count, market or customer.
    """
    if kind in ("yarn-count", "fabric-count"):
        division = "Yarn" if kind == "yarn-count" else "Fabric"
        table, _, value_columns = MASTER_KINDS["count"]
        filters = combine(
            _division_clause(division),
            {"$or": [blank_filter(column) for column in value_columns]},
        )
    else:
        table, _, value_columns = _master_kind(kind)
        filters = blank_filter(value_columns[0])

    return store.fetch(table, filters=filters)


def master_suggestions(store, kind: str) -> List[str]:
    if kind not in SUGGESTION_KINDS:
        raise ValidationError(f"Invalid type: {kind}")

    table, column = SUGGESTION_KINDS[kind]
    rows = store.fetch(table, columns=[column], filters=not_blank_filter(column))
    return sorted({row[column] for row in rows if row.get(column)})


def market_mappings(store) -> List[Dict]:
    """Every city to market pair, for auto-populating new dispatch rows."""
    return store.fetch(settings.MARKET_MASTER_COLLECTION, columns=["ship_to_city", "market"])


def update_master_value(store, kind: str, natural_key: str, values: Dict) -> Dict:
    table, key_column, value_columns = _master_kind(kind)
    updates = {column: values[column] for column in value_columns if column in values}
    if not updates:
        raise ValidationError(f"No values provided; expected one of {value_columns}")

    store.update(table, updates, {key_column: natural_key})
    return {key_column: natural_key, **updates}


def _is_missing(value) -> bool:
    return not value or value == PLACEHOLDER


def plan_result_updates(
    results: Sequence[Dict],
    count_master: Sequence[Dict],
    customer_master: Sequence[Dict],
) -> List[Dict]:
    """Propose count, blend and customer values for incomplete dispatch results."""
    counts = {
        row.get("item_description"): {"smpl_count": row.get("smpl_count"), "blend": row.get("blend")}
        for row in count_master
    }
    customers = {row.get("bill_to_customer"): row.get("customer_name") for row in customer_master}

    updates = []
    for row in results:
        master = counts.get(row.get("item_description"))
        customer = customers.get(row.get("name_of_customer"))
        changes = {}

        if master:
            if master["smpl_count"] and _is_missing(row.get("smpl_count")):
                changes["smpl_count"] = master["smpl_count"]
            if master["blend"] and _is_missing(row.get("blend")):
                changes["blend"] = master["blend"]

        if customer and _is_missing(row.get("customer_short_name")):
            changes["customer_short_name"] = customer

        # Rows without an id cannot be targeted by an update
        if changes and row.get("id"):
            updates.append({"id": row.get("id"), **changes})

    return updates


def fetch_result_update_plan(store) -> List[Dict]:
    count_master = store.fetch(
        settings.COUNT_MASTER_COLLECTION,
        columns=["item_description", "smpl_count", "blend"],
    )
    customer_master = store.fetch(
        settings.CUSTOMER_MASTER_COLLECTION,
        columns=["bill_to_customer", "customer_name"],
        filters=not_blank_filter("customer_name"),
    )
    incomplete = {
        "$or": [
            {column: {"$in": [None, PLACEHOLDER]}}
            for column in ("smpl_count", "customer_short_name", "blend")
        ]
    }
    results = store.fetch(
        settings.DISPATCH_RESULTS_COLLECTION,
        columns=["id", "item_description", "name_of_customer", "smpl_count", "customer_short_name", "blend"],
        filters=incomplete,
    )

    updates = plan_result_updates(results, count_master, customer_master)
    logger.info(f"Planned {len(updates)} dispatch result updates from {len(results)} incomplete rows")
    return updates


def apply_result_updates(store, updates: Sequence[Dict]) -> int:
    """Apply planned back-fills by dispatch result id.

    Every update is checked before the first write, so a malformed plan
    changes nothing.
    """
    missing = [
        index for index, update in enumerate(updates)
        if not isinstance(update, dict) or not update.get("id")
    ]
    if missing:
        raise ValidationError(f"Updates without an id at positions {missing}")

    applied = 0
    for update in updates:
        values = {key: value for key, value in update.items() if key != "id"}
        if values:
            store.update(settings.DISPATCH_RESULTS_COLLECTION, values, {"id": update["id"]})
            applied += 1
    return applied
