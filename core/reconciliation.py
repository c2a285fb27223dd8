"""Master-data reconciliation onto dispatch records.

Canonical values from the count, market and customer masters are copied onto
every dispatch row sharing the master row's natural key. Updates run in
batch waves: the rows of one batch are updated concurrently and the next
batch starts only after all of them settle. Progress is reported as a stream
of event dicts, one per settled batch.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, Generator, List, Optional, Sequence, Tuple
import logging
import math

from config.settings import settings
from core.errors import MasterSyncError, StoreError
from integrations.mongo_handler import not_blank_filter

logger = logging.getLogger(__name__)

ABORT = "abort"
SKIP = "skip"
FAILURE_POLICIES = (ABORT, SKIP)

STATUS_OK = "OK"
STATUS_PARTIAL_FAILURE = "PARTIAL_FAILURE"


class MasterStage:
    """One master table and the dispatch columns it feeds."""

    def __init__(self, name: str, table: str, match_column: str, target_columns: Sequence[str]):
        self.name = name
        self.table = table
        self.match_column = match_column
        self.target_columns = list(target_columns)

    def reference_filter(self) -> Dict:
        # A count master row is usable once either of its values is curated
        clauses = [not_blank_filter(column) for column in self.target_columns]
        if len(clauses) == 1:
            return clauses[0]
        return {"$or": clauses}

    def fetch(self, store) -> List[Dict]:
        return store.fetch(
            self.table,
            columns=[self.match_column] + self.target_columns,
            filters=self.reference_filter(),
        )


def master_stages() -> List[MasterStage]:
    """Stages in the fixed order count -> market -> customer."""
    return [
        MasterStage("count", settings.COUNT_MASTER_COLLECTION, "item_description", ["smpl_count", "blend"]),
        MasterStage("market", settings.MARKET_MASTER_COLLECTION, "ship_to_city", ["market"]),
        MasterStage("customer", settings.CUSTOMER_MASTER_COLLECTION, "bill_to_customer", ["customer_name"]),
    ]


def percent_of(completed: int, total: int) -> int:
    if not total:
        return 100
    return int(math.floor(completed * 100 / total + 0.5))


def progress_event(completed: int, total: int) -> Dict:
    return {
        "type": "progress",
        "completed": completed,
        "total": total,
        "percent": percent_of(completed, total),
    }


def batches(rows: Sequence[Dict], batch_size: int):
    for start in range(0, len(rows), batch_size):
        yield rows[start:start + batch_size]


def reconcile(
    reference_rows: Sequence[Dict],
    match_column: str,
    target_columns: Sequence[str],
    apply_update: Callable[[Dict, Dict], object],
    batch_size: int = 15,
    completed: int = 0,
    total: Optional[int] = None,
    failure_policy: str = ABORT,
    stage: str = "",
) -> Generator[Dict, None, Tuple[int, List[str]]]:
    """Push one master table's values onto the dispatch rows.

    `apply_update(values, match)` performs a single update-by-equality.
    Yields progress (and, under the skip policy, row_error) events and
    returns the running `completed` count with the keys that failed.
    Under the abort policy the first failing batch raises MasterSyncError
    once every row in it has settled.
    """
    if failure_policy not in FAILURE_POLICIES:
        raise ValueError(f"Unknown failure policy: {failure_policy}")

    total = len(reference_rows) if total is None else total
    failed_keys: List[str] = []

    for batch in batches(list(reference_rows), batch_size):
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = {
                executor.submit(
                    apply_update,
                    {column: row.get(column) for column in target_columns},
                    {match_column: row.get(match_column)},
                ): row.get(match_column)
                for row in batch
            }
            wait(futures)

        errors = [(key, future.exception()) for future, key in futures.items() if future.exception()]
        completed += len(batch)

        if errors and failure_policy == ABORT:
            keys = [key for key, _ in errors]
            logger.error(
                f"Master sync ({stage or match_column}) aborted after {completed - len(batch)}/{total} "
                f"rows; failed keys: {keys}"
            )
            raise MasterSyncError(str(errors[0][1]), completed=completed - len(batch), failed_keys=keys)

        for key, exc in errors:
            logger.warning(f"Master sync ({stage or match_column}) skipped {key}: {exc}")
            failed_keys.append(key)
            yield {"type": "row_error", "stage": stage, "key": key, "error": str(exc)}

        yield progress_event(completed, total)

    return completed, failed_keys


def sync_master_data(
    store,
    batch_size: Optional[int] = None,
    failure_policy: Optional[str] = None,
) -> Generator[Dict, None, None]:
    """Stream the full count -> market -> customer sync as progress events.

    The stream always ends with a "complete" or an "error" event.
    """
    batch_size = batch_size or settings.SYNC_BATCH_SIZE
    failure_policy = failure_policy or settings.SYNC_FAILURE_POLICY
    stages = master_stages()

    if failure_policy not in FAILURE_POLICIES:
        yield {"type": "error", "error": f"Unknown failure policy: {failure_policy}", "completed": 0}
        return

    try:
        reference_sets = [(stage, stage.fetch(store)) for stage in stages]
    except StoreError as exc:
        logger.error(f"Master sync aborted before any update: {exc}")
        yield {"type": "error", "error": str(exc), "completed": 0}
        return
    except Exception as exc:
        logger.exception(f"Master sync aborted before any update: {exc}")
        yield {"type": "error", "error": str(exc), "completed": 0}
        return

    total = sum(len(rows) for _, rows in reference_sets)
    yield {"type": "start", "total": total}

    def apply_update(values, match):
        return store.update(settings.DISPATCH_COLLECTION, values, match)

    completed, failed_keys = 0, []
    try:
        for stage, rows in reference_sets:
            completed, stage_failures = yield from reconcile(
                rows,
                stage.match_column,
                stage.target_columns,
                apply_update,
                batch_size=batch_size,
                completed=completed,
                total=total,
                failure_policy=failure_policy,
                stage=stage.name,
            )
            failed_keys.extend(f"{stage.name}:{key}" for key in stage_failures)
    except MasterSyncError as exc:
        yield {"type": "error", "error": str(exc), "completed": exc.completed, "failed_keys": exc.failed_keys}
        return

    status = STATUS_PARTIAL_FAILURE if failed_keys else STATUS_OK
    _log_summary(total, completed, failed_keys)
    yield {
        "type": "complete",
        "status": status,
        "failed_keys": failed_keys,
        "message": "Dispatch master data updated successfully"
        if status == STATUS_OK
        else f"Dispatch master data updated with {len(failed_keys)} failed rows",
    }


def _log_summary(total: int, completed: int, failed_keys: List[str]) -> None:
    logger.info("=" * 70)
    logger.info("MASTER DATA SYNC SUMMARY")
    logger.info("=" * 70)
    logger.info(f"Reference rows:              {total}")
    logger.info(f"Rows settled:                {completed}")
    logger.info(f"Rows failed:                 {len(failed_keys)}")
    logger.info("=" * 70)
