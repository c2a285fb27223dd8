"""Master Data Sync DAG - refresh master tables, then push curated values onto dispatch data."""

from airflow import DAG
from airflow.sdk.definitions.decorators import task
from datetime import datetime, timedelta
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.master_data import refresh_count_master, refresh_customer_master, refresh_market_master
from core.reconciliation import sync_master_data
from integrations.mongo_handler import get_store

logger = logging.getLogger(__name__)


@task
def refresh_masters():
    """Seed the master tables with keys found in dispatch data."""
    store = get_store()
    try:
        return {
            "yarn_count": refresh_count_master(store, "Yarn"),
            "fabric_count": refresh_count_master(store, "Fabric"),
            "market": refresh_market_master(store),
            "customer": refresh_customer_master(store),
        }
    finally:
        store.close()


@task
def sync_masters(refreshed):
    """Run the master data sync and fail the task on an error event."""
    logger.info(f"Master tables refreshed: {refreshed}")
    store = get_store()
    try:
        final_event = None
        for event in sync_master_data(store):
            if event["type"] == "progress":
                logger.info(f"Synced {event['completed']}/{event['total']} ({event['percent']}%)")
            elif event["type"] == "row_error":
                logger.warning(f"Row {event['stage']}:{event['key']} failed: {event['error']}")
            final_event = event

        if final_event is None or final_event["type"] == "error":
            error = final_event["error"] if final_event else "no events produced"
            raise RuntimeError(f"Master data sync failed: {error}")
        return final_event
    finally:
        store.close()


with DAG(
    dag_id="master_data_sync",
    start_date=datetime(2024, 1, 1),
    schedule="@daily",
    catchup=False,
    default_args={
        "owner": "batch_processing",
        "retries": 3,
        "retry_delay": timedelta(seconds=10),
    },
    tags=["dispatch", "master-data"],
) as dag:

    refreshed = refresh_masters()
    synced = sync_masters(refreshed)

    refreshed >> synced
