"""Tests for single-row dispatch and dispatch result maintenance."""
import pytest

from core.dispatch_records import (
    add_dispatch_result,
    delete_dispatch_row,
    find_by_invoice,
    latest_dispatch_by_lot,
    list_dispatch_results,
    merge_dispatch_info,
    prepare_dispatch_rows,
    update_dispatch_row,
)
from core.errors import NotFoundError, ValidationError


def test_prepare_dispatch_rows_stamps_ids_and_time():
    rows = prepare_dispatch_rows([{"id": 4, "created_at": "x", "lot_no": "L1"}, {"lot_no": "L2"}])

    assert [row["lot_no"] for row in rows] == ["L1", "L2"]
    assert rows[0]["id"] != 4
    assert rows[0]["id"] != rows[1]["id"]
    assert rows[0]["created_at"] == rows[1]["created_at"] != "x"


def test_update_dispatch_row_ignores_protected_columns(make_store):
    store = make_store(tables={"dispatch_data": [{"id": "r1", "market": "", "created_at": "t0"}]})

    row = update_dispatch_row(store, "r1", {"id": "r9", "created_at": "t1", "market": "Export"})

    assert store.updates == [("dispatch_data", {"market": "Export"}, {"id": "r1"})]
    assert row == {"id": "r1", "market": "Export", "created_at": "t0"}


def test_update_dispatch_row_requires_values(make_store):
    store = make_store()

    with pytest.raises(ValidationError):
        update_dispatch_row(store, "r1", {"id": "r1"})

    assert store.updates == []


def test_update_dispatch_row_unknown_id(make_store):
    with pytest.raises(NotFoundError):
        update_dispatch_row(make_store(), "missing", {"market": "Export"})


def test_delete_dispatch_row(make_store):
    store = make_store(tables={"dispatch_data": [{"id": "r1"}, {"id": "r2"}]})

    delete_dispatch_row(store, "r1", deleted_by="Priya")

    assert store.tables["dispatch_data"] == [{"id": "r2"}]


def test_delete_dispatch_row_unknown_id(make_store):
    store = make_store(tables={"dispatch_data": [{"id": "r1"}]})

    with pytest.raises(NotFoundError):
        delete_dispatch_row(store, "r9")

    assert store.tables["dispatch_data"] == [{"id": "r1"}]


def test_find_by_invoice_excludes_canceled(make_store):
    store = make_store(tables={"dispatch_data": [{"billing_document": "INV1", "lot_no": "L1"}]})

    row = find_by_invoice(store, "INV1")

    assert row == {"billing_document": "INV1", "lot_no": "L1"}
    assert store.fetch_calls[0]["filters"] == {
        "$and": [{"billing_document": "INV1"}, {"canceled": {"$ne": "X"}}]
    }


def test_find_by_invoice_not_found(make_store):
    assert find_by_invoice(make_store(), "INV9") is None


def test_add_dispatch_result(make_store):
    store = make_store()

    row = add_dispatch_result(store, {"lot_no": "L1", "id": 5})

    assert row["lot_no"] == "L1"
    assert row["id"] != 5
    assert store.tables["dispatch_results"] == [row]


def test_latest_dispatch_by_lot_prefers_latest_billing_date():
    rows = [
        {"lot_no": "L1", "billing_date": "2024-01-05", "smpl_count": "30s"},
        {"lot_no": "L1", "billing_date": "2024-03-01", "smpl_count": "40s"},
        {"lot_no": "L1", "billing_date": "not a date", "smpl_count": "50s"},
        {"lot_no": "L2", "billing_date": None, "smpl_count": "20s"},
    ]

    latest = latest_dispatch_by_lot(rows)

    assert latest["L1"]["smpl_count"] == "40s"
    assert latest["L2"]["smpl_count"] == "20s"


def test_merge_dispatch_info_keeps_result_values():
    result = {"lot_no": "L1", "smpl_count": "32s", "blend": None, "customer_short_name": ""}
    dispatch = {"smpl_count": "40s", "blend": "PC", "customer_name": "Acme", "item_description": "D1", "billing_date": "2024-03-01"}

    assert merge_dispatch_info(result, dispatch) == {
        "lot_no": "L1",
        "smpl_count": "32s",
        "blend": "PC",
        "customer_short_name": "Acme",
        "item_description": "D1",
        "billing_date": "2024-03-01",
    }


def test_merge_dispatch_info_without_dispatch_row():
    merged = merge_dispatch_info({"lot_no": "L9"}, {})

    assert merged["smpl_count"] == "-"
    assert merged["item_description"] == "-"
    assert merged["billing_date"] is None


def test_list_dispatch_results_merges_by_lot(make_store):
    store = make_store(tables={
        "dispatch_results": [{"id": "r1", "lot_no": "L1"}],
        "dispatch_data": [{"lot_no": "L1", "smpl_count": "40s", "blend": "CO", "customer_name": "Acme",
                           "item_description": "D1", "billing_date": "2024-01-01"}],
    })

    data = list_dispatch_results(store, lot_no="L1")

    results_call, dispatch_call = store.fetch_calls
    assert results_call["filters"] == {"lot_no": "L1"}
    assert results_call["order_by"] == "created_at"
    assert results_call["descending"] is True
    assert dispatch_call["filters"] == {"lot_no": {"$in": ["L1"]}}
    assert data[0]["smpl_count"] == "40s"
    assert data[0]["customer_short_name"] == "Acme"


def test_list_dispatch_results_without_lots_skips_dispatch_fetch(make_store):
    store = make_store(tables={"dispatch_results": [{"id": "r1", "lot_no": ""}]})

    assert list_dispatch_results(store) == [{"id": "r1", "lot_no": ""}]
    assert len(store.fetch_calls) == 1
