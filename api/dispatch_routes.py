import json
import logging

from flask import Blueprint, Response, jsonify, request, stream_with_context

from api.request_helpers import get_store, json_array, json_object, query_params
from config.settings import settings
from core.dispatch_records import delete_dispatch_row, find_by_invoice, prepare_dispatch_rows, update_dispatch_row
from core.dispatch_stats import fetch_dispatch_data, fetch_dispatch_stats
from core.duplicates import find_duplicates
from core.reconciliation import sync_master_data

logger = logging.getLogger(__name__)

dispatch_bp = Blueprint("dispatch", __name__)


@dispatch_bp.route("/dispatch-data", methods=["GET"])
def list_dispatch_data():
    params = query_params()
    start_date = params.pop("startDate", None)
    end_date = params.pop("endDate", None)

    data = fetch_dispatch_data(get_store(), start_date, end_date, params)
    return jsonify({"success": True, "data": data})


@dispatch_bp.route("/dispatch-data/bulk", methods=["POST"])
def bulk_add_dispatch_data():
    rows = prepare_dispatch_rows(json_array())
    data = get_store().insert(settings.DISPATCH_COLLECTION, rows)
    logger.info(f"Inserted {len(data)} dispatch rows")
    return jsonify({"success": True, "data": data})


@dispatch_bp.route("/dispatch-data/<row_id>", methods=["PUT"])
def update_dispatch_data(row_id):
    data = update_dispatch_row(get_store(), row_id, json_object())
    return jsonify({"success": True, "data": data})


@dispatch_bp.route("/dispatch-data/<row_id>", methods=["DELETE"])
def delete_dispatch_data(row_id):
    delete_dispatch_row(get_store(), row_id, request.args.get("deleted_by"))
    return jsonify({"success": True, "message": "Entry deleted"})


@dispatch_bp.route("/dispatch-data/by-invoice/<invoice_no>", methods=["GET"])
def dispatch_by_invoice(invoice_no):
    row = find_by_invoice(get_store(), invoice_no)
    if row is None:
        return jsonify({"success": False, "message": "Invoice not found"})
    return jsonify({"success": True, "data": row})


@dispatch_bp.route("/dispatch-data/check-duplicates", methods=["POST"])
def check_duplicates():
    entries = json_array()
    result = find_duplicates(get_store(), entries)
    return jsonify({
        "success": True,
        "duplicateCount": len(result["duplicates"]),
        "nonDuplicates": result["non_duplicates"],
    })


@dispatch_bp.route("/sync-master-data", methods=["POST"])
def sync_master():
    events = sync_master_data(get_store())

    def generate():
        for event in events:
            yield json.dumps(event) + "\n"

    return Response(stream_with_context(generate()), mimetype="application/x-ndjson")


@dispatch_bp.route("/dispatch-stats", methods=["GET"])
def dispatch_stats():
    params = query_params()
    division = params.pop("division", None)
    start_date = params.pop("startDate", None)
    end_date = params.pop("endDate", None)

    stats = fetch_dispatch_stats(get_store(), division, start_date, end_date, params)
    return jsonify({"success": True, "stats": stats})
