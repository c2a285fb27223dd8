from flask import Blueprint, jsonify

from api.request_helpers import get_store, json_object, query_params
from core.dispatch_records import add_dispatch_result, list_dispatch_results
from core.duplicates import insert_dispatch_results
from core.errors import ValidationError
from core.master_data import apply_result_updates, fetch_result_update_plan

results_bp = Blueprint("dispatch_results", __name__)


@results_bp.route("/dispatch-results", methods=["GET"])
def list_results():
    data = list_dispatch_results(get_store(), query_params().get("lot_no"))
    return jsonify({"success": True, "data": data})


@results_bp.route("/dispatch-results", methods=["POST"])
def add_result():
    data = add_dispatch_result(get_store(), json_object())
    return jsonify({"success": True, "data": data})


@results_bp.route("/dispatch-results/batch", methods=["POST"])
def batch_add_results():
    results = json_object().get("results")
    if not isinstance(results, list) or not results:
        raise ValidationError("No results provided")

    outcome = insert_dispatch_results(get_store(), results)
    return jsonify({"success": True, **outcome})


@results_bp.route("/dispatch-results/update-masters-plan", methods=["GET"])
def update_masters_plan():
    updates = fetch_result_update_plan(get_store())
    return jsonify({"success": True, "updates": updates})


@results_bp.route("/dispatch-results/update-masters-execute", methods=["POST"])
def update_masters_execute():
    updates = json_object().get("updates")
    if not isinstance(updates, list):
        raise ValidationError("Invalid updates format")

    applied = apply_result_updates(get_store(), updates)
    return jsonify({"success": True, "applied": applied})
