from flask import Blueprint, jsonify

from api.request_helpers import get_store, json_object
from core.master_data import (
    market_mappings,
    master_suggestions,
    pending_master_rows,
    refresh_count_master,
    refresh_customer_master,
    refresh_market_master,
    update_master_value,
)

master_bp = Blueprint("master", __name__)


@master_bp.route("/master/refresh-yarn-count", methods=["POST"])
def refresh_yarn_count():
    refresh_count_master(get_store(), "Yarn")
    return jsonify({"success": True, "message": "Yarn count master refreshed"})


@master_bp.route("/master/refresh-fabric-count", methods=["POST"])
def refresh_fabric_count():
    refresh_count_master(get_store(), "Fabric")
    return jsonify({"success": True, "message": "Fabric count master refreshed"})


@master_bp.route("/master/refresh-market", methods=["POST"])
def refresh_market():
    refresh_market_master(get_store())
    return jsonify({"success": True, "message": "Market master refreshed"})


@master_bp.route("/master/refresh-customer", methods=["POST"])
def refresh_customer():
    refresh_customer_master(get_store())
    return jsonify({"success": True, "message": "Customer master refreshed"})


@master_bp.route("/master/pending-<kind>", methods=["GET"])
def pending(kind):
    data = pending_master_rows(get_store(), kind)
    return jsonify({"success": True, "data": data})


@master_bp.route("/master/suggestions/<kind>", methods=["GET"])
def suggestions(kind):
    data = master_suggestions(get_store(), kind)
    return jsonify({"success": True, "data": data})


@master_bp.route("/master/market-mappings", methods=["GET"])
def list_market_mappings():
    return jsonify({"success": True, "data": market_mappings(get_store())})


@master_bp.route("/master/<kind>/<path:natural_key>", methods=["PUT"])
def update_master(kind, natural_key):
    values = json_object()
    data = update_master_value(get_store(), kind, natural_key, values)
    return jsonify({"success": True, "data": data})
