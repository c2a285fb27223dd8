from flask import current_app, request

from core.errors import ValidationError


def get_store():
    return current_app.config["STORE"]


def query_params():
    """Query string as a plain dict, one value per key."""
    return request.args.to_dict()


def json_array(message: str = "Payload must be an array"):
    payload = request.get_json(silent=True)
    if not isinstance(payload, list):
        raise ValidationError(message)
    return payload


def json_object():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Payload must be an object")
    return payload
