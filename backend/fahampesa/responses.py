# Overview: JSON envelope and query-string helpers shared by the API routes.

from flask import jsonify, request

from .errors import ValidationError


def success(data=None, code: int = 200):
    return jsonify({"success": True, "data": data}), code


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def query_flag(name: str) -> bool:
    return request.args.get(name, "").lower() in {"1", "true", "yes"}


def query_int_list(name: str):
    """Comma-separated ints, e.g. ?product_ids=1,2,3. None when absent."""
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValidationError(f"{name} must be a comma-separated list of integers")
